#!/usr/bin/env python3
"""CLI for the cloud node lifecycle controller."""

import argparse
import asyncio
import json
import logging
import signal
import sys

import uvicorn
from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from lifecycle_controller.config import ControllerConfig, load_provider_context
from lifecycle_controller.controller import Controller, NodeWatcher
from lifecycle_controller.errors import LifecycleError
from lifecycle_controller.instances import NotFoundMatcher, build_instance_provider
from lifecycle_controller.logging_config import get_uvicorn_log_config, setup_logging
from lifecycle_controller.provider_id import generate_provider_id, get_provider_id
from lifecycle_controller.queue import WorkQueue
from lifecycle_controller.reconciler import NodeLifecycleReconciler, ReconcilerConfig
from lifecycle_controller.state import ReconciliationOutcome
from lifecycle_controller.store import (
    KubernetesEventRecorder,
    KubernetesNodeStore,
    load_api_client,
)
from lifecycle_health import ProbeState, create_app

logger = logging.getLogger(__name__)

SERVER_START_POLL_SECONDS = 0.1


def print_result(result: dict, format_type: str = "text") -> None:
    """Print the result of a single reconciliation pass."""
    if format_type == "json":
        print(json.dumps(result, indent=2))
        return

    outcome_icon = {
        "ignored": "✓",
        "deleted": "✗",
        "dry_run_skipped": "~",
        "requeued": "↻",
        "failed": "!",
    }.get(result["outcome"], "?")
    print(f"{outcome_icon} {result['node']}: {result['outcome'].upper()}")
    if result["status"]:
        print(f"   Instance status: {result['status']}")
    if result["reason"]:
        print(f"   Reason: {result['reason']}")
    if result["error"]:
        print(f"   Error: {result['error']}")


def build_config(args: argparse.Namespace) -> ControllerConfig:
    """Environment config with CLI flags applied on top."""
    config = ControllerConfig.from_env().with_overrides(
        cloud=args.cloud,
        cloud_config=args.cloud_config,
        cloud_zone=args.cloud_zone,
        dry_run=args.dry_run,
        kubeconfig=args.kubeconfig,
        workers=getattr(args, "workers", None),
        resync_seconds=getattr(args, "resync_seconds", None),
        pass_timeout=getattr(args, "pass_timeout", None),
        probe_address=getattr(args, "probe_address", None),
        not_found_patterns=tuple(args.not_found_pattern) if args.not_found_pattern else None,
    )
    config.validate()
    return config


def build_reconciler(
    config: ControllerConfig, core_api: client.CoreV1Api
) -> tuple[NodeLifecycleReconciler, KubernetesEventRecorder]:
    """Wire the reconciler to the cluster API and the provider adapter."""
    context = load_provider_context(config)
    recorder = KubernetesEventRecorder(core_api)
    reconciler = NodeLifecycleReconciler(
        config=ReconcilerConfig(
            context=context,
            dry_run=config.dry_run,
            is_not_found_error=NotFoundMatcher(config.not_found_patterns),
        ),
        store=KubernetesNodeStore(core_api),
        instances=build_instance_provider(context),
        events=recorder,
    )
    return reconciler, recorder


async def _wait_for_server(server: uvicorn.Server, task: asyncio.Task) -> None:
    while not server.started:
        if task.done():
            # Surface bind errors and the like
            task.result()
            raise LifecycleError("probe server exited during startup")
        await asyncio.sleep(SERVER_START_POLL_SECONDS)


async def cmd_run(args: argparse.Namespace, config: ControllerConfig) -> int:
    """Run the controller until SIGINT or SIGTERM."""
    core_api = client.CoreV1Api(load_api_client(config.kubeconfig or None))
    reconciler, recorder = build_reconciler(config, core_api)

    queue = WorkQueue(base_delay=config.backoff_base, max_delay=config.backoff_max)
    controller = Controller(
        reconciler, queue, workers=config.workers, pass_timeout=config.pass_timeout
    )
    watcher = NodeWatcher(core_api, queue, resync_seconds=config.resync_seconds)
    probes = ProbeState()

    host, port = config.probe_host_port()
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(probes),
            host=host,
            port=port,
            log_config=get_uvicorn_log_config(args.format == "json"),
        )
    )

    logger.info(
        "Starting node lifecycle controller",
        extra={
            "cloud": reconciler.config.context.name,
            "dry_run": config.dry_run,
            "workers": config.workers,
            "probe_address": f"{host}:{port}",
        },
    )

    server_task = asyncio.create_task(server.serve())
    await _wait_for_server(server, server_task)

    # Installed after uvicorn starts so the controller owns shutdown
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    watcher.start(loop, on_synced=probes.mark_ready)
    workers_task = asyncio.create_task(controller.run())

    await stop.wait()
    logger.info("Shutting down")

    probes.mark_not_ready()
    watcher.stop()
    queue.shut_down()
    await workers_task
    await recorder.flush()

    server.should_exit = True
    await server_task
    return 0


async def cmd_check(args: argparse.Namespace, config: ControllerConfig) -> int:
    """Run a single reconciliation pass for one node."""
    core_api = client.CoreV1Api(load_api_client(config.kubeconfig or None))
    reconciler, recorder = build_reconciler(config, core_api)

    result = await reconciler.reconcile(args.node)
    await recorder.flush()

    print_result(result.to_dict(), args.format)
    return 1 if result.outcome is ReconciliationOutcome.FAILED else 0


async def cmd_resolve(args: argparse.Namespace, config: ControllerConfig) -> int:
    """Print the provider ID the controller would use for a node."""
    context = load_provider_context(config)

    if args.offline:
        provider_id = generate_provider_id(context, args.node)
    else:
        core_api = client.CoreV1Api(load_api_client(config.kubeconfig or None))
        store = KubernetesNodeStore(core_api)
        provider_id = get_provider_id(await store.get(args.node), context)

    if args.format == "json":
        print(json.dumps({"node": args.node, "provider_id": provider_id}, indent=2))
    else:
        print(provider_id)
    return 0


async def _dispatch(args: argparse.Namespace) -> int:
    try:
        config = build_config(args)
        return await args.func(args, config)
    except LifecycleError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except ApiException as e:
        print(f"Error: cluster API request failed: {e.status} {e.reason}", file=sys.stderr)
        return 1
    except HTTPError as e:
        print(f"Error: unable to reach cluster API: {e}", file=sys.stderr)
        return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Deletes cluster nodes whose cloud instances are gone or shut down",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cloud-lifecycle-controller --cloud aws run                    # Run the controller
  cloud-lifecycle-controller --cloud aws --dry-run run          # Log and emit events only
  cloud-lifecycle-controller --cloud azure --cloud-config azure.json check aks-pool-000001
  cloud-lifecycle-controller --cloud aws resolve ip-10-0-0-1-i-0abc --offline
        """,
    )
    parser.add_argument(
        "--format",
        "-f",
        choices=["text", "json"],
        default="text",
        help="Output format (json also switches logs to JSON)",
    )
    parser.add_argument("--cloud", help="Cloud provider family (aws, azure)")
    parser.add_argument("--cloud-config", help="Path to the cloud provider config file")
    parser.add_argument("--cloud-zone", help="Cloud zone or region override")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Emit events but never delete nodes",
    )
    parser.add_argument("--kubeconfig", help="Path to a kubeconfig (default: in-cluster)")
    parser.add_argument(
        "--not-found-pattern",
        action="append",
        help="Error text treated as 'instance not found' (repeatable)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run command
    run_parser = subparsers.add_parser("run", help="Run the controller")
    run_parser.add_argument("--workers", type=int, help="Concurrent reconcile workers")
    run_parser.add_argument(
        "--resync-seconds", type=int, help="Seconds between full node relists"
    )
    run_parser.add_argument(
        "--pass-timeout", type=float, help="Seconds allowed for a single reconcile pass"
    )
    run_parser.add_argument(
        "--probe-address",
        help="Bind address for health, readiness and metrics (default: :8081)",
    )
    run_parser.set_defaults(func=cmd_run)

    # check command
    check_parser = subparsers.add_parser("check", help="Reconcile a single node once")
    check_parser.add_argument("node", help="Node name")
    check_parser.set_defaults(func=cmd_check)

    # resolve command
    resolve_parser = subparsers.add_parser("resolve", help="Show a node's provider ID")
    resolve_parser.add_argument("node", help="Node name")
    resolve_parser.add_argument(
        "--offline",
        action="store_true",
        help="Derive from the node name without reading the cluster",
    )
    resolve_parser.set_defaults(func=cmd_resolve)

    args = parser.parse_args(argv)
    setup_logging(level=args.log_level, json_format=args.format == "json")
    return asyncio.run(_dispatch(args))


if __name__ == "__main__":
    sys.exit(main())
