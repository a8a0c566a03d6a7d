"""
Controller Runtime

Feeds node names from a Kubernetes watch into the work queue and runs worker
tasks that hand each name to the reconciler. Requeue and backoff decisions
live here, not in the reconciler.
"""

import asyncio
import logging
import threading
import time
from typing import Any, Callable

from kubernetes import watch
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from lifecycle_controller import metrics
from lifecycle_controller.queue import ShutDown, WorkQueue
from lifecycle_controller.reconciler import NodeLifecycleReconciler
from lifecycle_controller.state import ReconciliationOutcome

logger = logging.getLogger(__name__)

DEFAULT_RESYNC_SECONDS = 300
WATCH_RETRY_SECONDS = 5.0


class NodeWatcher:
    """
    Lists and watches Node objects, adding every observed name to the queue.

    Each cycle relists all nodes and then watches until the server closes the
    stream after ``resync_seconds``, so every node is revisited periodically
    even without changes.
    """

    def __init__(
        self,
        core_api: Any,
        queue: WorkQueue,
        resync_seconds: int = DEFAULT_RESYNC_SECONDS,
    ):
        self.core_api = core_api
        self.queue = queue
        self.resync_seconds = resync_seconds
        self._stop = threading.Event()

    def stop(self) -> None:
        self._stop.set()

    def _list(self, loop: asyncio.AbstractEventLoop) -> str:
        nodes = self.core_api.list_node()
        for node in nodes.items:
            loop.call_soon_threadsafe(self.queue.add, node.metadata.name)
        return nodes.metadata.resource_version

    def _watch(self, loop: asyncio.AbstractEventLoop, resource_version: str) -> None:
        stream = watch.Watch()
        for event in stream.stream(
            self.core_api.list_node,
            resource_version=resource_version,
            timeout_seconds=self.resync_seconds,
        ):
            if self._stop.is_set():
                stream.stop()
                break
            node = event["object"]
            logger.debug(
                "Node event",
                extra={"node": node.metadata.name, "event_type": event["type"]},
            )
            loop.call_soon_threadsafe(self.queue.add, node.metadata.name)

    def start(
        self,
        loop: asyncio.AbstractEventLoop,
        on_synced: Callable[[], None] | None = None,
    ) -> threading.Thread:
        """Run the list/watch loop in a daemon thread feeding the queue on ``loop``."""
        thread = threading.Thread(
            target=self._run, args=(loop, on_synced), name="node-watch", daemon=True
        )
        thread.start()
        return thread

    def _run(
        self,
        loop: asyncio.AbstractEventLoop,
        on_synced: Callable[[], None] | None,
    ) -> None:
        while not self._stop.is_set() and not self.queue.shutting_down:
            try:
                resource_version = self._list(loop)
                if on_synced:
                    loop.call_soon_threadsafe(on_synced)
                self._watch(loop, resource_version)
            except ApiException as e:
                if e.status == 410:
                    logger.info("Node watch expired, relisting")
                    continue
                logger.warning("Node watch failed", extra={"error": str(e), "status": e.status})
                self._stop.wait(WATCH_RETRY_SECONDS)
            except HTTPError as e:
                logger.warning("Node watch connection failed", extra={"error": str(e)})
                self._stop.wait(WATCH_RETRY_SECONDS)
            except RuntimeError:
                # Event loop closed underneath us
                break
        logger.info("Node watch stopped")


class Controller:
    """Runs reconciliation workers over a work queue."""

    def __init__(
        self,
        reconciler: NodeLifecycleReconciler,
        queue: WorkQueue,
        workers: int = 1,
        pass_timeout: float | None = None,
    ):
        self.reconciler = reconciler
        self.queue = queue
        self.workers = max(1, workers)
        self.pass_timeout = pass_timeout

    def _requeue(self, key: str) -> None:
        delay = self.queue.add_rate_limited(key)
        metrics.WORKQUEUE_REQUEUES_TOTAL.inc()
        logger.debug("Requeued node", extra={"node": key, "delay_seconds": round(delay, 3)})

    async def process_next(self) -> bool:
        """Process one key. Returns False once the queue is shut down."""
        try:
            key = await self.queue.get()
        except ShutDown:
            return False

        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                self.reconciler.reconcile(key), timeout=self.pass_timeout
            )
        except Exception as e:
            metrics.record_error(time.monotonic() - start)
            logger.error(
                "Reconciler error",
                extra={"node": key, "error": str(e) or type(e).__name__},
                exc_info=not isinstance(e, asyncio.TimeoutError),
            )
            self._requeue(key)
        else:
            metrics.record_result(result, time.monotonic() - start)
            if result.outcome in (ReconciliationOutcome.REQUEUED, ReconciliationOutcome.FAILED):
                self._requeue(key)
            else:
                self.queue.forget(key)
        finally:
            self.queue.done(key)
            metrics.WORKQUEUE_DEPTH.set(len(self.queue))

        return True

    async def _worker(self) -> None:
        while await self.process_next():
            pass

    async def run(self) -> None:
        """Run workers until the queue shuts down."""
        logger.info("Starting workers", extra={"workers": self.workers})
        await asyncio.gather(*(self._worker() for _ in range(self.workers)))
        logger.info("Workers stopped")
