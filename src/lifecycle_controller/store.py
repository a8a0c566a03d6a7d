"""
Kubernetes Cluster Store

Node reads, node deletes and event recording against the Kubernetes API.
The kubernetes client is synchronous, so every call runs in a worker thread.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from lifecycle_controller.errors import NodeNotFound
from lifecycle_controller.state import ClusterNode, ConditionStatus, NodeRef, ReadyCondition

logger = logging.getLogger(__name__)

COMPONENT_NAME = "cloud-lifecycle-controller"
EVENT_NAMESPACE = "default"
NODE_READY = "Ready"


def load_api_client(kubeconfig: str | None = None) -> client.ApiClient:
    """Load in-cluster credentials, falling back to a kubeconfig file."""
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
    else:
        try:
            config.load_incluster_config()
        except ConfigException:
            config.load_kube_config()
    return client.ApiClient()


def ready_condition_from_k8s(conditions: list[Any] | None) -> ReadyCondition | None:
    """Pick the Ready condition out of a node's status conditions."""
    for condition in conditions or []:
        if condition.type != NODE_READY:
            continue
        try:
            status = ConditionStatus(condition.status)
        except ValueError:
            status = ConditionStatus.UNKNOWN
        return ReadyCondition(
            status=status,
            reason=condition.reason or "",
            message=condition.message or "",
            last_transition_time=condition.last_transition_time,
        )
    return None


def node_from_k8s(node: Any) -> ClusterNode:
    """Convert a V1Node into a ClusterNode."""
    spec = node.spec
    status = node.status
    return ClusterNode(
        name=node.metadata.name,
        uid=node.metadata.uid or "",
        provider_id=(spec.provider_id if spec else None) or "",
        ready_condition=ready_condition_from_k8s(status.conditions if status else None),
    )


class KubernetesNodeStore:
    """Get and delete Node objects."""

    def __init__(self, core_api: client.CoreV1Api):
        self.core_api = core_api

    async def get(self, name: str) -> ClusterNode:
        try:
            node = await asyncio.to_thread(self.core_api.read_node, name)
        except ApiException as e:
            if e.status == 404:
                raise NodeNotFound(name) from e
            raise
        return node_from_k8s(node)

    async def delete(self, name: str) -> None:
        try:
            await asyncio.to_thread(self.core_api.delete_node, name)
        except ApiException as e:
            if e.status == 404:
                raise NodeNotFound(name) from e
            raise
        logger.info("Deleted node", extra={"node": name})


class KubernetesEventRecorder:
    """
    Records core/v1 Events for nodes.

    ``record`` returns immediately; the API call runs in a background task and
    delivery failures are only logged.
    """

    def __init__(self, core_api: client.CoreV1Api, component: str = COMPONENT_NAME):
        self.core_api = core_api
        self.component = component
        self._pending: set[asyncio.Task] = set()

    def build_event(
        self, ref: NodeRef, event_type: str, reason: str, message: str
    ) -> client.CoreV1Event:
        now = datetime.now(timezone.utc)
        return client.CoreV1Event(
            metadata=client.V1ObjectMeta(
                name=f"{ref.name}.{time.time_ns():x}",
                namespace=EVENT_NAMESPACE,
            ),
            involved_object=client.V1ObjectReference(
                kind=ref.kind,
                name=ref.name,
                uid=ref.uid or None,
            ),
            reason=reason,
            message=message,
            type=event_type,
            source=client.V1EventSource(component=self.component),
            reporting_component=self.component,
            first_timestamp=now,
            last_timestamp=now,
            count=1,
        )

    def record(self, ref: NodeRef, event_type: str, reason: str, message: str) -> None:
        event = self.build_event(ref, event_type, reason, message)
        task = asyncio.get_running_loop().create_task(self._send(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, event: client.CoreV1Event) -> None:
        try:
            await asyncio.to_thread(
                self.core_api.create_namespaced_event, EVENT_NAMESPACE, event
            )
        except (ApiException, HTTPError) as e:
            logger.warning(
                "Failed to record event",
                extra={"node": event.involved_object.name, "reason": event.reason, "error": str(e)},
            )

    async def flush(self) -> None:
        """Wait for in-flight events to be delivered."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
