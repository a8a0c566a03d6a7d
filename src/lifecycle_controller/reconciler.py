"""Node lifecycle reconciliation engine."""

import logging
from dataclasses import dataclass, field
from typing import Protocol

from lifecycle_controller.errors import NodeNotFound, ReadyConditionMissing
from lifecycle_controller.instances import InstanceProvider, NotFoundMatcher, NotFoundPredicate
from lifecycle_controller.provider_id import get_provider_id
from lifecycle_controller.providers import ProviderContext
from lifecycle_controller.state import (
    ClusterNode,
    ConditionStatus,
    InstanceStatus,
    NodeRef,
    ReconcileResult,
    ReconciliationOutcome,
)
from lifecycle_controller.status import classify_instance

logger = logging.getLogger(__name__)

DELETE_NODE_EVENT = "DeletingNode"
EVENT_TYPE_NORMAL = "Normal"


class NodeStore(Protocol):
    """Cluster store access. Both calls raise NodeNotFound for missing nodes."""

    async def get(self, name: str) -> ClusterNode: ...

    async def delete(self, name: str) -> None: ...


class EventSink(Protocol):
    """Fire-and-forget event recording."""

    def record(self, ref: NodeRef, event_type: str, reason: str, message: str) -> None: ...


@dataclass(frozen=True)
class ReconcilerConfig:
    """Immutable per-process reconciler settings."""

    context: ProviderContext
    dry_run: bool = False
    is_not_found_error: NotFoundPredicate = field(default_factory=NotFoundMatcher)


@dataclass(frozen=True)
class NodeLifecycleReconciler:
    """
    Decides, one node at a time, whether a cluster node has lost its backing
    instance and should be removed from the cluster.

    A pass never sleeps or retries. Ambiguous provider answers come back as
    REQUEUED results and the caller owns the backoff.
    """

    config: ReconcilerConfig
    store: NodeStore
    instances: InstanceProvider
    events: EventSink

    async def reconcile(self, name: str) -> ReconcileResult:
        """Run one reconciliation pass for the named node."""
        log_extra = {"node": name}

        try:
            node = await self.store.get(name)
        except NodeNotFound:
            logger.debug("Node deleted while performing reconciliation step", extra=log_extra)
            return ReconcileResult(name, ReconciliationOutcome.IGNORED, "node not found")

        condition = node.ready_condition
        if condition is None:
            raise ReadyConditionMissing(name)

        logger.debug("Node status", extra={**log_extra, "ready": condition.status.value})

        if condition.status is ConditionStatus.TRUE:
            logger.debug("Node is up according to APIServer, ignoring", extra=log_extra)
            return ReconcileResult(name, ReconciliationOutcome.IGNORED, "node is ready")

        logger.info(
            "Node appears down according to APIServer, investigating",
            extra={**log_extra, "ready": condition.status.value, "reason": condition.reason},
        )
        return await self._reconcile_suspect(node)

    async def node_status(self, node: ClusterNode) -> InstanceStatus:
        """Resolve the node's provider ID and classify its instance."""
        provider_id = get_provider_id(node, self.config.context)
        return await classify_instance(
            provider_id, self.instances, self.config.is_not_found_error
        )

    async def _reconcile_suspect(self, node: ClusterNode) -> ReconcileResult:
        log_extra = {"node": node.name}

        try:
            status = await self.node_status(node)
        except Exception as e:
            logger.warning("Unable to get node status", extra={**log_extra, "error": str(e)})
            status = InstanceStatus.UNKNOWN

        if status is InstanceStatus.UNKNOWN:
            # Kubelet health usually drops before the provider records the
            # shutdown, so look again later instead of treating it as alive.
            logger.info(
                "Requeuing reconciliation for node to let cloud status settle",
                extra=log_extra,
            )
            return ReconcileResult(
                node.name,
                ReconciliationOutcome.REQUEUED,
                "instance status unknown",
                status=status,
            )

        message = f"Deleting node {node.name} because node status is {status}"
        logger.info(message, extra={**log_extra, "instance_status": str(status)})
        self.events.record(node.ref(), EVENT_TYPE_NORMAL, DELETE_NODE_EVENT, message)

        if self.config.dry_run:
            logger.info("Dry run: skipping node deletion", extra=log_extra)
            return ReconcileResult(
                node.name, ReconciliationOutcome.DRY_RUN_SKIPPED, message, status=status
            )

        try:
            await self.store.delete(node.name)
        except NodeNotFound as e:
            # Reported as a failure; the next pass sees the node gone and ignores it
            logger.info("Node already gone at deletion time", extra=log_extra)
            return ReconcileResult(
                node.name, ReconciliationOutcome.FAILED, message, status=status, error=e
            )
        except Exception as e:
            logger.error("Unable to delete node", extra={**log_extra, "error": str(e)})
            return ReconcileResult(
                node.name, ReconciliationOutcome.FAILED, message, status=status, error=e
            )

        return ReconcileResult(node.name, ReconciliationOutcome.DELETED, message, status=status)
