"""State definitions for node lifecycle reconciliation."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class ConditionStatus(str, Enum):
    """Tri-state status of a node condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class InstanceStatus(Enum):
    """Status of the instance backing a node, as seen by the provider."""

    UNKNOWN = "Unknown"
    NOT_FOUND = "NotFound"
    SHUTDOWN = "Shutdown"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """NotFound and Shutdown drive deletion; Unknown never does."""
        return self is not InstanceStatus.UNKNOWN


class ReconciliationOutcome(Enum):
    """Terminal action of a single reconciliation pass."""

    IGNORED = "ignored"
    DELETED = "deleted"
    DRY_RUN_SKIPPED = "dry_run_skipped"
    REQUEUED = "requeued"
    FAILED = "failed"


@dataclass(frozen=True)
class ReadyCondition:
    """The node's Ready condition as reported by the kubelet."""

    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = None


@dataclass(frozen=True)
class NodeRef:
    """Reference used to attribute events to a node."""

    name: str
    uid: str = ""
    kind: str = "Node"


@dataclass(frozen=True)
class ClusterNode:
    """A cluster member as stored in the cluster API."""

    name: str
    provider_id: str = ""
    ready_condition: ReadyCondition | None = None
    uid: str = ""

    def ref(self) -> NodeRef:
        return NodeRef(name=self.name, uid=self.uid)


@dataclass(frozen=True)
class ReconcileResult:
    """Return contract of one reconciliation pass."""

    node: str
    outcome: ReconciliationOutcome
    reason: str = ""
    status: InstanceStatus | None = None
    error: Exception | None = None

    @property
    def requeue(self) -> bool:
        return self.outcome is ReconciliationOutcome.REQUEUED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "node": self.node,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "status": str(self.status) if self.status else None,
            "requeue": self.requeue,
            "error": str(self.error) if self.error else None,
        }
