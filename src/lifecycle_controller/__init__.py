"""Cloud node lifecycle controller."""

from lifecycle_controller.controller import Controller, NodeWatcher
from lifecycle_controller.providers import ProviderContext, ProviderFamily
from lifecycle_controller.queue import WorkQueue
from lifecycle_controller.reconciler import NodeLifecycleReconciler, ReconcilerConfig
from lifecycle_controller.state import InstanceStatus, ReconcileResult, ReconciliationOutcome

__version__ = "1.0.0"

__all__ = [
    "Controller",
    "InstanceStatus",
    "NodeLifecycleReconciler",
    "NodeWatcher",
    "ProviderContext",
    "ProviderFamily",
    "ReconcileResult",
    "ReconcilerConfig",
    "ReconciliationOutcome",
    "WorkQueue",
]
