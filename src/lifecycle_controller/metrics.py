"""
Prometheus Metrics for the Node Lifecycle Controller

Tracks:
- Reconciliation outcomes and latency
- Node deletions (including dry-run skips)
- Work queue depth and requeues
"""

from prometheus_client import Counter, Gauge, Histogram

from lifecycle_controller.state import ReconcileResult, ReconciliationOutcome


# =============================================================================
# Reconciliation Metrics
# =============================================================================

RECONCILE_TOTAL = Counter(
    "lifecycle_reconcile_total",
    "Total reconciliation passes by outcome",
    ["outcome"]
)

RECONCILE_ERRORS_TOTAL = Counter(
    "lifecycle_reconcile_errors_total",
    "Reconciliation passes that raised instead of returning an outcome"
)

RECONCILE_DURATION = Histogram(
    "lifecycle_reconcile_duration_seconds",
    "Reconciliation pass latency in seconds",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

NODE_DELETIONS_TOTAL = Counter(
    "lifecycle_node_deletions_total",
    "Nodes selected for deletion by instance status",
    ["status", "dry_run"]
)


# =============================================================================
# Work Queue Metrics
# =============================================================================

WORKQUEUE_DEPTH = Gauge(
    "lifecycle_workqueue_depth",
    "Number of node keys waiting for a worker"
)

WORKQUEUE_REQUEUES_TOTAL = Counter(
    "lifecycle_workqueue_requeues_total",
    "Node keys scheduled again after a backoff delay"
)


def record_result(result: ReconcileResult, duration: float) -> None:
    """Record a completed reconciliation pass."""
    RECONCILE_TOTAL.labels(outcome=result.outcome.value).inc()
    RECONCILE_DURATION.observe(duration)

    if result.outcome in (
        ReconciliationOutcome.DELETED,
        ReconciliationOutcome.DRY_RUN_SKIPPED,
        ReconciliationOutcome.FAILED,
    ):
        NODE_DELETIONS_TOTAL.labels(
            status=str(result.status),
            dry_run=str(result.outcome is ReconciliationOutcome.DRY_RUN_SKIPPED).lower(),
        ).inc()


def record_error(duration: float) -> None:
    """Record a pass that raised."""
    RECONCILE_ERRORS_TOTAL.inc()
    RECONCILE_DURATION.observe(duration)
