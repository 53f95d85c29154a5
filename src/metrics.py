"""Prometheus metrics for the gateway operator."""

from prometheus_client import Counter, Histogram, Gauge, Info

# Reconciliation metrics
RECONCILE_TOTAL = Counter(
    "gateway_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "status"],
)

RECONCILE_DURATION = Histogram(
    "gateway_operator_reconcile_duration_seconds",
    "Time spent in reconciliation",
    ["kind"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

RECONCILE_IN_PROGRESS = Gauge(
    "gateway_operator_reconcile_in_progress",
    "Number of reconciliations currently in progress",
    ["kind"],
)

# Work queue metrics
WORKQUEUE_DEPTH = Gauge(
    "gateway_operator_workqueue_depth",
    "Number of objects waiting to be reconciled",
    ["kind"],
)

WORKQUEUE_RETRIES = Counter(
    "gateway_operator_workqueue_retries_total",
    "Total number of requeued reconciliations",
    ["kind", "reason"],
)

# Snapshot store metrics
SNAPSHOT_WRITES = Counter(
    "gateway_operator_snapshot_writes_total",
    "Snapshot store writes by outcome",
    ["operation"],
)

SNAPSHOT_ENTRIES = Gauge(
    "gateway_operator_snapshot_entries",
    "Number of GatewayClass entries in the snapshot store",
)

SNAPSHOT_OBJECTS = Gauge(
    "gateway_operator_snapshot_objects",
    "Number of objects per kind in a GatewayClass snapshot",
    ["gateway_class", "kind"],
)

# Status write metrics
STATUS_WRITES = Counter(
    "gateway_operator_status_writes_total",
    "Status and finalizer writes by outcome",
    ["kind", "outcome"],
)

# Cluster API metrics
CLUSTER_API_CALLS = Counter(
    "gateway_operator_cluster_api_calls_total",
    "Total number of Kubernetes API calls",
    ["operation", "status"],
)

CLUSTER_API_RETRIES = Counter(
    "gateway_operator_cluster_api_retries_total",
    "Total number of Kubernetes API call retries",
    ["operation"],
)

# Operator info
OPERATOR_INFO = Info(
    "gateway_operator",
    "Information about the gateway operator",
)


def set_operator_info(version: str, controller_name: str) -> None:
    """Set operator info labels."""
    OPERATOR_INFO.info({"version": version, "controller_name": controller_name})


def init_metrics(kinds: list[str]) -> None:
    """Initialize all metrics with zero values.

    Prometheus metrics with labels don't appear until used.
    This ensures all metrics are visible immediately at startup.
    """
    statuses = ["success", "conflict", "transient_error", "error"]

    for kind in kinds:
        RECONCILE_IN_PROGRESS.labels(kind=kind).set(0)
        WORKQUEUE_DEPTH.labels(kind=kind).set(0)
        RECONCILE_DURATION.labels(kind=kind)
        for status in statuses:
            RECONCILE_TOTAL.labels(kind=kind, status=status)
        for reason in ("conflict", "transient_error"):
            WORKQUEUE_RETRIES.labels(kind=kind, reason=reason)

    for operation in ("store", "delete", "suppressed", "conflict"):
        SNAPSHOT_WRITES.labels(operation=operation)

    SNAPSHOT_ENTRIES.set(0)
