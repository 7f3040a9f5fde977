"""
Prometheus metrics for the operator.
"""
from prometheus_client import Counter, Histogram

CONTEXT_ASSEMBLY_TOTAL = Counter(
    "datacenter_operator_context_assembly_total",
    "Reconciliation context assembly attempts",
    ["result"],
)
CONTEXT_ASSEMBLY_SECONDS = Histogram(
    "datacenter_operator_context_assembly_seconds",
    "Time spent assembling a reconciliation context",
)
STATUS_BOOTSTRAP_PATCHES = Counter(
    "datacenter_operator_status_bootstrap_patches_total",
    "Status patches issued to seed lastRollingRestart",
    ["result"],
)


def record_assembly(result: str) -> None:
    CONTEXT_ASSEMBLY_TOTAL.labels(result=result).inc()


def record_bootstrap_patch(result: str) -> None:
    STATUS_BOOTSTRAP_PATCHES.labels(result=result).inc()
