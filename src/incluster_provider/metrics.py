"""Prometheus metrics for the In-Cluster Provider."""

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "incluster_provider_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "incluster_provider_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

conflict_restarts_total = Counter(
    "incluster_provider_conflict_restarts_total",
    "Reconcile invocations restarted after a write conflict",
    ["kind"],
)

error_total = Counter(
    "incluster_provider_error_total",
    "Total number of reconcile errors",
    ["kind", "error_type"],
)

resource_status_total = Counter(
    "incluster_provider_resource_status_total",
    "Observed resource readiness",
    ["kind", "status"],
)

# External client metrics
external_operations_total = Counter(
    "incluster_provider_external_operations_total",
    "Total number of external client operations",
    ["kind", "operation", "result"],
)

# API call metrics
api_call_total = Counter(
    "incluster_provider_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "incluster_provider_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)

# Retry metrics
retries_total = Counter(
    "incluster_provider_retries_total",
    "Total number of invocations retried with backoff",
    ["kind"],
)
