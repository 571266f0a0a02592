"""Prometheus metrics definitions for the vital store."""

from prometheus_client import Counter, Gauge

# -- Operations --
OPERATIONS_TOTAL = Counter(
    "vital_store_operations_total",
    "Total store operations",
    ["operation", "status"],
)
REJECTIONS_TOTAL = Counter(
    "vital_store_rejections_total",
    "Total rejected operations",
    ["operation", "error_kind"],
)

# -- Tables --
RECORDS_STORED = Gauge(
    "vital_store_records_stored",
    "Current number of stored vital records",
)
