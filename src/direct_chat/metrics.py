"""Prometheus metrics for the service."""

from prometheus_client import CollectorRegistry, Counter

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("requests_total", "Total HTTP requests", registry=CUSTOM_REGISTRY)
ERRORS = Counter("errors_total", "Total failed HTTP requests", registry=CUSTOM_REGISTRY)
MESSAGES_SENT = Counter(
    "messages_sent_total", "Messages persisted", ["channel"], registry=CUSTOM_REGISTRY
)
EMBEDDING_FAILURES = Counter(
    "embedding_failures_total", "Embedding calls that degraded or failed", ["path"],
    registry=CUSTOM_REGISTRY,
)
DELIVERY_FAILURES = Counter(
    "delivery_failures_total", "Realtime frames that could not be delivered",
    registry=CUSTOM_REGISTRY,
)
