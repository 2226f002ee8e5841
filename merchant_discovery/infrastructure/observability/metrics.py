"""Prometheus metrics for monitoring discovery runs, inference outcomes and validations"""

from prometheus_client import Counter, Histogram

# Discovery run metrics
discovery_run_counter = Counter(
    "merchant_discovery_runs_total",
    "Discovery workflow runs",
    ["outcome"],  # complete | empty | error
)

discoveries_created_counter = Counter(
    "merchant_discoveries_created_total",
    "Merchant discoveries persisted as pending",
)

# Inference metrics
inference_counter = Counter(
    "merchant_inference_total",
    "Merchant inferences attempted",
    ["outcome", "path"],  # success | failure, forced | free
)

inference_latency_histogram = Histogram(
    "merchant_inference_latency_seconds",
    "End-to-end inference time per code, including web search",
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
)

# Web search metrics
web_search_counter = Counter(
    "web_search_requests_total",
    "Web search requests",
    ["outcome"],  # success | empty | failure | unconfigured
)

# Validation metrics
validation_counter = Counter(
    "discovery_validations_total",
    "Human validations of discoveries",
    ["action"],  # confirm | correct | reject
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_discovery_run(outcome: str, discoveries_count: int = 0) -> None:
    """Record one workflow run and the discoveries it created"""
    discovery_run_counter.labels(outcome=outcome).inc()
    if discoveries_count:
        discoveries_created_counter.inc(discoveries_count)


def record_validation(action: str) -> None:
    validation_counter.labels(action=action).inc()
