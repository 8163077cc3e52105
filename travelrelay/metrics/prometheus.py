"""Prometheus metrics - minimal implementation."""
from prometheus_client import Counter, Gauge, Histogram

# One increment per finished execute() call
calls_total = Counter(
    "travelrelay_calls_total",
    "Total resilient upstream calls",
    ["operation", "outcome"],  # outcome: "success", "cache_hit", "error", "timeout"
)

# One increment per thunk invocation (first attempt and retries)
attempts_total = Counter(
    "travelrelay_attempts_total",
    "Total upstream call attempts",
    ["operation"],
)

retries_total = Counter(
    "travelrelay_retries_total",
    "Total retries scheduled after a transient failure",
    ["operation", "error_class"],
)

call_latency_ms = Histogram(
    "travelrelay_call_latency_ms",
    "End-to-end execute() latency in milliseconds, including retries",
    ["operation", "outcome"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 5000, 10000, 30000],
)

# Cache metrics
cache_hits_total = Counter(
    "travelrelay_cache_hits_total",
    "Total cache hits",
    ["operation"],
)

cache_misses_total = Counter(
    "travelrelay_cache_misses_total",
    "Total cache misses",
    ["operation"],
)

cache_entries = Gauge(
    "travelrelay_cache_entries",
    "Entries currently held by the cache store (sampled after each sweep)",
)
