"""Prometheus metrics - minimal implementation."""
from prometheus_client import Counter, Histogram, Gauge

# Unified stream request counter
requests_total = Counter(
    "relaychat_requests_total",
    "Total chat stream requests",
    ["provider", "outcome"],  # provider: serving provider, or "none"
)

# Request latency histogram (time until stream terminated)
request_latency_ms = Histogram(
    "relaychat_request_latency_ms",
    "Chat stream latency in milliseconds",
    ["provider"],
    buckets=[100, 250, 500, 1000, 2000, 5000, 10000, 30000, 60000],
)

# Errors counter with detailed labels
errors_total = Counter(
    "relaychat_errors_total",
    "Total errors raised by provider attempts",
    ["provider", "error_code"],
)

# Streamed chunk counter
chunks_total = Counter(
    "relaychat_chunks_total",
    "Total chunks forwarded to callers",
    ["provider"],
)

# Adapter invocation metrics
provider_attempts_total = Counter(
    "relaychat_provider_attempts_total",
    "Total adapter invocations (one per retry attempt)",
    ["provider"],
)

# Key rotation metrics
key_rotations_total = Counter(
    "relaychat_key_rotations_total",
    "Total key rotations after rate-limit errors",
    ["provider"],
)

key_failures_total = Counter(
    "relaychat_key_failures_total",
    "Total keys marked as failed",
    ["provider"],
)

key_pool_available_keys = Gauge(
    "relaychat_key_pool_available_keys",
    "Keys neither cooling down nor quarantined",
    ["provider"],
)

retries_exhausted_total = Counter(
    "relaychat_retries_exhausted_total",
    "Total times every retry attempt for a provider was rate limited",
    ["provider"],
)

# Fallback metrics
fallbacks_total = Counter(
    "relaychat_fallbacks_total",
    "Total fallbacks from one provider to another",
    ["from_provider", "to_provider"],
)

all_providers_failed_total = Counter(
    "relaychat_all_providers_failed_total",
    "Total requests where every provider failed",
)
