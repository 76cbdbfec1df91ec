"""Prometheus metrics for Crossview."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# Plural resolution
plural_resolutions_total = Counter(
    "crossview_plural_resolutions_total",
    "Plural names resolved, by the strategy that produced them",
    ["strategy"],
)

discovery_errors_total = Counter(
    "crossview_discovery_errors_total",
    "Transport or parse failures during API discovery",
)

# Resource client
api_requests_total = Counter(
    "crossview_api_requests_total",
    "Kubernetes API requests issued by the resource client",
    ["operation", "outcome"],
)

# Aggregation
aggregation_type_failures_total = Counter(
    "crossview_aggregation_type_failures_total",
    "Per-type failures swallowed during managed resource aggregation",
    ["reason"],
)

aggregation_duration_seconds = Histogram(
    "crossview_aggregation_duration_seconds",
    "Wall time of a full managed resource fan-out",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# Caches
cache_hits_total = Counter(
    "crossview_cache_hits_total",
    "Cache hits",
    ["cache"],
)

cache_misses_total = Counter(
    "crossview_cache_misses_total",
    "Cache misses (absent or expired entries)",
    ["cache"],
)

# Client handles
client_builds_total = Counter(
    "crossview_client_builds_total",
    "Kubernetes API client handles built, by outcome",
    ["outcome"],
)
