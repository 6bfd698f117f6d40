"""Prometheus metrics for the query engine and its cache."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Histogram

# Custom registry so embedding applications control exposition
REGISTRY = CollectorRegistry()

# Store round trips from 1ms to 10s
STORE_LATENCY_BUCKETS = (
    0.001,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
)

# Query cache metrics
query_cache_hits_total = Counter(
    "docquery_cache_hits_total",
    "Total number of query cache hits",
    ["document_type", "query_kind"],
    registry=REGISTRY,
)

query_cache_misses_total = Counter(
    "docquery_cache_misses_total",
    "Total number of query cache misses",
    ["document_type", "query_kind"],
    registry=REGISTRY,
)

query_cache_bypass_total = Counter(
    "docquery_cache_bypass_total",
    "Total number of queries executed without consulting the cache",
    ["document_type", "query_kind"],
    registry=REGISTRY,
)

query_cache_invalidated_tags_total = Counter(
    "docquery_cache_invalidated_tags_total",
    "Total number of tags invalidated",
    ["mode"],
    registry=REGISTRY,
)

# Store metrics
store_operation_duration_seconds = Histogram(
    "docquery_store_operation_duration_seconds",
    "Document store operation duration in seconds",
    ["operation", "collection"],
    buckets=STORE_LATENCY_BUCKETS,
    registry=REGISTRY,
)

store_errors_total = Counter(
    "docquery_store_errors_total",
    "Total number of failed document store operations",
    ["operation", "error_type"],
    registry=REGISTRY,
)

__all__ = [
    "REGISTRY",
    "query_cache_bypass_total",
    "query_cache_hits_total",
    "query_cache_invalidated_tags_total",
    "query_cache_misses_total",
    "store_errors_total",
    "store_operation_duration_seconds",
]
