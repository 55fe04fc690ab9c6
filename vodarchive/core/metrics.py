"""
Prometheus instruments shared across services. Exposed at /metrics.
"""
from __future__ import annotations

from prometheus_client import Counter, Histogram

UPSTREAM_REQUESTS = Counter(
    "vodarchive_upstream_requests_total",
    "Requests issued to the upstream origin",
    ["resource", "outcome"],
)

UPSTREAM_LATENCY = Histogram(
    "vodarchive_upstream_request_seconds",
    "Time to first byte from the upstream origin",
    ["resource"],
)

CHAT_SHARDS = Counter(
    "vodarchive_chat_shards_total",
    "Per-second chat shards requested during range assembly",
    ["outcome"],
)

SYNC_RUNS = Counter(
    "vodarchive_sync_runs_total",
    "Metadata reconciliation runs",
    ["outcome"],
)

SYNC_DISCOVERED = Counter(
    "vodarchive_sync_discovered_total",
    "Video records discovered by reconciliation",
)
