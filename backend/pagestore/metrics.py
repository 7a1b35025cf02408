"""Prometheus metrics for the fetch / cache layer."""
from __future__ import annotations

from prometheus_client import Counter, Histogram


SCRAPE_ATTEMPTS_TOTAL = Counter(
    "pagestore_scrape_attempts_total",
    "Scraping attempts by tier, device and outcome",
    ["tier", "device", "outcome"],
)

SCRAPE_ESCALATIONS_TOTAL = Counter(
    "pagestore_scrape_escalations_total",
    "Proxy tier escalations after a blocked response",
    ["from_tier", "to_tier"],
)

SCRAPE_CREDITS_TOTAL = Counter(
    "pagestore_scrape_credits_total",
    "Provider credits charged, including rejected attempts",
    ["tier"],
)

SCRAPE_LATENCY_SECONDS = Histogram(
    "pagestore_scrape_latency_seconds",
    "Single scraping attempt latency by render method",
    ["render_method"],
    buckets=(0.25, 0.5, 1, 2, 5, 10, 20, 30, 45, 60, 90),
)

DUAL_FETCH_PARTIAL_TOTAL = Counter(
    "pagestore_dual_fetch_partial_total",
    "Dual-device fetches where exactly one side failed",
    ["failed_device"],
)

CACHE_LOOKUPS_TOTAL = Counter(
    "pagestore_cache_lookups_total",
    "Page cache lookups by result",
    ["result"],
)

RETENTION_EVICTIONS_TOTAL = Counter(
    "pagestore_retention_evictions_total",
    "Snapshots removed by the retention window",
)

BLOB_ERRORS_TOTAL = Counter(
    "pagestore_blob_errors_total",
    "Blob storage failures by operation",
    ["operation"],
)
