"""Prometheus metrics for the feed service.

Each metric registers itself in the prometheus_client global REGISTRY on
import; oracle.main exposes them with start_http_server().
"""

from prometheus_client import Counter, Gauge

requests_total = Counter(
    "oracle_requests_total",
    "Feed requests consumed",
    ["call"],
)
rejections_total = Counter(
    "oracle_rejections_total",
    "Feed requests refused by the feed",
    ["call", "reason"],
)
evicted_entries_total = Counter(
    "oracle_evicted_entries_total",
    "Entries dropped from the log by cleanup",
)
live_entries = Gauge(
    "oracle_live_entries",
    "Payloads currently visible to readers",
)
request_errors_total = Counter(
    "oracle_request_errors_total",
    "Malformed requests or Kafka consumer errors",
)
