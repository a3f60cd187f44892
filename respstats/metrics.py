"""Service metrics and the Prometheus mirror of per-site response stats."""
import threading
from typing import Dict, Optional, Set, Tuple
from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client.core import CollectorRegistry

from respstats.registry import StatsListener


# Service-level metrics; per-site stats live in PrometheusStatsListener.registry
registry = CollectorRegistry()

http_requests_total = Counter(
    "http_requests_total",
    "Requests served by the stats service",
    ["path", "status"],
    registry=registry
)

exchanges_observed_total = Counter(
    "exchanges_observed_total",
    "Exchanges submitted by the proxy, by outcome",
    ["result"],
    registry=registry
)

request_latency_ms = Histogram(
    "request_latency_ms",
    "Time spent serving a stats service request, in milliseconds",
    buckets=[1, 5, 10, 50, 100, 500, 1000, float("inf")],
    registry=registry
)


def get_metrics() -> bytes:
    """Text exposition of the service metrics."""
    return generate_latest(registry)


def record_request(path: str, status: int, latency_ms: float):
    http_requests_total.labels(path=path, status=str(status)).inc()
    request_latency_ms.observe(latency_ms)


def record_exchange_result(result: str):
    """Count one ingest outcome: observed, invalid_signature or validation_error."""
    exchanges_observed_total.labels(result=result).inc()


class PrometheusStatsListener(StatsListener):
    """
    Mirrors stats registry updates into Prometheus gauges.

    Each listener owns its CollectorRegistry so several applications can
    live in one process. Global statistics use an empty site label.
    """

    def __init__(self):
        self.registry = CollectorRegistry()
        self._lock = threading.Lock()
        self._counter = Gauge(
            "respstats_counter",
            "Per-site response statistics counters",
            ["site", "key"],
            registry=self.registry
        )
        self._watermark = Gauge(
            "respstats_watermark",
            "Per-site high and low water marks",
            ["site", "key", "mark"],
            registry=self.registry
        )
        self._counter_labels: Set[Tuple[str, str]] = set()
        self._marks: Dict[Tuple[str, str, str], int] = {}

    def counter_inc(self, site, key, inc):
        labels = (site or "", key)
        with self._lock:
            self._counter_labels.add(labels)
            self._counter.labels(*labels).inc(inc)

    def counter_dec(self, site, key, dec):
        labels = (site or "", key)
        with self._lock:
            self._counter_labels.add(labels)
            self._counter.labels(*labels).dec(dec)

    def highwater_mark_set(self, site, key, value):
        self._set_mark((site or "", key, "high"), value, max)

    def lowwater_mark_set(self, site, key, value):
        self._set_mark((site or "", key, "low"), value, min)

    def _set_mark(self, labels: Tuple[str, str, str], value: int, pick) -> None:
        with self._lock:
            current = self._marks.get(labels)
            new = value if current is None else pick(current, value)
            self._marks[labels] = new
            self._watermark.labels(*labels).set(new)

    def all_cleared(self, site):
        self._clear(site, "")

    def cleared(self, site, key_prefix):
        self._clear(site, key_prefix)

    def _clear(self, site: Optional[str], key_prefix: str) -> None:
        def matches(label_site: str, key: str) -> bool:
            return site in (None, label_site) and key.startswith(key_prefix)

        with self._lock:
            for labels in [l for l in self._counter_labels if matches(*l)]:
                self._counter.remove(*labels)
                self._counter_labels.discard(labels)
            for labels in [l for l in self._marks if matches(l[0], l[1])]:
                self._watermark.remove(*labels)
                del self._marks[labels]

    def export(self) -> bytes:
        """Text exposition of the mirrored statistics."""
        return generate_latest(self.registry)
