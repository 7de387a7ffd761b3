import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from config.logging_config import setup_logging
from contracts.request_record import RequestRecord

setup_logging()
logger = logging.getLogger(__name__)


class ProxyMetrics:
    """
    Prometheus metrics for proxied requests, attempts and failovers.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize the metrics on their own registry.

        Args:
            registry: Optional CollectorRegistry; a private one is created if omitted,
                so several proxies can live in one process without name clashes.
        """
        self.registry = registry or CollectorRegistry()
        self.REQUESTS = Counter(
            "proxy_requests_total",
            "Client requests completed by the proxy",
            ["status"],
            registry=self.registry,
        )
        self.ATTEMPTS = Counter(
            "proxy_upstream_attempts_total",
            "Upstream attempts by backend and outcome",
            ["backend", "outcome"],
            registry=self.registry,
        )
        self.FAILOVERS = Counter(
            "proxy_failovers_total",
            "Client requests that needed more than one attempt",
            registry=self.registry,
        )
        self.EXHAUSTED = Counter(
            "proxy_pool_exhausted_total",
            "Client requests answered with a synthetic 502",
            registry=self.registry,
        )
        self.REQ_LATENCY = Histogram(
            "proxy_request_duration_seconds",
            "Total client request duration in seconds",
            registry=self.registry,
        )
        logger.info("ProxyMetrics initialized.")

    def observe(self, record: RequestRecord):
        self.REQUESTS.labels(status=str(record.final_status)).inc()
        for attempt in record.attempts:
            self.ATTEMPTS.labels(backend=attempt.backend_name, outcome=attempt.outcome.value).inc()
        if len(record.attempts) > 1:
            self.FAILOVERS.inc()
        if record.served_by is None:
            self.EXHAUSTED.inc()
        self.REQ_LATENCY.observe(record.total_duration)

    def render(self) -> bytes:
        return generate_latest(self.registry)
