import unittest

from prometheus_client import CollectorRegistry

from contracts.request_record import AttemptOutcome, RequestAttempt, RequestRecord
from core.metrics_manager import ProxyMetrics


def _attempt(name, outcome):
    return RequestAttempt(backend=f"http://{name}", backend_name=name, start_time=0.0,
                          outcome=outcome, duration=0.1)


class TestProxyMetrics(unittest.TestCase):
    def setUp(self):
        self.registry = CollectorRegistry()
        self.metrics = ProxyMetrics(registry=self.registry)

    def _value(self, name, labels=None):
        return self.registry.get_sample_value(name, labels or {})

    def test_two_instances_do_not_clash(self):
        ProxyMetrics()
        ProxyMetrics()

    def test_observe_failover(self):
        record = RequestRecord(
            client_address="c", method="GET", path="/", protocol="HTTP/1.1",
            final_status=200, total_duration=0.3, served_by="http://green",
            attempts=[_attempt("blue", AttemptOutcome.UPSTREAM_5XX), _attempt("green", AttemptOutcome.SUCCESS)],
        )
        self.metrics.observe(record)
        self.assertEqual(self._value("proxy_requests_total", {"status": "200"}), 1.0)
        self.assertEqual(
            self._value("proxy_upstream_attempts_total", {"backend": "blue", "outcome": "upstream_5xx"}), 1.0
        )
        self.assertEqual(self._value("proxy_failovers_total"), 1.0)
        self.assertEqual(self._value("proxy_pool_exhausted_total"), 0.0)
        self.assertEqual(self._value("proxy_request_duration_seconds_count"), 1.0)

    def test_observe_exhausted(self):
        record = RequestRecord(client_address="c", method="GET", path="/", protocol="HTTP/1.1",
                               final_status=502)
        self.metrics.observe(record)
        self.assertEqual(self._value("proxy_pool_exhausted_total"), 1.0)
        self.assertIn(b"proxy_requests_total", self.metrics.render())


if __name__ == "__main__":
    unittest.main()
