import unittest

from algorithms.failover_selector import FailoverSelector
from contracts.backend import Backend, BackendRole
from contracts.pool import PoolConfiguration
from contracts.request_record import AttemptOutcome
from core.errors import ConfigurationError
from core.health_tracker import HealthTracker
from fake_backends import FakeClock


class TestFailoverSelector(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.tracker = HealthTracker(clock=self.clock)
        self.blue = Backend(name="blue", address="http://blue:8081", role=BackendRole.PRIMARY)
        self.green = Backend(name="green", address="http://green:8082")
        self.red = Backend(name="red", address="http://red:8083")
        self.pool = PoolConfiguration(primary=self.blue, standbys=(self.green, self.red))
        self.selector = FailoverSelector(self.tracker, max_attempts=3)

    def test_prefers_eligible_primary(self):
        for _ in range(5):
            self.assertEqual(self.selector.select(self.pool, set()), self.blue)

    def test_falls_back_to_first_standby_in_order(self):
        self.assertEqual(self.selector.select(self.pool, {self.blue}), self.green)
        self.assertEqual(self.selector.select(self.pool, {self.blue, self.green}), self.red)

    def test_skips_suspended_primary(self):
        self.tracker.record(self.blue, AttemptOutcome.TIMEOUT)
        self.assertEqual(self.selector.select(self.pool, set()), self.green)
        self.clock.advance(self.blue.fail_timeout)
        self.assertEqual(self.selector.select(self.pool, set()), self.blue)

    def test_returns_none_when_everything_is_suspended(self):
        for backend in self.pool.members:
            self.tracker.record(backend, AttemptOutcome.UPSTREAM_5XX)
        self.assertIsNone(self.selector.select(self.pool, set()))

    def test_returns_none_when_everything_was_attempted(self):
        self.assertIsNone(self.selector.select(self.pool, set(self.pool.members)))

    def test_attempt_cap_bounds_retries_regardless_of_pool_size(self):
        selector = FailoverSelector(self.tracker, max_attempts=2)
        self.assertIsNone(selector.select(self.pool, {self.blue, self.green}))

    def test_per_request_cap_overrides_selector_cap(self):
        self.assertIsNone(self.selector.select(self.pool, {self.blue}, max_attempts=1))
        self.assertEqual(self.selector.select(self.pool, {self.blue}, max_attempts=2), self.green)

    def test_default_cap_is_two(self):
        self.assertEqual(FailoverSelector(self.tracker).max_attempts, 2)

    def test_rejects_invalid_cap(self):
        with self.assertRaises(ConfigurationError):
            FailoverSelector(self.tracker, max_attempts=0)


if __name__ == "__main__":
    unittest.main()
