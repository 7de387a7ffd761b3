import json
import os
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

import proxy as proxy_mod
from fake_backends import BLUE, GREEN, ProxyFixture


class TestProxyModule(unittest.TestCase):
    def test_module_app_uses_configured_pool(self):
        pool = proxy_mod.pool_manager.current
        self.assertEqual(pool.primary.name, "blue")
        self.assertEqual([b.name for b in pool.standbys], ["green"])
        self.assertIs(proxy_mod.app.state.pool_manager, proxy_mod.pool_manager)


class TestAdminEndpoints(unittest.TestCase):
    def setUp(self):
        self.fx = ProxyFixture()

    def test_get_pool_status(self):
        with TestClient(self.fx.app) as client:
            data = client.get("/admin/pool").json()
        self.assertEqual(data["primary"]["name"], "blue")
        self.assertEqual([b["name"] for b in data["standbys"]], ["green"])
        self.assertEqual(data["eligible"], {"blue": True, "green": True})

    def test_swap_primary_applies_to_new_requests(self):
        with TestClient(self.fx.app) as client:
            before = client.get("/version")
            swapped = client.post("/admin/pool", json={"active_pool": "green"})
            after = client.get("/version")
        self.assertEqual(before.headers["X-App-Pool"], "blue")
        self.assertEqual(swapped.status_code, 200)
        self.assertEqual(swapped.json()["primary"]["name"], "green")
        self.assertEqual(after.headers["X-App-Pool"], "green")
        self.assertEqual(after.headers["X-Upstream-Attempts"], "1")

    def test_swap_to_unknown_pool_is_rejected(self):
        with TestClient(self.fx.app) as client:
            resp = client.post("/admin/pool", json={"active_pool": "purple"})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("purple", resp.json()["error"])
        self.assertEqual(self.fx.pool_manager.current.primary.name, "blue")

    def test_reload_reads_environment(self):
        env = {"UPSTREAM_POOLS": f"blue={BLUE},green={GREEN}", "ACTIVE_POOL": "green"}
        with patch.dict(os.environ, env), TestClient(self.fx.app) as client:
            resp = client.post("/admin/reload")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.fx.pool_manager.current.primary.name, "green")

    def test_reload_applies_attempt_cap_and_timeouts(self):
        env = {
            "UPSTREAM_POOLS": f"blue={BLUE},green={GREEN}",
            "MAX_ATTEMPTS": "1",
            "PROXY_READ_TIMEOUT": "0.25",
        }
        self.fx.upstreams.blue.mode = "error"
        with patch.dict(os.environ, env), TestClient(self.fx.app) as client:
            reloaded = client.post("/admin/reload")
            resp = client.get("/")
        self.assertEqual(reloaded.status_code, 200)
        self.assertEqual(self.fx.pool_manager.settings.max_attempts, 1)
        self.assertEqual(self.fx.pool_manager.settings.read_timeout, 0.25)
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.headers["X-Upstream-Attempts"], "1")
        self.assertEqual(len(self.fx.upstreams.green.calls), 0)
        record = json.loads(self.fx.sink.lines[-1])
        self.assertEqual(record["upstream_addr"], [BLUE])

    def test_reload_with_invalid_environment_keeps_pool(self):
        with TestClient(self.fx.app) as client:
            for env in ({"ACTIVE_POOL": "purple"}, {"MAX_ATTEMPTS": "0"}, {"MAX_ATTEMPTS": "two"}):
                with self.subTest(env=env):
                    with patch.dict(os.environ, env):
                        resp = client.post("/admin/reload")
                    self.assertEqual(resp.status_code, 400)
                    self.assertEqual(self.fx.pool_manager.current.primary.name, "blue")
                    self.assertEqual(self.fx.pool_manager.settings.max_attempts, 2)

    def test_metrics_endpoint(self):
        with TestClient(self.fx.app) as client:
            client.get("/version")
            resp = client.get("/metrics")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("text/plain", resp.headers["content-type"])
        self.assertIn('proxy_requests_total{status="200"} 1.0', resp.text)


if __name__ == "__main__":
    unittest.main()
