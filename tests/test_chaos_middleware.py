import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from core.chaos_middleware import ChaosMiddleware, ChaosState


class TestChaosState(unittest.TestCase):
    def test_start_and_stop(self):
        state = ChaosState(delay=2.0)
        self.assertFalse(state.active)
        state.start("timeout")
        self.assertTrue(state.active)
        self.assertEqual(state.mode, "timeout")
        state.stop()
        self.assertFalse(state.active)

    def test_unknown_mode(self):
        with self.assertRaises(ValueError):
            ChaosState().start("explode")


class TestChaosMiddleware(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.state = ChaosState(delay=3.0)
        self.middleware = ChaosMiddleware(MagicMock(), self.state)
        self.call_next = AsyncMock(return_value=MagicMock(status_code=200))

    def _request(self, path):
        request = MagicMock()
        request.url.path = path
        return request

    async def test_passes_through_when_inactive(self):
        response = await self.middleware.dispatch(self._request("/version"), self.call_next)
        self.assertEqual(response, self.call_next.return_value)

    async def test_error_mode_short_circuits(self):
        self.state.start("error")
        response = await self.middleware.dispatch(self._request("/version"), self.call_next)
        self.assertEqual(response.status_code, 500)
        self.call_next.assert_not_called()

    async def test_timeout_mode_sleeps_first(self):
        self.state.start("timeout")
        with patch("core.chaos_middleware.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await self.middleware.dispatch(self._request("/version"), self.call_next)
        mock_sleep.assert_awaited_once_with(3.0)
        self.call_next.assert_awaited_once()

    async def test_chaos_endpoints_are_exempt(self):
        self.state.start("error")
        response = await self.middleware.dispatch(self._request("/chaos/stop"), self.call_next)
        self.assertEqual(response, self.call_next.return_value)


if __name__ == "__main__":
    unittest.main()
