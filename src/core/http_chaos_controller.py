import logging
from typing import Optional

import httpx

from abstractions.chaos_controller import ChaosController
from config.logging_config import setup_logging
from core.errors import ChaosControlError

setup_logging()
logger = logging.getLogger(__name__)


class HttpChaosController(ChaosController):
    """
    Drives a backend's /chaos/start and /chaos/stop endpoints directly,
    bypassing the proxy.
    """

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 5.0):
        """
        Initialize the HttpChaosController.

        Args:
            base_url (str): Direct URL of the backend to disturb.
            client (Optional[httpx.AsyncClient]): Client to reuse; one is created per call otherwise.
            timeout (float): Timeout for each control request in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.client = client
        self.timeout = timeout

    async def _post(self, path: str, params: Optional[dict] = None):
        url = f"{self.base_url}{path}"
        try:
            if self.client is not None:
                resp = await self.client.post(url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.post(url, params=params, timeout=self.timeout)
        except httpx.RequestError as e:
            raise ChaosControlError(f"Chaos control request to {url} failed: {e!r}") from e
        if not resp.is_success:
            raise ChaosControlError(f"Chaos control request to {url} returned {resp.status_code}: {resp.text}")
        logger.info(f"[Chaos] {url} -> {resp.status_code}")

    async def start(self, mode: str):
        await self._post("/chaos/start", params={"mode": mode})

    async def stop(self):
        await self._post("/chaos/stop")
