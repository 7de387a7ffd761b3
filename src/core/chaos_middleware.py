import asyncio
import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from config.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

CHAOS_MODES = ("error", "timeout")


class ChaosState:
    """
    Fault injection switch for a demo backend.
    """

    def __init__(self, delay: float = 5.0):
        self.mode: Optional[str] = None
        self.delay = delay

    @property
    def active(self) -> bool:
        return self.mode is not None

    def start(self, mode: str):
        if mode not in CHAOS_MODES:
            raise ValueError(f"Unknown chaos mode '{mode}', expected one of {CHAOS_MODES}")
        self.mode = mode
        logger.warning(f"Chaos started in {mode} mode")

    def stop(self):
        if self.mode is not None:
            logger.warning(f"Chaos stopped ({self.mode} mode)")
        self.mode = None


class ChaosMiddleware(BaseHTTPMiddleware):
    """
    Makes every non-chaos request fail (500) or hang while chaos is active.
    """

    def __init__(self, app: ASGIApp, chaos_state: ChaosState):
        super().__init__(app)
        self.chaos_state = chaos_state

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith("/chaos") or not self.chaos_state.active:
            return await call_next(request)
        if self.chaos_state.mode == "error":
            return JSONResponse({"error": "chaos: simulated failure"}, status_code=500)
        await asyncio.sleep(self.chaos_state.delay)
        return await call_next(request)
