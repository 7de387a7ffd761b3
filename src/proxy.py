import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import ORJSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from algorithms.failover_selector import FailoverSelector
from config.config import Config
from config.logging_config import setup_logging
from contracts.pool import PoolStatusResponse, PoolSwapRequest
from contracts.proxy_settings import ProxySettings
from core.access_log_writer import StructuredLogWriter, build_sink
from core.errors import ConfigurationError
from core.health_tracker import HealthTracker
from core.metrics_manager import ProxyMetrics
from core.pool_factory import pool_from_config
from core.pool_manager import PoolManager
from core.proxy_handler import FailoverProxyHandler

setup_logging()
logger = logging.getLogger(__name__)

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]


def create_app(
    pool_manager: PoolManager,
    client: Optional[httpx.AsyncClient] = None,
    log_writer: Optional[StructuredLogWriter] = None,
    metrics: Optional[ProxyMetrics] = None,
    health_tracker: Optional[HealthTracker] = None,
) -> FastAPI:
    """
    Build the failover proxy application.

    Args:
        pool_manager (PoolManager): Holder of the current pool configuration and proxy settings.
        client (Optional[httpx.AsyncClient]): Upstream client; one is created if omitted.
        log_writer (Optional[StructuredLogWriter]): Access record writer.
        metrics (Optional[ProxyMetrics]): Prometheus metrics.
        health_tracker (Optional[HealthTracker]): Shared per-backend health state.

    Returns:
        FastAPI: The application, with the handler available as app.state.proxy_handler.
    """
    settings = pool_manager.settings
    client = client or httpx.AsyncClient(limits=settings.limits, timeout=settings.timeout)
    log_writer = log_writer or StructuredLogWriter(build_sink(Config.ACCESS_LOG_FILE))
    metrics = metrics or ProxyMetrics()
    health_tracker = health_tracker or HealthTracker()
    selector = FailoverSelector(health_tracker, max_attempts=settings.max_attempts)
    proxy_handler = FailoverProxyHandler(
        client,
        pool_manager,
        selector,
        health_tracker,
        log_writer,
        metrics=metrics,
    )

    @asynccontextmanager
    async def lifespan(app):
        log_writer.start()
        yield
        await client.aclose()
        log_writer.stop()

    app = FastAPI(lifespan=lifespan, default_response_class=ORJSONResponse)
    app.state.proxy_handler = proxy_handler
    app.state.pool_manager = pool_manager

    def pool_status() -> PoolStatusResponse:
        pool = pool_manager.current
        return PoolStatusResponse(
            primary=pool.primary,
            standbys=list(pool.standbys),
            eligible={b.name: health_tracker.is_eligible(b) for b in pool.members},
        )

    @app.get(settings.health_path)
    async def health(request: Request):
        return await proxy_handler.health_check(request)

    @app.get("/metrics")
    def metrics_endpoint():
        return Response(metrics.render(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/admin/pool", response_model=PoolStatusResponse)
    async def get_pool():
        return pool_status()

    @app.post("/admin/pool", response_model=PoolStatusResponse)
    async def swap_pool(data: PoolSwapRequest):
        logger.info(f"Switching active pool to {data.active_pool}")
        try:
            pool_manager.activate(data.active_pool)
        except ConfigurationError as e:
            logger.error(f"Pool switch rejected: {e}")
            return ORJSONResponse({"error": str(e)}, status_code=400)
        return pool_status()

    @app.post("/admin/reload", response_model=PoolStatusResponse)
    async def reload_pool():
        try:
            fresh = Config.load()
            pool_manager.swap(pool_from_config(fresh), ProxySettings.from_config(fresh))
        except (ConfigurationError, ValueError) as e:
            logger.error(f"Reload rejected, keeping current pool: {e}")
            return ORJSONResponse({"error": str(e)}, status_code=400)
        return pool_status()

    @app.api_route("/{path:path}", methods=PROXY_METHODS)
    async def proxy(request: Request, path: str):
        return await proxy_handler.handle(request)

    return app


pool_manager = PoolManager(pool_from_config(Config), ProxySettings.from_config(Config))
app = create_app(pool_manager)
