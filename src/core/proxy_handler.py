import asyncio
import logging
import time
from typing import List, Optional, Tuple

import httpx
from fastapi import Request, Response

from abstractions.upstream_selector import UpstreamSelector
from config.logging_config import setup_logging
from contracts.backend import Backend
from contracts.pool import PoolConfiguration
from contracts.proxy_settings import ProxySettings
from contracts.request_record import AttemptOutcome, RequestAttempt, RequestRecord
from core.access_log_writer import StructuredLogWriter
from core.errors import ClientError, PoolExhausted, UpstreamTransientError
from core.health_tracker import HealthTracker
from core.metrics_manager import ProxyMetrics
from core.pool_manager import PoolManager

setup_logging()
logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS = frozenset(
    [
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    ]
)
# Recomputed on our side of the connection
STRIPPED_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length"}
STRIPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {
    "content-length",
    "content-encoding",
    "date",
    "server",
}

ATTEMPTS_HEADER = "X-Upstream-Attempts"
EXHAUSTED_BODY = b"No healthy upstream available."


class FailoverProxyHandler:
    """
    Proxies each client request to the primary and retries it on standbys when
    an attempt fails, all within the one client request.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        pool_manager: PoolManager,
        selector: UpstreamSelector,
        health_tracker: HealthTracker,
        log_writer: StructuredLogWriter,
        metrics: Optional[ProxyMetrics] = None,
    ):
        self.client = client
        self.pool_manager = pool_manager
        self.selector = selector
        self.health_tracker = health_tracker
        self.log_writer = log_writer
        self.metrics = metrics

    async def handle(self, request: Request) -> Response:
        """
        Proxy one client request through the failover loop.

        The pool and the settings are read once, as one snapshot, before the
        first attempt. The loop runs shielded from cancellation: if the client
        goes away, the in-flight attempt still finishes and updates backend
        health, and the request is still logged.

        Args:
            request (Request): The incoming FastAPI request object.

        Returns:
            Response: The served backend's response, or a synthetic 502.
        """
        started = time.monotonic()
        pool, settings = self.pool_manager.snapshot()
        body = await request.body()
        record = RequestRecord(
            client_address=request.client.host if request.client else "-",
            method=request.method,
            path=_request_target(request),
            protocol=f"HTTP/{request.scope.get('http_version', '1.1')}",
        )
        headers = self._forward_headers(request)
        task = asyncio.ensure_future(
            self._run(request, record, headers, body, started, pool, settings)
        )
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            record.client_disconnected = True
            task.add_done_callback(_report_orphaned_failure)
            logger.info(f"Client disconnected during {record.request_line!r}; finishing attempts")
            raise

    async def _run(
        self,
        request: Request,
        record: RequestRecord,
        headers: List[Tuple[str, str]],
        body: bytes,
        started: float,
        pool: PoolConfiguration,
        settings: ProxySettings,
    ) -> Response:
        response = None
        attempted = set()
        try:
            try:
                while True:
                    backend = self._next_backend(pool, attempted, settings)
                    attempted.add(backend)
                    try:
                        attempt, upstream = await self._attempt(
                            backend, record, headers, body, settings
                        )
                    except UpstreamTransientError as e:
                        record.attempts.append(e.attempt)
                        continue
                    except ClientError as e:
                        attempt, upstream = e.attempt, e.response
                    record.attempts.append(attempt)
                    response = self._finalize(record, backend, upstream, settings)
                    break
            except PoolExhausted as e:
                logger.error(f"{record.request_line!r}: {e}")
                response = Response(content=EXHAUSTED_BODY, status_code=502)
                response.headers[ATTEMPTS_HEADER] = str(len(record.attempts))
                record.final_status = 502
                record.response_size = len(EXHAUSTED_BODY)
        finally:
            if response is None:
                # Unexpected error; the server answers 500
                record.final_status = 500
            record.total_duration = time.monotonic() - started
            record.completed_at = time.time()
            if not record.client_disconnected:
                record.client_disconnected = await request.is_disconnected()
            self.log_writer.write(record)
            if self.metrics is not None:
                self.metrics.observe(record)
        return response

    def _next_backend(self, pool, attempted, settings: ProxySettings) -> Backend:
        backend = self.selector.select(pool, attempted, max_attempts=settings.max_attempts)
        if backend is None:
            raise PoolExhausted(
                f"no eligible backend after {len(attempted)} attempt(s) "
                f"(cap {settings.max_attempts})"
            )
        return backend

    async def _attempt(
        self,
        backend: Backend,
        record: RequestRecord,
        headers: List[Tuple[str, str]],
        body: bytes,
        settings: ProxySettings,
    ) -> Tuple[RequestAttempt, httpx.Response]:
        url = f"{backend.address}{record.path}"
        wall_start = time.time()
        started = time.monotonic()
        response = None
        status_code = None
        try:
            response = await asyncio.wait_for(
                self.client.request(
                    record.method,
                    url,
                    headers=headers,
                    content=body,
                    timeout=settings.timeout,
                ),
                timeout=settings.attempt_deadline,
            )
        except httpx.PoolTimeout:
            outcome = AttemptOutcome.POOL_TIMEOUT
        except (httpx.TimeoutException, asyncio.TimeoutError):
            outcome = AttemptOutcome.TIMEOUT
        except (httpx.ProtocolError, httpx.DecodingError):
            outcome = AttemptOutcome.INVALID_RESPONSE
        except httpx.RequestError:
            outcome = AttemptOutcome.CONNECTION_ERROR
        else:
            status_code = response.status_code
            outcome = AttemptOutcome.from_status(status_code)

        attempt = RequestAttempt(
            backend=backend.address,
            backend_name=backend.name,
            start_time=wall_start,
            outcome=outcome,
            duration=time.monotonic() - started,
            response_size=len(response.content) if response is not None else 0,
            status_code=status_code,
        )
        self.health_tracker.record(backend, outcome)
        if outcome == AttemptOutcome.POOL_TIMEOUT:
            logger.warning(
                f"{record.method} {url}: no free connection in the proxy's pool "
                f"after {attempt.duration:.3f}s; backend health unchanged"
            )
        else:
            logger.info(
                f"{record.method} {url} -> {outcome.value}"
                + (f" ({status_code})" if status_code is not None else "")
                + f" in {attempt.duration:.3f}s"
            )
        if outcome.should_retry:
            raise UpstreamTransientError(attempt, response)
        if outcome == AttemptOutcome.UPSTREAM_4XX:
            raise ClientError(attempt, response)
        return attempt, response

    def _finalize(
        self,
        record: RequestRecord,
        backend: Backend,
        upstream: httpx.Response,
        settings: ProxySettings,
    ) -> Response:
        record.final_status = upstream.status_code
        record.served_by = backend.address
        record.response_size = len(upstream.content)
        record.pool = upstream.headers.get(settings.pool_header)
        record.release = upstream.headers.get(settings.release_header)
        return self._build_response(upstream, len(record.attempts))

    @staticmethod
    def _build_response(upstream: httpx.Response, attempts: int) -> Response:
        response = Response(content=upstream.content, status_code=upstream.status_code)
        for key, value in upstream.headers.multi_items():
            if key.lower() in STRIPPED_RESPONSE_HEADERS:
                continue
            response.headers.append(key, value)
        response.headers[ATTEMPTS_HEADER] = str(attempts)
        return response

    @staticmethod
    def _forward_headers(request: Request) -> List[Tuple[str, str]]:
        headers = [
            (key, value)
            for key, value in request.headers.items()
            if key.lower() not in STRIPPED_REQUEST_HEADERS
            and key.lower() != "x-forwarded-for"
        ]
        client_host = request.client.host if request.client else None
        forwarded_for = request.headers.get("x-forwarded-for")
        if client_host:
            forwarded_for = f"{forwarded_for}, {client_host}" if forwarded_for else client_host
            headers.append(("X-Real-IP", client_host))
        if forwarded_for:
            headers.append(("X-Forwarded-For", forwarded_for))
        headers.append(("X-Forwarded-Proto", request.url.scheme))
        if "host" in request.headers:
            headers.append(("X-Forwarded-Host", request.headers["host"]))
        return headers

    async def health_check(self, request: Request) -> Response:
        """
        Single short attempt against the first eligible backend's health path.

        Not retried, not recorded against backend health and not written to the
        access log.
        """
        pool, settings = self.pool_manager.snapshot()
        backend = next(
            (b for b in pool.members if self.health_tracker.is_eligible(b)), None
        )
        if backend is None:
            return Response(content=EXHAUSTED_BODY, status_code=502)
        url = f"{backend.address}{settings.health_path}"
        try:
            upstream = await self.client.get(url, timeout=settings.health_timeout)
        except httpx.RequestError as e:
            logger.debug(f"Health check against {url} failed: {e!r}")
            return Response(content=f"Upstream health check failed: {e!r}", status_code=502)
        return self._build_response(upstream, 1)


def _request_target(request: Request) -> str:
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.url.path
    query = request.scope.get("query_string", b"")
    if query:
        path = f"{path}?{query.decode('latin-1')}"
    return path


def _report_orphaned_failure(task: asyncio.Future):
    # Nobody awaits the loop once the client has gone
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Proxy loop failed after client disconnect: {task.exception()!r}")
