"""Request logging middleware with per-request correlation ids."""
import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

# Health probes and long-lived streams.
UNLOGGED_PATHS = frozenset({"/health", "/api/v1/events/stream"})
UNLOGGED_PREFIXES = ("/api/v1/health/",)


def _is_unlogged(path: str) -> bool:
    return path in UNLOGGED_PATHS or path.startswith(UNLOGGED_PREFIXES)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each orders API request and tags it with a request id.

    The id is taken from the incoming ``X-Request-ID`` header when present,
    bound to the structlog context for the duration of the request so that
    service-level events (``order_created`` ...) carry it, and echoed on the
    response.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if _is_unlogged(request.url.path):
            return await call_next(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        start = time.perf_counter()
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000

            log = logger.warning if response.status_code >= 500 else logger.info
            log(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
