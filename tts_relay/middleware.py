"""Request logging middleware.

Only HTTP requests are logged here; WebSocket scopes pass straight through
``BaseHTTPMiddleware`` and are logged by the connection registry instead.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

# Probes hit these every few seconds; keep them out of the INFO stream.
_QUIET_PATHS = frozenset(("/", "/api/health"))


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs request method, path, status, and latency for observability.

    Integrates with Google Cloud Trace by extracting the
    ``x-cloud-trace-context`` header propagated by Cloud Run.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        # Extract Cloud Trace context propagated by Cloud Run.
        trace_header = request.headers.get("x-cloud-trace-context", "")
        trace_id = trace_header.split("/")[0] if trace_header else ""

        level = logging.DEBUG if request.url.path in _QUIET_PATHS else logging.INFO
        logger.log(
            level,
            "%s %s -> %d (%.1fms) trace=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            trace_id or "none",
        )
        return response
