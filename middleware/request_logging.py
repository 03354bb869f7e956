"""
Request logging middleware.

One line per request: request id, method, path, status, duration. Headers,
bodies and query strings are never logged (tokens, credentials, emails).
"""
import logging
import secrets
import time

from prometheus_client import Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency by route template",
    ["method", "route", "status"],
)


def _route_label(request: Request) -> str:
    # templated path keeps label cardinality bounded
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = secrets.token_hex(8)
        method = request.method
        path = request.scope.get("path", "")
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "request_failed request_id=%s method=%s path=%s duration_ms=%.1f",
                request_id, method, path, duration_ms,
            )
            REQUEST_LATENCY.labels(method, _route_label(request), "500").observe(duration_ms / 1000)
            raise
        duration_ms = (time.perf_counter() - start) * 1000
        REQUEST_LATENCY.labels(method, _route_label(request), str(response.status_code)).observe(duration_ms / 1000)
        logger.log(
            _level_for(response.status_code),
            "request_finished request_id=%s method=%s path=%s status=%s duration_ms=%.1f",
            request_id, method, path, response.status_code, duration_ms,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
