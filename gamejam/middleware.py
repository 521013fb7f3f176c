# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
HTTP middleware for the registration service.

RequestContextMiddleware tags every request with an id, stamps the response
hardening headers and writes one access log line per request.
MetricsMiddleware feeds the Prometheus HTTP series, labelled by a bounded
endpoint template so raw paths never become label values.
"""

import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from gamejam.core.logging import get_logger
from gamejam.metrics import HTTP_ERRORS, REQUEST_COUNT, REQUEST_LATENCY

logger = get_logger(__name__)

ROUTE_SEGMENTS = frozenset({
    "api", "registration", "submit", "teams", "health", "ready", "metrics",
})

# Probed constantly by orchestrators and scrapers; kept out of metrics and access logs
UNTRACKED_PATHS = frozenset({
    "/health", "/health/ready", "/metrics", "/openapi.json", "/docs", "/redoc",
})

RESPONSE_HEADERS = (
    ("X-Content-Type-Options", "nosniff"),
    ("X-Frame-Options", "DENY"),
    ("X-XSS-Protection", "1; mode=block"),
    ("Referrer-Policy", "strict-origin-when-cross-origin"),
)


def endpoint_label(path: str) -> str:
    """Collapse a request path into a metrics label, e.g. ``/api/x/1`` -> ``/api/{param}/{param}``."""
    segments = [s for s in path.split("/") if s]
    if not segments:
        return "/"
    return "/" + "/".join(s if s in ROUTE_SEGMENTS else "{param}" for s in segments)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        for name, value in RESPONSE_HEADERS:
            response.headers.setdefault(name, value)
        if request.url.path not in UNTRACKED_PATHS:
            logger.info(
                "%s %s -> %d in %.3fs", request.method, request.url.path,
                response.status_code, time.perf_counter() - started,
                extra={"request_id": request_id},
            )
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count requests, errors and latency per method and endpoint template."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in UNTRACKED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        endpoint = endpoint_label(request.url.path)
        status = str(response.status_code)
        REQUEST_COUNT.labels(method=request.method, endpoint=endpoint, status=status).inc()
        REQUEST_LATENCY.labels(method=request.method, endpoint=endpoint).observe(elapsed)
        if response.status_code >= 400:
            HTTP_ERRORS.labels(method=request.method, endpoint=endpoint, status=status).inc()
        return response
