"""
Request observability.

Tags every request with a correlation id (taken from the caller's
``X-Correlation-ID`` header when present), times it, and emits one
structured record on the ``ridepool.requests`` logger.
"""

import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("ridepool.requests")

CORRELATION_HEADER = "X-Correlation-ID"

# Paths polled by load balancers; logged at DEBUG only
QUIET_PATHS = {"/health", "/"}


def _level_for(path: str, status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    # Seat conflicts are an expected outcome of racing drivers, not a client bug
    if status_code >= 400 and status_code != 409:
        return logging.WARNING
    if path in QUIET_PATHS:
        return logging.DEBUG
    return logging.INFO


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        response.headers[CORRELATION_HEADER] = correlation_id
        response.headers["X-Process-Time"] = str(duration_ms)

        logger.log(
            _level_for(request.url.path, response.status_code),
            "%s %s -> %s",
            request.method,
            request.url.path,
            response.status_code,
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "client_ip": request.client.host if request.client else "unknown",
            },
        )
        return response
