"""Request logging middleware."""

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from cadence.infrastructure.observability.logging import (
    get_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with its duration and echo the correlation ID back."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        set_correlation_id(request.headers.get("X-Correlation-ID"))
        method = request.method
        path = request.url.path
        logger.info(f"→ {method} {path}", extra={"method": method, "path": path})

        start_time = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                f"Request failed: {method} {path}",
                extra={"duration_ms": int((time.monotonic() - start_time) * 1000)},
            )
            raise

        duration_ms = int((time.monotonic() - start_time) * 1000)
        status_mark = "✓" if response.status_code < 400 else "✗"
        logger.info(
            f"{status_mark} {method} {path} → {response.status_code} ({duration_ms}ms)",
            extra={"status_code": response.status_code, "duration_ms": duration_ms},
        )
        response.headers["X-Correlation-ID"] = get_correlation_id()
        return response
