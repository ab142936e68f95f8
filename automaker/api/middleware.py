"""Request logging middleware for the deployment API."""

import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from automaker.utils.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Long-lived responses whose duration says nothing about the server
UNTIMED_PATHS = frozenset({"/v1/deployment/stream"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request and tag every log line it causes with a request id.

    The id is bound to structlog's context variables, so orchestrator and
    store logs emitted while handling ``POST /deploy`` or ``POST /config``
    carry the same ``request_id`` as the access log.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request.failed", method=request.method, path=request.url.path
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[REQUEST_ID_HEADER] = request_id
        if request.url.path in UNTIMED_PATHS:
            logger.info("request.streaming", path=request.url.path, request_id=request_id)
            return response

        duration_ms = (time.perf_counter() - start_time) * 1000
        level = "warning" if response.status_code >= 400 else "info"
        getattr(logger, level)(
            "request.completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
            request_id=request_id,
        )
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response
