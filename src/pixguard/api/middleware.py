"""Middleware for request logging."""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from pixguard.core.logging import request_id_context

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs error responses.

    - 4xx responses: logged at WARN level
    - 5xx responses: logged at ERROR level
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        token = request_id_context.set(request_id)
        start_time = time.time()
        try:
            response = await call_next(request)
        finally:
            request_id_context.reset(token)

        duration_ms = (time.time() - start_time) * 1000
        response.headers["x-request-id"] = request_id

        log_fields = {
            "http_status": response.status_code,
            "method": request.method,
            "path": request.url.path,
            "request_id": request_id,
            "duration_ms": duration_ms,
        }
        if 400 <= response.status_code < 500:
            logger.warning("Client error response", extra=log_fields)
        elif response.status_code >= 500:
            logger.error("Server error response", extra=log_fields)

        return response
