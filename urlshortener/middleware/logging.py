"""
Logging Middleware for Request/Response Logging

This middleware logs all HTTP requests and responses for observability.
It captures:
- Request method and path
- Response status code
- Request processing time
- Client IP address

Every request also gets a correlation id: the incoming X-Correlation-ID
header, or a fresh UUID. It is stored in a context variable for the
duration of the request (so every log line carries it) and echoed back in
the response headers.
"""

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from urlshortener.core.log_config import correlation_id_var
from urlshortener.core.request_info import get_client_ip

logger = logging.getLogger("urlshortener.access")

CORRELATION_ID_HEADER = "X-Correlation-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging HTTP requests and responses.

    It wraps the request/response cycle to add logging and correlation ids
    without modifying endpoint code.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or str(uuid.uuid4())
        token = correlation_id_var.set(correlation_id)

        client_ip = get_client_ip(request)
        start_time = time.time()

        try:
            response = await call_next(request)

            process_time = time.time() - start_time

            # Format: METHOD PATH STATUS_CODE PROCESS_TIME_MS CLIENT_IP
            logger.info(
                f"{request.method} {request.url.path} "
                f"{response.status_code} {process_time*1000:.2f}ms "
                f"IP:{client_ip}"
            )

            response.headers["X-Process-Time"] = str(process_time)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            correlation_id_var.reset(token)


def add_logging_middleware(app):
    """
    Add logging middleware to FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(LoggingMiddleware)
