"""Logging and monitoring middleware for HTTP requests and responses."""

import logging
import time
import uuid
from collections.abc import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests and responses with timing metrics.

    Automatically:
    - Logs incoming requests with method, path, client and request id
    - Logs response status codes and processing time
    - Adds X-Process-Time and X-Request-ID headers for observability

    A request id supplied by the caller is echoed back, otherwise a new one
    is generated and stored on ``request.state.request_id``.

    Skips logging (but not the headers) for health checks and API docs.
    """

    def __init__(self, app: ASGIApp) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application instance
        """
        super().__init__(app)
        self._quiet_paths = {"/health", "/docs", "/openapi.json", "/redoc"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process the request and log details about it.

        Args:
            request: The incoming HTTP request
            call_next: The next middleware/route handler in the chain

        Returns:
            The HTTP response with timing and request id headers added
        """
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        quiet = request.url.path in self._quiet_paths

        if not quiet:
            client_host = request.client.host if request.client else "unknown"
            logger.info(
                f"→ {request.method} {request.url.path} from {client_host} [{request_id}]"
            )

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        if not quiet:
            log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(
                log_level,
                f"← {request.method} {request.url.path} - {response.status_code} "
                f"({duration:.3f}s) [{request_id}]",
            )

        response.headers["X-Process-Time"] = f"{duration:.3f}"
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
