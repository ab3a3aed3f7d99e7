"""FastAPI middleware for request correlation."""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from video_optimizer.core.logging import correlation_scope


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds a correlation ID to each request.

    The ID is taken from the request header when present and echoed back on
    the response.
    """

    CORRELATION_ID_HEADER = "X-Correlation-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        with correlation_scope(request.headers.get(self.CORRELATION_ID_HEADER)) as correlation_id:
            response = await call_next(request)
            response.headers[self.CORRELATION_ID_HEADER] = correlation_id
            return response
