"""Starlette middlewares shared by every route.

``RequestIdMiddleware`` attaches a unique X-Request-ID header to every request
and binds it into structlog contextvars so that all log lines carry the same
request_id. ``RequestTimeoutMiddleware`` bounds how long a request may run.
"""
from __future__ import annotations

import asyncio
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

# Use structlog contextvars helpers. _bind binds for this context, _clear at end.
from structlog.contextvars import bind_contextvars, clear_contextvars

logger = structlog.get_logger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a UUID4 request_id to each incoming request.

    The ID is returned in the "X-Request-ID" response header and bound into
    structlog contextvars so that every log line generated while the request
    is processing automatically includes the request_id field.
    """

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:  # noqa: D401,E501  # type: ignore[override]
        # Generate a UUID4 without hyphens for brevity
        request_id = uuid.uuid4().hex
        bind_contextvars(request_id=request_id, method=request.method, path=request.url.path)
        # Expose also on request.state for easy access further down the stack
        request.state.request_id = request_id

        try:
            response: Response = await call_next(request)
        finally:
            # Always clear contextvars to avoid leaking to other requests (esp. in async)
            clear_contextvars()

        response.headers[self.header_name] = request_id
        return response


class RequestTimeoutMiddleware(BaseHTTPMiddleware):
    """Answer 504 when a request runs longer than ``timeout_seconds``.

    The handler is cancelled at the await point; synchronous handlers already
    running in the threadpool finish in the background.
    """

    def __init__(self, app, timeout_seconds: float) -> None:  # type: ignore[override]
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:  # type: ignore[override]
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error("Request timed out", timeout_seconds=self.timeout_seconds)
            return JSONResponse(status_code=504, content={"message": "Request timed out"})
