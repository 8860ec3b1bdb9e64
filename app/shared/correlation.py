"""
Correlation ID middleware and utilities for request tracing.

Every request gets a short correlation ID which is attached to all log
lines emitted while serving it, including lines from detached ingestion
tasks spawned by that request (``asyncio.create_task`` copies the current
context, so the ID travels with the task).

Usage:
    from app.shared.correlation import CorrelationMiddleware, get_correlation_id

    # In main.py:
    app.add_middleware(CorrelationMiddleware)

    # In any code:
    correlation_id = get_correlation_id()

The correlation ID is:
- Read from X-Correlation-ID or X-Request-ID header if present
- Generated as a new UUID if not present
- Stored in request.state.correlation_id for endpoint access
- Added to response headers for client debugging
- Made available via get_correlation_id() for logging
"""

import uuid
import contextvars
from typing import Optional, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


_correlation_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id",
    default=None,
)


# Header names for correlation ID (check multiple for compatibility)
CORRELATION_HEADERS = [
    "X-Correlation-ID",
    "X-Request-ID",
    "X-Trace-ID",
]

# Response header name
RESPONSE_HEADER = "X-Correlation-ID"


def get_correlation_id() -> Optional[str]:
    """
    Get the correlation ID for the current context.

    Returns:
        The correlation ID string, or None if not in a request or task context
    """
    return _correlation_id_ctx.get()


def generate_correlation_id() -> str:
    """
    Generate a new correlation ID.

    Uses UUID4 truncated to 8 characters for brevity while maintaining
    sufficient uniqueness for debugging purposes.
    """
    return str(uuid.uuid4())[:8]


class CorrelationMiddleware(BaseHTTPMiddleware):
    """
    Middleware to handle correlation IDs for request tracing.

    For each incoming request:
    1. Checks for existing correlation ID in headers
    2. Generates a new one if not present
    3. Stores it in request.state and context variable
    4. Adds it to response headers
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        correlation_id = None
        for header in CORRELATION_HEADERS:
            correlation_id = request.headers.get(header)
            if correlation_id:
                break

        if not correlation_id:
            correlation_id = generate_correlation_id()

        request.state.correlation_id = correlation_id
        token = _correlation_id_ctx.set(correlation_id)

        try:
            response = await call_next(request)
            response.headers[RESPONSE_HEADER] = correlation_id
            return response
        finally:
            _correlation_id_ctx.reset(token)


class CorrelationContext:
    """
    Context manager for setting correlation ID in non-request contexts.

    Used by detached ingestion runs: the spawning request's ID is reused
    when present, otherwise a fresh one is generated.

    Example:
        with CorrelationContext(get_correlation_id()):
            logger.info("Ingesting message")  # Will include correlation_id
    """

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or generate_correlation_id()
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> str:
        self._token = _correlation_id_ctx.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _correlation_id_ctx.reset(self._token)
