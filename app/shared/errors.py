"""
Error taxonomy and standardized error responses for the knowledge service.

Two halves live here:

1. Exceptions raised inside the service (external-service failures,
   persistence failures, missing records). Each carries enough structure
   for the caller to decide whether to degrade, swallow, or surface it.
2. JSON error response helpers used by the API layer, all producing the
   same envelope with the request's correlation ID.

Usage:
    from app.shared.errors import ErrorCode, error_response, PersistenceError

    raise PersistenceError("insert", "knowledge_cards insert returned no row")

    return error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Query cannot be empty.",
        status_code=400,
        correlation_id=request.state.correlation_id,
    )
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel
from fastapi import Request
from fastapi.responses import JSONResponse


class ErrorCode(str, Enum):
    """Standard error codes returned by the API."""

    # Client errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_USER_ID = "INVALID_USER_ID"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONVERSATION_NOT_FOUND = "CONVERSATION_NOT_FOUND"
    MESSAGE_NOT_FOUND = "MESSAGE_NOT_FOUND"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"

    # Chat completion classification
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    SERVER_ERROR = "SERVER_ERROR"
    INVALID_API_KEY = "INVALID_API_KEY"
    API_ERROR = "API_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"


# =============================================================================
# EXCEPTIONS
# =============================================================================


class KnowledgeServiceError(Exception):
    """Base class for errors raised inside the knowledge service."""


class ValidationError(KnowledgeServiceError):
    """Invalid caller input. Only raised at the API boundary."""


class APIError(KnowledgeServiceError):
    """Raised by API dependencies and routes; rendered with error_response."""

    def __init__(self, code: "ErrorCode", message: str, status_code: int):
        self.code = code
        self.status_code = status_code
        super().__init__(message)


class NotFoundError(KnowledgeServiceError):
    """A referenced record (message, conversation, user) does not exist."""

    def __init__(self, resource_type: str, resource_id: str, message: Optional[str] = None):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message or f"{resource_type} not found: {resource_id}")


class PersistenceError(KnowledgeServiceError):
    """A datastore read or write failed."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class ExternalServiceError(KnowledgeServiceError):
    """An upstream service (LLM, embeddings) was unavailable or misbehaved.

    ``retryable`` is a hint for callers; the service itself never retries.
    """

    def __init__(self, service: str, message: str, retryable: bool = False):
        self.service = service
        self.retryable = retryable
        super().__init__(message)


class EmbeddingError(ExternalServiceError):
    """Embedding request failed or returned a vector of the wrong dimension."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__("embeddings", message, retryable=retryable)


# code -> (retryable, default status)
CHAT_ERROR_CLASSES: dict[str, tuple[bool, int]] = {
    ErrorCode.RATE_LIMITED.value: (True, 429),
    ErrorCode.TIMEOUT.value: (True, 504),
    ErrorCode.SERVER_ERROR.value: (True, 502),
    ErrorCode.NETWORK_ERROR.value: (True, 503),
    ErrorCode.INVALID_API_KEY.value: (False, 401),
    ErrorCode.API_ERROR.value: (False, 500),
}


class ChatCompletionError(ExternalServiceError):
    """Classified failure of the primary chat-completion call."""

    def __init__(self, code: str, message: str, status_code: Optional[int] = None):
        retryable, default_status = CHAT_ERROR_CLASSES.get(code, (False, 500))
        self.code = code
        self.status_code = status_code if status_code is not None else default_status
        super().__init__("openai", message, retryable=retryable)


# =============================================================================
# RESPONSES
# =============================================================================


class ErrorDetail(BaseModel):
    """Structured error detail model."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None
    correlation_id: Optional[str] = None


def get_correlation_id(request: Optional[Request] = None) -> Optional[str]:
    """Extract correlation ID from request state."""
    if request is None:
        return None
    return getattr(request.state, "correlation_id", None)


def error_response(
    code: ErrorCode | str,
    message: str,
    status_code: int,
    details: Optional[dict[str, Any]] = None,
    correlation_id: Optional[str] = None,
) -> JSONResponse:
    """
    Create a standardized JSON error response.

    Args:
        code: Error code from ErrorCode enum (or its string value)
        message: Human-readable error message
        status_code: HTTP status code
        details: Optional additional error details
        correlation_id: Request correlation ID for tracing

    Returns:
        JSONResponse with standardized error format
    """
    error_detail = ErrorDetail(
        code=code.value if isinstance(code, ErrorCode) else code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": error_detail.model_dump(exclude_none=True)},
    )


def validation_error(
    message: str,
    details: Optional[dict[str, Any]] = None,
    correlation_id: Optional[str] = None,
) -> JSONResponse:
    """Create a 400 validation error response."""
    return error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message=message,
        status_code=400,
        details=details,
        correlation_id=correlation_id,
    )


def unauthorized_error(
    message: str = "Authentication required. Please provide user credentials.",
    code: ErrorCode = ErrorCode.UNAUTHORIZED,
    correlation_id: Optional[str] = None,
) -> JSONResponse:
    """Create a 401 unauthorized error response."""
    return error_response(
        code=code,
        message=message,
        status_code=401,
        correlation_id=correlation_id,
    )


def forbidden_error(
    message: str = "Access denied",
    code: ErrorCode = ErrorCode.FORBIDDEN,
    correlation_id: Optional[str] = None,
) -> JSONResponse:
    """Create a 403 forbidden error response."""
    return error_response(
        code=code,
        message=message,
        status_code=403,
        correlation_id=correlation_id,
    )


def internal_error(
    message: str = "An unexpected error occurred. Please try again.",
    correlation_id: Optional[str] = None,
) -> JSONResponse:
    """
    Create a 500 internal error response.

    Note: Be careful not to expose sensitive internal details to clients.
    """
    return error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message=message,
        status_code=500,
        correlation_id=correlation_id,
    )


def chat_completion_http_status(error: ChatCompletionError) -> int:
    """Map a classified chat failure to the HTTP status returned to the client."""
    if error.code == ErrorCode.RATE_LIMITED.value:
        return 429
    if error.code == ErrorCode.TIMEOUT.value:
        return 504
    if error.status_code >= 500:
        return 502
    return 500


def chat_completion_error(
    error: ChatCompletionError,
    correlation_id: Optional[str] = None,
) -> JSONResponse:
    """Create the error response for a failed primary chat completion."""
    return error_response(
        code=error.code,
        message=str(error),
        status_code=chat_completion_http_status(error),
        details={"retryable": error.retryable},
        correlation_id=correlation_id,
    )
