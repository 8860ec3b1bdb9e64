"""
Logging utilities for user-supplied text and LLM usage.

Includes:
- Truncation/redaction of user text before it reaches the logs
- Structured usage logging for OpenAI calls
"""
import json
import logging
import re
from typing import Any, Optional


# Keys whose values are never logged
SENSITIVE_KEYS = [
    "api_key", "token", "password", "secret", "auth",
    "authorization", "bearer",
]

_CONTROL_CHARS = re.compile(r'[\x00-\x1F\x7F]')


def sanitize_for_logging(data: Any, max_len: int = 100) -> Any:
    """
    Sanitize data for safe logging.

    Dict values under sensitive keys are redacted, strings are stripped of
    control characters and truncated to ``max_len``.
    """
    if data is None:
        return "None"

    if isinstance(data, dict):
        sanitized = {}
        for k, v in data.items():
            if any(sensitive in str(k).lower() for sensitive in SENSITIVE_KEYS):
                sanitized[k] = "***REDACTED***"
            else:
                sanitized[k] = sanitize_for_logging(v, max_len)
        return sanitized

    if isinstance(data, list):
        return [sanitize_for_logging(item, max_len) for item in data]

    if isinstance(data, str):
        cleaned = _CONTROL_CHARS.sub('', data)
        if len(cleaned) > max_len:
            return cleaned[:max_len] + "..."
        return cleaned

    return sanitize_for_logging(str(data), max_len)


# =============================================================================
# STRUCTURED USAGE LOGGING
# =============================================================================

_usage_logger = logging.getLogger("TeamMemory.Usage")


def log_llm_usage(
    model: str,
    prompt_tokens: Optional[int],
    completion_tokens: Optional[int],
    total_tokens: Optional[int] = None,
    duration_ms: Optional[int] = None,
    purpose: str = "chat",
    request_id: Optional[str] = None,
) -> None:
    """
    Log a structured usage event for an OpenAI call.

    Produces a single ``LLM_USAGE {...}`` line that log aggregation can
    parse for token dashboards.

    Args:
        model: Model identifier returned by the API
        prompt_tokens: Input tokens (None when the API did not report usage)
        completion_tokens: Output tokens
        total_tokens: Total tokens; derived when not reported
        duration_ms: Request duration in milliseconds
        purpose: What the call was for ('chat', 'summarize')
        request_id: Upstream request/completion id
    """
    if total_tokens is None and prompt_tokens is not None and completion_tokens is not None:
        total_tokens = prompt_tokens + completion_tokens

    event = {
        "event": "llm_usage",
        "model": model,
        "purpose": purpose,
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": total_tokens,
    }

    if duration_ms is not None:
        event["duration_ms"] = duration_ms

    if request_id:
        event["request_id"] = request_id

    _usage_logger.info("LLM_USAGE %s", json.dumps(event))
