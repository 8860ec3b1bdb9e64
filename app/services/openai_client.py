"""
OpenAI access for the knowledge service.

Centralizes client construction and the primary chat-completion call.
The client is created once at startup and handed to every component that
needs it (chat, summarizer, embedder).
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import openai
from openai import AsyncOpenAI

from app.core.config import settings
from app.core.logging_utils import log_llm_usage
from app.shared.errors import ChatCompletionError, ErrorCode

logger = logging.getLogger("TeamMemory.OpenAI")


def create_openai_client(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> AsyncOpenAI:
    """
    Build the shared OpenAI async client.

    Built-in retries are disabled: each call is attempted exactly once and
    the timeout is the only ceiling on a call.

    Raises:
        ValueError: If OPENAI_API_KEY is not set
    """
    api_key = api_key or settings.OPENAI_API_KEY
    if not api_key:
        raise ValueError("OPENAI_API_KEY environment variable not set")

    client = AsyncOpenAI(
        api_key=api_key,
        base_url=base_url or settings.OPENAI_BASE_URL,
        timeout=timeout or settings.OPENAI_TIMEOUT_SECONDS,
        max_retries=0,
    )
    logger.info("OpenAI client initialized")
    return client


@dataclass
class TokenUsage:
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    def to_dict(self) -> Dict[str, Optional[int]]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class ChatCompletionResult:
    content: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    request_id: Optional[str] = None


def classify_openai_error(exc: Exception) -> Optional[ChatCompletionError]:
    """
    Map an exception from the OpenAI SDK onto the chat error taxonomy.

    Returns None for exceptions that are not upstream failures (programming
    errors), which callers should let propagate unchanged.
    """
    if isinstance(exc, openai.APITimeoutError):
        return ChatCompletionError(
            ErrorCode.TIMEOUT.value,
            "Request to OpenAI timed out. Please try again.",
            504,
        )
    if isinstance(exc, openai.APIConnectionError):
        return ChatCompletionError(
            ErrorCode.NETWORK_ERROR.value,
            "Unable to connect to OpenAI. Please check your network.",
            503,
        )
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        if status in (401, 403):
            return ChatCompletionError(
                ErrorCode.INVALID_API_KEY.value,
                "Invalid OpenAI API key. Please check your configuration.",
                status,
            )
        if status == 429:
            return ChatCompletionError(
                ErrorCode.RATE_LIMITED.value,
                "OpenAI rate limit exceeded. Please try again later.",
                status,
            )
        if status >= 500:
            return ChatCompletionError(
                ErrorCode.SERVER_ERROR.value,
                "OpenAI service is temporarily unavailable. Please try again.",
                status,
            )
        return ChatCompletionError(
            ErrorCode.API_ERROR.value,
            exc.message or "Unknown OpenAI API error",
            status,
        )
    if isinstance(exc, openai.APIError):
        return ChatCompletionError(
            ErrorCode.API_ERROR.value,
            exc.message or "Unknown OpenAI API error",
            500,
        )
    return None


async def chat_completion(
    client: AsyncOpenAI,
    messages: List[Dict[str, str]],
    model: Optional[str] = None,
) -> ChatCompletionResult:
    """
    Send the primary chat completion.

    This is the one call allowed to fail a user request; every upstream
    failure is raised as a classified ChatCompletionError.

    Args:
        client: Shared OpenAI client
        messages: Ordered [{"role": ..., "content": ...}] list
        model: Model override (defaults to CHAT_MODEL)
    """
    selected_model = model or settings.CHAT_MODEL
    started = time.monotonic()

    try:
        response = await client.chat.completions.create(
            model=selected_model,
            messages=[{"role": m["role"], "content": m["content"]} for m in messages],
        )
    except Exception as exc:
        classified = classify_openai_error(exc)
        if classified is None:
            raise
        logger.error(f"Chat completion failed ({classified.code}): {exc}")
        raise classified from exc

    choice = response.choices[0] if response.choices else None
    if choice is None or not choice.message.content:
        raise ChatCompletionError(ErrorCode.API_ERROR.value, "No response content from OpenAI", 502)

    usage = TokenUsage()
    if response.usage is not None:
        usage = TokenUsage(
            prompt_tokens=response.usage.prompt_tokens,
            completion_tokens=response.usage.completion_tokens,
            total_tokens=response.usage.total_tokens,
        )

    log_llm_usage(
        model=response.model,
        prompt_tokens=usage.prompt_tokens,
        completion_tokens=usage.completion_tokens,
        total_tokens=usage.total_tokens,
        duration_ms=int((time.monotonic() - started) * 1000),
        purpose="chat",
        request_id=response.id,
    )

    return ChatCompletionResult(
        content=choice.message.content,
        model=response.model,
        usage=usage,
        request_id=response.id or None,
    )
