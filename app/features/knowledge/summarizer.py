"""
Knowledge summarizer - compress a Q&A exchange into a knowledge card draft.

The summarizer never raises: any failure (network, empty or malformed
model output, missing fields) yields a deterministic fallback draft built
from the raw exchange, so ingestion is never blocked by summarization.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional

from openai import AsyncOpenAI

from app.core.config import settings
from app.core.logging_utils import log_llm_usage, sanitize_for_logging
from app.shared.constants import (
    FALLBACK_TAG,
    MAX_FALLBACK_SUMMARY_LENGTH,
    MAX_TAGS,
    MAX_TITLE_LENGTH,
)

logger = logging.getLogger("TeamMemory.Knowledge.Summarizer")

SYSTEM_PROMPT = """You are a Knowledge Compressor. Your task is to extract and structure knowledge from Q&A pairs into reusable knowledge cards.

Given a question and answer, create a knowledge card with:
1. **title**: A concise, searchable title (max 80 chars) that captures the main topic
2. **summary**: 2-4 sentences summarizing the key information
3. **mainAnswer**: A clean, standalone answer that can be understood without the original question
4. **tags**: 3-7 lowercase keyword tags for categorization (e.g., "process", "troubleshooting", "how-to", "ops", "policy")

Respond ONLY with valid JSON in this exact format:
{
  "title": "string",
  "summary": "string",
  "mainAnswer": "string",
  "tags": ["string", "string", ...]
}

Guidelines:
- Title should be clear and searchable
- Summary should be concise but complete
- MainAnswer should be self-contained and actionable
- Tags should be relevant keywords, lowercase, no special characters
- Preserve technical accuracy
- Keep the same language as the input"""

UNTITLED_QUESTION = "Untitled question"
EMPTY_ANSWER = "No answer recorded"


class SummarizationError(ValueError):
    """Model output could not be turned into a draft."""


@dataclass
class KnowledgeCardDraft:
    title: str
    summary: str
    main_answer: str
    tags: List[str] = field(default_factory=list)


def truncate_with_ellipsis(text: str, max_length: int) -> str:
    """Cut ``text`` to exactly ``max_length`` chars, the last three being '...'."""
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."


def clean_tags(tags: Any) -> List[str]:
    """Lowercase and trim tags, drop empties, keep at most MAX_TAGS. No dedup."""
    if not isinstance(tags, list):
        return []
    cleaned = [str(tag).lower().strip() for tag in tags if tag is not None]
    return [tag for tag in cleaned if tag][:MAX_TAGS]


def parse_summary(content: Optional[str]) -> KnowledgeCardDraft:
    """
    Parse and validate the model's JSON output.

    Raises:
        SummarizationError: empty content, invalid JSON, or a missing field
    """
    if not content:
        raise SummarizationError("No response content from summarization")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise SummarizationError(f"Summarization returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise SummarizationError("Summarization JSON is not an object")

    title = data.get("title")
    summary = data.get("summary")
    main_answer = data.get("mainAnswer")
    for name, value in (("title", title), ("summary", summary), ("mainAnswer", main_answer)):
        if not isinstance(value, str) or not value.strip():
            raise SummarizationError(f"Invalid response structure from summarization: missing {name}")

    return KnowledgeCardDraft(
        title=truncate_with_ellipsis(title, MAX_TITLE_LENGTH),
        summary=summary,
        main_answer=main_answer,
        tags=clean_tags(data.get("tags")),
    )


def create_fallback_draft(question: str, answer: str) -> KnowledgeCardDraft:
    """Basic draft from the raw exchange, used whenever summarization fails."""
    question = question if question and question.strip() else UNTITLED_QUESTION
    answer = answer if answer and answer.strip() else EMPTY_ANSWER

    return KnowledgeCardDraft(
        title=truncate_with_ellipsis(question, MAX_TITLE_LENGTH),
        summary=truncate_with_ellipsis(answer, MAX_FALLBACK_SUMMARY_LENGTH),
        main_answer=answer,
        tags=[FALLBACK_TAG],
    )


class KnowledgeSummarizer:
    """Turns (question, answer) pairs into knowledge card drafts via a light model."""

    def __init__(self, client: AsyncOpenAI, model: Optional[str] = None, temperature: float = 0.3):
        self.client = client
        self.model = model or settings.SUMMARIZE_MODEL
        self.temperature = temperature

    async def summarize_qa(self, question: str, answer: str) -> KnowledgeCardDraft:
        """Summarize a Q&A pair. Never raises; falls back to a raw draft."""
        user_prompt = f"Question: {question}\n\nAnswer: {answer}"
        started = time.monotonic()

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )

            if response.usage is not None:
                log_llm_usage(
                    model=response.model,
                    prompt_tokens=response.usage.prompt_tokens,
                    completion_tokens=response.usage.completion_tokens,
                    total_tokens=response.usage.total_tokens,
                    duration_ms=int((time.monotonic() - started) * 1000),
                    purpose="summarize",
                    request_id=response.id,
                )

            content = response.choices[0].message.content if response.choices else None
            return parse_summary(content)

        except Exception as e:  # pylint: disable=broad-except
            logger.warning(
                f"Summarization failed, using fallback card: {e} | "
                f"question={sanitize_for_logging(question, max_len=60)}"
            )
            return create_fallback_draft(question, answer)
