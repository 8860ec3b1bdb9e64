"""
Knowledge ingestion pipeline - the "write" side of the knowledge base.

Turns an answered question into a knowledge card plus its embedding:

    message lookup -> preceding question -> summarize -> card -> embedding

Stages have different failure tolerances. A missing message or question,
or an answer that already has a card, ends the run with success=False and
no writes. Summarization never fails
(it falls back). A failed card insert ends the run. A failed embedding is
logged and the run still succeeds: the card stays keyword-searchable.

``run_detached`` is what request handlers call. It schedules the run as a
background task and returns immediately; outcomes only reach the logs.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from app.core.tracing import get_tracer
from app.features.knowledge.embedder import EmbeddingClient, prepare_embedding_text
from app.features.knowledge.summarizer import KnowledgeSummarizer
from app.services.database import KnowledgeDatabase
from app.shared.constants import DEFAULT_IMPORTANCE_SCORE, DEFAULT_VISIBILITY
from app.shared.correlation import CorrelationContext, get_correlation_id

logger = logging.getLogger("TeamMemory.Knowledge.Pipeline")
tracer = get_tracer(__name__)


@dataclass
class PipelineResult:
    success: bool
    knowledge_card_id: Optional[str] = None
    embedding_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "knowledge_card_id": self.knowledge_card_id,
            "embedding_id": self.embedding_id,
            "error": self.error,
        }


class KnowledgePipeline:
    """
    Single-pass ingestion of one assistant answer.

    Usage:
        pipeline = KnowledgePipeline(db, summarizer, embedder)

        # From a request handler (never awaited):
        pipeline.run_detached(assistant_message_id, user_id)

        # Inline, e.g. from a backfill script:
        result = await pipeline.run(assistant_message_id, user_id)
    """

    def __init__(
        self,
        db: KnowledgeDatabase,
        summarizer: KnowledgeSummarizer,
        embedder: EmbeddingClient,
    ):
        self.db = db
        self.summarizer = summarizer
        self.embedder = embedder
        self._tasks: Set[asyncio.Task] = set()

    async def run(self, assistant_message_id: str, user_id: str) -> PipelineResult:
        """Run the pipeline once. Never raises; failures are in the result."""
        with tracer.start_as_current_span("knowledge.pipeline") as span:
            span.set_attribute("pipeline.message_id", assistant_message_id)
            try:
                result = await self._run(assistant_message_id, user_id)
            except Exception as e:
                logger.exception(f"Knowledge pipeline error for message {assistant_message_id}")
                result = PipelineResult(success=False, error=str(e) or "Unknown pipeline error")
            span.set_attribute("pipeline.success", result.success)
            return result

    async def _run(self, assistant_message_id: str, user_id: str) -> PipelineResult:
        # 1. The answer
        assistant_message = await self.db.get_message(assistant_message_id)
        if assistant_message is None:
            return PipelineResult(
                success=False,
                error=f"Assistant message not found: {assistant_message_id}",
            )
        if assistant_message.get("role") != "assistant":
            return PipelineResult(
                success=False,
                error=f"Message is not an assistant message: {assistant_message_id}",
            )

        # One card per answer
        existing = await self.db.get_card_by_source_message(assistant_message_id)
        if existing is not None:
            return PipelineResult(
                success=False,
                knowledge_card_id=existing["id"],
                error=f"Knowledge card already exists for message {assistant_message_id}",
            )

        # 2. The question it answered
        user_message = await self.db.get_preceding_user_message(
            assistant_message["conversation_id"],
            assistant_message["created_at"],
        )
        if user_message is None:
            logger.warning(f"No preceding user message found for assistant message: {assistant_message_id}")
            return PipelineResult(success=False, error="No preceding user message found")

        # 3. Draft (never raises)
        draft = await self.summarizer.summarize_qa(user_message["content"], assistant_message["content"])

        # 4. Card - the anchor; nothing to salvage without it
        try:
            card = await self.db.insert_knowledge_card(
                source_message_id=assistant_message_id,
                user_id=user_id,
                title=draft.title,
                summary=draft.summary,
                main_answer=draft.main_answer,
                tags=draft.tags,
                visibility=DEFAULT_VISIBILITY,
                importance_score=DEFAULT_IMPORTANCE_SCORE,
            )
        except Exception as e:
            logger.error(f"Failed to insert knowledge card: {e}")
            return PipelineResult(success=False, error=f"Failed to insert knowledge card: {e}")

        # 5. Embedding - optional
        embedding_id = None
        try:
            text = prepare_embedding_text(
                card.get("title", draft.title),
                card.get("summary", draft.summary),
                card.get("main_answer", draft.main_answer),
            )
            vector = await self.embedder.embed(text)
            embedding = await self.db.insert_embedding("knowledge_card", card["id"], vector)
            embedding_id = embedding["id"]
        except Exception as e:
            logger.error(f"Failed to create embedding for card {card['id']}: {e}")

        logger.info(
            f"Knowledge pipeline completed: card={card['id']}, embedding={embedding_id or 'failed'}"
        )
        return PipelineResult(
            success=True,
            knowledge_card_id=card["id"],
            embedding_id=embedding_id,
        )

    # =========================================================================
    # DETACHED EXECUTION
    # =========================================================================

    async def _run_logged(self, assistant_message_id: str, user_id: str) -> PipelineResult:
        with CorrelationContext(get_correlation_id()):
            result = await self.run(assistant_message_id, user_id)
            if not result.success:
                logger.warning(
                    f"Knowledge pipeline failed for message {assistant_message_id}: {result.error}"
                )
            return result

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Knowledge pipeline task cancelled: {task.get_name()}")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Knowledge pipeline task raised: {task.get_name()}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def run_detached(self, assistant_message_id: str, user_id: str) -> asyncio.Task:
        """
        Fire-and-forget ingestion.

        Must be called from within a running event loop. The returned task
        is tracked internally until it finishes; callers do not await it.
        """
        task = asyncio.create_task(
            self._run_logged(assistant_message_id, user_id),
            name=f"knowledge-pipeline-{assistant_message_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for in-flight detached runs. Called on application shutdown."""
        if not self._tasks:
            return
        logger.info(f"Waiting for {len(self._tasks)} knowledge pipeline task(s)")
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
