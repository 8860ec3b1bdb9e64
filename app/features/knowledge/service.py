"""
Knowledge Service - main interface for the knowledge base.

Wires the embedder, summarizer, retriever and ingestion pipeline from
explicitly constructed client handles. One instance is built at startup
(see main.py) and handed to request handlers; nothing here creates
clients lazily.
"""

import logging
from typing import List, Optional

from openai import AsyncOpenAI

from app.features.knowledge.embedder import EmbeddingClient
from app.features.knowledge.pipeline import KnowledgePipeline, PipelineResult
from app.features.knowledge.retriever import (
    DuplicateSuggestion,
    KnowledgeRetriever,
    SearchFilters,
    SearchResult,
)
from app.features.knowledge.summarizer import KnowledgeSummarizer
from app.services.database import KnowledgeDatabase

logger = logging.getLogger("TeamMemory.Knowledge.Service")


class KnowledgeService:
    """
    Unified knowledge service.

    Usage:
        knowledge = KnowledgeService.from_clients(openai_client, db)

        results = await knowledge.search("How do we deploy?", mode="hybrid")
        similar = await knowledge.find_similar("How do we deploy?", user_id)
        knowledge.ingest_detached(assistant_message_id, user_id)
    """

    def __init__(
        self,
        db: KnowledgeDatabase,
        embedder: EmbeddingClient,
        summarizer: KnowledgeSummarizer,
        retriever: KnowledgeRetriever,
        pipeline: KnowledgePipeline,
    ):
        self.db = db
        self.embedder = embedder
        self.summarizer = summarizer
        self.retriever = retriever
        self.pipeline = pipeline

    @classmethod
    def from_clients(cls, openai_client: AsyncOpenAI, db: KnowledgeDatabase) -> "KnowledgeService":
        embedder = EmbeddingClient(openai_client)
        summarizer = KnowledgeSummarizer(openai_client)
        retriever = KnowledgeRetriever(db, embedder)
        pipeline = KnowledgePipeline(db, summarizer, embedder)
        logger.info(
            f"Knowledge service ready (embedding model={embedder.model}, "
            f"summarize model={summarizer.model})"
        )
        return cls(db, embedder, summarizer, retriever, pipeline)

    # ==================== SEARCH ====================

    async def search(
        self,
        query: str,
        mode: str = "hybrid",
        filters: Optional[SearchFilters] = None,
    ) -> List[SearchResult]:
        return await self.retriever.search(query, mode=mode, filters=filters)

    async def find_similar(self, question: str, user_id: Optional[str] = None) -> List[DuplicateSuggestion]:
        return await self.retriever.find_similar_for_duplicate(question, user_id)

    # ==================== INGESTION ====================

    async def ingest(self, assistant_message_id: str, user_id: str) -> PipelineResult:
        return await self.pipeline.run(assistant_message_id, user_id)

    def ingest_detached(self, assistant_message_id: str, user_id: str) -> None:
        self.pipeline.run_detached(assistant_message_id, user_id)

    async def shutdown(self) -> None:
        await self.pipeline.drain()
