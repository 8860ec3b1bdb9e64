"""
Knowledge System - shared team knowledge built from answered questions.

This module provides:
1. Ingestion: answered question -> knowledge card + embedding (detached)
2. Retrieval: keyword, semantic and hybrid search over cards
3. Duplicate suggestions: known answers surfaced before answering again
"""

from app.features.knowledge.service import KnowledgeService
from app.features.knowledge.embedder import (
    EmbeddingClient,
    prepare_embedding_text,
)
from app.features.knowledge.summarizer import (
    KnowledgeCardDraft,
    KnowledgeSummarizer,
)
from app.features.knowledge.retriever import (
    DuplicateSuggestion,
    KnowledgeRetriever,
    SearchFilters,
    SearchResult,
    merge_hybrid_results,
)
from app.features.knowledge.pipeline import (
    KnowledgePipeline,
    PipelineResult,
)

__all__ = [
    # Main service
    "KnowledgeService",
    # Embeddings
    "EmbeddingClient",
    "prepare_embedding_text",
    # Summarization
    "KnowledgeCardDraft",
    "KnowledgeSummarizer",
    # Retrieval
    "DuplicateSuggestion",
    "KnowledgeRetriever",
    "SearchFilters",
    "SearchResult",
    "merge_hybrid_results",
    # Ingestion
    "KnowledgePipeline",
    "PipelineResult",
]
