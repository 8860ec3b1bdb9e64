"""
Retrieval service - keyword, semantic and hybrid search over knowledge cards.

This is the "read" side of the knowledge base - called by the search API
and by the chat flow's duplicate check before answering.

Every public search method degrades to an empty list on failure; search
never fails the request that called it.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from app.core.tracing import get_tracer
from app.features.knowledge.embedder import EmbeddingClient
from app.services.database import KnowledgeDatabase
from app.shared.constants import (
    DEFAULT_SEARCH_LIMIT,
    DUPLICATE_LIMIT,
    DUPLICATE_THRESHOLD,
    KEYWORD_MATCH_SCORE,
    KEYWORD_WEIGHT,
    SEARCH_SIMILARITY_THRESHOLD,
    SEMANTIC_WEIGHT,
)

logger = logging.getLogger("TeamMemory.Knowledge.Retriever")
tracer = get_tracer(__name__)


@dataclass(frozen=True)
class SearchFilters:
    """Caller-supplied filters. ``visibility`` of None or "all" means unfiltered."""
    tag: Optional[str] = None
    user_id: Optional[str] = None
    visibility: Optional[str] = None
    limit: Optional[int] = None

    @property
    def effective_limit(self) -> int:
        return self.limit or DEFAULT_SEARCH_LIMIT


@dataclass(frozen=True)
class SearchResult:
    knowledge_card_id: str
    title: str
    summary: str
    main_answer: Optional[str]
    tags: List[str]
    score: float
    created_at: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "knowledge_card_id": self.knowledge_card_id,
            "title": self.title,
            "summary": self.summary,
            "main_answer": self.main_answer,
            "tags": list(self.tags),
            "score": self.score,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class DuplicateSuggestion:
    knowledge_card_id: str
    title: str
    summary: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "knowledge_card_id": self.knowledge_card_id,
            "title": self.title,
            "summary": self.summary,
            "score": self.score,
        }


def clamp_score(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def _card_to_result(card: Dict[str, Any], score: float) -> SearchResult:
    return SearchResult(
        knowledge_card_id=card["id"],
        title=card.get("title", ""),
        summary=card.get("summary", ""),
        main_answer=card.get("main_answer"),
        tags=list(card.get("tags") or []),
        score=clamp_score(score),
        created_at=card.get("created_at"),
    )


def merge_hybrid_results(
    semantic_results: Sequence[SearchResult],
    keyword_results: Sequence[SearchResult],
    limit: int,
) -> List[SearchResult]:
    """
    Weighted merge of semantic and keyword candidates.

    Semantic candidates go in first at ``similarity * 0.7``. A keyword hit
    on a card already present adds 0.3 (capped at 1.0); a keyword-only card
    enters at ``1.0 * 0.3``. The final ordering is a stable sort by score,
    so equal scores keep insertion order.
    """
    merged: "OrderedDict[str, SearchResult]" = OrderedDict()

    for result in semantic_results:
        merged[result.knowledge_card_id] = replace(result, score=result.score * SEMANTIC_WEIGHT)

    for result in keyword_results:
        existing = merged.get(result.knowledge_card_id)
        if existing is not None:
            merged[result.knowledge_card_id] = replace(
                existing, score=min(1.0, existing.score + KEYWORD_WEIGHT)
            )
        else:
            merged[result.knowledge_card_id] = replace(result, score=result.score * KEYWORD_WEIGHT)

    ranked = sorted(merged.values(), key=lambda r: r.score, reverse=True)
    return ranked[:limit]


class KnowledgeRetriever:
    """
    Hybrid retrieval engine over knowledge cards.

    Usage:
        retriever = KnowledgeRetriever(db, embedder)
        results = await retriever.search("deploy to vercel", mode="hybrid",
                                         filters=SearchFilters(limit=5))
    """

    def __init__(self, db: KnowledgeDatabase, embedder: EmbeddingClient):
        self.db = db
        self.embedder = embedder

    async def _semantic_matches(
        self,
        query: str,
        threshold: float,
        limit: int,
        tag: Optional[str] = None,
        user_id: Optional[str] = None,
        visibility: Optional[str] = None,
    ) -> List[Tuple[Dict[str, Any], float]]:
        """
        Embed ``query``, take the nearest-neighbour window, then post-filter.

        Filters are applied after the window is cut, so fewer than ``limit``
        pairs may come back even when more matching cards exist.
        """
        query_embedding = await self.embedder.embed(query)

        neighbours = await self.db.match_embeddings(
            query_embedding,
            threshold=threshold,
            limit=limit,
            reference_type="knowledge_card",
        )
        if not neighbours:
            return []

        card_ids = [row["reference_id"] for row in neighbours]
        cards = await self.db.get_cards_by_ids(
            card_ids, tag=tag, user_id=user_id, visibility=visibility
        )
        cards_by_id = {card["id"]: card for card in cards}

        matches = []
        for row in neighbours:
            card = cards_by_id.get(row["reference_id"])
            if card is not None:
                matches.append((card, float(row["similarity"])))
        return matches

    async def search_by_keyword(
        self,
        query: str,
        filters: Optional[SearchFilters] = None,
    ) -> List[SearchResult]:
        """Substring search on title/summary; every hit scores 1.0."""
        filters = filters or SearchFilters()
        try:
            cards = await self.db.search_cards_by_keyword(
                query,
                tag=filters.tag,
                user_id=filters.user_id,
                visibility=filters.visibility,
                limit=filters.effective_limit,
            )
        except Exception as e:
            logger.error(f"Keyword search failed: {e}")
            return []

        return [_card_to_result(card, KEYWORD_MATCH_SCORE) for card in cards]

    async def search_by_semantic(
        self,
        query: str,
        filters: Optional[SearchFilters] = None,
    ) -> List[SearchResult]:
        """Vector similarity search; score is the cosine similarity."""
        filters = filters or SearchFilters()
        try:
            matches = await self._semantic_matches(
                query,
                threshold=SEARCH_SIMILARITY_THRESHOLD,
                limit=filters.effective_limit,
                tag=filters.tag,
                user_id=filters.user_id,
                visibility=filters.visibility,
            )
        except Exception as e:
            logger.error(f"Semantic search failed: {e}")
            return []

        return [_card_to_result(card, similarity) for card, similarity in matches]

    async def search_hybrid(
        self,
        query: str,
        filters: Optional[SearchFilters] = None,
    ) -> List[SearchResult]:
        """Run semantic and keyword search concurrently and merge (0.7 / 0.3)."""
        filters = filters or SearchFilters()
        limit = filters.effective_limit
        widened = replace(filters, limit=limit * 2)

        with tracer.start_as_current_span("knowledge.hybrid_search") as span:
            span.set_attribute("search.limit", limit)
            try:
                semantic_results, keyword_results = await asyncio.gather(
                    self.search_by_semantic(query, widened),
                    self.search_by_keyword(query, widened),
                )
                merged = merge_hybrid_results(semantic_results, keyword_results, limit)
            except Exception as e:
                logger.error(f"Hybrid search failed: {e}")
                return []

            span.set_attribute("search.semantic_candidates", len(semantic_results))
            span.set_attribute("search.keyword_candidates", len(keyword_results))
            span.set_attribute("search.results", len(merged))

        logger.debug(
            f"Hybrid search: {len(semantic_results)} semantic + "
            f"{len(keyword_results)} keyword -> {len(merged)} results"
        )
        return merged

    async def find_similar_for_duplicate(
        self,
        question: str,
        user_id: Optional[str] = None,
    ) -> List[DuplicateSuggestion]:
        """
        High-threshold semantic match used before answering a new question.

        Always restricted to team-visible cards, whoever is asking; the
        owner is not used as a filter. Failures yield an empty list.
        """
        try:
            matches = await self._semantic_matches(
                question,
                threshold=DUPLICATE_THRESHOLD,
                limit=DUPLICATE_LIMIT,
                visibility="team",
            )
        except Exception as e:
            logger.error(f"Duplicate detection failed for user {user_id}: {e}")
            return []

        return [
            DuplicateSuggestion(
                knowledge_card_id=card["id"],
                title=card.get("title", ""),
                summary=card.get("summary", ""),
                score=clamp_score(similarity),
            )
            for card, similarity in matches
        ]

    async def search(
        self,
        query: str,
        mode: str = "hybrid",
        filters: Optional[SearchFilters] = None,
    ) -> List[SearchResult]:
        """Route to the requested mode; anything but semantic/keyword is hybrid."""
        with tracer.start_as_current_span("knowledge.search") as span:
            span.set_attribute("search.mode", mode)
            if mode == "semantic":
                return await self.search_by_semantic(query, filters)
            if mode == "keyword":
                return await self.search_by_keyword(query, filters)
            return await self.search_hybrid(query, filters)
