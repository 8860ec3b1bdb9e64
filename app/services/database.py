"""
Supabase datastore adapter.

Implements the datastore contract used by the chat flow, the knowledge
pipeline and the retriever: simple get/insert for users, conversations,
messages, knowledge cards and embeddings, a keyword filter query over
knowledge cards, and the pgvector nearest-neighbour RPC.

Every failure of the underlying client is raised as PersistenceError;
lookups that find nothing return None.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from supabase import AsyncClient

from app.shared.errors import PersistenceError

logger = logging.getLogger('TeamMemory.Database')

# Characters that break PostgREST's or=(...) filter syntax
_FILTER_DELIMITERS = str.maketrans("", "", ',()"')


def to_pgvector(vector: Sequence[float]) -> str:
    """Format a vector as a pgvector literal: ``[0.1,0.2,...]``."""
    return "[" + ",".join(str(v) for v in vector) + "]"


def keyword_terms(query: str) -> List[str]:
    """
    Split a search query into ILIKE-safe terms.

    LIKE wildcards are escaped and filter delimiters stripped; empty and
    repeated terms are dropped, order preserved.
    """
    terms: List[str] = []
    for raw in query.split():
        term = raw.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        term = term.translate(_FILTER_DELIMITERS).strip()
        if term and term.lower() not in (t.lower() for t in terms):
            terms.append(term)
    return terms


def build_keyword_filter(query: str) -> Optional[str]:
    """
    Build the PostgREST ``or`` filter matching any term in title or summary.

    Returns None when the query holds no usable terms.
    """
    terms = keyword_terms(query)
    if not terms:
        return None
    clauses = []
    for term in terms:
        clauses.append(f"title.ilike.%{term}%")
        clauses.append(f"summary.ilike.%{term}%")
    return ",".join(clauses)


class KnowledgeDatabase:
    """Datastore operations over the TeamMemory Supabase tables."""

    def __init__(self, client: AsyncClient):
        self.client = client

    async def _execute(self, operation: str, query) -> List[Dict[str, Any]]:
        try:
            result = await query.execute()
        except Exception as e:
            logger.error(f"Database {operation} failed: {e}")
            raise PersistenceError(operation, str(e)) from e
        return result.data or []

    async def _insert_one(self, table: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        rows = await self._execute(f"insert {table}", self.client.table(table).insert(payload))
        if not rows:
            raise PersistenceError(f"insert {table}", "no row returned")
        return rows[0]

    @staticmethod
    def _apply_card_filters(
        query,
        tag: Optional[str] = None,
        user_id: Optional[str] = None,
        visibility: Optional[str] = None,
    ):
        if visibility and visibility != "all":
            query = query.eq("visibility", visibility)
        if user_id:
            query = query.eq("user_id", user_id)
        if tag:
            query = query.contains("tags", [tag])
        return query

    # =========================================================================
    # USERS & CONVERSATIONS
    # =========================================================================

    async def get_user(self, user_id: str) -> Optional[Dict]:
        rows = await self._execute(
            "get user",
            self.client.table("users").select("*").eq("id", user_id).limit(1),
        )
        return rows[0] if rows else None

    async def create_conversation(self, user_id: str, title: Optional[str] = None) -> Dict:
        conversation = await self._insert_one("conversations", {
            "user_id": user_id,
            "title": title,
        })
        logger.info(f"Conversation created: {conversation['id']}")
        return conversation

    async def get_conversation(self, conversation_id: str, user_id: str) -> Optional[Dict]:
        """Fetch a conversation only if it belongs to ``user_id``."""
        rows = await self._execute(
            "get conversation",
            self.client.table("conversations").select("*")
            .eq("id", conversation_id)
            .eq("user_id", user_id)
            .limit(1),
        )
        return rows[0] if rows else None

    async def touch_conversation(self, conversation_id: str) -> None:
        await self._execute(
            "touch conversation",
            self.client.table("conversations")
            .update({"updated_at": datetime.now(timezone.utc).isoformat()})
            .eq("id", conversation_id),
        )

    # =========================================================================
    # MESSAGES
    # =========================================================================

    async def insert_message(
        self,
        conversation_id: str,
        user_id: str,
        role: str,
        content: str,
        model: Optional[str] = None,
        token_count: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict:
        payload = {
            "conversation_id": conversation_id,
            "user_id": user_id,
            "role": role,
            "content": content,
            "metadata": metadata or {},
        }
        if model:
            payload["model"] = model
        if token_count is not None:
            payload["token_count"] = token_count
        return await self._insert_one("messages", payload)

    async def get_message(self, message_id: str) -> Optional[Dict]:
        rows = await self._execute(
            "get message",
            self.client.table("messages").select("*").eq("id", message_id).limit(1),
        )
        return rows[0] if rows else None

    async def get_preceding_user_message(
        self,
        conversation_id: str,
        before: str,
    ) -> Optional[Dict]:
        """Newest user message in the conversation created strictly before ``before``."""
        rows = await self._execute(
            "get preceding user message",
            self.client.table("messages").select("*")
            .eq("conversation_id", conversation_id)
            .eq("role", "user")
            .lt("created_at", before)
            .order("created_at", desc=True)
            .limit(1),
        )
        return rows[0] if rows else None

    # =========================================================================
    # KNOWLEDGE CARDS & EMBEDDINGS
    # =========================================================================

    async def insert_knowledge_card(
        self,
        source_message_id: Optional[str],
        user_id: str,
        title: str,
        summary: str,
        main_answer: str,
        tags: List[str],
        visibility: str = "team",
        importance_score: float = 0,
    ) -> Dict:
        card = await self._insert_one("knowledge_cards", {
            "source_message_id": source_message_id,
            "user_id": user_id,
            "title": title,
            "summary": summary,
            "main_answer": main_answer,
            "tags": tags,
            "visibility": visibility,
            "importance_score": importance_score,
        })
        logger.info(f"Knowledge card created: {card['id']}")
        return card

    async def get_card_by_source_message(self, message_id: str) -> Optional[Dict]:
        rows = await self._execute(
            "get card by source message",
            self.client.table("knowledge_cards").select("id")
            .eq("source_message_id", message_id)
            .limit(1),
        )
        return rows[0] if rows else None

    async def insert_embedding(
        self,
        reference_type: str,
        reference_id: str,
        embedding: Sequence[float],
    ) -> Dict:
        return await self._insert_one("embeddings", {
            "reference_type": reference_type,
            "reference_id": reference_id,
            "embedding": to_pgvector(embedding),
        })

    async def search_cards_by_keyword(
        self,
        query: str,
        tag: Optional[str] = None,
        user_id: Optional[str] = None,
        visibility: Optional[str] = None,
        limit: int = 10,
    ) -> List[Dict]:
        """
        Case-insensitive substring search over title and summary.

        Ordered by importance_score desc, then created_at desc.
        """
        keyword_filter = build_keyword_filter(query)
        if keyword_filter is None:
            return []

        builder = self.client.table("knowledge_cards").select("*").or_(keyword_filter)
        builder = self._apply_card_filters(builder, tag=tag, user_id=user_id, visibility=visibility)
        builder = (
            builder.order("importance_score", desc=True)
            .order("created_at", desc=True)
            .limit(limit)
        )
        return await self._execute("keyword search", builder)

    async def match_embeddings(
        self,
        query_embedding: Sequence[float],
        threshold: float,
        limit: int,
        reference_type: str = "knowledge_card",
    ) -> List[Dict]:
        """
        Nearest-neighbour lookup via the ``search_similar_embeddings`` RPC.

        Returns rows ``{"reference_id", "similarity"}`` ordered by
        similarity descending.
        """
        return await self._execute(
            "vector search",
            self.client.rpc("search_similar_embeddings", {
                "query_embedding": to_pgvector(query_embedding),
                "match_threshold": threshold,
                "match_count": limit,
                "ref_type": reference_type,
            }),
        )

    async def get_cards_by_ids(
        self,
        card_ids: List[str],
        tag: Optional[str] = None,
        user_id: Optional[str] = None,
        visibility: Optional[str] = None,
    ) -> List[Dict]:
        """Fetch cards by id with the search filters applied. Order is not guaranteed."""
        if not card_ids:
            return []
        builder = self.client.table("knowledge_cards").select("*").in_("id", card_ids)
        builder = self._apply_card_filters(builder, tag=tag, user_id=user_id, visibility=visibility)
        return await self._execute("get cards", builder)

    async def health_check(self) -> bool:
        """True when a trivial query against knowledge_cards succeeds."""
        try:
            await self._execute(
                "health check",
                self.client.table("knowledge_cards").select("id").limit(1),
            )
            return True
        except PersistenceError:
            return False
