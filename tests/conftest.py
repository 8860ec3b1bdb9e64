"""Shared test fixtures."""

from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.features.knowledge.retriever import SearchResult


class FakeQuery:
    """Chainable stand-in for a PostgREST request builder.

    Every builder call is recorded in ``calls`` and returns the same
    object; ``execute`` resolves to ``rows`` or raises ``error``.
    """

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.calls: List[tuple] = []
        self.execute = AsyncMock(side_effect=error, return_value=SimpleNamespace(data=rows))

    def __getattr__(self, name: str):
        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return method

    def called(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]


class FakeSupabase:
    """Supabase client returning one FakeQuery per table()/rpc() call."""

    def __init__(self):
        self.queries: List[FakeQuery] = []
        self.rows: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None
        self.tables: List[str] = []
        self.rpc_calls: List[tuple] = []

    def _query(self) -> FakeQuery:
        query = FakeQuery(self.rows, self.error)
        self.queries.append(query)
        return query

    def table(self, name: str) -> FakeQuery:
        self.tables.append(name)
        return self._query()

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeQuery:
        self.rpc_calls.append((name, params))
        return self._query()


@pytest.fixture
def supabase() -> FakeSupabase:
    return FakeSupabase()


def make_card(card_id: str, **overrides) -> Dict[str, Any]:
    card = {
        "id": card_id,
        "title": f"Card {card_id}",
        "summary": f"Summary of {card_id}",
        "main_answer": f"Answer for {card_id}",
        "tags": ["ops"],
        "visibility": "team",
        "user_id": "00000000-0000-0000-0000-0000000000aa",
        "importance_score": 0,
        "created_at": "2026-01-01T00:00:00+00:00",
    }
    card.update(overrides)
    return card


def make_result(card_id: str, score: float) -> SearchResult:
    return SearchResult(
        knowledge_card_id=card_id,
        title=f"Card {card_id}",
        summary=f"Summary of {card_id}",
        main_answer=None,
        tags=[],
        score=score,
        created_at=None,
    )


def embedding_response(vector: List[float]) -> SimpleNamespace:
    return SimpleNamespace(data=[SimpleNamespace(embedding=vector)])


def completion_response(
    content: Optional[str],
    model: str = "gpt-4.1-mini",
    usage: Optional[SimpleNamespace] = None,
    response_id: str = "chatcmpl-123",
) -> SimpleNamespace:
    return SimpleNamespace(
        id=response_id,
        model=model,
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=usage,
    )


@pytest.fixture
def openai_client() -> MagicMock:
    """AsyncOpenAI stand-in with async embeddings and chat endpoints."""
    client = MagicMock()
    client.embeddings.create = AsyncMock()
    client.chat.completions.create = AsyncMock()
    return client


@pytest.fixture
def db() -> AsyncMock:
    """KnowledgeDatabase stand-in; every method is an AsyncMock."""
    return AsyncMock()
