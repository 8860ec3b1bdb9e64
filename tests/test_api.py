"""Tests for the HTTP API (routes, auth dependency, error envelopes)."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app.features.chat import ChatExchange
from app.features.knowledge import PipelineResult
from app.shared.errors import ChatCompletionError, NotFoundError, PersistenceError
from conftest import make_result
from main import app

USER_ID = "00000000-0000-0000-0000-0000000000aa"
HEADERS = {"X-User-Id": USER_ID}


@pytest.fixture
def services(monkeypatch, db):
    monkeypatch.setattr("app.core.config.settings.DEMO_MODE", False)
    db.get_user.return_value = {"id": USER_ID}
    db.health_check.return_value = True

    knowledge = MagicMock()
    knowledge.search = AsyncMock(return_value=[])
    knowledge.ingest = AsyncMock()
    knowledge.pipeline.pending = 2

    chat = MagicMock()
    chat.handle_message = AsyncMock(return_value=ChatExchange(
        conversation_id="conv-1",
        user_message_id="msg-1",
        assistant_message_id="msg-2",
        content="Run `vercel --prod`.",
        model="gpt-4.1-mini",
    ))

    app.state.database = db
    app.state.knowledge = knowledge
    app.state.chat = chat
    return db, knowledge, chat


@pytest.fixture
def client(services) -> TestClient:
    # No context manager: the lifespan (real clients) is not started.
    return TestClient(app)


# -- auth ----------------------------------------------------------------------


def test_missing_user_header(client) -> None:
    response = client.post("/api/v1/chat", json={"message": "hi"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


def test_invalid_user_header(client) -> None:
    response = client.post("/api/v1/chat", json={"message": "hi"}, headers={"X-User-Id": "bob"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_USER_ID"


def test_unknown_user(client, services) -> None:
    db, _, _ = services
    db.get_user.return_value = None

    response = client.post("/api/v1/chat", json={"message": "hi"}, headers=HEADERS)

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "USER_NOT_FOUND"


def test_error_carries_correlation_id(client) -> None:
    response = client.post(
        "/api/v1/chat",
        json={"message": "hi"},
        headers={"X-Correlation-ID": "abc12345"},
    )
    assert response.json()["error"]["correlation_id"] == "abc12345"
    assert response.headers["X-Correlation-ID"] == "abc12345"


# -- chat ----------------------------------------------------------------------


def test_chat_success(client, services) -> None:
    _, _, chat = services

    response = client.post(
        "/api/v1/chat",
        json={"message": "  How do I deploy? ", "metadata": {"client": "cli"}},
        headers=HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["assistant_message_id"] == "msg-2"
    assert body["similar_results"] == []
    kwargs = chat.handle_message.await_args.kwargs
    assert kwargs["user_id"] == USER_ID
    assert kwargs["message"] == "How do I deploy?"
    assert kwargs["metadata"] == {"client": "cli", "tags": None}


def test_chat_empty_message(client) -> None:
    response = client.post("/api/v1/chat", json={"message": "   "}, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_chat_invalid_conversation_id(client) -> None:
    response = client.post(
        "/api/v1/chat",
        json={"message": "hi", "conversation_id": "not-a-uuid"},
        headers=HEADERS,
    )
    assert response.status_code == 400


def test_chat_unknown_conversation(client, services) -> None:
    _, _, chat = services
    chat.handle_message.side_effect = NotFoundError("conversation", "x")

    response = client.post(
        "/api/v1/chat",
        json={"message": "hi", "conversation_id": "11111111-1111-1111-1111-111111111111"},
        headers=HEADERS,
    )

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "CONVERSATION_NOT_FOUND"


@pytest.mark.parametrize("code,upstream_status,expected_status,retryable", [
    ("RATE_LIMITED", 429, 429, True),
    ("TIMEOUT", 504, 504, True),
    ("SERVER_ERROR", 503, 502, True),
    ("INVALID_API_KEY", 401, 500, False),
])
def test_chat_completion_errors(client, services, code, upstream_status, expected_status, retryable) -> None:
    _, _, chat = services
    chat.handle_message.side_effect = ChatCompletionError(code, "upstream failed", upstream_status)

    response = client.post("/api/v1/chat", json={"message": "hi"}, headers=HEADERS)

    assert response.status_code == expected_status
    error = response.json()["error"]
    assert error["code"] == code
    assert error["details"] == {"retryable": retryable}


def test_chat_database_failure(client, services) -> None:
    _, _, chat = services
    chat.handle_message.side_effect = PersistenceError("insert messages", "connection refused")

    response = client.post("/api/v1/chat", json={"message": "hi"}, headers=HEADERS)

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "DATABASE_ERROR"
    assert "connection refused" not in response.text


# -- search --------------------------------------------------------------------


def test_search_success(client, services) -> None:
    _, knowledge, _ = services
    knowledge.search.return_value = [make_result("card-1", 0.93)]

    response = client.post(
        "/api/v1/search",
        json={"query": "deploy vercel", "filters": {"tag": "ops", "limit": 5}},
        headers=HEADERS,
    )

    assert response.status_code == 200
    results = response.json()["results"]
    assert results[0]["knowledge_card_id"] == "card-1"
    assert results[0]["score"] == pytest.approx(0.93)

    args, kwargs = knowledge.search.await_args
    assert args == ("deploy vercel",)
    assert kwargs["mode"] == "hybrid"
    assert kwargs["filters"].tag == "ops"
    assert kwargs["filters"].limit == 5


def test_search_empty_query(client) -> None:
    response = client.post("/api/v1/search", json={"query": " "}, headers=HEADERS)
    assert response.status_code == 400


@pytest.mark.parametrize("body", [
    {"query": "deploy", "mode": "fuzzy"},
    {"query": "deploy", "filters": {"visibility": "public"}},
    {"query": "deploy", "filters": {"limit": 0}},
    {"query": "deploy", "filters": {"limit": 101}},
])
def test_search_rejects_invalid_body(client, services, body) -> None:
    _, knowledge, _ = services

    response = client.post("/api/v1/search", json=body, headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    knowledge.search.assert_not_awaited()


def test_search_rejects_non_uuid_owner_filter(client) -> None:
    response = client.post(
        "/api/v1/search",
        json={"query": "deploy", "filters": {"user_id": "alice"}},
        headers=HEADERS,
    )
    assert response.status_code == 400


# -- ingestion -----------------------------------------------------------------

MESSAGE_ID = "22222222-2222-2222-2222-222222222222"


@pytest.fixture
def own_message(services):
    db, _, _ = services
    db.get_message.return_value = {"id": MESSAGE_ID, "user_id": USER_ID, "role": "assistant"}
    return db


def test_ingest_is_detached(client, services, own_message) -> None:
    _, knowledge, _ = services

    response = client.post(
        "/api/v1/knowledge/ingest",
        json={"assistant_message_id": MESSAGE_ID},
        headers=HEADERS,
    )

    assert response.status_code == 202
    assert response.json() == {"status": "accepted", "assistant_message_id": MESSAGE_ID}
    knowledge.ingest_detached.assert_called_once_with(MESSAGE_ID, USER_ID)
    knowledge.ingest.assert_not_awaited()


def test_ingest_wait_returns_result(client, services, own_message) -> None:
    _, knowledge, _ = services
    knowledge.ingest.return_value = PipelineResult(success=False, error="No preceding user message found")

    response = client.post(
        "/api/v1/knowledge/ingest?wait=true",
        json={"assistant_message_id": MESSAGE_ID},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.json()["success"] is False
    assert response.json()["error"] == "No preceding user message found"
    knowledge.ingest.assert_awaited_once_with(MESSAGE_ID, USER_ID)


def test_ingest_requires_user_header(client, services, own_message) -> None:
    _, knowledge, _ = services

    response = client.post(
        "/api/v1/knowledge/ingest",
        json={"assistant_message_id": MESSAGE_ID, "user_id": USER_ID},
    )

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"
    knowledge.ingest_detached.assert_not_called()


def test_ingest_owner_is_the_caller_not_the_body(client, services, own_message) -> None:
    _, knowledge, _ = services

    response = client.post(
        "/api/v1/knowledge/ingest",
        json={"assistant_message_id": MESSAGE_ID, "user_id": "00000000-0000-0000-0000-0000000000ff"},
        headers=HEADERS,
    )

    assert response.status_code == 202
    knowledge.ingest_detached.assert_called_once_with(MESSAGE_ID, USER_ID)


def test_ingest_someone_elses_message_is_forbidden(client, services, own_message) -> None:
    db, knowledge, _ = services
    db.get_message.return_value = {
        "id": MESSAGE_ID,
        "user_id": "00000000-0000-0000-0000-0000000000bb",
        "role": "assistant",
    }

    response = client.post(
        "/api/v1/knowledge/ingest",
        json={"assistant_message_id": MESSAGE_ID},
        headers=HEADERS,
    )

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"
    knowledge.ingest_detached.assert_not_called()
    knowledge.ingest.assert_not_awaited()


def test_ingest_unknown_message(client, services) -> None:
    db, knowledge, _ = services
    db.get_message.return_value = None

    response = client.post(
        "/api/v1/knowledge/ingest",
        json={"assistant_message_id": MESSAGE_ID},
        headers=HEADERS,
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "MESSAGE_NOT_FOUND"
    knowledge.ingest_detached.assert_not_called()


def test_ingest_rejects_non_uuid_message_id(client, services) -> None:
    db, _, _ = services

    response = client.post(
        "/api/v1/knowledge/ingest",
        json={"assistant_message_id": "someone-elses-msg"},
        headers=HEADERS,
    )

    assert response.status_code == 400
    db.get_message.assert_not_awaited()


# -- health --------------------------------------------------------------------


def test_health(client) -> None:
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_readiness_reports_datastore_and_pending(client, services) -> None:
    db, _, _ = services
    db.health_check.return_value = False

    response = client.get("/api/v1/health/ready")

    assert response.json()["status"] == "degraded"
    assert response.json()["supabase_connected"] is False
    assert response.json()["pending_ingestions"] == 2
