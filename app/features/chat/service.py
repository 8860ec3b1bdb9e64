"""
Chat Service - one question/answer exchange against the team knowledge base.

For each message:
1. Resolve (or create) the conversation
2. Store the user's question
3. Look for existing team answers to the same question
4. Ask the model for an answer
5. Store the answer
6. Hand the answer to the knowledge pipeline in the background

Only step 4 may fail the request. The duplicate lookup degrades to no
suggestions, and ingestion is never awaited.
"""

import logging
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from app.core.logging_utils import sanitize_for_logging
from app.features.knowledge import KnowledgeService
from app.services.database import KnowledgeDatabase
from app.services.openai_client import chat_completion
from app.shared.constants import CONVERSATION_TITLE_LENGTH
from app.shared.errors import NotFoundError

logger = logging.getLogger("TeamMemory.Chat")


class SimilarResult(BaseModel):
    knowledge_card_id: str
    title: str
    summary: str
    score: float


class Usage(BaseModel):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class ChatExchange(BaseModel):
    """Result of one chat exchange, as returned to the client."""
    conversation_id: str
    user_message_id: str
    assistant_message_id: str
    content: str
    model: str
    created_at: Optional[str] = None
    usage: Usage = Field(default_factory=Usage)
    similar_results: List[SimilarResult] = Field(default_factory=list)


class ChatService:
    """Proxies questions to the chat model and feeds answers into the knowledge base."""

    def __init__(
        self,
        openai_client: AsyncOpenAI,
        db: KnowledgeDatabase,
        knowledge: KnowledgeService,
    ):
        self.client = openai_client
        self.db = db
        self.knowledge = knowledge

    async def _resolve_conversation(
        self,
        user_id: str,
        message: str,
        conversation_id: Optional[str],
    ) -> str:
        if conversation_id:
            conversation = await self.db.get_conversation(conversation_id, user_id)
            if conversation is None:
                raise NotFoundError("conversation", conversation_id)
            await self.db.touch_conversation(conversation["id"])
            return conversation["id"]

        conversation = await self.db.create_conversation(
            user_id, title=message[:CONVERSATION_TITLE_LENGTH]
        )
        return conversation["id"]

    async def handle_message(
        self,
        user_id: str,
        message: str,
        conversation_id: Optional[str] = None,
        model: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ChatExchange:
        """
        Run one exchange.

        Raises:
            NotFoundError: conversation_id given but not owned by user_id
            ChatCompletionError: the model call failed (classified)
            PersistenceError: storing a message failed
        """
        metadata = metadata or {}
        message = message.strip()
        logger.info(f"Chat message from {user_id}: {sanitize_for_logging(message, max_len=80)}")

        conversation_id = await self._resolve_conversation(user_id, message, conversation_id)

        user_message = await self.db.insert_message(
            conversation_id,
            user_id,
            role="user",
            content=message,
            metadata={
                "source": "proxy",
                "client": metadata.get("client") or "web",
                "tags": metadata.get("tags") or [],
            },
        )

        similar = await self.knowledge.find_similar(message, user_id)

        completion = await chat_completion(
            self.client,
            [{"role": "user", "content": message}],
            model=model,
        )

        assistant_message = await self.db.insert_message(
            conversation_id,
            user_id,
            role="assistant",
            content=completion.content,
            model=completion.model,
            token_count=completion.usage.total_tokens,
            metadata={
                "request_id": completion.request_id,
                "usage": completion.usage.to_dict(),
            },
        )

        self.knowledge.ingest_detached(assistant_message["id"], user_id)

        return ChatExchange(
            conversation_id=conversation_id,
            user_message_id=user_message["id"],
            assistant_message_id=assistant_message["id"],
            content=completion.content,
            model=completion.model,
            created_at=assistant_message.get("created_at"),
            usage=Usage(**completion.usage.to_dict()),
            similar_results=[SimilarResult(**s.to_dict()) for s in similar],
        )
