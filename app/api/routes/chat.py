"""
Chat API endpoint.

Proxies a question to the chat model, returns the answer together with
similar existing team answers, and feeds the answer into the knowledge
base in the background.
"""

import logging

from fastapi import APIRouter, Depends

from app.api.dependencies import get_chat_service, get_current_user_id, is_valid_uuid
from app.api.models import ChatRequest, ChatResponse
from app.features.chat import ChatService
from app.shared.errors import APIError, ErrorCode, NotFoundError, ValidationError

logger = logging.getLogger("TeamMemory.API.Chat")
router = APIRouter(tags=["chat"])


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(get_chat_service),
):
    """
    Ask a question.

    Errors from the chat model are returned with a classified code
    (RATE_LIMITED, TIMEOUT, SERVER_ERROR, ...) and a retryable hint.
    """
    message = request.message.strip()
    if not message:
        raise ValidationError("Message cannot be empty.")

    if request.conversation_id and not is_valid_uuid(request.conversation_id):
        raise ValidationError("Conversation ID must be a valid UUID.")

    metadata = request.metadata.model_dump() if request.metadata else None

    try:
        return await chat_service.handle_message(
            user_id=user_id,
            message=message,
            conversation_id=request.conversation_id,
            model=request.model,
            metadata=metadata,
        )
    except NotFoundError:
        raise APIError(
            ErrorCode.CONVERSATION_NOT_FOUND,
            "Conversation not found or access denied.",
            403,
        )
