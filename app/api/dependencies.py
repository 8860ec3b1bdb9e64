"""
Request-scoped access to the services built at startup.

main.py's lifespan constructs the clients once and stores the services on
``app.state``; these dependencies only read them back.
"""

import re
from typing import Optional

from fastapi import Header, Request

from app.core.config import settings
from app.features.chat import ChatService
from app.features.knowledge import KnowledgeService
from app.services.database import KnowledgeDatabase
from app.shared.errors import APIError, ErrorCode

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_valid_uuid(value: str) -> bool:
    return bool(UUID_PATTERN.match(value))


def get_database(request: Request) -> KnowledgeDatabase:
    """Provide the shared Supabase adapter for request handlers."""
    return request.app.state.database


def get_knowledge_service(request: Request) -> KnowledgeService:
    """Provide the shared knowledge service for request handlers."""
    return request.app.state.knowledge


def get_chat_service(request: Request) -> ChatService:
    """Provide the shared chat service for request handlers."""
    return request.app.state.chat


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None),
) -> str:
    """
    Resolve the caller from the X-User-Id header.

    Placeholder for real auth: the header must be a UUID of an existing
    user. In demo mode every request acts as the demo user.
    """
    if settings.DEMO_MODE:
        return settings.resolve_user_id(x_user_id)

    if not x_user_id:
        raise APIError(
            ErrorCode.UNAUTHORIZED,
            "Authentication required. Please provide user credentials.",
            401,
        )
    if not is_valid_uuid(x_user_id):
        raise APIError(ErrorCode.INVALID_USER_ID, "Invalid user ID format.", 401)

    user = await get_database(request).get_user(x_user_id)
    if user is None:
        raise APIError(
            ErrorCode.USER_NOT_FOUND,
            "User not found. Please check your credentials.",
            401,
        )
    return x_user_id
