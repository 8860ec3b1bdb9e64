"""Chat feature module."""

from app.features.chat.service import ChatExchange, ChatService, SimilarResult

__all__ = [
    "ChatExchange",
    "ChatService",
    "SimilarResult",
]
