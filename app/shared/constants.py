"""
Shared constants for the knowledge service.

Retrieval weights and thresholds live here so the retriever, the chat
service and the API layer agree on them.
"""

from app.core.config import settings

# Embedding
EMBEDDING_DIMENSION = settings.EMBEDDING_DIMENSION
EMBEDDING_MAX_CHARS = 8000 * 4  # ~8000 tokens at ~4 chars per token

# Knowledge cards
MAX_TITLE_LENGTH = 80
MAX_FALLBACK_SUMMARY_LENGTH = 500
MAX_TAGS = 7
FALLBACK_TAG = "auto-generated"
DEFAULT_VISIBILITY = "team"
DEFAULT_IMPORTANCE_SCORE = 0

# Retrieval
DEFAULT_SEARCH_LIMIT = 10
SEARCH_SIMILARITY_THRESHOLD = 0.5
DUPLICATE_THRESHOLD = 0.80
DUPLICATE_LIMIT = 5
SEMANTIC_WEIGHT = 0.7
KEYWORD_WEIGHT = 0.3
KEYWORD_MATCH_SCORE = 1.0

# Chat
CONVERSATION_TITLE_LENGTH = 50
