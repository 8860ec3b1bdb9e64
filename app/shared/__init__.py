# Shared constants and utilities
from .constants import (
    EMBEDDING_DIMENSION,
    DEFAULT_SEARCH_LIMIT,
    DUPLICATE_THRESHOLD,
    SEMANTIC_WEIGHT,
    KEYWORD_WEIGHT,
)

__all__ = [
    "EMBEDDING_DIMENSION",
    "DEFAULT_SEARCH_LIMIT",
    "DUPLICATE_THRESHOLD",
    "SEMANTIC_WEIGHT",
    "KEYWORD_WEIGHT",
]
