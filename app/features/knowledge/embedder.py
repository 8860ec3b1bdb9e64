"""
Embedding client - text to fixed-dimension vectors.

Used on the write side (knowledge card embeddings) and the read side
(query embeddings for semantic and duplicate search).
"""

import logging
from typing import List, Optional

from openai import AsyncOpenAI

from app.core.config import settings
from app.shared.constants import EMBEDDING_MAX_CHARS
from app.shared.errors import EmbeddingError

logger = logging.getLogger("TeamMemory.Knowledge.Embedder")


def truncate_for_embedding(text: str, max_chars: int = EMBEDDING_MAX_CHARS) -> str:
    """Plain prefix truncation; may cut mid-word."""
    return text[:max_chars] if len(text) > max_chars else text


def prepare_embedding_text(
    title: str,
    summary: str,
    main_answer: Optional[str] = None,
) -> str:
    """Text embedded for a knowledge card: fields joined by blank lines."""
    parts = [title, summary]
    if main_answer:
        parts.append(main_answer)
    return "\n\n".join(parts)


class EmbeddingClient:
    """Wraps the OpenAI embeddings endpoint with truncation and dimension checks."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        max_chars: int = EMBEDDING_MAX_CHARS,
    ):
        self.client = client
        self.model = model or settings.EMBEDDING_MODEL
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self.max_chars = max_chars

    async def embed(self, text: str) -> List[float]:
        """
        Generate an embedding for ``text``.

        Raises:
            EmbeddingError: on upstream failure, timeout, empty response,
                or a vector whose length is not ``self.dimension``
        """
        truncated = truncate_for_embedding(text, self.max_chars)

        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=truncated,
                dimensions=self.dimension,
            )
        except Exception as e:
            logger.error(f"Embedding request failed: {e}")
            raise EmbeddingError(f"Embedding request failed: {e}", retryable=True) from e

        if not response.data or not response.data[0].embedding:
            logger.error("Embedding response contained no vector")
            raise EmbeddingError("No embedding returned from API")

        embedding = list(response.data[0].embedding)
        if len(embedding) != self.dimension:
            logger.error(
                f"Unexpected embedding dimension: {len(embedding)}, expected {self.dimension}"
            )
            raise EmbeddingError(
                f"Unexpected embedding dimension: {len(embedding)}, expected {self.dimension}"
            )

        return embedding
