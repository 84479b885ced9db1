"""Degrading wrapper around the embedding service."""

import asyncio

from coach_memory.core.errors import ApplicationError
from coach_memory.core.logging import get_logger
from coach_memory.services import EmbeddingService

logger = get_logger(__name__)


class EmbeddingClient:
    """Turns strings into vectors, or into nothing.

    An empty return value means "embeddings unavailable" and callers degrade
    (skip vector search, save without dedup). Nothing here raises for a
    dependency failure.
    """

    def __init__(self, service: EmbeddingService | None, timeout_seconds: float = 15.0):
        self.service = service
        self.timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        return self.service is not None

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if self.service is None or not texts:
            return []

        try:
            async with asyncio.timeout(self.timeout_seconds):
                vectors = await self.service.embed_batch(texts)
        except (ApplicationError, asyncio.TimeoutError) as e:
            logger.warning("Embedding call failed, continuing without vectors", error=str(e), batch_size=len(texts))
            return []
        except Exception as e:
            logger.error("Unexpected embedding failure", error=str(e), batch_size=len(texts), exc_info=True)
            return []

        if len(vectors) != len(texts):
            logger.warning("Embedding count mismatch", expected=len(texts), received=len(vectors))
            return []
        return vectors

    async def embed_one(self, text: str) -> list[float] | None:
        vectors = await self.embed([text])
        return vectors[0] if vectors else None
