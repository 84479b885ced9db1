"""Service layer interfaces.

Every outside dependency of the engine (store, embeddings, chat model) and
every LLM-backed judgement is a Protocol here, so the pipelines can run
against fakes in tests and degrade when a capability is missing.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from coach_memory.domain.models import (
    CompressionCriteria,
    ContradictionPair,
    ContradictionVerdict,
    ConversationTurn,
    ExtractedMemory,
    MemoryCategory,
    MemoryItem,
    MergeProposal,
    TieredSearchResult,
    TierWindow,
)


@runtime_checkable
class EmbeddingService(Protocol):
    """Protocol for embedding services."""

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts."""
        ...


@runtime_checkable
class ChatModel(Protocol):
    """Protocol for single-shot chat completions."""

    async def complete(
        self,
        system: str,
        user: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
        timeout_seconds: float | None = None,
    ) -> str: ...


class MemoryMerger(Protocol):
    async def merge(self, contents: list[str], category: MemoryCategory) -> MergeProposal: ...


class ContradictionJudge(Protocol):
    async def judge(self, older: MemoryItem, newer: MemoryItem) -> ContradictionVerdict: ...


class ImportanceRater(Protocol):
    async def rate(self, items: list[MemoryItem]) -> dict[UUID, float]:
        """Fresh 0-1 scores keyed by item id; ids may be missing."""
        ...


class MemoryExtractor(Protocol):
    async def extract(
        self,
        turns: list[ConversationTurn],
        task_context: str | None = None,
        task_completed: bool | None = None,
    ) -> list[ExtractedMemory]: ...


@runtime_checkable
class MemoryStore(Protocol):
    """Per-owner persistence and similarity search for memory items.

    Every method is scoped to one owner; nothing ever reads or writes across
    owners except ``owners_for_compaction``.
    """

    async def insert(self, item: MemoryItem) -> MemoryItem: ...

    async def get(self, owner_id: str, memory_id: UUID) -> MemoryItem | None: ...

    async def list_active(
        self,
        owner_id: str,
        category: MemoryCategory | None = None,
        limit: int = 500,
    ) -> list[MemoryItem]: ...

    async def tiered_search(
        self,
        owner_id: str,
        query_embeddings: list[list[float]],
        window: TierWindow,
        threshold: float,
        limit_per_query: int,
        min_confidence: float,
    ) -> list[TieredSearchResult]: ...

    async def find_similar(
        self,
        owner_id: str,
        category: MemoryCategory,
        embedding: list[float],
        threshold: float,
        limit: int,
    ) -> list[tuple[MemoryItem, float]]: ...

    async def apply_merge(
        self,
        item: MemoryItem,
        expected_version: int,
        absorbed_ids: Sequence[UUID],
    ) -> tuple[MemoryItem, int]:
        """Persist merge results and delete ``absorbed_ids`` in one write.

        Applies only if the stored version still equals ``expected_version``.
        Either both halves land or neither does. Returns the saved survivor and
        the number of absorbed items deleted.

        Raises:
            VersionConflictError: If the item changed or left the active set
        """
        ...

    async def update_embedding(self, owner_id: str, memory_id: UUID, embedding: list[float]) -> None: ...

    async def delete(self, owner_id: str, memory_ids: Sequence[UUID]) -> int: ...

    async def supersede(self, owner_id: str, loser_id: UUID, winner_id: UUID) -> bool: ...

    async def find_contradiction_candidates(
        self,
        owner_id: str,
        min_similarity: float,
        max_similarity: float,
        limit: int,
    ) -> list[ContradictionPair]: ...

    async def get_compression_candidates(
        self,
        owner_id: str,
        criteria: CompressionCriteria,
    ) -> list[MemoryItem]: ...

    async def mark_compressed(self, owner_id: str, memory_ids: Sequence[UUID]) -> int: ...

    async def update_importance(self, owner_id: str, memory_id: UUID, importance_score: float) -> None: ...

    async def touch(self, owner_id: str, memory_ids: Sequence[UUID], accessed_at: datetime | None = None) -> int: ...

    async def owners_for_compaction(self, limit: int) -> list[str]: ...


__all__ = [
    "ChatModel",
    "ContradictionJudge",
    "EmbeddingService",
    "ImportanceRater",
    "MemoryExtractor",
    "MemoryMerger",
    "MemoryStore",
]
