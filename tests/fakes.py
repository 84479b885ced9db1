"""In-memory stand-ins for the store, embedding service and chat model."""

import hashlib
import math
from collections.abc import Callable, Sequence
from datetime import datetime
from uuid import UUID

import numpy as np

from coach_memory.core.errors import MalformedResponseError, ServiceError, VersionConflictError
from coach_memory.domain.models import (
    CompressionCriteria,
    CompressionStatus,
    ContradictionPair,
    ContradictionVerdict,
    ConversationTurn,
    ExtractedMemory,
    MemoryCategory,
    MemoryItem,
    MergeProposal,
    TieredSearchResult,
    TierWindow,
    utc_now,
)
from coach_memory.domain.similarity import cosine_similarity

DIMENSIONS = 1536
OWNER = "owner-1"


def axis(index: int) -> list[float]:
    """Unit vector along one axis."""
    vector = [0.0] * DIMENSIONS
    vector[index] = 1.0
    return vector


def blend(primary: int, secondary: int, similarity: float) -> list[float]:
    """Unit vector whose cosine with ``axis(primary)`` is exactly ``similarity``."""
    vector = [0.0] * DIMENSIONS
    vector[primary] = similarity
    vector[secondary] = math.sqrt(max(0.0, 1.0 - similarity * similarity))
    return vector


def hashed_vector(text: str) -> list[float]:
    """Pseudo-random unit vector, stable for a given text and nearly orthogonal to others."""
    seed = int.from_bytes(hashlib.sha256(text.encode()).digest()[:8], "big")
    vector = np.random.default_rng(seed).standard_normal(DIMENSIONS)
    return (vector / np.linalg.norm(vector)).tolist()


class FakeEmbeddingService:
    """Known texts map to fixed vectors, everything else to a hashed one."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, fail: bool = False):
        self.vectors = dict(vectors or {})
        self.fail = fail
        self.calls: list[list[str]] = []

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise ServiceError(message="embedding backend down")
        return [self.vectors.get(text) or hashed_vector(text) for text in texts]


class FakeChatModel:
    """Answers by system prompt; unknown prompts raise a malformed-response error."""

    def __init__(self, responses: dict[str, str | Callable[[str], str]] | None = None):
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, str]] = []

    async def complete(
        self,
        system: str,
        user: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
        timeout_seconds: float | None = None,
    ) -> str:
        self.calls.append((system, user))
        response = self.responses.get(system)
        if response is None:
            raise MalformedResponseError(message="no scripted response")
        return response(user) if callable(response) else response


class FakeMerger:
    def __init__(self, content: str | None = None, fail: bool = False):
        self.content = content
        self.fail = fail
        self.calls: list[list[str]] = []

    async def merge(self, contents: list[str], category: MemoryCategory) -> MergeProposal:
        self.calls.append(list(contents))
        if self.fail:
            raise MalformedResponseError(message="merge failed")
        return MergeProposal(content=self.content or contents[0])


class FakeJudge:
    def __init__(self, verdict: ContradictionVerdict):
        self.verdict = verdict
        self.calls: list[tuple[UUID, UUID]] = []

    async def judge(self, older: MemoryItem, newer: MemoryItem) -> ContradictionVerdict:
        self.calls.append((older.id, newer.id))
        return self.verdict


class FakeRater:
    def __init__(self, scores: dict[UUID, float]):
        self.scores = scores

    async def rate(self, items: list[MemoryItem]) -> dict[UUID, float]:
        return {item.id: self.scores[item.id] for item in items if item.id in self.scores}


class FakeExtractor:
    def __init__(self, extracted: list[ExtractedMemory]):
        self.extracted = extracted
        self.calls: list[dict] = []

    async def extract(
        self,
        turns: list[ConversationTurn],
        task_context: str | None = None,
        task_completed: bool | None = None,
    ) -> list[ExtractedMemory]:
        self.calls.append({"turns": turns, "task_context": task_context, "task_completed": task_completed})
        return list(self.extracted)


class FakeStore:
    """Dict-backed ``MemoryStore`` with the same owner scoping and version rules as Neo4j."""

    def __init__(self):
        self.items: dict[UUID, MemoryItem] = {}
        self.search_windows: list[TierWindow] = []
        self.touched: list[UUID] = []
        self.fail_search = False

    def add(self, item: MemoryItem) -> MemoryItem:
        self.items[item.id] = item
        return item

    def _owned(self, owner_id: str, active_only: bool = True) -> list[MemoryItem]:
        return [
            item
            for item in self.items.values()
            if item.owner_id == owner_id and (item.is_active or not active_only)
        ]

    async def insert(self, item: MemoryItem) -> MemoryItem:
        self.items[item.id] = item
        return item

    async def get(self, owner_id: str, memory_id: UUID) -> MemoryItem | None:
        item = self.items.get(memory_id)
        return item if item is not None and item.owner_id == owner_id else None

    async def list_active(
        self,
        owner_id: str,
        category: MemoryCategory | None = None,
        limit: int = 500,
    ) -> list[MemoryItem]:
        items = [item for item in self._owned(owner_id) if category is None or item.category == category]
        return sorted(items, key=lambda item: (item.created_at, str(item.id)))[:limit]

    async def tiered_search(
        self,
        owner_id: str,
        query_embeddings: list[list[float]],
        window: TierWindow,
        threshold: float,
        limit_per_query: int,
        min_confidence: float,
    ) -> list[TieredSearchResult]:
        self.search_windows.append(window)
        if self.fail_search:
            raise ServiceError(message="search backend down")

        results = []
        for query_index, query in enumerate(query_embeddings):
            hits = []
            for item in self._owned(owner_id):
                if item.embedding is None or item.confidence < min_confidence:
                    continue
                if not window.contains(item.last_accessed_at):
                    continue
                similarity = cosine_similarity(query, item.embedding)
                if similarity >= threshold:
                    hits.append((similarity, item))
            hits.sort(key=lambda hit: -hit[0])
            results.extend(
                TieredSearchResult(
                    query_index=query_index,
                    memory_id=item.id,
                    content=item.content,
                    category=item.category,
                    confidence=item.confidence,
                    importance_score=item.importance_score,
                    similarity=similarity,
                    last_accessed_at=item.last_accessed_at,
                )
                for similarity, item in hits[:limit_per_query]
            )
        return results

    async def find_similar(
        self,
        owner_id: str,
        category: MemoryCategory,
        embedding: list[float],
        threshold: float,
        limit: int,
    ) -> list[tuple[MemoryItem, float]]:
        matches = []
        for item in self._owned(owner_id):
            if item.category != category or item.embedding is None:
                continue
            similarity = cosine_similarity(embedding, item.embedding)
            if similarity >= threshold:
                matches.append((item, similarity))
        matches.sort(key=lambda match: -match[1])
        return matches[:limit]

    async def apply_merge(
        self,
        item: MemoryItem,
        expected_version: int,
        absorbed_ids: Sequence[UUID],
    ) -> tuple[MemoryItem, int]:
        current = self.items.get(item.id)
        if (
            current is None
            or current.owner_id != item.owner_id
            or not current.is_active
            or current.version != expected_version
        ):
            raise VersionConflictError(message="version moved", details={"memory_id": str(item.id)})
        saved = item.model_copy(update={"version": expected_version + 1})
        self.items[item.id] = saved
        deleted = 0
        for memory_id in absorbed_ids:
            absorbed = self.items.get(memory_id)
            if memory_id != item.id and absorbed is not None and absorbed.owner_id == item.owner_id:
                del self.items[memory_id]
                deleted += 1
        return saved, deleted

    async def update_embedding(self, owner_id: str, memory_id: UUID, embedding: list[float]) -> None:
        item = await self.get(owner_id, memory_id)
        if item is not None:
            self.items[memory_id] = item.model_copy(update={"embedding": embedding})

    async def delete(self, owner_id: str, memory_ids: Sequence[UUID]) -> int:
        deleted = 0
        for memory_id in memory_ids:
            if await self.get(owner_id, memory_id) is not None:
                del self.items[memory_id]
                deleted += 1
        return deleted

    async def supersede(self, owner_id: str, loser_id: UUID, winner_id: UUID) -> bool:
        loser = await self.get(owner_id, loser_id)
        winner = await self.get(owner_id, winner_id)
        if loser is None or winner is None or not loser.is_active or not winner.is_active:
            return False
        now = utc_now()
        self.items[loser_id] = loser.model_copy(
            update={
                "compression_status": CompressionStatus.COMPRESSED,
                "superseded_by": winner_id,
                "updated_at": now,
                "version": loser.version + 1,
            }
        )
        self.items[winner_id] = winner.model_copy(update={"updated_at": now, "version": winner.version + 1})
        return True

    async def find_contradiction_candidates(
        self,
        owner_id: str,
        min_similarity: float,
        max_similarity: float,
        limit: int,
    ) -> list[ContradictionPair]:
        items = [item for item in self._owned(owner_id) if item.embedding is not None]
        pairs = []
        for a in items:
            for b in items:
                if a.category != b.category or str(a.id) >= str(b.id):
                    continue
                similarity = cosine_similarity(a.embedding, b.embedding)
                if min_similarity <= similarity < max_similarity:
                    older, newer = sorted((a, b), key=lambda item: (item.created_at, str(item.id)))
                    pairs.append(ContradictionPair(older=older, newer=newer, similarity=similarity))
        pairs.sort(key=lambda pair: -pair.similarity)
        return pairs[:limit]

    async def get_compression_candidates(self, owner_id: str, criteria: CompressionCriteria) -> list[MemoryItem]:
        items = [item for item in self._owned(owner_id) if criteria.matches(item)]
        return sorted(items, key=lambda item: item.importance_score)[: criteria.limit]

    async def mark_compressed(self, owner_id: str, memory_ids: Sequence[UUID]) -> int:
        compressed = 0
        for memory_id in memory_ids:
            item = await self.get(owner_id, memory_id)
            if item is not None and item.is_active:
                self.items[memory_id] = item.model_copy(
                    update={
                        "compression_status": CompressionStatus.COMPRESSED,
                        "updated_at": utc_now(),
                        "version": item.version + 1,
                    }
                )
                compressed += 1
        return compressed

    async def update_importance(self, owner_id: str, memory_id: UUID, importance_score: float) -> None:
        item = await self.get(owner_id, memory_id)
        if item is not None:
            self.items[memory_id] = item.model_copy(
                update={"importance_score": importance_score, "updated_at": utc_now()}
            )

    async def touch(self, owner_id: str, memory_ids: Sequence[UUID], accessed_at: datetime | None = None) -> int:
        touched = 0
        for memory_id in memory_ids:
            item = await self.get(owner_id, memory_id)
            if item is not None:
                self.items[memory_id] = item.model_copy(
                    update={"last_accessed_at": accessed_at or utc_now(), "access_count": item.access_count + 1}
                )
                self.touched.append(memory_id)
                touched += 1
        return touched

    async def owners_for_compaction(self, limit: int) -> list[str]:
        oldest: dict[str, datetime] = {}
        for item in self.items.values():
            if item.is_active and (item.owner_id not in oldest or item.updated_at < oldest[item.owner_id]):
                oldest[item.owner_id] = item.updated_at
        return sorted(oldest, key=lambda owner: oldest[owner])[:limit]
