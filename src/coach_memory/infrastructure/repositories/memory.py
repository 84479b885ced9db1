"""Neo4j-backed memory store."""

from collections.abc import Sequence
from datetime import datetime
from typing import Any, LiteralString
from uuid import UUID

from neo4j import AsyncDriver, AsyncSession
from neo4j.exceptions import DriverError, Neo4jError

from coach_memory.core.base import DatabaseErrorDetails, ErrorLevel
from coach_memory.core.decorators import with_error_handling, with_session
from coach_memory.core.errors import ProcessingError, ServiceError, VersionConflictError
from coach_memory.core.logging import get_logger
from coach_memory.domain.models import (
    CompressionCriteria,
    ContradictionPair,
    MemoryCategory,
    MemoryItem,
    TieredSearchResult,
    TierWindow,
    ensure_embedding_dimensions,
    utc_now,
)
from coach_memory.infrastructure.neo4j.queries import LABEL, MemoryQueries

logger = get_logger(__name__)


def _epoch(value: datetime | None) -> float | None:
    return value.timestamp() if value is not None else None


class Neo4jMemoryRepository:
    """MemoryStore implementation over the async Neo4j driver."""

    def __init__(self, driver: AsyncDriver, database: str | None = None):
        self.driver = driver
        self.database = database

    async def _run(
        self,
        session: AsyncSession,
        statement: tuple[LiteralString, dict[str, Any]],
        operation: str,
        owner_id: str | None = None,
    ) -> list[Any]:
        query, params = statement
        try:
            result = await session.run(query, params)
            return [record async for record in result]
        except (Neo4jError, DriverError) as e:
            raise ServiceError(
                message=f"Neo4j {operation} failed: {e!s}",
                details=DatabaseErrorDetails(
                    source="Neo4jMemoryRepository",
                    operation=operation,
                    service_name="Neo4j",
                    label=LABEL,
                    owner_id=owner_id,
                ),
            ) from e

    @staticmethod
    def _to_item(node: Any) -> MemoryItem:
        return MemoryItem.from_neo4j_record(dict(node))

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    @with_session()
    async def insert(self, session: AsyncSession, item: MemoryItem) -> MemoryItem:
        ensure_embedding_dimensions(item.embedding, source="Neo4jMemoryRepository.insert")

        records = await self._run(session, MemoryQueries.insert(item.to_neo4j_properties()), "insert", item.owner_id)
        if not records:
            raise ProcessingError(
                message="Failed to store memory in database",
                details={
                    "source": "memory_repository",
                    "operation": "insert",
                    "memory_id": str(item.id),
                },
            )

        logger.debug("Stored memory", memory_id=str(item.id), category=item.category.value)
        return item

    @with_session()
    async def get(self, session: AsyncSession, owner_id: str, memory_id: UUID) -> MemoryItem | None:
        records = await self._run(session, MemoryQueries.get_by_id(owner_id, str(memory_id)), "get", owner_id)
        return self._to_item(records[0]["m"]) if records else None

    @with_session()
    async def list_active(
        self,
        session: AsyncSession,
        owner_id: str,
        category: MemoryCategory | None = None,
        limit: int = 500,
    ) -> list[MemoryItem]:
        statement = MemoryQueries.list_active(owner_id, category.value if category else None, limit)
        records = await self._run(session, statement, "list_active", owner_id)
        return [self._to_item(record["m"]) for record in records]

    @with_session()
    async def tiered_search(
        self,
        session: AsyncSession,
        owner_id: str,
        query_embeddings: list[list[float]],
        window: TierWindow,
        threshold: float,
        limit_per_query: int,
        min_confidence: float,
    ) -> list[TieredSearchResult]:
        if not query_embeddings:
            return []

        statement = MemoryQueries.tiered_search(
            owner_id=owner_id,
            query_embeddings=query_embeddings,
            threshold=threshold,
            limit_per_query=limit_per_query,
            min_confidence=min_confidence,
            include_never_accessed=window.include_never_accessed,
            accessed_after=_epoch(window.accessed_after),
            accessed_before=_epoch(window.accessed_before),
        )
        records = await self._run(session, statement, "tiered_search", owner_id)

        results = []
        for record in records:
            item = self._to_item(record["m"])
            results.append(
                TieredSearchResult(
                    query_index=record["query_index"],
                    memory_id=item.id,
                    content=item.content,
                    category=item.category,
                    confidence=item.confidence,
                    importance_score=item.importance_score,
                    similarity=record["similarity"],
                    last_accessed_at=item.last_accessed_at,
                )
            )
        return results

    @with_session()
    async def find_similar(
        self,
        session: AsyncSession,
        owner_id: str,
        category: MemoryCategory,
        embedding: list[float],
        threshold: float,
        limit: int,
    ) -> list[tuple[MemoryItem, float]]:
        statement = MemoryQueries.find_similar(
            owner_id=owner_id,
            category=category.value,
            embedding=embedding,
            threshold=threshold,
            limit=limit,
        )
        records = await self._run(session, statement, "find_similar", owner_id)
        return [(self._to_item(record["m"]), record["similarity"]) for record in records]

    @with_error_handling(error_level=ErrorLevel.WARNING, reraise=True)
    @with_session()
    async def apply_merge(
        self,
        session: AsyncSession,
        item: MemoryItem,
        expected_version: int,
        absorbed_ids: Sequence[UUID],
    ) -> tuple[MemoryItem, int]:
        ensure_embedding_dimensions(item.embedding, source="Neo4jMemoryRepository.apply_merge")

        changes = {
            "content": item.content,
            "confidence": item.confidence,
            "importance_score": item.importance_score,
            "embedding": item.embedding,
            "merged_from": [str(memory_id) for memory_id in item.merged_from],
            "updated_at": utc_now().timestamp(),
        }
        statement = MemoryQueries.apply_merge(
            item.owner_id,
            str(item.id),
            expected_version,
            changes,
            [str(memory_id) for memory_id in absorbed_ids],
        )
        records = await self._run(session, statement, "apply_merge", item.owner_id)
        if not records:
            raise VersionConflictError(
                message=f"Memory {item.id} changed since version {expected_version}",
                details=DatabaseErrorDetails(
                    source="Neo4jMemoryRepository",
                    operation="apply_merge",
                    service_name="Neo4j",
                    query_type="update",
                    label=LABEL,
                    owner_id=item.owner_id,
                    memory_id=str(item.id),
                    expected_version=expected_version,
                ),
            )
        return self._to_item(records[0]["m"]), records[0]["deleted"]

    @with_session()
    async def update_embedding(
        self,
        session: AsyncSession,
        owner_id: str,
        memory_id: UUID,
        embedding: list[float],
    ) -> None:
        ensure_embedding_dimensions(embedding, source="Neo4jMemoryRepository.update_embedding")
        await self._run(
            session,
            MemoryQueries.update_embedding(owner_id, str(memory_id), embedding),
            "update_embedding",
            owner_id,
        )

    @with_session()
    async def delete(self, session: AsyncSession, owner_id: str, memory_ids: Sequence[UUID]) -> int:
        if not memory_ids:
            return 0
        records = await self._run(
            session,
            MemoryQueries.delete(owner_id, [str(memory_id) for memory_id in memory_ids]),
            "delete",
            owner_id,
        )
        deleted = records[0]["deleted"] if records else 0
        logger.debug(f"Deleted {deleted} memories")
        return deleted

    @with_session()
    async def supersede(self, session: AsyncSession, owner_id: str, loser_id: UUID, winner_id: UUID) -> bool:
        statement = MemoryQueries.supersede(owner_id, str(loser_id), str(winner_id), utc_now().timestamp())
        records = await self._run(session, statement, "supersede", owner_id)
        return bool(records)

    @with_session()
    async def find_contradiction_candidates(
        self,
        session: AsyncSession,
        owner_id: str,
        min_similarity: float,
        max_similarity: float,
        limit: int,
    ) -> list[ContradictionPair]:
        statement = MemoryQueries.contradiction_candidates(owner_id, min_similarity, max_similarity, limit)
        records = await self._run(session, statement, "contradiction_candidates", owner_id)

        pairs = []
        for record in records:
            first, second = self._to_item(record["a"]), self._to_item(record["b"])
            older, newer = sorted((first, second), key=lambda m: (m.created_at, str(m.id)))
            pairs.append(ContradictionPair(older=older, newer=newer, similarity=record["similarity"]))
        return pairs

    @with_session()
    async def get_compression_candidates(
        self,
        session: AsyncSession,
        owner_id: str,
        criteria: CompressionCriteria,
    ) -> list[MemoryItem]:
        statement = MemoryQueries.compression_candidates(
            owner_id=owner_id,
            age_cutoff=criteria.age_cutoff.timestamp(),
            low_importance=criteria.low_importance,
            stale_cutoff=criteria.stale_cutoff.timestamp(),
            stale_importance=criteria.stale_importance,
            low_confidence=criteria.low_confidence,
            limit=criteria.limit,
        )
        records = await self._run(session, statement, "compression_candidates", owner_id)
        return [self._to_item(record["m"]) for record in records]

    @with_session()
    async def mark_compressed(self, session: AsyncSession, owner_id: str, memory_ids: Sequence[UUID]) -> int:
        if not memory_ids:
            return 0
        statement = MemoryQueries.mark_compressed(
            owner_id, [str(memory_id) for memory_id in memory_ids], utc_now().timestamp()
        )
        records = await self._run(session, statement, "mark_compressed", owner_id)
        return records[0]["compressed"] if records else 0

    @with_session()
    async def update_importance(
        self,
        session: AsyncSession,
        owner_id: str,
        memory_id: UUID,
        importance_score: float,
    ) -> None:
        statement = MemoryQueries.update_importance(
            owner_id, str(memory_id), importance_score, utc_now().timestamp()
        )
        await self._run(session, statement, "update_importance", owner_id)

    @with_session()
    async def touch(
        self,
        session: AsyncSession,
        owner_id: str,
        memory_ids: Sequence[UUID],
        accessed_at: datetime | None = None,
    ) -> int:
        if not memory_ids:
            return 0
        statement = MemoryQueries.touch(
            owner_id,
            [str(memory_id) for memory_id in memory_ids],
            (accessed_at or utc_now()).timestamp(),
        )
        records = await self._run(session, statement, "touch", owner_id)
        return records[0]["touched"] if records else 0

    @with_session()
    async def owners_for_compaction(self, session: AsyncSession, limit: int) -> list[str]:
        records = await self._run(session, MemoryQueries.owners_for_compaction(limit), "owners_for_compaction")
        return [record["owner_id"] for record in records]
