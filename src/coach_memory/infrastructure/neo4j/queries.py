"""Centralized Cypher for behavioral memories.

Every query the repository runs is defined here and returned as
``(query, params)``. Timestamps are stored as epoch seconds so tier windows
and age cut-offs are plain numeric comparisons.
"""

from typing import Any, LiteralString

LABEL = "BehavioralMemory"


def _cosine(node: str, vector: str) -> str:
    """Cypher expression for cosine similarity between ``node.embedding`` and ``vector``."""
    return f"""
        CASE
            WHEN {node}_norm = 0 OR {vector}_norm = 0 THEN 0.0
            ELSE reduce(dot = 0.0, i IN range(0, size({vector}) - 1) |
                        dot + {node}.embedding[i] * {vector}[i]) / ({node}_norm * {vector}_norm)
        END
    """.strip()


def _norm(expression: str) -> str:
    return f"sqrt(reduce(total = 0.0, x IN {expression} | total + x * x))"


class MemoryQueries:
    """All memory queries in one place."""

    @staticmethod
    def create_constraints() -> list[LiteralString]:
        return [
            f"CREATE CONSTRAINT behavioral_memory_id IF NOT EXISTS FOR (m:{LABEL}) REQUIRE m.id IS UNIQUE",  # type: ignore[list-item]
            f"CREATE INDEX behavioral_memory_owner IF NOT EXISTS FOR (m:{LABEL}) ON (m.owner_id, m.compression_status)",  # type: ignore[list-item]
        ]

    @staticmethod
    def insert(properties: dict[str, Any]) -> tuple[LiteralString, dict[str, Any]]:
        query = f"""
        CREATE (m:{LABEL})
        SET m = $properties
        RETURN m
        """
        return query, {"properties": properties}  # type: ignore[return-value]

    @staticmethod
    def get_by_id(owner_id: str, memory_id: str) -> tuple[LiteralString, dict[str, Any]]:
        query = f"""
        MATCH (m:{LABEL} {{id: $id, owner_id: $owner_id}})
        RETURN m
        """
        return query, {"id": memory_id, "owner_id": owner_id}  # type: ignore[return-value]

    @staticmethod
    def list_active(
        owner_id: str,
        category: str | None = None,
        limit: int = 500,
    ) -> tuple[LiteralString, dict[str, Any]]:
        """Active items of one owner, oldest first."""
        query = f"""
        MATCH (m:{LABEL} {{owner_id: $owner_id, compression_status: 'active'}})
        WHERE $category IS NULL OR m.category = $category
        RETURN m
        ORDER BY m.created_at ASC, m.id ASC
        LIMIT $limit
        """
        return query, {"owner_id": owner_id, "category": category, "limit": limit}  # type: ignore[return-value]

    @staticmethod
    def tiered_search(
        owner_id: str,
        query_embeddings: list[list[float]],
        threshold: float,
        limit_per_query: int,
        min_confidence: float,
        include_never_accessed: bool,
        accessed_after: float | None,
        accessed_before: float | None,
    ) -> tuple[LiteralString, dict[str, Any]]:
        """Per-query cosine search restricted to one recency window.

        Each query vector gets its own ``LIMIT`` inside the subquery, so the
        cap applies per query rather than to the whole result.
        """
        query = f"""
        UNWIND range(0, size($query_embeddings) - 1) AS query_index
        CALL {{
            WITH query_index
            MATCH (m:{LABEL} {{owner_id: $owner_id, compression_status: 'active'}})
            WHERE m.embedding IS NOT NULL
              AND m.confidence >= $min_confidence
              AND (
                (m.last_accessed_at IS NULL AND $include_never_accessed)
                OR (
                  m.last_accessed_at IS NOT NULL
                  AND ($accessed_after IS NULL OR m.last_accessed_at >= $accessed_after)
                  AND ($accessed_before IS NULL OR m.last_accessed_at < $accessed_before)
                )
              )
            WITH query_index, m, $query_embeddings[query_index] AS q
            WHERE size(m.embedding) = size(q)
            WITH query_index, m, q, {_norm("m.embedding")} AS m_norm, {_norm("q")} AS q_norm
            WITH query_index, m, {_cosine("m", "q")} AS similarity
            WHERE similarity >= $threshold
            RETURN m, similarity
            ORDER BY similarity DESC, m.id ASC
            LIMIT $limit_per_query
        }}
        RETURN query_index, m, similarity
        ORDER BY query_index ASC, similarity DESC
        """
        return query, {  # type: ignore[return-value]
            "owner_id": owner_id,
            "query_embeddings": query_embeddings,
            "threshold": threshold,
            "limit_per_query": limit_per_query,
            "min_confidence": min_confidence,
            "include_never_accessed": include_never_accessed,
            "accessed_after": accessed_after,
            "accessed_before": accessed_before,
        }

    @staticmethod
    def find_similar(
        owner_id: str,
        category: str,
        embedding: list[float],
        threshold: float,
        limit: int,
    ) -> tuple[LiteralString, dict[str, Any]]:
        """Same-owner, same-category active items above a cosine threshold."""
        query = f"""
        MATCH (m:{LABEL} {{owner_id: $owner_id, category: $category, compression_status: 'active'}})
        WHERE m.embedding IS NOT NULL
          AND size(m.embedding) = size($embedding)
        WITH m, $embedding AS q
        WITH m, q, {_norm("m.embedding")} AS m_norm, {_norm("q")} AS q_norm
        WITH m, {_cosine("m", "q")} AS similarity
        WHERE similarity >= $threshold
        RETURN m, similarity
        ORDER BY similarity DESC, m.id ASC
        LIMIT $limit
        """
        return query, {  # type: ignore[return-value]
            "owner_id": owner_id,
            "category": category,
            "embedding": embedding,
            "threshold": threshold,
            "limit": limit,
        }

    @staticmethod
    def apply_merge(
        owner_id: str,
        memory_id: str,
        expected_version: int,
        changes: dict[str, Any],
        absorbed_ids: list[str],
    ) -> tuple[LiteralString, dict[str, Any]]:
        """Compare-and-swap update of the survivor plus deletion of the absorbed items.

        One statement, so both halves commit together. Matches nothing when
        the survivor's stored version moved on, which the repository reports
        as a version conflict; the absorbed items are then left in place.
        """
        query = f"""
        MATCH (m:{LABEL} {{id: $id, owner_id: $owner_id}})
        WHERE m.version = $expected_version AND m.compression_status = 'active'
        SET m += $changes,
            m.version = m.version + 1
        WITH m
        OPTIONAL MATCH (a:{LABEL} {{owner_id: $owner_id}})
        WHERE a.id IN $absorbed_ids AND a.id <> m.id
        WITH m, collect(a) AS absorbed
        FOREACH (a IN absorbed | DETACH DELETE a)
        RETURN m, size(absorbed) AS deleted
        """
        return query, {  # type: ignore[return-value]
            "id": memory_id,
            "owner_id": owner_id,
            "expected_version": expected_version,
            "changes": changes,
            "absorbed_ids": absorbed_ids,
        }

    @staticmethod
    def update_embedding(
        owner_id: str,
        memory_id: str,
        embedding: list[float],
    ) -> tuple[LiteralString, dict[str, Any]]:
        query = f"""
        MATCH (m:{LABEL} {{id: $id, owner_id: $owner_id}})
        WHERE m.compression_status = 'active'
        SET m.embedding = $embedding
        RETURN m.id AS id
        """
        return query, {"id": memory_id, "owner_id": owner_id, "embedding": embedding}  # type: ignore[return-value]

    @staticmethod
    def delete(owner_id: str, memory_ids: list[str]) -> tuple[LiteralString, dict[str, Any]]:
        query = f"""
        MATCH (m:{LABEL} {{owner_id: $owner_id}})
        WHERE m.id IN $ids
        WITH m, m.id AS id
        DETACH DELETE m
        RETURN count(id) AS deleted
        """
        return query, {"owner_id": owner_id, "ids": memory_ids}  # type: ignore[return-value]

    @staticmethod
    def supersede(
        owner_id: str,
        loser_id: str,
        winner_id: str,
        now: float,
    ) -> tuple[LiteralString, dict[str, Any]]:
        """Compress the loser, point it at the winner and bump the winner's version."""
        query = f"""
        MATCH (loser:{LABEL} {{id: $loser_id, owner_id: $owner_id}})
        MATCH (winner:{LABEL} {{id: $winner_id, owner_id: $owner_id}})
        WHERE loser.compression_status = 'active' AND winner.compression_status = 'active'
        SET loser.compression_status = 'compressed',
            loser.superseded_by = $winner_id,
            loser.updated_at = $now,
            loser.version = loser.version + 1,
            winner.updated_at = $now,
            winner.version = winner.version + 1
        MERGE (loser)-[:SUPERSEDED_BY]->(winner)
        RETURN loser.id AS loser_id
        """
        return query, {  # type: ignore[return-value]
            "owner_id": owner_id,
            "loser_id": loser_id,
            "winner_id": winner_id,
            "now": now,
        }

    @staticmethod
    def contradiction_candidates(
        owner_id: str,
        min_similarity: float,
        max_similarity: float,
        limit: int,
    ) -> tuple[LiteralString, dict[str, Any]]:
        """Same-category pairs that are related but not near-duplicates."""
        query = f"""
        MATCH (a:{LABEL} {{owner_id: $owner_id, compression_status: 'active'}})
        MATCH (b:{LABEL} {{owner_id: $owner_id, compression_status: 'active'}})
        WHERE a.category = b.category
          AND a.id < b.id
          AND a.embedding IS NOT NULL
          AND b.embedding IS NOT NULL
          AND size(a.embedding) = size(b.embedding)
        WITH a, b, {_norm("a.embedding")} AS a_norm, {_norm("b.embedding")} AS b_norm
        WITH a, b,
             CASE
                 WHEN a_norm = 0 OR b_norm = 0 THEN 0.0
                 ELSE reduce(dot = 0.0, i IN range(0, size(a.embedding) - 1) |
                             dot + a.embedding[i] * b.embedding[i]) / (a_norm * b_norm)
             END AS similarity
        WHERE similarity >= $min_similarity AND similarity < $max_similarity
        RETURN a, b, similarity
        ORDER BY similarity DESC, a.id ASC, b.id ASC
        LIMIT $limit
        """
        return query, {  # type: ignore[return-value]
            "owner_id": owner_id,
            "min_similarity": min_similarity,
            "max_similarity": max_similarity,
            "limit": limit,
        }

    @staticmethod
    def compression_candidates(
        owner_id: str,
        age_cutoff: float,
        low_importance: float,
        stale_cutoff: float,
        stale_importance: float,
        low_confidence: float,
        limit: int,
    ) -> tuple[LiteralString, dict[str, Any]]:
        """Aged active items that are low value, stale, or doubtful and unused."""
        query = f"""
        MATCH (m:{LABEL} {{owner_id: $owner_id, compression_status: 'active'}})
        WHERE m.updated_at <= $age_cutoff
          AND (
            m.importance_score < $low_importance
            OR (m.last_accessed_at IS NOT NULL
                AND m.last_accessed_at < $stale_cutoff
                AND m.importance_score < $stale_importance)
            OR (m.confidence < $low_confidence AND coalesce(m.access_count, 0) = 0)
          )
        RETURN m
        ORDER BY m.importance_score ASC, m.updated_at ASC, m.id ASC
        LIMIT $limit
        """
        return query, {  # type: ignore[return-value]
            "owner_id": owner_id,
            "age_cutoff": age_cutoff,
            "low_importance": low_importance,
            "stale_cutoff": stale_cutoff,
            "stale_importance": stale_importance,
            "low_confidence": low_confidence,
            "limit": limit,
        }

    @staticmethod
    def mark_compressed(owner_id: str, memory_ids: list[str], now: float) -> tuple[LiteralString, dict[str, Any]]:
        query = f"""
        MATCH (m:{LABEL} {{owner_id: $owner_id, compression_status: 'active'}})
        WHERE m.id IN $ids
        SET m.compression_status = 'compressed',
            m.updated_at = $now,
            m.version = m.version + 1
        RETURN count(m) AS compressed
        """
        return query, {"owner_id": owner_id, "ids": memory_ids, "now": now}  # type: ignore[return-value]

    @staticmethod
    def update_importance(
        owner_id: str,
        memory_id: str,
        importance_score: float,
        now: float,
    ) -> tuple[LiteralString, dict[str, Any]]:
        query = f"""
        MATCH (m:{LABEL} {{id: $id, owner_id: $owner_id}})
        WHERE m.compression_status = 'active'
        SET m.importance_score = $importance_score,
            m.updated_at = $now
        RETURN m.id AS id
        """
        return query, {  # type: ignore[return-value]
            "id": memory_id,
            "owner_id": owner_id,
            "importance_score": importance_score,
            "now": now,
        }

    @staticmethod
    def touch(owner_id: str, memory_ids: list[str], now: float) -> tuple[LiteralString, dict[str, Any]]:
        """Record an access; leaves ``updated_at`` and ``version`` alone."""
        query = f"""
        MATCH (m:{LABEL} {{owner_id: $owner_id}})
        WHERE m.id IN $ids
        SET m.last_accessed_at = $now,
            m.access_count = coalesce(m.access_count, 0) + 1
        RETURN count(m) AS touched
        """
        return query, {"owner_id": owner_id, "ids": memory_ids, "now": now}  # type: ignore[return-value]

    @staticmethod
    def owners_for_compaction(limit: int) -> tuple[LiteralString, dict[str, Any]]:
        """Owners with active items, least recently updated first."""
        query = f"""
        MATCH (m:{LABEL} {{compression_status: 'active'}})
        WITH m.owner_id AS owner_id, min(m.updated_at) AS oldest_update
        RETURN owner_id
        ORDER BY oldest_update ASC, owner_id ASC
        LIMIT $limit
        """
        return query, {"limit": limit}  # type: ignore[return-value]
