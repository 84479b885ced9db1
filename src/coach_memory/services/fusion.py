"""Reciprocal rank fusion across per-query result lists."""

from functools import cmp_to_key
from uuid import UUID

from coach_memory.core import constants
from coach_memory.domain.models import FusedMemory, TieredSearchResult


def _compare(a: FusedMemory, b: FusedMemory, epsilon: float) -> int:
    if abs(a.score - b.score) > epsilon:
        return -1 if a.score > b.score else 1
    if a.importance != b.importance:
        return -1 if a.importance > b.importance else 1
    return (str(a.memory_id) > str(b.memory_id)) - (str(a.memory_id) < str(b.memory_id))


def merge_with_mrr(
    result_lists: list[list[TieredSearchResult]],
    epsilon: float = constants.MRR_TIE_EPSILON,
) -> list[FusedMemory]:
    """Fuse ranked lists by summing ``1 / rank`` per memory.

    Each inner list must already be rank ordered, best first. Scores within
    ``epsilon`` of each other count as tied and fall back to the highest
    importance seen for the memory, then to its id, so the output is fully
    determined by the input.
    """
    fused: dict[UUID, FusedMemory] = {}

    for results in result_lists:
        for rank, result in enumerate(results, start=1):
            entry = fused.get(result.memory_id)
            if entry is None:
                fused[result.memory_id] = FusedMemory(
                    memory_id=result.memory_id,
                    content=result.content,
                    category=result.category,
                    score=1.0 / rank,
                    importance=result.importance_score,
                )
                continue
            entry.score += 1.0 / rank
            entry.importance = max(entry.importance, result.importance_score)
            entry.query_hits += 1

    return sorted(fused.values(), key=cmp_to_key(lambda a, b: _compare(a, b, epsilon)))


def ranked_lists_by_query(
    hot: list[TieredSearchResult],
    warm: list[TieredSearchResult],
    query_count: int,
) -> list[list[TieredSearchResult]]:
    """One ranked list per query: that query's hot hits, then its warm hits."""
    lists: list[list[TieredSearchResult]] = [[] for _ in range(query_count)]
    for tier_results in (hot, warm):
        by_query: dict[int, list[TieredSearchResult]] = {}
        for result in tier_results:
            by_query.setdefault(result.query_index, []).append(result)
        for query_index, results in by_query.items():
            if 0 <= query_index < query_count:
                lists[query_index].extend(sorted(results, key=lambda r: -r.similarity))
    return [results for results in lists if results]
