from uuid import uuid4

from coach_memory.domain.models import MemoryCategory, TieredSearchResult
from coach_memory.services.tiered_search import is_results_enough


def result(similarity: float, category: MemoryCategory = MemoryCategory.PROC) -> TieredSearchResult:
    return TieredSearchResult(
        query_index=0,
        memory_id=uuid4(),
        content="User puts off email until late evening",
        category=category,
        confidence=0.8,
        importance_score=0.5,
        similarity=similarity,
    )


def test_empty_results_are_not_enough():
    assert not is_results_enough([])


def test_two_weak_hits_in_one_category_are_not_enough():
    assert not is_results_enough([result(0.65), result(0.62)])


def test_third_hit_of_any_similarity_is_enough():
    assert is_results_enough([result(0.65), result(0.62), result(0.1)])


def test_one_strong_hit_is_enough():
    assert is_results_enough([result(0.7)])


def test_two_categories_are_enough():
    assert is_results_enough([result(0.61, MemoryCategory.PROC), result(0.61, MemoryCategory.EMO)])
