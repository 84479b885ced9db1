import itertools

import pytest

from coach_memory.domain.models import MemoryCategory
from coach_memory.domain.scoring import calculate_importance, corroborated_importance


def test_base_importance_per_category():
    assert calculate_importance(MemoryCategory.SOMA, 0.5, "User gets tired") == 0.4
    assert calculate_importance(MemoryCategory.EFFECTIVE, 0.5, "User moves") == 0.8


def test_confidence_bonus():
    assert calculate_importance(MemoryCategory.PROC, 0.8, "User delays calls") == pytest.approx(0.6)
    assert calculate_importance(MemoryCategory.PROC, 0.75, "User delays calls") == pytest.approx(0.55)
    assert calculate_importance(MemoryCategory.PROC, 0.69, "User delays calls") == pytest.approx(0.5)


def test_specific_wording_bonus():
    assert calculate_importance(MemoryCategory.EMO, 0.5, "User always panics") == pytest.approx(0.6)
    assert calculate_importance(MemoryCategory.EMO, 0.5, "User panics after 3 emails") == pytest.approx(0.6)
    assert calculate_importance(MemoryCategory.EMO, 0.5, "User panics EVERY TIME") == pytest.approx(0.6)


def test_long_content_bonus():
    content = "User " + "x" * 120
    assert calculate_importance(MemoryCategory.SAB, 0.5, content) == pytest.approx(0.55)


def test_importance_is_always_clamped():
    contents = ["", "User always does 5 things " * 10, "short"]
    confidences = [-1.0, 0.0, 0.7, 0.8, 1.0, 5.0]
    for category, confidence, content in itertools.product(MemoryCategory, confidences, contents):
        assert 0.0 <= calculate_importance(category, confidence, content) <= 1.0


def test_corroboration_adds_per_extra_source():
    assert corroborated_importance(0.5, 1) == 0.5
    assert corroborated_importance(0.5, 3) == pytest.approx(0.7)
    assert corroborated_importance(0.95, 4) == 1.0
    assert corroborated_importance(0.5, 0) == 0.5
