"""Rule-based importance scoring."""

import re

from coach_memory.core import constants
from coach_memory.domain.models.memory import MemoryCategory
from coach_memory.domain.models.utils import clamp_unit

SPECIFICITY_PATTERN = re.compile(r"\d|specific|always|never|every time", re.IGNORECASE)

HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.7
LONG_CONTENT_CHARS = 100


def calculate_importance(category: MemoryCategory, confidence: float, content: str) -> float:
    """Score a memory from its category, confidence and wording.

    Starts from the category's base weight, then rewards confident, specific
    and detailed observations. Always returns a value in [0, 1].
    """
    score = category.base_importance

    if confidence >= HIGH_CONFIDENCE:
        score += 0.1
    elif confidence >= MEDIUM_CONFIDENCE:
        score += 0.05

    if SPECIFICITY_PATTERN.search(content):
        score += 0.1

    if len(content) > LONG_CONTENT_CHARS:
        score += 0.05

    return clamp_unit(score)


def corroborated_importance(base_score: float, sources_merged: int) -> float:
    """Raise importance for every additional source folded into one item."""
    return clamp_unit(base_score + constants.CORROBORATION_BOOST * max(0, sources_merged - 1))
