"""Write path and maintenance results."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from coach_memory.domain.models.memory import MemoryCategory, MemoryItem


class SaveAction(str, Enum):
    INSERTED = "inserted"
    MERGED = "merged"


class SaveResult(BaseModel):
    action: SaveAction
    memory_id: UUID
    content: str
    category: MemoryCategory
    merged_from: list[UUID] = Field(default_factory=list)


class ExtractionReport(BaseModel):
    extracted_count: int = 0
    saved_count: int = 0
    merged_count: int = 0
    results: list[SaveResult] = Field(default_factory=list)


class ConsolidationReport(BaseModel):
    processed: int = 0
    merged: int = 0
    deleted: int = 0


class MergeProposal(BaseModel):
    """LLM answer to "fold these observations into one"."""

    content: str = Field(min_length=1)
    confidence: float | None = None


class ContradictionAction(str, Enum):
    KEEP_NEWER = "keep_newer"
    KEEP_OLDER = "keep_older"
    MERGE = "merge"
    KEEP_BOTH = "keep_both"


class ContradictionPair(BaseModel):
    """Two same-category items that look related but may disagree."""

    older: MemoryItem
    newer: MemoryItem
    similarity: float


class ContradictionVerdict(BaseModel):
    action: ContradictionAction = ContradictionAction.KEEP_BOTH
    reason: str = ""
    merged_content: str | None = None


class CompressionCriteria(BaseModel):
    """Which aged items are worth re-scoring.

    An item qualifies once ``updated_at`` is at or before ``age_cutoff`` and
    any one of the value conditions holds.
    """

    age_cutoff: datetime
    low_importance: float
    stale_cutoff: datetime
    stale_importance: float
    low_confidence: float
    limit: int

    def matches(self, item: MemoryItem) -> bool:
        if not item.is_active or item.updated_at > self.age_cutoff:
            return False
        if item.importance_score < self.low_importance:
            return True
        if (
            item.last_accessed_at is not None
            and item.last_accessed_at < self.stale_cutoff
            and item.importance_score < self.stale_importance
        ):
            return True
        return item.confidence < self.low_confidence and item.access_count == 0


class CompressionCandidate(BaseModel):
    """A low-value item up for re-scoring."""

    item: MemoryItem
    new_score: float | None = None


class OwnerCompactionReport(BaseModel):
    owner_id: str
    evaluated: int = 0
    deleted: int = 0
    compressed: int = 0
    rescored: int = 0
    contradictions_resolved: int = 0


class CompactionReport(BaseModel):
    users_processed: int = 0
    total_evaluated: int = 0
    total_deleted: int = 0
    total_compressed: int = 0
    contradictions_resolved: int = 0
    errors: list[str] = Field(default_factory=list)

    def absorb(self, owner: OwnerCompactionReport) -> None:
        self.users_processed += 1
        self.total_evaluated += owner.evaluated
        self.total_deleted += owner.deleted
        self.total_compressed += owner.compressed
        self.contradictions_resolved += owner.contradictions_resolved
