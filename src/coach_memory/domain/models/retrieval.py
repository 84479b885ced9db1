"""Read path records."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, computed_field

from coach_memory.domain.models.memory import MemoryCategory


class TieredSearchResult(BaseModel):
    """One vector search hit, tagged with the query that produced it."""

    query_index: int
    memory_id: UUID
    content: str
    category: MemoryCategory
    confidence: float
    importance_score: float
    similarity: float
    last_accessed_at: datetime | None = None


class FusedMemory(BaseModel):
    """A memory after reciprocal rank fusion across query lists."""

    memory_id: UUID
    content: str
    category: MemoryCategory
    score: float
    importance: float
    query_hits: int = 1


class RetrievedMemory(BaseModel):
    """What the coaching assistant receives."""

    memory_id: UUID
    content: str
    category: MemoryCategory
    relevance: float = Field(ge=0.0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def tag_label(self) -> str:
        return self.category.label

    @computed_field  # type: ignore[prop-decorator]
    @property
    def formatted(self) -> str:
        return f"{self.content} {self.tag_label}"
