"""Behavioral memory item, the single data model shared by both pipelines."""

import contextlib
import json
from collections.abc import Iterable
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, NamedTuple
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from coach_memory.core import constants
from coach_memory.core.base import ErrorCode, ValidationErrorDetails
from coach_memory.core.errors import MemoryValidationError
from coach_memory.domain.models.utils import clamp_unit, utc_now


class CategoryTraits(NamedTuple):
    base_importance: float
    label: str


class MemoryCategory(str, Enum):
    """Closed set of behavioral memory tags."""

    PREF = "PREF"  # AI-interaction preference
    PROC = "PROC"  # procrastination trigger
    SOMA = "SOMA"  # psychosomatic pattern
    EMO = "EMO"  # emotional trigger
    SAB = "SAB"  # self-sabotage pattern
    EFFECTIVE = "EFFECTIVE"  # encouragement technique that worked

    @property
    def base_importance(self) -> float:
        return CATEGORY_TRAITS[self].base_importance

    @property
    def label(self) -> str:
        return CATEGORY_TRAITS[self].label


CATEGORY_TRAITS: dict[MemoryCategory, CategoryTraits] = {
    MemoryCategory.PREF: CategoryTraits(0.7, "(AI interaction preference)"),
    MemoryCategory.PROC: CategoryTraits(0.5, "(procrastination pattern)"),
    MemoryCategory.SOMA: CategoryTraits(0.4, "(mind-body reaction)"),
    MemoryCategory.EMO: CategoryTraits(0.5, "(emotional pattern)"),
    MemoryCategory.SAB: CategoryTraits(0.5, "(self-sabotage)"),
    MemoryCategory.EFFECTIVE: CategoryTraits(0.8, "(effective motivation)"),
}


class CompressionStatus(str, Enum):
    ACTIVE = "active"
    COMPRESSED = "compressed"
    DELETED = "deleted"


class Tier(str, Enum):
    """Recency bucket over ``last_accessed_at``."""

    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


def tier_for(
    last_accessed_at: datetime | None,
    now: datetime | None = None,
    hot_days: int = constants.HOT_TIER_DAYS,
    warm_days: int = constants.WARM_TIER_DAYS,
) -> Tier:
    """Classify an item by recency of access. Never-accessed items are hot."""
    if last_accessed_at is None:
        return Tier.HOT
    age = (now or utc_now()) - last_accessed_at
    if age <= timedelta(days=hot_days):
        return Tier.HOT
    if age <= timedelta(days=warm_days):
        return Tier.WARM
    return Tier.COLD


def ensure_embedding_dimensions(
    embedding: list[float] | None,
    dimensions: int = constants.EMBEDDING_DIMENSIONS,
    source: str = "memory_item",
) -> list[float] | None:
    """Reject vectors of the wrong size instead of truncating or padding them.

    Raises:
        MemoryValidationError: If the vector length differs from ``dimensions``
    """
    if embedding is None or len(embedding) == dimensions:
        return embedding
    raise MemoryValidationError(
        message=f"Embedding has {len(embedding)} dimensions, expected {dimensions}",
        details=ValidationErrorDetails(
            source=source,
            operation="ensure_embedding_dimensions",
            field="embedding",
            actual_value=len(embedding),
            expected_type=f"list[float] of length {dimensions}",
            constraint="exact dimension match",
        ),
        code=ErrorCode.EMBEDDING_DIMENSION_MISMATCH,
    )


def ensure_same_owner(owner_id: str, items: "Iterable[MemoryItem]", source: str = "memory_item") -> None:
    """Refuse to combine or write items that belong to another owner.

    Raises:
        MemoryValidationError: If any item's owner differs from ``owner_id``
    """
    for item in items:
        if item.owner_id != owner_id:
            raise MemoryValidationError(
                message=f"Memory {item.id} belongs to a different owner",
                details=ValidationErrorDetails(
                    source=source,
                    operation="ensure_same_owner",
                    field="owner_id",
                    actual_value=item.owner_id,
                    expected_type=f"owner_id == {owner_id!r}",
                    constraint="single owner per write",
                ),
            )


class MemoryItem(BaseModel):
    """One observation about one owner."""

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(min_length=1)
    content: str = Field(min_length=1)
    category: MemoryCategory
    confidence: float = 0.5
    importance_score: float = 0.5
    embedding: list[float] | None = None
    task_context: str | None = None
    last_accessed_at: datetime | None = None
    access_count: int = 0
    merged_from: list[UUID] = Field(default_factory=list)
    superseded_by: UUID | None = None
    compression_status: CompressionStatus = CompressionStatus.ACTIVE
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = 1

    @field_validator("confidence", "importance_score", mode="before")
    @classmethod
    def clamp_scores(cls, v: Any) -> float:
        return clamp_unit(float(v))

    @field_validator("embedding")
    @classmethod
    def check_dimensions(cls, v: list[float] | None) -> list[float] | None:
        if v is not None and len(v) != constants.EMBEDDING_DIMENSIONS:
            raise ValueError(f"embedding must have {constants.EMBEDDING_DIMENSIONS} dimensions, got {len(v)}")
        return v

    @property
    def is_active(self) -> bool:
        return self.compression_status == CompressionStatus.ACTIVE

    def __str__(self) -> str:
        return f"MemoryItem([{self.category.value}] '{self.content[:50]}...', v{self.version})"

    def to_neo4j_properties(self) -> dict[str, Any]:
        """Convert to Neo4j-compatible property dict.

        Datetimes become epoch seconds, UUIDs strings, enums their values and
        metadata a JSON string (Neo4j has no map-valued properties).
        """
        props = self.model_dump()

        for key, value in props.items():
            if isinstance(value, UUID):
                props[key] = str(value)
            elif isinstance(value, datetime):
                props[key] = value.timestamp()
            elif isinstance(value, Enum):
                props[key] = value.value

        props["merged_from"] = [str(v) for v in self.merged_from]
        props["metadata"] = json.dumps(self.metadata, default=str)
        return props

    @classmethod
    def from_neo4j_record(cls, record: dict[str, Any]) -> "MemoryItem":
        """Create instance from a Neo4j node property map."""
        data = dict(record)

        for key in ("created_at", "updated_at", "last_accessed_at"):
            if isinstance(data.get(key), int | float):
                data[key] = datetime.fromtimestamp(data[key], tz=utc_now().tzinfo)

        if isinstance(data.get("metadata"), str):
            with contextlib.suppress(ValueError):
                data["metadata"] = json.loads(data["metadata"])
            if not isinstance(data["metadata"], dict):
                data["metadata"] = {}

        data["merged_from"] = data.get("merged_from") or []
        return cls(**data)


class TierWindow(NamedTuple):
    """Store-side filter equivalent to ``tier_for`` for one tier."""

    include_never_accessed: bool
    accessed_after: datetime | None
    accessed_before: datetime | None

    def contains(self, last_accessed_at: datetime | None) -> bool:
        if last_accessed_at is None:
            return self.include_never_accessed
        if self.accessed_after is not None and last_accessed_at < self.accessed_after:
            return False
        return self.accessed_before is None or last_accessed_at < self.accessed_before


def tier_window(
    tier: Tier,
    now: datetime | None = None,
    hot_days: int = constants.HOT_TIER_DAYS,
    warm_days: int = constants.WARM_TIER_DAYS,
) -> TierWindow:
    now = now or utc_now()
    hot_cutoff = now - timedelta(days=hot_days)
    warm_cutoff = now - timedelta(days=warm_days)
    if tier == Tier.HOT:
        return TierWindow(True, hot_cutoff, None)
    if tier == Tier.WARM:
        return TierWindow(False, warm_cutoff, hot_cutoff)
    return TierWindow(False, None, warm_cutoff)
