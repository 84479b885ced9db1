"""Domain models for behavioral memory."""

from coach_memory.domain.models.conversation import (
    ConversationTurn,
    ExtractedMemory,
    MessageRole,
    collapse_turns,
    format_transcript,
)
from coach_memory.domain.models.memory import (
    CATEGORY_TRAITS,
    CompressionStatus,
    MemoryCategory,
    MemoryItem,
    Tier,
    TierWindow,
    ensure_embedding_dimensions,
    ensure_same_owner,
    tier_for,
    tier_window,
)
from coach_memory.domain.models.reports import (
    CompactionReport,
    CompressionCandidate,
    CompressionCriteria,
    ConsolidationReport,
    ContradictionAction,
    ContradictionPair,
    ContradictionVerdict,
    ExtractionReport,
    MergeProposal,
    OwnerCompactionReport,
    SaveAction,
    SaveResult,
)
from coach_memory.domain.models.retrieval import FusedMemory, RetrievedMemory, TieredSearchResult
from coach_memory.domain.models.utils import clamp_unit, utc_now

__all__ = [
    "CATEGORY_TRAITS",
    "CompactionReport",
    "CompressionCandidate",
    "CompressionCriteria",
    "CompressionStatus",
    "ConsolidationReport",
    "ContradictionAction",
    "ContradictionPair",
    "ContradictionVerdict",
    "ConversationTurn",
    "ExtractedMemory",
    "ExtractionReport",
    "FusedMemory",
    "MemoryCategory",
    "MemoryItem",
    "MergeProposal",
    "MessageRole",
    "OwnerCompactionReport",
    "RetrievedMemory",
    "SaveAction",
    "SaveResult",
    "Tier",
    "TierWindow",
    "TieredSearchResult",
    "clamp_unit",
    "collapse_turns",
    "ensure_embedding_dimensions",
    "ensure_same_owner",
    "format_transcript",
    "tier_for",
    "tier_window",
    "utc_now",
]
