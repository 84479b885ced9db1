"""Memory API endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from coach_memory.api.dependencies import get_engine
from coach_memory.core.decorators import with_error_handling
from coach_memory.core.logging import get_logger
from coach_memory.domain.models import (
    ConsolidationReport,
    ConversationTurn,
    ExtractionReport,
    MemoryCategory,
    MemoryItem,
    RetrievedMemory,
)
from coach_memory.services.memory_engine import MemoryEngine

logger = get_logger(__name__)
router = APIRouter()


class RetrieveRequest(BaseModel):
    """Request model for retrieving memories relevant to the current topic."""

    owner_id: str = Field(..., min_length=1)
    current_topic: str = Field(..., min_length=1)
    seed_questions: list[str] | None = None
    conversation_summary: str | None = None
    limit: int | None = Field(None, ge=1, le=50)


class RetrieveResponse(BaseModel):
    memories: list[RetrievedMemory]
    count: int


class ExtractRequest(BaseModel):
    """Request model for extracting memories from a finished conversation."""

    owner_id: str = Field(..., min_length=1)
    conversation_turns: list[ConversationTurn]
    task_context: str | None = None
    # metadata["task_completed"] gates EFFECTIVE extraction
    metadata: dict[str, Any] | None = None


class ConsolidateRequest(BaseModel):
    owner_id: str = Field(..., min_length=1)
    category: MemoryCategory | None = None


class MemorySummary(BaseModel):
    """A stored memory without its embedding."""

    id: UUID
    content: str
    category: MemoryCategory
    confidence: float
    importance_score: float
    access_count: int
    last_accessed_at: datetime | None
    merged_from: list[UUID]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_item(cls, item: MemoryItem) -> "MemorySummary":
        return cls.model_validate(item.model_dump(exclude={"embedding"}))


class ListMemoriesResponse(BaseModel):
    memories: list[MemorySummary]
    count: int


@router.post("/retrieve", response_model=RetrieveResponse, operation_id="retrieve_memories")
@with_error_handling(reraise=True)
async def retrieve_memories(
    request: RetrieveRequest,
    engine: MemoryEngine = Depends(get_engine),
) -> RetrieveResponse:
    """Memories relevant to the current topic, best first."""
    memories = await engine.retrieve_memories(
        owner_id=request.owner_id,
        current_topic=request.current_topic,
        seed_questions=request.seed_questions,
        conversation_summary=request.conversation_summary,
        limit=request.limit,
    )
    return RetrieveResponse(memories=memories, count=len(memories))


@router.post("/extract", response_model=ExtractionReport, operation_id="extract_memories")
@with_error_handling(reraise=True)
async def extract_memories(
    request: ExtractRequest,
    engine: MemoryEngine = Depends(get_engine),
) -> ExtractionReport:
    """Extract behavioral memories from a conversation and store them."""
    logger.info("Extracting memories", turns=len(request.conversation_turns))
    return await engine.extract_and_store(
        owner_id=request.owner_id,
        conversation_turns=request.conversation_turns,
        task_context=request.task_context,
        metadata=request.metadata,
    )


@router.post("/consolidate", response_model=ConsolidationReport, operation_id="consolidate_memories")
@with_error_handling(reraise=True)
async def consolidate_memories(
    request: ConsolidateRequest,
    engine: MemoryEngine = Depends(get_engine),
) -> ConsolidationReport:
    return await engine.consolidate(request.owner_id, request.category)


@router.get("/{owner_id}", response_model=ListMemoriesResponse, operation_id="list_memories")
async def list_memories(
    owner_id: str,
    category: MemoryCategory | None = None,
    limit: int = Query(100, ge=1, le=500),
    engine: MemoryEngine = Depends(get_engine),
) -> ListMemoriesResponse:
    items = await engine.list_memories(owner_id, category, limit)
    return ListMemoriesResponse(memories=[MemorySummary.from_item(item) for item in items], count=len(items))


@router.delete("/{owner_id}/{memory_id}", operation_id="delete_memory")
async def delete_memory(
    owner_id: str,
    memory_id: UUID,
    engine: MemoryEngine = Depends(get_engine),
) -> dict[str, str]:
    if not await engine.delete_memory(owner_id, memory_id):
        raise HTTPException(status_code=404, detail="Memory not found")
    return {"status": "deleted", "memory_id": str(memory_id)}
