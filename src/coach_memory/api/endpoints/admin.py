"""Admin endpoints for manual compaction runs."""

from fastapi import APIRouter, Depends, HTTPException, Request

from coach_memory.api.dependencies import get_engine
from coach_memory.core.logging import get_logger
from coach_memory.domain.models import CompactionReport, OwnerCompactionReport
from coach_memory.services.memory_engine import MemoryEngine

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/compact", response_model=CompactionReport, operation_id="compact_all")
async def compact_all(engine: MemoryEngine = Depends(get_engine)) -> CompactionReport:
    """Run the nightly compaction sweep now."""
    logger.info("Manually triggered compaction sweep")
    return await engine.compact_all()


@router.post("/compact/{owner_id}", response_model=OwnerCompactionReport, operation_id="compact_owner")
async def compact_owner(owner_id: str, engine: MemoryEngine = Depends(get_engine)) -> OwnerCompactionReport:
    """Compact a single owner's memories."""
    return await engine.compact_owner(owner_id)


@router.get("/jobs/status", operation_id="job_status")
async def job_status(request: Request) -> dict:
    """Nightly compaction job status."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Compaction scheduler not running")
    return scheduler.job_status()
