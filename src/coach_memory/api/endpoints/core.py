"""Core API endpoints."""

from fastapi import APIRouter, Request

from coach_memory.core.logging import get_logger
from coach_memory.domain.models import utc_now

logger = get_logger(__name__)

router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with application status."""
    return {
        "message": "Coach Memory API",
        "version": "0.1.0",
        "status": "running",
    }


@router.get("/health", operation_id="health")
async def health_check(request: Request):
    """Health check endpoint, reporting which capabilities are configured."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        return {"status": "starting", "timestamp": utc_now().isoformat()}

    embeddings = engine.consolidation.embeddings.configured
    llm = engine.extractor is not None
    return {
        "status": "healthy" if embeddings and llm else "degraded",
        "embeddings_configured": embeddings,
        "llm_configured": llm,
        "timestamp": utc_now().isoformat(),
    }
