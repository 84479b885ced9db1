"""API dependencies."""

from fastapi import HTTPException, Request

from coach_memory.services.memory_engine import MemoryEngine


def get_engine(request: Request) -> MemoryEngine:
    """The engine built by the application lifespan."""
    engine: MemoryEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Memory engine not initialized")
    return engine
