"""API module."""

from fastapi import APIRouter

from .endpoints import admin, core, memory

router = APIRouter()

# Include endpoint routers
router.include_router(memory.router, prefix="/memories", tags=["memories"])
router.include_router(admin.router)
router.include_router(core.router)
