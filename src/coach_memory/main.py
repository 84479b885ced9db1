"""Coach Memory FastAPI application.

The lifespan builds one ``Settings`` object, opens the Neo4j driver, wires the
engine and starts the nightly compaction job.
"""

import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import logfire
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coach_memory.api import router
from coach_memory.core.config import Settings, get_settings
from coach_memory.core.handlers import install_error_handlers
from coach_memory.core.logging import get_logger, setup_logging
from coach_memory.infrastructure.embeddings.voyage import VoyageEmbeddingService
from coach_memory.infrastructure.llm.anthropic import AnthropicChatModel
from coach_memory.infrastructure.neo4j.driver import create_neo4j_driver, ensure_schema
from coach_memory.infrastructure.repositories.memory import Neo4jMemoryRepository
from coach_memory.services import ChatModel, EmbeddingService
from coach_memory.services.memory_engine import MemoryEngine
from coach_memory.services.scheduler import CompactionScheduler

logger = get_logger(__name__)


def build_embedding_service(settings: Settings) -> EmbeddingService | None:
    if not settings.embeddings_configured:
        return None
    return VoyageEmbeddingService(api_key=settings.voyage_api_key, model=settings.embedding_model)


def build_chat_model(settings: Settings) -> ChatModel | None:
    if not settings.llm_configured:
        return None
    return AnthropicChatModel(
        api_key=settings.anthropic_api_key,
        model=settings.llm_model,
        timeout_seconds=settings.llm_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifecycle: driver, engine and scheduler live for the whole process."""
    settings = get_settings()
    setup_logging(level=logging.DEBUG if settings.debug else logging.INFO)
    settings.validate_credentials()

    logger.info("Starting Coach Memory application")
    async with create_neo4j_driver(settings) as driver:
        await ensure_schema(driver)

        engine = MemoryEngine.build(
            settings,
            store=Neo4jMemoryRepository(driver),
            embedding_service=build_embedding_service(settings),
            chat_model=build_chat_model(settings),
        )
        app.state.engine = engine

        scheduler = None
        if settings.scheduler.enabled:
            scheduler = CompactionScheduler(engine, settings.scheduler)
            scheduler.start()
        else:
            logger.info("Nightly compaction disabled by configuration")
        app.state.scheduler = scheduler

        try:
            yield
        finally:
            logger.info("Shutting down Coach Memory")
            if scheduler is not None:
                scheduler.shutdown()
            await engine.shutdown()
            app.state.engine = None


def create_app(
    lifespan_handler: Callable[[FastAPI], AbstractAsyncContextManager[None]] | None = lifespan,
) -> FastAPI:
    app = FastAPI(
        title="Coach Memory API",
        description="Behavioral memory for an AI accountability coach",
        version="0.1.0",
        lifespan=lifespan_handler,
    )
    app.state.engine = None
    app.state.scheduler = None

    install_error_handlers(app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


logfire.configure(service_name="coach-memory", send_to_logfire="if-token-present")
app = create_app()
logfire.instrument_fastapi(app)


if __name__ == "__main__":
    uvicorn.run("coach_memory.main:app", host="0.0.0.0", port=8000, log_level="info")
