"""Shared pytest fixtures."""

from datetime import timedelta

import pytest
from fakes import OWNER, FakeEmbeddingService, FakeStore

from coach_memory.core.config import Settings
from coach_memory.domain.models import MemoryCategory, MemoryItem, utc_now
from coach_memory.services.memory_engine import MemoryEngine


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        neo4j_password="test",
        voyage_api_key="voyage-test",
        anthropic_api_key="anthropic-test",
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def embeddings() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture
def make_engine(settings, store, embeddings):
    """Engine over the fakes; LLM-backed parts are swapped in per test."""

    def factory(chat_model=None, *, extractor=None, merger=None, judge=None, rater=None, embedding_service=embeddings):
        engine = MemoryEngine.build(settings, store=store, embedding_service=embedding_service, chat_model=chat_model)
        if extractor is not None:
            engine.extractor = extractor
        if merger is not None:
            engine.consolidation.merger = merger
        if judge is not None:
            engine.contradictions.judge = judge
        if rater is not None:
            engine.compaction.rater = rater
        return engine

    return factory


@pytest.fixture
def make_item():
    def factory(
        content: str = "User freezes when a task has no clear first step",
        category: MemoryCategory = MemoryCategory.PROC,
        owner_id: str = OWNER,
        days_since_access: float | None = None,
        days_since_update: float = 0,
        **fields,
    ) -> MemoryItem:
        now = utc_now()
        fields.setdefault("created_at", now - timedelta(days=days_since_update))
        return MemoryItem(
            owner_id=owner_id,
            content=content,
            category=category,
            last_accessed_at=None if days_since_access is None else now - timedelta(days=days_since_access),
            updated_at=now - timedelta(days=days_since_update),
            **fields,
        )

    return factory
