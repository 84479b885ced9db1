import asyncio
import time

import pytest
from fakes import OWNER, FakeEmbeddingService, axis, blend

from coach_memory.core.errors import MemoryValidationError
from coach_memory.domain.models import MemoryCategory

TOPIC = "User is stuck on the quarterly report"


@pytest.fixture
def topic_embeddings() -> FakeEmbeddingService:
    return FakeEmbeddingService({TOPIC: axis(0)})


async def test_cold_start_returns_empty_without_cold_search(make_engine, store, topic_embeddings):
    engine = make_engine(embedding_service=topic_embeddings)

    assert await engine.retrieve_memories(OWNER, TOPIC) == []

    assert len(store.search_windows) == 2
    hot, warm = store.search_windows
    assert hot.include_never_accessed and hot.accessed_before is None
    assert not warm.include_never_accessed and warm.accessed_before is not None
    assert all(window.accessed_after is not None for window in store.search_windows)


async def test_strong_hot_hits_stop_escalation(make_engine, store, make_item, topic_embeddings):
    store.add(make_item("User stalls on long reports", embedding=blend(0, 1, 0.9), confidence=0.8))
    engine = make_engine(embedding_service=topic_embeddings)

    memories = await engine.retrieve_memories(OWNER, TOPIC)

    assert [memory.content for memory in memories] == ["User stalls on long reports"]
    assert len(store.search_windows) == 1
    await engine.shutdown()


async def test_weak_hot_hits_escalate_to_warm(make_engine, store, make_item, topic_embeddings):
    store.add(make_item("User dreads spreadsheets", embedding=blend(0, 1, 0.65), confidence=0.8))
    store.add(
        make_item(
            "User works best on reports before noon",
            embedding=blend(0, 2, 0.8),
            confidence=0.8,
            days_since_access=10,
        )
    )
    store.add(
        make_item(
            "User once enjoyed a report",
            embedding=blend(0, 3, 0.9),
            confidence=0.8,
            days_since_access=45,
        )
    )
    engine = make_engine(embedding_service=topic_embeddings)

    memories = await engine.retrieve_memories(OWNER, TOPIC)

    assert [memory.content for memory in memories] == [
        "User dreads spreadsheets",
        "User works best on reports before noon",
    ]
    assert len(store.search_windows) == 2
    await engine.shutdown()


async def test_low_confidence_and_other_owners_are_invisible(make_engine, store, make_item, topic_embeddings):
    store.add(make_item("User hides from reports", embedding=blend(0, 1, 0.9), confidence=0.4))
    store.add(make_item("Other user loves reports", embedding=blend(0, 2, 0.9), owner_id="owner-2", confidence=0.9))
    engine = make_engine(embedding_service=topic_embeddings)

    assert await engine.retrieve_memories(OWNER, TOPIC) == []


async def test_repeated_retrieval_returns_the_same_order(make_engine, store, make_item, topic_embeddings):
    for index, similarity in enumerate([0.91, 0.85, 0.78, 0.72, 0.66], start=1):
        store.add(make_item(f"User pattern {index}", embedding=blend(0, index, similarity), confidence=0.8))
    engine = make_engine(embedding_service=topic_embeddings)

    first = await engine.retrieve_memories(OWNER, TOPIC)
    await engine.shutdown()
    second = await engine.retrieve_memories(OWNER, TOPIC)
    await engine.shutdown()

    assert [memory.memory_id for memory in first] == [memory.memory_id for memory in second]
    assert [memory.content for memory in first][:2] == ["User pattern 1", "User pattern 2"]


async def test_limit_caps_results(make_engine, store, make_item, topic_embeddings):
    for index in range(1, 5):
        store.add(make_item(f"User pattern {index}", embedding=blend(0, index, 0.9 - index / 100), confidence=0.8))
    engine = make_engine(embedding_service=topic_embeddings)

    memories = await engine.retrieve_memories(OWNER, TOPIC, limit=2)

    assert len(memories) == 2
    await engine.shutdown()


async def test_returned_memories_are_marked_accessed(make_engine, store, make_item, topic_embeddings):
    item = store.add(make_item("User stalls on long reports", embedding=blend(0, 1, 0.9), confidence=0.8))
    engine = make_engine(embedding_service=topic_embeddings)

    await engine.retrieve_memories(OWNER, TOPIC)
    await engine.shutdown()

    touched = store.items[item.id]
    assert touched.access_count == 1
    assert touched.last_accessed_at is not None
    assert touched.version == item.version


async def test_results_carry_category_label(make_engine, store, make_item, topic_embeddings):
    store.add(
        make_item(
            "User likes blunt reminders",
            category=MemoryCategory.PREF,
            embedding=blend(0, 1, 0.9),
            confidence=0.8,
        )
    )
    engine = make_engine(embedding_service=topic_embeddings)

    [memory] = await engine.retrieve_memories(OWNER, TOPIC)
    await engine.shutdown()

    assert memory.formatted == "User likes blunt reminders (AI interaction preference)"
    assert memory.relevance == 1.0


async def test_search_failure_degrades_to_empty(make_engine, store, make_item, topic_embeddings):
    store.add(make_item("User stalls on long reports", embedding=blend(0, 1, 0.9), confidence=0.8))
    store.fail_search = True
    engine = make_engine(embedding_service=topic_embeddings)

    assert await engine.retrieve_memories(OWNER, TOPIC) == []


async def test_without_embeddings_nothing_is_searched(make_engine, store):
    engine = make_engine(embedding_service=None)

    assert await engine.retrieve_memories(OWNER, TOPIC) == []
    assert store.search_windows == []


@pytest.mark.parametrize(("owner_id", "topic"), [("", TOPIC), ("   ", TOPIC), (OWNER, ""), (OWNER, "  ")])
async def test_missing_owner_or_topic_is_rejected(make_engine, owner_id, topic):
    engine = make_engine()
    with pytest.raises(MemoryValidationError):
        await engine.retrieve_memories(owner_id, topic)


async def test_slow_search_times_out_to_empty(make_engine, store, settings, make_item, topic_embeddings, monkeypatch):
    store.add(make_item("User stalls on long reports", embedding=blend(0, 1, 0.9), confidence=0.8))
    settings.retrieval = settings.retrieval.model_copy(update={"timeout_seconds": 0.05})

    async def slow_search(*args, **kwargs):
        await asyncio.sleep(5)
        return []

    monkeypatch.setattr(store, "tiered_search", slow_search)
    engine = make_engine(embedding_service=topic_embeddings)

    started = time.monotonic()
    memories = await engine.retrieve_memories(OWNER, TOPIC)

    assert memories == []
    assert time.monotonic() - started < 1
