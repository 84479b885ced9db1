import pytest
from fakes import OWNER, FakeEmbeddingService, FakeExtractor, FakeStore, axis, blend
from fastapi.testclient import TestClient

from coach_memory.core.errors import ServiceError
from coach_memory.domain.models import ExtractedMemory, MemoryCategory
from coach_memory.main import create_app
from coach_memory.services.memory_engine import MemoryEngine

TOPIC = "User is avoiding the tax return"


class DownStore(FakeStore):
    async def list_active(self, owner_id, category=None, limit=500):
        raise ServiceError(message="Neo4j list_active failed: connection refused")


@pytest.fixture
def app():
    return create_app(lifespan_handler=None)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def test_health_before_startup(client):
    assert client.get("/health").json()["status"] == "starting"


def test_health_reports_missing_llm(app, client, make_engine):
    app.state.engine = make_engine()

    body = client.get("/health").json()

    assert body["status"] == "degraded"
    assert body["embeddings_configured"] is True
    assert body["llm_configured"] is False


def test_requests_before_startup_are_unavailable(client):
    response = client.post("/memories/retrieve", json={"owner_id": OWNER, "current_topic": TOPIC})

    assert response.status_code == 503
    assert response.json()["error"] == "Memory engine not initialized"


def test_retrieve_returns_formatted_memories(app, client, store, make_engine, make_item):
    store.add(make_item("User delays paperwork involving money", embedding=blend(0, 1, 0.9), confidence=0.8))
    app.state.engine = make_engine(embedding_service=FakeEmbeddingService({TOPIC: axis(0)}))

    response = client.post("/memories/retrieve", json={"owner_id": OWNER, "current_topic": TOPIC, "limit": 5})

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["memories"][0]["formatted"] == "User delays paperwork involving money (procrastination pattern)"


def test_blank_owner_is_rejected(app, client, make_engine):
    app.state.engine = make_engine()

    response = client.post("/memories/retrieve", json={"owner_id": "", "current_topic": TOPIC})

    assert response.status_code == 422


def test_extract_then_list_and_delete(app, client, make_engine):
    extracted = ExtractedMemory(
        content="User feels guilty about unopened mail", category=MemoryCategory.EMO, confidence=0.7
    )
    app.state.engine = make_engine(extractor=FakeExtractor([extracted]))

    report = client.post(
        "/memories/extract",
        json={
            "owner_id": OWNER,
            "conversation_turns": [{"role": "user", "content": "The letters just pile up and I feel awful."}],
            "metadata": {"task_completed": False},
        },
    ).json()

    assert report["extracted_count"] == 1
    assert report["results"][0]["action"] == "inserted"

    listed = client.get(f"/memories/{OWNER}", params={"category": "EMO"}).json()
    assert listed["count"] == 1
    assert "embedding" not in listed["memories"][0]

    memory_id = report["results"][0]["memory_id"]
    assert client.delete(f"/memories/{OWNER}/{memory_id}").json() == {"status": "deleted", "memory_id": memory_id}
    assert client.delete(f"/memories/{OWNER}/{memory_id}").status_code == 404


def test_application_errors_map_to_status_codes(app, client, settings):
    app.state.engine = MemoryEngine.build(settings, store=DownStore(), embedding_service=None, chat_model=None)

    down = client.get(f"/memories/{OWNER}")
    blank = client.get("/memories/%20")

    assert down.status_code == 503
    assert down.json()["error_code"] == "5002"
    assert blank.status_code == 422
    assert blank.json()["details"]["field"] == "owner_id"


def test_manual_compaction(app, client, store, make_engine, make_item):
    store.add(make_item("User once skipped a meeting", importance_score=0.1, days_since_update=10))
    app.state.engine = make_engine()

    report = client.post("/admin/compact").json()

    assert report["users_processed"] == 1
    assert report["total_deleted"] == 1
    assert report["errors"] == []
    assert store.items == {}


def test_job_status_without_scheduler(client):
    assert client.get("/admin/jobs/status").status_code == 503
