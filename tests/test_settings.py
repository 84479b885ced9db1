import pytest

from coach_memory.core.config import Settings
from coach_memory.core.errors import ConfigurationError

CREDENTIALS = ("NEO4J_PASSWORD", "VOYAGE_API_KEY", "ANTHROPIC_API_KEY", "ALLOW_DEGRADED_MODE")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in CREDENTIALS:
        monkeypatch.delenv(name, raising=False)


def test_nested_blocks_read_from_environment(monkeypatch):
    monkeypatch.setenv("RETRIEVAL__SIMILARITY_THRESHOLD", "0.65")
    monkeypatch.setenv("COMPACTION__MAX_OWNERS_PER_RUN", "5")
    monkeypatch.setenv("SCHEDULER__ENABLED", "false")

    settings = Settings(_env_file=None)

    assert settings.retrieval.similarity_threshold == 0.65
    assert settings.compaction.max_owners_per_run == 5
    assert settings.scheduler.enabled is False
    assert settings.consolidation.duplicate_threshold == 0.85


def test_neo4j_password_is_always_required():
    settings = Settings(_env_file=None, voyage_api_key="v", anthropic_api_key="a", allow_degraded_mode=True)

    with pytest.raises(ConfigurationError, match="NEO4J_PASSWORD"):
        settings.validate_credentials()


def test_missing_model_keys_are_fatal_by_default():
    settings = Settings(_env_file=None, neo4j_password="secret", voyage_api_key="v")

    with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
        settings.validate_credentials()


def test_degraded_mode_allows_missing_model_keys():
    settings = Settings(_env_file=None, neo4j_password="secret", allow_degraded_mode=True)

    settings.validate_credentials()

    assert not settings.embeddings_configured
    assert not settings.llm_configured


def test_fully_configured(settings):
    settings.validate_credentials()

    assert settings.embeddings_configured and settings.llm_configured


def test_embedding_size_is_fixed_not_configurable(monkeypatch):
    monkeypatch.setenv("EMBEDDING_DIMENSIONS", "1024")

    settings = Settings(_env_file=None)

    assert "embedding_dimensions" not in Settings.model_fields
    assert not hasattr(settings, "embedding_dimensions")
