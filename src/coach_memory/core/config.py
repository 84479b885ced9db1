"""Configuration management.

``Settings`` is built once at process start (see ``coach_memory.main``) and
handed to the components that need it. Nothing in the engine reads the
environment on its own.
"""

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from coach_memory.core import constants
from coach_memory.core.base import ErrorDetails
from coach_memory.core.errors import ConfigurationError
from coach_memory.core.logging import get_logger

logger = get_logger(__name__)


class RetrievalConfig(BaseModel):
    """Read path tuning."""

    similarity_threshold: float = Field(default=constants.MEMORY_SIMILARITY_THRESHOLD, ge=0.0, le=1.0)
    limit_per_query: int = Field(default=constants.MEMORY_LIMIT_PER_QUERY, ge=1)
    max_results: int = Field(default=constants.MAX_FINAL_MEMORIES, ge=1)
    min_confidence: float = Field(default=constants.MIN_RETRIEVAL_CONFIDENCE, ge=0.0, le=1.0)
    hot_days: int = constants.HOT_TIER_DAYS
    warm_days: int = constants.WARM_TIER_DAYS
    timeout_seconds: float = Field(default=constants.RETRIEVAL_TIMEOUT_SECONDS, gt=0)


class ConsolidationConfig(BaseModel):
    """Duplicate merge and contradiction tuning."""

    duplicate_threshold: float = constants.DUPLICATE_SIMILARITY_THRESHOLD
    text_similarity_threshold: float = constants.TEXT_SIMILARITY_THRESHOLD
    duplicate_search_limit: int = constants.DUPLICATE_SEARCH_LIMIT
    contradiction_threshold: float = constants.CONTRADICTION_SIMILARITY_THRESHOLD
    contradiction_ceiling: float = constants.CONTRADICTION_SIMILARITY_CEILING
    contradiction_pair_limit: int = constants.CONTRADICTION_PAIR_LIMIT


class CompactionConfig(BaseModel):
    """Compaction sweep tuning."""

    max_owners_per_run: int = constants.MAX_USERS_PER_RUN
    batch_size: int = constants.COMPACTION_BATCH_SIZE
    min_age_days: int = constants.MIN_AGE_DAYS
    low_importance_threshold: float = constants.LOW_IMPORTANCE_THRESHOLD
    stale_access_days: int = constants.STALE_ACCESS_DAYS
    stale_importance_threshold: float = constants.STALE_IMPORTANCE_THRESHOLD
    low_confidence_threshold: float = constants.LOW_CONFIDENCE_THRESHOLD
    delete_below: float = constants.DELETE_BELOW
    compress_below: float = constants.COMPRESS_BELOW
    rescore_batch_size: int = Field(default=constants.RESCORE_BATCH_SIZE, ge=1, le=10)
    rescore_concurrency: int = Field(default=constants.RESCORE_CONCURRENCY, ge=1, le=10)
    llm_timeout_seconds: float = constants.COMPACTION_LLM_TIMEOUT_SECONDS


class SchedulerConfig(BaseModel):
    """Nightly compaction trigger owned by the application, not the engine."""

    enabled: bool = True
    hour: int = Field(default=constants.NIGHTLY_COMPACTION_HOUR, ge=0, le=23)
    minute: int = Field(default=constants.NIGHTLY_COMPACTION_MINUTE, ge=0, le=59)


class Settings(BaseSettings):
    # API Keys
    voyage_api_key: str = ""
    anthropic_api_key: str = ""

    # Neo4j
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = ""

    # Models
    embedding_model: str = constants.EMBEDDING_MODEL_DEFAULT
    llm_model: str = "claude-3-5-haiku-latest"
    llm_timeout_seconds: float = 15.0

    # App config
    debug: bool = False
    allow_degraded_mode: bool = Field(
        default=False,
        description="Run without embedding/LLM credentials instead of refusing to start",
    )

    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    consolidation: ConsolidationConfig = Field(default_factory=ConsolidationConfig)
    compaction: CompactionConfig = Field(default_factory=CompactionConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",  # Ignore extra fields in .env file
        env_nested_delimiter="__",  # Allows RETRIEVAL__SIMILARITY_THRESHOLD=0.65
    )

    @property
    def embeddings_configured(self) -> bool:
        return bool(self.voyage_api_key)

    @property
    def llm_configured(self) -> bool:
        return bool(self.anthropic_api_key)

    def validate_credentials(self) -> None:
        """Fail fast on missing credentials.

        The Neo4j password is always required. Missing embedding or LLM keys
        are fatal unless ``allow_degraded_mode`` is set, in which case they
        are reported once and the affected components run unconfigured.

        Raises:
            ConfigurationError: If a required credential is missing
        """
        if not self.neo4j_password:
            raise ConfigurationError(
                message="NEO4J_PASSWORD is not configured",
                details=ErrorDetails(source="settings", operation="validate_credentials"),
            )

        missing = [
            name
            for name, present in (
                ("VOYAGE_API_KEY", self.embeddings_configured),
                ("ANTHROPIC_API_KEY", self.llm_configured),
            )
            if not present
        ]
        if not missing:
            return

        if not self.allow_degraded_mode:
            raise ConfigurationError(
                message=f"Missing credentials: {', '.join(missing)}",
                details=ErrorDetails(source="settings", operation="validate_credentials"),
            )
        logger.warning(
            "Running in degraded mode without credentials",
            missing=missing,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build the process-wide settings once."""
    return Settings()
