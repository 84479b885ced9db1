"""Engine facade: the operations other subsystems call."""

from typing import Any
from uuid import UUID

from coach_memory.core.base import ValidationErrorDetails
from coach_memory.core.concurrency import OwnerLockRegistry
from coach_memory.core.config import Settings
from coach_memory.core.errors import ApplicationError, MemoryValidationError
from coach_memory.core.logging import get_logger, owner_log_context
from coach_memory.domain.models import (
    CompactionReport,
    ConsolidationReport,
    ConversationTurn,
    ExtractionReport,
    MemoryCategory,
    MemoryItem,
    OwnerCompactionReport,
    RetrievedMemory,
    SaveAction,
)
from coach_memory.services import ChatModel, EmbeddingService, MemoryExtractor, MemoryStore
from coach_memory.services.access_tracker import AccessTracker
from coach_memory.services.compaction import CompactionService, LLMImportanceRater
from coach_memory.services.consolidation import ConsolidationService, LLMMemoryMerger
from coach_memory.services.contradictions import ContradictionResolver, LLMContradictionJudge
from coach_memory.services.embedding_client import EmbeddingClient
from coach_memory.services.extraction import LLMMemoryExtractor
from coach_memory.services.question_synthesis import QuestionSynthesizer
from coach_memory.services.retrieval import RetrievalService
from coach_memory.services.tiered_search import TieredSearchEngine

logger = get_logger(__name__)


def _require_owner(owner_id: str | None, operation: str) -> str:
    if owner_id is None or not owner_id.strip():
        raise MemoryValidationError(
            message="owner_id is required",
            details=ValidationErrorDetails(
                source="MemoryEngine",
                operation=operation,
                field="owner_id",
                actual_value=owner_id,
                constraint="non-empty string",
            ),
        )
    return owner_id.strip()


class MemoryEngine:
    """Behavioral memory for one coaching deployment.

    Writes for the same owner (extraction, consolidation, compaction) are
    serialized in-process; the store's version check covers other processes.
    Reads never take the owner lock.
    """

    def __init__(
        self,
        retrieval: RetrievalService,
        consolidation: ConsolidationService,
        contradictions: ContradictionResolver,
        compaction: CompactionService,
        store: MemoryStore,
        extractor: MemoryExtractor | None,
        tracker: AccessTracker,
        settings: Settings,
        locks: OwnerLockRegistry | None = None,
    ):
        self.retrieval = retrieval
        self.consolidation = consolidation
        self.contradictions = contradictions
        self.compaction = compaction
        self.store = store
        self.extractor = extractor
        self.tracker = tracker
        self.settings = settings
        self.locks = locks or OwnerLockRegistry()

    @classmethod
    def build(
        cls,
        settings: Settings,
        store: MemoryStore,
        embedding_service: EmbeddingService | None,
        chat_model: ChatModel | None,
    ) -> "MemoryEngine":
        """Wire every component from one settings object.

        ``None`` for the embedding service or chat model runs the engine in
        degraded mode: no vector search or dedup, and no LLM steps.
        """
        embeddings = EmbeddingClient(embedding_service, timeout_seconds=settings.retrieval.timeout_seconds)
        tracker = AccessTracker(store)

        search = TieredSearchEngine(
            store,
            min_confidence=settings.retrieval.min_confidence,
            hot_days=settings.retrieval.hot_days,
            warm_days=settings.retrieval.warm_days,
        )
        retrieval = RetrievalService(
            QuestionSynthesizer(chat_model),
            embeddings,
            search,
            tracker,
            settings.retrieval,
        )

        consolidation = ConsolidationService(
            store,
            embeddings,
            LLMMemoryMerger(chat_model) if chat_model else None,
            settings.consolidation,
        )
        contradictions = ContradictionResolver(
            store,
            LLMContradictionJudge(chat_model) if chat_model else None,
            consolidation,
            settings.consolidation,
        )
        compaction = CompactionService(
            store,
            LLMImportanceRater(chat_model, settings.compaction.llm_timeout_seconds) if chat_model else None,
            contradictions,
            settings.compaction,
        )

        return cls(
            retrieval=retrieval,
            consolidation=consolidation,
            contradictions=contradictions,
            compaction=compaction,
            store=store,
            extractor=LLMMemoryExtractor(chat_model) if chat_model else None,
            tracker=tracker,
            settings=settings,
        )

    async def retrieve_memories(
        self,
        owner_id: str,
        current_topic: str,
        seed_questions: list[str] | None = None,
        conversation_summary: str | None = None,
        limit: int | None = None,
    ) -> list[RetrievedMemory]:
        """Memories relevant to ``current_topic``, best first; empty when nothing fits.

        Raises:
            MemoryValidationError: If owner or topic is missing
        """
        owner_id = _require_owner(owner_id, "retrieve_memories")
        with owner_log_context(owner_id, "retrieve_memories"):
            return await self.retrieval.retrieve(
                owner_id,
                current_topic,
                seed_questions=seed_questions,
                conversation_summary=conversation_summary,
                limit=limit,
            )

    async def extract_and_store(
        self,
        owner_id: str,
        conversation_turns: list[ConversationTurn],
        task_context: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ExtractionReport:
        """Extract memories from a conversation and save or merge each one.

        ``metadata["task_completed"]`` gates extraction of effective
        techniques. Extraction failures report zero extracted.
        """
        owner_id = _require_owner(owner_id, "extract_and_store")
        metadata = metadata or {}
        report = ExtractionReport()

        with owner_log_context(owner_id, "extract_and_store"):
            if self.extractor is None:
                logger.warning("No extractor configured, nothing stored")
                return report

            task_completed = metadata.get("task_completed")
            try:
                extracted = await self.extractor.extract(
                    conversation_turns,
                    task_context=task_context,
                    task_completed=task_completed if isinstance(task_completed, bool) else None,
                )
            except ApplicationError as e:
                logger.warning("Extraction failed", error=str(e), error_code=e.code.value)
                return report

            report.extracted_count = len(extracted)
            async with self.locks.hold(owner_id):
                for candidate in extracted:
                    result = await self.consolidation.save_extracted(owner_id, candidate, task_context, metadata)
                    report.results.append(result)
                    report.saved_count += 1
                    if result.action == SaveAction.MERGED:
                        report.merged_count += 1

            logger.info(
                "Stored extracted memories",
                extracted=report.extracted_count,
                saved=report.saved_count,
                merged=report.merged_count,
            )
            return report

    async def consolidate(self, owner_id: str, category: MemoryCategory | None = None) -> ConsolidationReport:
        owner_id = _require_owner(owner_id, "consolidate")
        with owner_log_context(owner_id, "consolidate"):
            async with self.locks.hold(owner_id):
                return await self.consolidation.consolidate(owner_id, category)

    async def resolve_contradictions(self, owner_id: str) -> int:
        owner_id = _require_owner(owner_id, "resolve_contradictions")
        with owner_log_context(owner_id, "resolve_contradictions"):
            async with self.locks.hold(owner_id):
                return await self.contradictions.resolve(owner_id)

    async def compact_owner(self, owner_id: str) -> OwnerCompactionReport:
        owner_id = _require_owner(owner_id, "compact_owner")
        with owner_log_context(owner_id, "compact_owner"):
            async with self.locks.hold(owner_id):
                return await self.compaction.compact_owner(owner_id)

    async def compact_all(self) -> CompactionReport:
        """Sweep the least recently updated owners one at a time.

        A failing owner is recorded in ``errors`` and the sweep moves on.
        """
        report = CompactionReport()
        owners = await self.store.owners_for_compaction(self.settings.compaction.max_owners_per_run)
        logger.info(f"Starting compaction sweep over {len(owners)} owners")

        for owner_id in owners:
            try:
                owner_report = await self.compact_owner(owner_id)
            except Exception as e:
                logger.error("Compaction failed for owner", owner_id=owner_id, error=str(e), exc_info=True)
                report.errors.append(f"{owner_id}: {e!s}")
                continue
            report.absorb(owner_report)

        logger.info(
            "Compaction sweep finished",
            users_processed=report.users_processed,
            total_deleted=report.total_deleted,
            total_compressed=report.total_compressed,
            contradictions_resolved=report.contradictions_resolved,
            errors=len(report.errors),
        )
        return report

    async def list_memories(
        self,
        owner_id: str,
        category: MemoryCategory | None = None,
        limit: int = 100,
    ) -> list[MemoryItem]:
        owner_id = _require_owner(owner_id, "list_memories")
        return await self.store.list_active(owner_id, category, limit)

    async def delete_memory(self, owner_id: str, memory_id: UUID) -> bool:
        owner_id = _require_owner(owner_id, "delete_memory")
        with owner_log_context(owner_id, "delete_memory"):
            async with self.locks.hold(owner_id):
                return await self.store.delete(owner_id, [memory_id]) > 0

    async def shutdown(self) -> None:
        await self.tracker.drain()
