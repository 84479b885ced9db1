"""Re-scoring and pruning of aged, low-value memories."""

import asyncio
from datetime import datetime, timedelta
from numbers import Real
from uuid import UUID

from coach_memory.core.config import CompactionConfig
from coach_memory.core.errors import ApplicationError
from coach_memory.core.logging import get_logger
from coach_memory.domain.models import (
    CompressionCandidate,
    CompressionCriteria,
    MemoryItem,
    OwnerCompactionReport,
    utc_now,
)
from coach_memory.infrastructure.llm.json_payload import parse_json_object
from coach_memory.services import ChatModel, ImportanceRater, MemoryStore
from coach_memory.services.contradictions import ContradictionResolver

logger = get_logger(__name__)

RATING_SYSTEM_PROMPT = """You rate how useful stored observations about a user still are to their AI
coach, from 0.0 (noise, safe to forget) to 1.0 (essential to keep).
Specific, recurring, actionable patterns score high. Vague, one-off or
trivial notes score low. Return ONLY a JSON object mapping each item number
to its score, for example {"1": 0.7, "2": 0.2}."""


def _describe(index: int, item: MemoryItem) -> str:
    accessed = item.last_accessed_at.date().isoformat() if item.last_accessed_at else "never"
    return (
        f"{index}. [{item.category.value}] {item.content} "
        f"(confidence {item.confidence:.2f}, used {item.access_count} times, last used {accessed})"
    )


class LLMImportanceRater:
    """Scores a batch of memories with one completion."""

    def __init__(self, chat_model: ChatModel, timeout_seconds: float | None = None):
        self.chat_model = chat_model
        self.timeout_seconds = timeout_seconds

    async def rate(self, items: list[MemoryItem]) -> dict[UUID, float]:
        listing = "\n".join(_describe(index, item) for index, item in enumerate(items, start=1))
        text = await self.chat_model.complete(
            RATING_SYSTEM_PROMPT,
            f"Observations:\n{listing}",
            temperature=0.1,
            max_tokens=300,
            timeout_seconds=self.timeout_seconds,
        )
        payload = parse_json_object(text)

        scores = {}
        for index, item in enumerate(items, start=1):
            value = payload.get(str(index))
            if isinstance(value, Real) and not isinstance(value, bool) and 0.0 <= value <= 1.0:
                scores[item.id] = float(value)
        return scores


class CompactionService:
    """Per-owner compaction: contradictions first, then re-score and prune.

    Items re-scored below ``delete_below`` are deleted, below
    ``compress_below`` compressed, anything else keeps its (possibly new)
    score. Without a rater the stored score decides.
    """

    def __init__(
        self,
        store: MemoryStore,
        rater: ImportanceRater | None,
        contradictions: ContradictionResolver,
        config: CompactionConfig | None = None,
    ):
        self.store = store
        self.rater = rater
        self.contradictions = contradictions
        self.config = config or CompactionConfig()

    def criteria(self, now: datetime | None = None) -> CompressionCriteria:
        now = now or utc_now()
        return CompressionCriteria(
            age_cutoff=now - timedelta(days=self.config.min_age_days),
            low_importance=self.config.low_importance_threshold,
            stale_cutoff=now - timedelta(days=self.config.stale_access_days),
            stale_importance=self.config.stale_importance_threshold,
            low_confidence=self.config.low_confidence_threshold,
            limit=self.config.batch_size,
        )

    async def _rate_batch(
        self,
        rater: ImportanceRater,
        semaphore: asyncio.Semaphore,
        batch: list[MemoryItem],
    ) -> dict[UUID, float]:
        async with semaphore:
            try:
                async with asyncio.timeout(self.config.llm_timeout_seconds):
                    return await rater.rate(batch)
            except (ApplicationError, asyncio.TimeoutError) as e:
                logger.warning("Re-scoring batch failed, keeping stored scores", size=len(batch), error=str(e))
                return {}

    async def rescore(self, items: list[MemoryItem]) -> list[CompressionCandidate]:
        """Attach fresh scores where the rater produced a valid one."""
        if self.rater is None or not items:
            return [CompressionCandidate(item=item) for item in items]

        size = self.config.rescore_batch_size
        batches = [items[start : start + size] for start in range(0, len(items), size)]
        semaphore = asyncio.Semaphore(self.config.rescore_concurrency)
        results = await asyncio.gather(*(self._rate_batch(self.rater, semaphore, batch) for batch in batches))

        scores: dict[UUID, float] = {}
        for result in results:
            scores.update(result)
        return [CompressionCandidate(item=item, new_score=scores.get(item.id)) for item in items]

    async def compact_owner(self, owner_id: str, now: datetime | None = None) -> OwnerCompactionReport:
        report = OwnerCompactionReport(owner_id=owner_id)
        report.contradictions_resolved = await self.contradictions.resolve(owner_id)

        items = await self.store.get_compression_candidates(owner_id, self.criteria(now))
        report.evaluated = len(items)
        if not items:
            return report

        to_delete: list[UUID] = []
        to_compress: list[UUID] = []
        for candidate in await self.rescore(items):
            item = candidate.item
            score = candidate.new_score if candidate.new_score is not None else item.importance_score
            if score < self.config.delete_below:
                to_delete.append(item.id)
            elif score < self.config.compress_below:
                to_compress.append(item.id)
            elif score != item.importance_score:
                await self.store.update_importance(owner_id, item.id, score)
                report.rescored += 1

        report.deleted = await self.store.delete(owner_id, to_delete)
        report.compressed = await self.store.mark_compressed(owner_id, to_compress)

        logger.info(
            "Compacted owner memories",
            evaluated=report.evaluated,
            deleted=report.deleted,
            compressed=report.compressed,
            rescored=report.rescored,
            contradictions_resolved=report.contradictions_resolved,
        )
        return report
