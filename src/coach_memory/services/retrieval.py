"""Read path: synthesize, embed, search by tier, fuse, track."""

import asyncio

from coach_memory.core.base import ValidationErrorDetails
from coach_memory.core.config import RetrievalConfig
from coach_memory.core.errors import MemoryValidationError
from coach_memory.core.logging import get_logger
from coach_memory.domain.models import RetrievedMemory, Tier, TieredSearchResult, utc_now
from coach_memory.services.access_tracker import AccessTracker
from coach_memory.services.embedding_client import EmbeddingClient
from coach_memory.services.fusion import merge_with_mrr, ranked_lists_by_query
from coach_memory.services.question_synthesis import QuestionSynthesizer
from coach_memory.services.tiered_search import TieredSearchEngine, is_results_enough

logger = get_logger(__name__)


def _require(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise MemoryValidationError(
            message=f"{field} is required",
            details=ValidationErrorDetails(
                source="RetrievalService",
                operation="retrieve",
                field=field,
                actual_value=value,
                constraint="non-empty string",
            ),
        )
    return value.strip()


class RetrievalService:
    """Finds the memories most relevant to what the user is talking about now.

    Hot tier first; the warm tier only when the hot hits are not enough. The
    cold tier is never searched here. Any dependency failure or an exceeded time
    limit yields an empty list; only missing owner or topic raises.
    """

    def __init__(
        self,
        synthesizer: QuestionSynthesizer,
        embeddings: EmbeddingClient,
        search: TieredSearchEngine,
        tracker: AccessTracker,
        config: RetrievalConfig | None = None,
    ):
        self.synthesizer = synthesizer
        self.embeddings = embeddings
        self.search = search
        self.tracker = tracker
        self.config = config or RetrievalConfig()

    async def retrieve(
        self,
        owner_id: str,
        current_topic: str,
        seed_questions: list[str] | None = None,
        conversation_summary: str | None = None,
        limit: int | None = None,
    ) -> list[RetrievedMemory]:
        owner_id = _require(owner_id, "owner_id")
        current_topic = _require(current_topic, "current_topic")
        limit = max(1, limit or self.config.max_results)

        try:
            async with asyncio.timeout(self.config.timeout_seconds):
                return await self._retrieve(owner_id, current_topic, seed_questions, conversation_summary, limit)
        except asyncio.TimeoutError:
            logger.warning("Retrieval timed out", timeout_seconds=self.config.timeout_seconds)
            return []
        except Exception as e:
            logger.error("Retrieval failed", error=str(e), exc_info=True)
            return []

    async def _retrieve(
        self,
        owner_id: str,
        current_topic: str,
        seed_questions: list[str] | None,
        conversation_summary: str | None,
        limit: int,
    ) -> list[RetrievedMemory]:
        context = current_topic
        if conversation_summary:
            context = f"{current_topic}\n\nConversation so far: {conversation_summary}"

        queries = await self.synthesizer.synthesize(context, seed_questions)
        vectors = await self.embeddings.embed(queries)
        if not vectors:
            logger.info("No query vectors, skipping memory search", queries=len(queries))
            return []

        now = utc_now()
        hot = await self._search(owner_id, vectors, Tier.HOT, now)
        warm: list[TieredSearchResult] = []
        if not is_results_enough(hot):
            warm = await self._search(owner_id, vectors, Tier.WARM, now)

        fused = merge_with_mrr(ranked_lists_by_query(hot, warm, len(vectors)))[:limit]
        logger.info(
            "Retrieved memories",
            queries=len(queries),
            hot_hits=len(hot),
            warm_hits=len(warm),
            escalated=bool(warm) or not is_results_enough(hot),
            returned=len(fused),
        )

        self.tracker.track(owner_id, [memory.memory_id for memory in fused])

        return [
            RetrievedMemory(
                memory_id=memory.memory_id,
                content=memory.content,
                category=memory.category,
                relevance=memory.score,
            )
            for memory in fused
        ]

    async def _search(self, owner_id, vectors, tier, now) -> list[TieredSearchResult]:
        return await self.search.search(
            owner_id,
            vectors,
            tier,
            threshold=self.config.similarity_threshold,
            limit_per_query=self.config.limit_per_query,
            now=now,
        )
