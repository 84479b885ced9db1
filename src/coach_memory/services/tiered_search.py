"""Recency-tiered vector search and the escalation policy on top of it."""

from datetime import datetime

from coach_memory.core import constants
from coach_memory.core.errors import ApplicationError
from coach_memory.core.logging import get_logger
from coach_memory.domain.models import Tier, TieredSearchResult, tier_window
from coach_memory.services import MemoryStore

logger = get_logger(__name__)


def is_results_enough(
    results: list[TieredSearchResult],
    min_results: int = constants.MIN_HOT_RESULTS,
    min_similarity: float = constants.MIN_SIMILARITY_FOR_ENOUGH,
    min_categories: int = constants.MIN_TAG_DIVERSITY,
) -> bool:
    """Decide whether a tier's hits are good enough to stop escalating.

    Any one of: enough hits, one strong hit, or hits spanning enough
    categories.
    """
    if not results:
        return False
    if len(results) >= min_results:
        return True
    if any(result.similarity >= min_similarity for result in results):
        return True
    return len({result.category for result in results}) >= min_categories


class TieredSearchEngine:
    """Runs the store's vector search inside one recency window."""

    def __init__(
        self,
        store: MemoryStore,
        min_confidence: float = constants.MIN_RETRIEVAL_CONFIDENCE,
        hot_days: int = constants.HOT_TIER_DAYS,
        warm_days: int = constants.WARM_TIER_DAYS,
    ):
        self.store = store
        self.min_confidence = min_confidence
        self.hot_days = hot_days
        self.warm_days = warm_days

    async def search(
        self,
        owner_id: str,
        query_vectors: list[list[float]],
        tier: Tier,
        threshold: float = constants.MEMORY_SIMILARITY_THRESHOLD,
        limit_per_query: int = constants.MEMORY_LIMIT_PER_QUERY,
        now: datetime | None = None,
    ) -> list[TieredSearchResult]:
        """Flat hit list, ordered by similarity within each query only.

        Store failures are logged and produce no hits.
        """
        if not query_vectors:
            return []

        window = tier_window(tier, now, self.hot_days, self.warm_days)
        try:
            results = await self.store.tiered_search(
                owner_id=owner_id,
                query_embeddings=query_vectors,
                window=window,
                threshold=threshold,
                limit_per_query=limit_per_query,
                min_confidence=self.min_confidence,
            )
        except ApplicationError as e:
            logger.warning("Tier search failed", tier=tier.value, error=str(e), error_code=e.code.value)
            return []
        except Exception as e:
            logger.error("Unexpected tier search failure", tier=tier.value, error=str(e), exc_info=True)
            return []

        logger.debug(f"{tier.value} tier returned {len(results)} hits", queries=len(query_vectors))
        return results
