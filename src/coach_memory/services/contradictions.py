"""Contradiction pass over related same-category memories."""

from uuid import UUID

from coach_memory.core.config import ConsolidationConfig
from coach_memory.core.errors import ApplicationError, MalformedResponseError, MemoryValidationError
from coach_memory.core.logging import get_logger
from coach_memory.domain.models import (
    ContradictionAction,
    ContradictionPair,
    ContradictionVerdict,
    MemoryItem,
    MergeProposal,
    ensure_same_owner,
)
from coach_memory.infrastructure.llm.json_payload import parse_json_object
from coach_memory.services import ChatModel, ContradictionJudge, MemoryStore
from coach_memory.services.consolidation import ConsolidationService

logger = get_logger(__name__)

JUDGE_SYSTEM_PROMPT = """You review two observations about the same user, recorded at different times.
Decide how they relate:
- "keep_newer": they conflict and the newer one reflects the user now
- "keep_older": they conflict and the older one is still the better description
- "merge": they describe the same pattern and should become one observation
- "keep_both": they are related but do not conflict

Return ONLY a JSON object:
{"action": "keep_newer|keep_older|merge|keep_both", "reason": "short explanation", "merged": "merged text, only for merge"}"""


def _describe(item: MemoryItem) -> str:
    return f'"{item.content}" (recorded {item.created_at.date().isoformat()}, confidence {item.confidence:.2f})'


class LLMContradictionJudge:
    """Classifies a pair of memories with one completion."""

    def __init__(self, chat_model: ChatModel):
        self.chat_model = chat_model

    async def judge(self, older: MemoryItem, newer: MemoryItem) -> ContradictionVerdict:
        prompt = (
            f"Category: {older.category.value} {older.category.label}\n\n"
            f"Older: {_describe(older)}\n"
            f"Newer: {_describe(newer)}"
        )
        text = await self.chat_model.complete(JUDGE_SYSTEM_PROMPT, prompt, temperature=0.1, max_tokens=400)
        payload = parse_json_object(text)

        action = str(payload.get("action", "")).strip().lower()
        if action not in ContradictionAction._value2member_map_:
            raise MalformedResponseError(
                message=f"Unknown contradiction action {action!r}",
                details={"source": "LLMContradictionJudge", "operation": "judge", "payload": payload},
            )

        merged = payload.get("merged")
        return ContradictionVerdict(
            action=ContradictionAction(action),
            reason=str(payload.get("reason", "")),
            merged_content=merged.strip() if isinstance(merged, str) and merged.strip() else None,
        )


class ContradictionResolver:
    """Finds related pairs and applies the judge's verdict to each.

    A pair whose judgement fails is left alone. An item touched by an earlier
    verdict in the same pass is not reconsidered.
    """

    def __init__(
        self,
        store: MemoryStore,
        judge: ContradictionJudge | None,
        consolidation: ConsolidationService,
        config: ConsolidationConfig | None = None,
    ):
        self.store = store
        self.judge = judge
        self.consolidation = consolidation
        self.config = config or ConsolidationConfig()

    async def _verdict(self, pair: ContradictionPair) -> ContradictionVerdict:
        if self.judge is None:
            return ContradictionVerdict(reason="no judge configured")
        try:
            return await self.judge.judge(pair.older, pair.newer)
        except ApplicationError as e:
            logger.warning(
                "Contradiction judgement failed, keeping both",
                older_id=str(pair.older.id),
                newer_id=str(pair.newer.id),
                error=str(e),
            )
            return ContradictionVerdict(reason="judgement failed")

    async def _apply(self, owner_id: str, pair: ContradictionPair, verdict: ContradictionVerdict) -> bool:
        ensure_same_owner(owner_id, (pair.older, pair.newer), source="ContradictionResolver")
        if verdict.action == ContradictionAction.KEEP_NEWER:
            return await self.store.supersede(owner_id, loser_id=pair.older.id, winner_id=pair.newer.id)

        if verdict.action == ContradictionAction.KEEP_OLDER:
            return await self.store.supersede(owner_id, loser_id=pair.newer.id, winner_id=pair.older.id)

        if verdict.action == ContradictionAction.MERGE:
            proposal = MergeProposal(content=verdict.merged_content) if verdict.merged_content else None
            try:
                await self.consolidation.merge_items([pair.older, pair.newer], proposal=proposal)
            except MemoryValidationError:
                raise
            except ApplicationError as e:
                logger.warning("Contradiction merge failed", older_id=str(pair.older.id), error=str(e))
                return False
            return True

        return False

    async def resolve(self, owner_id: str) -> int:
        """Run one pass for ``owner_id`` and return how many pairs changed."""
        if self.judge is None:
            logger.info("Skipping contradiction pass, no judge configured")
            return 0

        pairs = await self.store.find_contradiction_candidates(
            owner_id,
            min_similarity=self.config.contradiction_threshold,
            max_similarity=self.config.contradiction_ceiling,
            limit=self.config.contradiction_pair_limit,
        )

        touched: set[UUID] = set()
        resolved = 0
        for pair in pairs:
            if pair.older.id in touched or pair.newer.id in touched:
                continue

            verdict = await self._verdict(pair)
            if verdict.action == ContradictionAction.KEEP_BOTH:
                continue

            if await self._apply(owner_id, pair, verdict):
                touched.update((pair.older.id, pair.newer.id))
                resolved += 1
                logger.info(
                    "Resolved contradiction",
                    action=verdict.action.value,
                    older_id=str(pair.older.id),
                    newer_id=str(pair.newer.id),
                    similarity=round(pair.similarity, 3),
                    reason=verdict.reason,
                )

        logger.debug(f"Contradiction pass resolved {resolved} of {len(pairs)} pairs")
        return resolved


__all__ = ["ContradictionResolver", "LLMContradictionJudge"]
