"""Duplicate detection and LLM-assisted merging.

Two entry points share one merge step:

* ``save_extracted`` runs per freshly extracted item on the write path and
  either inserts it or folds it into the similar items already stored.
* ``consolidate`` sweeps an owner's existing items category by category and
  folds near-duplicates together.

A merge always keeps the oldest matched item, rewrites it in place with a
version check, and hard-deletes the rest in the same store write. Lineage
only grows: the survivor inherits the ids of everything it absorbed plus
their own lineage.
"""

from collections.abc import Sequence
from typing import Any
from uuid import UUID

from pydantic import ValidationError

from coach_memory.core import constants
from coach_memory.core.base import ErrorLevel
from coach_memory.core.config import ConsolidationConfig
from coach_memory.core.decorators import with_error_handling
from coach_memory.core.errors import ApplicationError, MalformedResponseError, MemoryValidationError, ProcessingError
from coach_memory.core.logging import get_logger
from coach_memory.domain.models import (
    ConsolidationReport,
    ExtractedMemory,
    MemoryCategory,
    MemoryItem,
    MergeProposal,
    SaveAction,
    SaveResult,
    clamp_unit,
    ensure_embedding_dimensions,
    ensure_same_owner,
    utc_now,
)
from coach_memory.domain.scoring import calculate_importance, corroborated_importance
from coach_memory.domain.similarity import cosine_similarity, text_similarity
from coach_memory.infrastructure.llm.json_payload import parse_json_object
from coach_memory.services import ChatModel, MemoryMerger, MemoryStore
from coach_memory.services.embedding_client import EmbeddingClient

logger = get_logger(__name__)

MERGE_SYSTEM_PROMPT = """You consolidate overlapping observations about one user into a single memory.
Keep every distinct detail, drop the repetition, stay concise, and keep the
observation in the same category. Return ONLY a JSON object:
{"content": "User ...", "confidence": 0.0-1.0}"""


class LLMMemoryMerger:
    """Asks the chat model to fold several observations into one."""

    def __init__(self, chat_model: ChatModel):
        self.chat_model = chat_model

    async def merge(self, contents: list[str], category: MemoryCategory) -> MergeProposal:
        listing = "\n".join(f'{index}. "{content}"' for index, content in enumerate(contents, start=1))
        prompt = f"Category: {category.value} {category.label}\n\nMemories to merge:\n{listing}"

        text = await self.chat_model.complete(MERGE_SYSTEM_PROMPT, prompt, temperature=0.2, max_tokens=500)
        payload = parse_json_object(text)
        try:
            return MergeProposal(
                content=str(payload.get("content", "")).strip(),
                confidence=payload.get("confidence"),
            )
        except ValidationError as e:
            raise MalformedResponseError(
                message="Merge response is missing usable content",
                details={"source": "LLMMemoryMerger", "operation": "merge", "payload": payload},
            ) from e


def _oldest_first(items: Sequence[MemoryItem]) -> list[MemoryItem]:
    return sorted(items, key=lambda item: (item.created_at, str(item.id)))


def merged_lineage(target: MemoryItem, absorbed: Sequence[MemoryItem], incoming_id: UUID | None = None) -> list[UUID]:
    """Survivor lineage: its own, then each absorbed id and that item's lineage."""
    lineage: list[UUID] = list(target.merged_from)
    for item in absorbed:
        lineage.append(item.id)
        lineage.extend(item.merged_from)
    if incoming_id is not None:
        lineage.append(incoming_id)

    seen: set[UUID] = {target.id}
    unique = []
    for memory_id in lineage:
        if memory_id not in seen:
            seen.add(memory_id)
            unique.append(memory_id)
    return unique


def group_duplicates(
    items: Sequence[MemoryItem],
    embedding_threshold: float = constants.DUPLICATE_SIMILARITY_THRESHOLD,
    text_threshold: float = constants.TEXT_SIMILARITY_THRESHOLD,
) -> list[list[MemoryItem]]:
    """Greedy grouping, oldest item anchors each group.

    Embedding cosine is used when both items have vectors; token overlap,
    with its lower threshold, otherwise.
    """
    ordered = _oldest_first(items)
    used: set[UUID] = set()
    groups = []

    for index, anchor in enumerate(ordered):
        if anchor.id in used:
            continue
        group = [anchor]
        for other in ordered[index + 1 :]:
            if other.id in used:
                continue
            if anchor.embedding and other.embedding:
                similar = cosine_similarity(anchor.embedding, other.embedding) >= embedding_threshold
            else:
                similar = text_similarity(anchor.content, other.content) >= text_threshold
            if similar:
                group.append(other)
                used.add(other.id)
        if len(group) > 1:
            used.add(anchor.id)
            groups.append(group)

    return groups


class ConsolidationService:
    """Write-path dedup and batch consolidation over one store.

    Not locked: the engine facade serializes calls per owner.
    """

    def __init__(
        self,
        store: MemoryStore,
        embeddings: EmbeddingClient,
        merger: MemoryMerger | None,
        config: ConsolidationConfig | None = None,
    ):
        self.store = store
        self.embeddings = embeddings
        self.merger = merger
        self.config = config or ConsolidationConfig()

    async def merge_items(
        self,
        items: Sequence[MemoryItem],
        incoming: MemoryItem | None = None,
        proposal: MergeProposal | None = None,
    ) -> tuple[MemoryItem, int]:
        """Fold ``items`` (and an unsaved ``incoming`` item) into the oldest one.

        Returns the updated survivor and how many stored items were deleted.

        Raises:
            ProcessingError: If no merger is configured or the merged text cannot be embedded
            MalformedResponseError: If the merger's answer is unusable
            VersionConflictError: If the survivor changed underneath us
            MemoryValidationError: If the sources span owners or the new embedding has the wrong size
        """
        ordered = _oldest_first(items)
        target, absorbed = ordered[0], ordered[1:]
        sources = [*ordered, incoming] if incoming is not None else ordered
        ensure_same_owner(target.owner_id, sources, source="ConsolidationService.merge_items")
        category = target.category

        if proposal is None:
            if self.merger is None:
                raise ProcessingError(
                    message="No merger configured",
                    details={"source": "ConsolidationService", "operation": "merge_items"},
                )
            proposal = await self.merger.merge([item.content for item in sources], category)

        confidence = clamp_unit(max([item.confidence for item in sources] + [proposal.confidence or 0.0]))

        embedding = await self.embeddings.embed_one(proposal.content)
        if embedding is None:
            raise ProcessingError(
                message="Could not embed merged content",
                details={"source": "ConsolidationService", "operation": "merge_items", "memory_id": str(target.id)},
            )
        ensure_embedding_dimensions(embedding, source="ConsolidationService.merge_items")

        importance = corroborated_importance(
            calculate_importance(category, confidence, proposal.content),
            len(sources),
        )
        updated = target.model_copy(
            update={
                "content": proposal.content,
                "confidence": confidence,
                "importance_score": importance,
                "embedding": embedding,
                "merged_from": merged_lineage(target, absorbed, incoming.id if incoming else None),
                "updated_at": utc_now(),
            }
        )

        saved, deleted = await self.store.apply_merge(
            updated,
            expected_version=target.version,
            absorbed_ids=[item.id for item in absorbed],
        )

        logger.info(
            "Merged memories",
            memory_id=str(saved.id),
            category=category.value,
            sources=len(sources),
            deleted=deleted,
            importance=round(importance, 3),
        )
        return saved, deleted

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def save_extracted(
        self,
        owner_id: str,
        extracted: ExtractedMemory,
        task_context: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> SaveResult:
        """Insert one extracted item, or merge it into its stored near-duplicates.

        Merge failures other than data-integrity errors fall back to a plain
        insert: a duplicate is tolerated, a blind merge is not.
        """
        candidate = MemoryItem(
            owner_id=owner_id,
            content=extracted.content,
            category=extracted.category,
            confidence=extracted.confidence,
            importance_score=calculate_importance(extracted.category, extracted.confidence, extracted.content),
            task_context=task_context,
            metadata=metadata or {},
        )

        embedding = await self.embeddings.embed_one(candidate.content)
        if embedding is None:
            logger.info("Saving memory without embedding", category=candidate.category.value)
            return self._result(SaveAction.INSERTED, await self.store.insert(candidate))

        ensure_embedding_dimensions(embedding, source="ConsolidationService.save_extracted")
        candidate = candidate.model_copy(update={"embedding": embedding})

        try:
            matches = await self.store.find_similar(
                owner_id,
                candidate.category,
                embedding,
                threshold=self.config.duplicate_threshold,
                limit=self.config.duplicate_search_limit,
            )
        except ApplicationError as e:
            logger.warning("Duplicate search failed, inserting unmerged", error=str(e))
            matches = []

        if not matches:
            return self._result(SaveAction.INSERTED, await self.store.insert(candidate))

        try:
            saved, _ = await self.merge_items([item for item, _ in matches], incoming=candidate)
        except MemoryValidationError:
            raise
        except ApplicationError as e:
            logger.warning(
                "Merge failed, inserting unmerged",
                error=str(e),
                error_code=e.code.value,
                matches=len(matches),
            )
            return self._result(SaveAction.INSERTED, await self.store.insert(candidate))

        return self._result(SaveAction.MERGED, saved)

    @staticmethod
    def _result(action: SaveAction, item: MemoryItem) -> SaveResult:
        return SaveResult(
            action=action,
            memory_id=item.id,
            content=item.content,
            category=item.category,
            merged_from=item.merged_from,
        )

    async def _backfill_embeddings(self, owner_id: str, items: list[MemoryItem]) -> list[MemoryItem]:
        missing = [item for item in items if item.embedding is None]
        if not missing:
            return items

        vectors = await self.embeddings.embed([item.content for item in missing])
        if not vectors:
            return items

        filled: dict[UUID, list[float]] = {}
        for item, vector in zip(missing, vectors, strict=True):
            try:
                ensure_embedding_dimensions(vector, source="ConsolidationService.backfill")
                await self.store.update_embedding(owner_id, item.id, vector)
            except ApplicationError as e:
                logger.warning("Embedding backfill failed", memory_id=str(item.id), error=str(e))
                continue
            filled[item.id] = vector

        logger.debug(f"Backfilled {len(filled)} embeddings")
        return [
            item.model_copy(update={"embedding": filled[item.id]}) if item.id in filled else item for item in items
        ]

    async def consolidate(self, owner_id: str, category: MemoryCategory | None = None) -> ConsolidationReport:
        """Merge near-duplicate groups within each category of one owner."""
        report = ConsolidationReport()

        for current in [category] if category else list(MemoryCategory):
            items = await self.store.list_active(owner_id, current)
            report.processed += len(items)
            if len(items) < 2:
                continue

            items = await self._backfill_embeddings(owner_id, items)
            groups = group_duplicates(items, self.config.duplicate_threshold, self.config.text_similarity_threshold)

            for group in groups:
                try:
                    _, deleted = await self.merge_items(group)
                except MemoryValidationError:
                    raise
                except ApplicationError as e:
                    logger.warning(
                        "Skipping duplicate group",
                        category=current.value,
                        size=len(group),
                        error=str(e),
                    )
                    continue
                report.merged += 1
                report.deleted += deleted

        logger.info(
            "Consolidation finished",
            processed=report.processed,
            merged=report.merged,
            deleted=report.deleted,
        )
        return report
