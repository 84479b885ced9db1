"""Turn a coaching conversation into candidate memory items."""

from typing import Any

from pydantic import ValidationError

from coach_memory.core import constants
from coach_memory.core.base import ErrorLevel
from coach_memory.core.decorators import with_error_handling
from coach_memory.core.errors import MalformedResponseError
from coach_memory.core.logging import get_logger
from coach_memory.domain.models import (
    ConversationTurn,
    ExtractedMemory,
    MemoryCategory,
    collapse_turns,
    format_transcript,
)
from coach_memory.infrastructure.llm.json_payload import parse_json_array, parse_json_object
from coach_memory.services import ChatModel

logger = get_logger(__name__)

EXTRACTION_SYSTEM_PROMPT = """You extract lasting behavioral insights about a user from a conversation
with their AI coach. Only record what the USER reveals; ignore greetings, small
talk and bare time or date mentions. When unsure whether something is a
pattern, include it with a lower confidence.

Tag every insight with exactly one category:
- PREF: how the user wants the assistant to talk to them (tone, length, pressure)
- PROC: reasons or excuses for delaying tasks, and the context around avoiding them
- SOMA: physical sensations tied to activities (tiredness, headaches, restlessness)
- EMO: feelings the user attaches to tasks or situations (guilt, anxiety, overwhelm)
- SAB: habits that undermine the user's own goals
- EFFECTIVE: an assistant technique that got the user to act. Use this ONLY when
  the task was completed and you can point to what the assistant said right
  before the user moved.

Write each insight as one sentence starting with "User". Return ONLY a JSON
array:
[{"content": "User ...", "category": "EMO", "confidence": 0.8}]
Return [] when there is nothing worth remembering."""


def build_extraction_prompt(
    turns: list[ConversationTurn],
    task_context: str | None = None,
    task_completed: bool | None = None,
) -> str:
    sections = []
    if task_context:
        sections.append(f"Task: {task_context}")
    if task_completed is not None:
        sections.append(f"task_completed: {'true' if task_completed else 'false'}")
    sections.append(f"Conversation:\n{format_transcript(turns)}")
    return "\n\n".join(sections)


def parse_extracted(payload: str) -> list[ExtractedMemory]:
    """Accept a bare array or an object wrapping one under memories/results."""
    try:
        items: list[Any] = parse_json_array(payload)
    except MalformedResponseError:
        wrapper = parse_json_object(payload)
        items = wrapper.get("memories") or wrapper.get("results") or []

    extracted = []
    for raw in items:
        if not isinstance(raw, dict):
            continue
        category = str(raw.get("category") or raw.get("tag") or "").strip().upper()
        if category not in MemoryCategory.__members__:
            logger.debug("Dropping extracted item with unknown category", category=category)
            continue
        try:
            extracted.append(
                ExtractedMemory(
                    content=str(raw.get("content", "")).strip(),
                    category=MemoryCategory(category),
                    confidence=float(raw.get("confidence", 0.0)),
                )
            )
        except (ValidationError, TypeError, ValueError):
            continue
    return extracted


class LLMMemoryExtractor:
    """One completion per conversation; the transcript goes in, candidates come out."""

    def __init__(self, chat_model: ChatModel, min_confidence: float = constants.MIN_EXTRACTED_CONFIDENCE):
        self.chat_model = chat_model
        self.min_confidence = min_confidence

    @with_error_handling(error_level=ErrorLevel.WARNING, reraise=True)
    async def extract(
        self,
        turns: list[ConversationTurn],
        task_context: str | None = None,
        task_completed: bool | None = None,
    ) -> list[ExtractedMemory]:
        collapsed = collapse_turns(turns)
        if not collapsed:
            return []

        text = await self.chat_model.complete(
            EXTRACTION_SYSTEM_PROMPT,
            build_extraction_prompt(collapsed, task_context, task_completed),
            temperature=0.3,
            max_tokens=2000,
        )
        candidates = [c for c in parse_extracted(text) if c.confidence >= self.min_confidence]
        if task_completed is not True:
            candidates = [c for c in candidates if c.category != MemoryCategory.EFFECTIVE]

        logger.info(f"Extracted {len(candidates)} candidate memories", turns=len(collapsed))
        return candidates
