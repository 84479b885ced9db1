import json

import pytest
from fakes import FakeChatModel

from coach_memory.core.errors import MalformedResponseError
from coach_memory.domain.models import ConversationTurn, MemoryCategory
from coach_memory.services.extraction import (
    EXTRACTION_SYSTEM_PROMPT,
    LLMMemoryExtractor,
    build_extraction_prompt,
    parse_extracted,
)

TURNS = [
    ConversationTurn(role="user", content="I only started once you told me to do five minutes."),
    ConversationTurn(role="assistant", content="Five minutes is all it takes."),
]

PAYLOAD = json.dumps(
    [
        {"content": "User starts tasks when given a five minute goal", "category": "EFFECTIVE", "confidence": 0.9},
        {"content": "User feels guilty about the backlog", "category": "emo", "confidence": 0.7},
        {"content": "User mentioned Tuesday", "category": "TIME", "confidence": 0.9},
        {"content": "User might dislike mornings", "category": "SOMA", "confidence": 0.1},
    ]
)


def test_parse_accepts_wrapper_object_and_normalizes_categories():
    extracted = parse_extracted(json.dumps({"memories": json.loads(PAYLOAD)}))

    assert [item.category for item in extracted] == [MemoryCategory.EFFECTIVE, MemoryCategory.EMO]


def test_parse_rejects_non_json():
    with pytest.raises(MalformedResponseError):
        parse_extracted("nothing to see here")


def test_prompt_carries_task_state():
    prompt = build_extraction_prompt(TURNS, task_context="Write report", task_completed=True)

    assert prompt.startswith("Task: Write report")
    assert "task_completed: true" in prompt
    assert "USER: I only started" in prompt


async def test_effective_requires_completed_task():
    chat = FakeChatModel({EXTRACTION_SYSTEM_PROMPT: PAYLOAD})
    extractor = LLMMemoryExtractor(chat)

    completed = await extractor.extract(TURNS, task_completed=True)
    unknown = await extractor.extract(TURNS)

    assert {item.category for item in completed} == {MemoryCategory.EFFECTIVE, MemoryCategory.EMO}
    assert {item.category for item in unknown} == {MemoryCategory.EMO}


async def test_empty_conversation_skips_the_model():
    chat = FakeChatModel()

    assert await LLMMemoryExtractor(chat).extract([ConversationTurn(role="user", content="  ")]) == []
    assert chat.calls == []
