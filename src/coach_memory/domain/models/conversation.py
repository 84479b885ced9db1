"""Conversation input to the write path."""

from enum import Enum

from pydantic import BaseModel, Field, field_validator

from coach_memory.core import constants
from coach_memory.domain.models.memory import MemoryCategory


class MessageRole(str, Enum):
    """Message roles in a conversation."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ConversationTurn(BaseModel):
    """A single message in a coaching conversation."""

    role: MessageRole
    content: str

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v: object) -> object:
        return v.lower() if isinstance(v, str) else v


class ExtractedMemory(BaseModel):
    """Candidate item produced by the extractor, before scoring and dedup."""

    content: str = Field(min_length=1)
    category: MemoryCategory
    confidence: float = Field(ge=constants.MIN_EXTRACTED_CONFIDENCE, le=1.0)


def collapse_turns(turns: list[ConversationTurn]) -> list[ConversationTurn]:
    """Drop empty turns and join consecutive turns from the same speaker."""
    collapsed: list[ConversationTurn] = []
    for turn in turns:
        content = turn.content.strip()
        if not content:
            continue
        if collapsed and collapsed[-1].role == turn.role:
            previous = collapsed[-1]
            collapsed[-1] = ConversationTurn(role=previous.role, content=f"{previous.content}\n{content}")
        else:
            collapsed.append(ConversationTurn(role=turn.role, content=content))
    return collapsed


def format_transcript(turns: list[ConversationTurn]) -> str:
    return "\n\n".join(f"{turn.role.value.upper()}: {turn.content}" for turn in turns)
