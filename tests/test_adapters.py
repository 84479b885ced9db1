import asyncio
from types import SimpleNamespace

import pytest
from fakes import DIMENSIONS

from coach_memory.core.errors import (
    AuthenticationError,
    MalformedResponseError,
    ProcessingError,
    RateLimitError,
    ServiceError,
    TimeoutError,
)
from coach_memory.infrastructure.embeddings.voyage import VoyageEmbeddingService
from coach_memory.infrastructure.llm.anthropic import AnthropicChatModel


async def no_sleep(delay: float) -> None:
    return None


class FakeVoyageClient:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def embed(self, texts, model):
        self.calls.append((list(texts), model))
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        if outcome == "short":
            return SimpleNamespace(embeddings=[])
        return SimpleNamespace(embeddings=[[0.1] * DIMENSIONS for _ in texts])


class FakeMessages:
    def __init__(self, blocks=None, delay: float = 0.0):
        self.blocks = blocks or []
        self.delay = delay
        self.requests = []

    async def create(self, **request):
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        return SimpleNamespace(content=self.blocks)


def voyage(client) -> VoyageEmbeddingService:
    service = VoyageEmbeddingService(api_key="", client=client)
    service._retry_handler._sleep = no_sleep
    return service


def chat(messages: FakeMessages, timeout_seconds: float = 15.0) -> AnthropicChatModel:
    model = AnthropicChatModel(
        api_key="",
        model="claude-test",
        timeout_seconds=timeout_seconds,
        client=SimpleNamespace(messages=messages),
    )
    model._retry_handler._sleep = no_sleep
    return model


def test_missing_keys_are_rejected():
    with pytest.raises(AuthenticationError):
        VoyageEmbeddingService(api_key="")
    with pytest.raises(AuthenticationError):
        AnthropicChatModel(api_key="", model="claude-test")


async def test_embed_batch_returns_one_vector_per_text():
    client = FakeVoyageClient()

    vectors = await voyage(client).embed_batch(["a", "b"])

    assert len(vectors) == 2
    assert len(vectors[0]) == DIMENSIONS
    assert client.calls == [(["a", "b"], "voyage-large-2")]


async def test_blank_text_is_rejected_before_the_api():
    client = FakeVoyageClient()

    with pytest.raises(ProcessingError):
        await voyage(client).embed_batch(["fine", "   "])
    assert client.calls == []


async def test_incomplete_response_is_not_retried():
    client = FakeVoyageClient("short")

    with pytest.raises(ProcessingError):
        await voyage(client).embed_batch(["a"])
    assert len(client.calls) == 1


async def test_rate_limits_are_retried():
    client = FakeVoyageClient(Exception("429 rate limit"), None)

    assert len(await voyage(client).embed_batch(["a"])) == 1
    assert len(client.calls) == 2


async def test_rate_limit_surfaces_after_retries():
    client = FakeVoyageClient(*[Exception("rate limit")] * 3)

    with pytest.raises(RateLimitError):
        await voyage(client).embed_batch(["a"])
    assert len(client.calls) == 3


async def test_connection_failures_open_the_circuit():
    client = FakeVoyageClient(*[Exception("connection refused")] * 5)
    service = voyage(client)

    for _ in range(3):
        with pytest.raises(ServiceError):
            await service.embed_batch(["a"])
    with pytest.raises(ServiceError, match="is open"):
        await service.embed_batch(["a"])

    assert len(client.calls) == 3
    assert service.get_state()["state"] == "open"


async def test_completion_joins_text_blocks():
    messages = FakeMessages(
        [
            SimpleNamespace(type="text", text='[{"content": '),
            SimpleNamespace(type="tool_use", name="ignored"),
            SimpleNamespace(type="text", text='"x"}]'),
        ]
    )

    text = await chat(messages).complete("system prompt", "user prompt", temperature=0.0, max_tokens=50)

    assert text == '[{"content": "x"}]'
    [request] = messages.requests
    assert request["system"] == "system prompt"
    assert request["messages"] == [{"role": "user", "content": "user prompt"}]
    assert request["max_tokens"] == 50


async def test_empty_completion_is_malformed():
    with pytest.raises(MalformedResponseError):
        await chat(FakeMessages([SimpleNamespace(type="text", text="  ")])).complete("s", "u")


async def test_slow_completion_times_out():
    messages = FakeMessages([SimpleNamespace(type="text", text="late")], delay=1.0)

    with pytest.raises(TimeoutError):
        await chat(messages).complete("s", "u", timeout_seconds=0.01)
    assert len(messages.requests) == 2
