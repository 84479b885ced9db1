"""Anthropic Messages API chat model."""

import asyncio
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from coach_memory.core.base import AIServiceErrorDetails, ErrorLevel
from coach_memory.core.circuit_breaker import CircuitBreaker, RetryWithCircuitBreaker
from coach_memory.core.decorators import with_error_handling
from coach_memory.core.errors import (
    AuthenticationError,
    MalformedResponseError,
    RateLimitError,
    ServiceError,
    TimeoutError,
)
from coach_memory.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_TOKENS = 1024


class AnthropicChatModel:
    """Single-shot system/user completions returning plain text.

    Callers own the prompt and the parsing; this class only bounds the call,
    maps client failures onto the engine's error types and keeps a circuit
    breaker so a dead API is not hammered by every retrieval.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_seconds: float = 15.0,
        client: Any = None,
    ) -> None:
        if not api_key and client is None:
            raise AuthenticationError(
                message="Anthropic API key not configured",
                details=AIServiceErrorDetails(
                    source="AnthropicChatModel",
                    operation="initialization",
                    service_name="Anthropic",
                    model_name=model,
                ),
            )

        self.model = model
        self.timeout_seconds = timeout_seconds
        self.client = client or AsyncAnthropic(api_key=api_key, max_retries=0)

        self._circuit_breaker = CircuitBreaker(
            name="anthropic_api",
            failure_threshold=5,
            recovery_timeout=30.0,
            expected_exception_types=(RateLimitError, TimeoutError, ServiceError),
        )
        self._retry_handler = RetryWithCircuitBreaker(
            circuit_breaker=self._circuit_breaker,
            max_retries=2,
            initial_delay=1.0,
            max_delay=10.0,
        )

    def _details(self, operation: str, **extra: Any) -> AIServiceErrorDetails:
        return AIServiceErrorDetails(
            source="AnthropicChatModel",
            operation=operation,
            service_name="Anthropic",
            endpoint="/v1/messages",
            model_name=self.model,
            **extra,
        )

    async def _create(
        self,
        system: str,
        user: str,
        temperature: float,
        max_tokens: int,
        timeout_seconds: float,
    ) -> str:
        try:
            async with asyncio.timeout(timeout_seconds):
                response = await self.client.messages.create(
                    model=self.model,
                    system=system,
                    messages=[{"role": "user", "content": user}],
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
        except asyncio.TimeoutError as e:
            raise TimeoutError(
                message=f"Chat model did not answer within {timeout_seconds}s",
                details=self._details("complete", status_code=408),
            ) from e
        except anthropic.RateLimitError as e:
            raise RateLimitError(
                message="Rate limit exceeded for chat model",
                details=self._details("complete", status_code=429),
            ) from e
        except anthropic.APITimeoutError as e:
            raise TimeoutError(
                message="Chat model request timed out",
                details=self._details("complete", status_code=408),
            ) from e
        except anthropic.AuthenticationError as e:
            raise AuthenticationError(
                message="Authentication failed for chat model",
                details=self._details("complete", status_code=401),
            ) from e
        except anthropic.APIStatusError as e:
            raise ServiceError(
                message=f"Chat model returned {e.status_code}",
                details=self._details("complete", status_code=e.status_code),
            ) from e
        except anthropic.APIConnectionError as e:
            raise ServiceError(
                message=f"Could not reach chat model: {e!s}",
                details=self._details("complete", status_code=503),
            ) from e

        text = "".join(
            getattr(block, "text", "") for block in response.content if getattr(block, "type", None) == "text"
        )
        if not text.strip():
            raise MalformedResponseError(
                message="Chat model returned no text",
                details=self._details("complete", max_tokens=max_tokens, temperature=temperature),
            )
        return text

    @with_error_handling(error_level=ErrorLevel.WARNING, reraise=True)
    async def complete(
        self,
        system: str,
        user: str,
        temperature: float = 0.3,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout_seconds: float | None = None,
    ) -> str:
        """Run one completion and return the concatenated text blocks.

        Raises:
            TimeoutError: If the call exceeds its time bound
            RateLimitError: If the API throttled us after retries
            ServiceError: For other API failures or an open circuit
            MalformedResponseError: If the response carried no text
        """
        return await self._retry_handler.call_async(
            self._create,
            system,
            user,
            temperature,
            max_tokens,
            timeout_seconds or self.timeout_seconds,
        )

    def get_state(self) -> dict[str, Any]:
        return self._circuit_breaker.get_state()
