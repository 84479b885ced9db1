"""Voyage AI embedding service."""

import asyncio
from typing import Any, cast

import voyageai

from coach_memory.core.base import ErrorLevel, ServiceErrorDetails
from coach_memory.core.circuit_breaker import CircuitBreaker, RetryWithCircuitBreaker
from coach_memory.core.constants import EMBEDDING_DIMENSIONS, EMBEDDING_MODEL_DEFAULT
from coach_memory.core.decorators import with_error_handling
from coach_memory.core.errors import (
    AuthenticationError,
    ProcessingError,
    RateLimitError,
    ServiceError,
    TimeoutError,
)
from coach_memory.core.logging import get_logger

logger = get_logger(__name__)

MODEL_DIMENSIONS = {
    "voyage-01": 1024,
    "voyage-02": 1536,
    "voyage-large-2": 1536,
    "voyage-code-2": 1536,
    "voyage-3-large": 1024,
    "voyage-3": 1024,
}


class VoyageEmbeddingService:
    """Voyage AI embedding service implementation.

    Every call goes through a circuit breaker; rate limits and timeouts are
    retried with exponential backoff before the breaker counts them.
    """

    # voyageai client doesn't expose a public type, so we use Any here
    client: Any  # voyageai.AsyncClient

    _circuit_breaker: CircuitBreaker
    _retry_handler: RetryWithCircuitBreaker

    def __init__(
        self,
        api_key: str,
        model: str = EMBEDDING_MODEL_DEFAULT,
        timeout_seconds: float = 15.0,
        client: Any = None,
    ) -> None:
        """Initialize the Voyage embedding service.

        Args:
            api_key: Voyage API key
            model: Embedding model name
            timeout_seconds: Upper bound for one API round trip
            client: Pre-built client (tests inject a fake here)

        Raises:
            AuthenticationError: If the API key is empty
        """
        if not api_key and client is None:
            raise AuthenticationError(
                message="Voyage API key not configured",
                details=ServiceErrorDetails(
                    source="VoyageEmbeddingService",
                    operation="initialization",
                    service_name="Voyage AI",
                ),
            )

        self.model = model
        self.timeout_seconds = timeout_seconds
        self.client = client or voyageai.AsyncClient(api_key=api_key)  # type: ignore[attr-defined]

        self._circuit_breaker = CircuitBreaker(
            name="voyage_api",
            failure_threshold=3,
            recovery_timeout=30.0,
            expected_exception_types=(RateLimitError, TimeoutError, ServiceError),
            success_threshold=2,
        )
        self._retry_handler = RetryWithCircuitBreaker(
            circuit_breaker=self._circuit_breaker,
            max_retries=3,
            initial_delay=1.0,
            backoff_factor=2.0,
            max_delay=30.0,
            retryable_exceptions=(RateLimitError, TimeoutError),
        )

    async def _call_voyage_api_internal(self, texts: list[str]) -> list[list[float]]:
        """One bounded round trip; wrapped by the circuit breaker."""
        try:
            async with asyncio.timeout(self.timeout_seconds):
                response = await self.client.embed(texts=texts, model=self.model)
        except ProcessingError:
            raise
        except Exception as e:
            raise self._handle_error(e, texts) from e

        embeddings = getattr(response, "embeddings", [])
        if not embeddings or len(embeddings) != len(texts):
            # Not retryable: the API answered, just not with what we asked for
            raise ProcessingError(
                message="Voyage API returned incomplete embeddings",
                details=ServiceErrorDetails(
                    source="voyage_embedding",
                    operation="embed_batch",
                    service_name="voyage",
                    endpoint="/embeddings",
                    status_code=200,
                    expected=len(texts),
                    received=len(embeddings),
                ),
            )

        return [cast("list[float]", emb) for emb in embeddings]

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embedding vectors for a batch of texts with circuit breaker and retry logic.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors corresponding to the input texts

        Raises:
            ProcessingError: If any text is blank or the response is incomplete
            ServiceError: If the circuit is open or service fails
        """
        if not texts:
            return []

        if any(not text.strip() for text in texts):
            raise ProcessingError(
                message="Batch contains empty texts",
                details={
                    "source": "voyage_embedding",
                    "operation": "embed_batch",
                    "original_batch_size": len(texts),
                },
            )

        return await self._retry_handler.call_async(self._call_voyage_api_internal, texts)

    async def embed_text(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text."""
        embeddings = await self.embed_batch([text])
        return embeddings[0]

    def _handle_error(
        self,
        e: Exception,
        texts: list[str],
    ) -> ProcessingError | RateLimitError | TimeoutError | AuthenticationError | ServiceError:
        """Map client errors to our exception types."""
        if isinstance(e, asyncio.TimeoutError):
            return TimeoutError(
                message=f"Embeddings API did not answer within {self.timeout_seconds}s",
                details=ServiceErrorDetails(
                    source="VoyageEmbeddingService",
                    operation="embed_batch",
                    service_name="Voyage AI",
                    endpoint="/embeddings",
                    status_code=408,
                ),
            )

        error_msg = str(e).lower()
        if "rate limit" in error_msg or "429" in error_msg:
            return RateLimitError(
                message="Rate limit exceeded for embeddings API",
                details=ServiceErrorDetails(
                    source="VoyageEmbeddingService",
                    operation="embed_batch",
                    service_name="Voyage AI",
                    endpoint="/embeddings",
                    status_code=429,
                ),
            )
        if "timeout" in error_msg or "timed out" in error_msg:
            return TimeoutError(
                message="Embeddings API request timed out",
                details=ServiceErrorDetails(
                    source="VoyageEmbeddingService",
                    operation="embed_batch",
                    service_name="Voyage AI",
                    endpoint="/embeddings",
                    status_code=408,
                ),
            )
        if "auth" in error_msg or "api key" in error_msg:
            return AuthenticationError(
                message="Authentication failed for embeddings API",
                details=ServiceErrorDetails(
                    source="VoyageEmbeddingService",
                    operation="embed_batch",
                    service_name="Voyage AI",
                    endpoint="/embeddings",
                    status_code=401,
                ),
            )
        if "connection" in error_msg or "unavailable" in error_msg:
            return ServiceError(
                message=f"Embeddings API unavailable: {e!s}",
                details=ServiceErrorDetails(
                    source="VoyageEmbeddingService",
                    operation="embed_batch",
                    service_name="Voyage AI",
                    endpoint="/embeddings",
                    status_code=503,
                ),
            )

        return ProcessingError(
            message=f"Failed to generate embeddings: {e!s}",
            details={
                "source": "VoyageEmbeddingService",
                "operation": "embed_batch",
                "batch_size": len(texts),
                "model": self.model,
                "original_error": str(e),
            },
        )

    def get_model_dimensions(self) -> int:
        """Dimensionality of the configured model."""
        return MODEL_DIMENSIONS.get(self.model, EMBEDDING_DIMENSIONS)

    def get_state(self) -> dict[str, Any]:
        return self._circuit_breaker.get_state()
