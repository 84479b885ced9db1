from .base import ApplicationError, ErrorCode, ErrorLevel, ServiceErrorDetails
from .circuit_breaker import CircuitBreaker, CircuitState, RetryWithCircuitBreaker
from .concurrency import OwnerLockRegistry
