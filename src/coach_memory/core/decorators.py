"""Error handling decorators"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar, cast

from .base import ApplicationError, ErrorLevel
from .error_context import ErrorContextManager
from .logging import get_logger

logger = get_logger(__name__)
P = ParamSpec("P")
T = TypeVar("T")


def _log_error(func_name: str, error: Exception, fallback_level: ErrorLevel) -> None:
    level = error.level if isinstance(error, ApplicationError) else fallback_level
    with ErrorContextManager(error) as ctx:
        logger.log(
            level.to_logging_level(),
            f"Error in {func_name}: {error!s}",
            error_context=ctx.to_dict(),
            exc_info=True,
        )


def with_error_handling(
    error_level: ErrorLevel = ErrorLevel.ERROR,
    reraise: bool = True,
    default: Any = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator for logging errors in functions with structured context.

    Args:
        error_level: Severity for non-application errors (ApplicationError
            carries its own level)
        reraise: Whether to re-raise the error after logging
        default: Value returned instead of raising when ``reraise`` is False

    Returns:
        Decorated function with error handling
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        original_signature = inspect.signature(func)

        if asyncio.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
                try:
                    return await cast("Callable[P, Awaitable[T]]", func)(*args, **kwargs)
                except Exception as e:
                    _log_error(func.__name__, e, error_level)
                    if reraise:
                        raise
                    return cast("T", default)

            async_wrapper.__signature__ = original_signature  # type: ignore[attr-defined]
            return cast("Callable[P, T]", async_wrapper)

        @wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                _log_error(func.__name__, e, error_level)
                if reraise:
                    raise
                return cast("T", default)

        sync_wrapper.__signature__ = original_signature  # type: ignore[attr-defined]
        return sync_wrapper

    return decorator


def with_session(driver_attr: str = "driver") -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator to automatically manage Neo4j session lifecycle.

    The decorated coroutine receives a fresh session as its first argument
    after ``self``:

        @with_session()
        async def touch(self, session, owner_id, memory_ids):
            await session.run(query, ...)

    Args:
        driver_attr: Name of the attribute containing the AsyncDriver (default: "driver")
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(self_obj: Any, *args: Any, **kwargs: Any) -> T:
            driver = getattr(self_obj, driver_attr, None)

            if driver is None:
                raise AttributeError(
                    f"Object {self_obj.__class__.__name__} has no attribute '{driver_attr}'. "
                    f"Either provide the correct driver_attr or ensure the object has a driver."
                )

            async with driver.session(database=getattr(self_obj, "database", None)) as session:
                return await func(self_obj, session, *args, **kwargs)

        return wrapper

    return decorator
