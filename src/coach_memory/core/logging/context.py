"""Logging context utilities for structured logging.

Every engine operation is scoped to one owner; binding the owner id into the
structlog context vars makes it show up on every event emitted underneath,
including the ones logged by background access-tracking tasks (they inherit
the context of the task that spawned them).
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import structlog

# Context variable to store request-scoped logging context
# Use None as default to avoid mutable default value issues
_log_context: ContextVar[dict[str, Any] | None] = ContextVar("log_context", default=None)


def get_log_context() -> dict[str, Any]:
    """Get a copy of the current logging context."""
    context: dict[str, Any] | None = _log_context.get()
    if context is None:
        context = {}
        _log_context.set(context)
    return context.copy()


def set_log_context(context: dict[str, Any]) -> None:
    """Replace the logging context and mirror it into structlog."""
    _log_context.set(dict(context))
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**context)


def update_log_context(key: str, value: Any) -> None:
    """Update a single key in the logging context.

    Args:
        key: Context key to update
        value: Value to set
    """
    context = get_log_context()
    context[key] = value
    _log_context.set(context)
    structlog.contextvars.bind_contextvars(**{key: value})


def clear_log_context() -> None:
    """Clear the current logging context."""
    _log_context.set({})
    structlog.contextvars.clear_contextvars()


def bind_owner_context(owner_id: str, operation: str) -> None:
    """Tag subsequent log events with the owner and engine operation."""
    update_log_context("owner_id", owner_id)
    update_log_context("operation", operation)


@contextmanager
def owner_log_context(owner_id: str, operation: str) -> Iterator[None]:
    """Bind owner/operation for the duration of a block, then restore."""
    previous = get_log_context()
    bind_owner_context(owner_id, operation)
    try:
        yield
    finally:
        set_log_context(previous)
