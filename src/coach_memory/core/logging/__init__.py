"""Structured logging module.

This module provides utilities for structured logging using structlog and logfire.
"""

from .context import (
    bind_owner_context,
    clear_log_context,
    get_log_context,
    owner_log_context,
    set_log_context,
    update_log_context,
)
from .setup import get_logger, setup_logging

__all__ = [
    "bind_owner_context",
    "clear_log_context",
    # Context management
    "get_log_context",
    # Setup
    "get_logger",
    "owner_log_context",
    "set_log_context",
    "setup_logging",
    "update_log_context",
]
