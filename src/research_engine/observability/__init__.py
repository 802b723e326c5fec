"""Observability module for task logging context and task history."""

from .logging import bind_task_context, clear_task_context, get_task_logger, setup_structured_logging
from .store import TaskHistory

__all__ = [
    "TaskHistory",
    "bind_task_context",
    "clear_task_context",
    "get_task_logger",
    "setup_structured_logging",
]
