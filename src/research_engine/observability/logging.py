"""structlog setup and the per-task context carried by every log event."""

import logging

import structlog

TASK_CONTEXT_KEYS = ("task_id", "task_type")

# Libraries whose INFO output drowns out task events
NOISY_LOGGERS = ("httpx", "httpcore", "browser_use", "openai", "anthropic")

_configured = False


def setup_structured_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Route stdlib and structlog output through one processor chain.

    Safe to call more than once; only the first call configures anything.

    Args:
        level: Root log level name
        json_output: JSON lines when True, coloured console output otherwise
    """
    global _configured
    if _configured:
        return

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def bind_task_context(task_id: str, task_type: str) -> None:
    """Attach the task id and type to log events emitted in this async context."""
    structlog.contextvars.bind_contextvars(task_id=task_id, task_type=task_type)


def clear_task_context() -> None:
    """Drop the task keys, leaving any other bound context alone."""
    structlog.contextvars.unbind_contextvars(*TASK_CONTEXT_KEYS)


def get_task_logger(name: str = "research_engine") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
