"""Research task orchestrator: web research, analysis and synthesis with vector memory."""

from .config import settings
from .embeddings import EmbeddingService
from .exceptions import (
    EmbeddingError,
    GenerationError,
    InsufficientInput,
    InvalidInput,
    LLMProviderError,
    ResearchEngineError,
    TaskCancelled,
    TaskStateError,
    ToolInvocationError,
    UnknownTask,
    UnknownTool,
)
from .llm import LLMService
from .memory import MemoryStore
from .providers import get_llm
from .research import ResearchContext, Task, TaskRunner, TaskStatus, TaskType

__all__ = [
    "settings",
    "get_llm",
    "LLMService",
    "EmbeddingService",
    "MemoryStore",
    "TaskRunner",
    "Task",
    "TaskType",
    "TaskStatus",
    "ResearchContext",
    "ResearchEngineError",
    "LLMProviderError",
    "InvalidInput",
    "UnknownTask",
    "UnknownTool",
    "TaskStateError",
    "TaskCancelled",
    "ToolInvocationError",
    "GenerationError",
    "InsufficientInput",
    "EmbeddingError",
]
