"""Custom exceptions for the research engine."""


class ResearchEngineError(Exception):
    """Base exception for research engine errors."""

    pass


class LLMProviderError(ResearchEngineError):
    """Raised when LLM provider configuration is invalid."""

    pass


class InvalidInput(ResearchEngineError):
    """Raised when a task is constructed with bad parameters."""

    pass


class UnknownTask(ResearchEngineError):
    """Raised when an operation other than a status lookup targets an unknown task id."""

    pass


class UnknownTool(ResearchEngineError):
    """Raised when a tool name is not registered with the runner."""

    pass


class TaskStateError(ResearchEngineError):
    """Raised when a task is not in the status an operation requires."""

    pass


class TaskCancelled(ResearchEngineError):
    """Raised by a pipeline checkpoint once its task has been cancelled."""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} was cancelled")
        self.task_id = task_id


class ToolInvocationError(ResearchEngineError):
    """Raised when a single tool call (search, scrape) fails."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"{tool_name}: {message}")
        self.tool_name = tool_name


class GenerationError(ResearchEngineError):
    """Raised when a language-model call fails."""

    pass


class InsufficientInput(ResearchEngineError):
    """Raised when a synthesis task has no findings to work with."""

    pass


class EmbeddingError(ResearchEngineError):
    """Base exception for embedding service errors."""

    pass


class ProviderError(EmbeddingError):
    """Raised when the upstream embedding provider fails."""

    pass


class UnsupportedProvider(EmbeddingError):
    """Raised when the embedding provider is unknown or misconfigured."""

    pass


class DimensionMismatch(EmbeddingError):
    """Raised when two vectors of different length are compared."""

    pass


class InvalidConfiguration(EmbeddingError):
    """Raised when chunking parameters cannot make progress."""

    pass
