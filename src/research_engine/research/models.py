"""Data models for research tasks, their execution trace and results."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _now() -> datetime:
    return datetime.now(UTC)


class TaskType(str, Enum):
    """Pipeline variant a task is dispatched to."""

    RESEARCH = "research"
    ANALYSIS = "analysis"
    SYNTHESIS = "synthesis"


class TaskStatus(str, Enum):
    """Task execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED})


class StepKind(str, Enum):
    """Kinds of pipeline actions recorded in a task trace."""

    TASK_START = "task_start"
    PLAN = "plan"
    SEARCH = "search"
    FETCH = "fetch"
    FILTER = "filter"
    EXTRACT = "extract"
    MEMORIZE = "memorize"
    RECALL = "recall"
    ANALYZE = "analyze"
    SYNTHESIZE = "synthesize"
    SCORE = "score"
    TASK_COMPLETE = "task_complete"
    TASK_ERROR = "task_error"
    TASK_CANCELLED = "task_cancelled"


class StepStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ExecutionStep(BaseModel):
    """One recorded pipeline action. Immutable once appended."""

    model_config = ConfigDict(frozen=True)

    index: int
    kind: StepKind
    status: StepStatus = StepStatus.COMPLETED
    description: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_now)


class ResearchContext(BaseModel):
    """Synthesized output of a completed task."""

    model_config = ConfigDict(frozen=True)

    query: str
    findings: tuple[str, ...] = ()
    sources: tuple[str, ...] = ()
    synthesis: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("sources")
    @classmethod
    def _dedupe_sources(cls, sources: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(sources))

    def to_markdown(self) -> str:
        """Render as a markdown report."""
        findings = "\n".join(f"- {finding}" for finding in self.findings) or "- (none)"
        sources = "\n".join(f"- {source}" for source in self.sources) or "- (none)"
        return (
            f"# Research Report: {self.query}\n\n"
            f"{self.synthesis}\n\n"
            f"## Key Findings\n{findings}\n\n"
            f"## Sources\n{sources}\n\n"
            f"Confidence: {self.confidence:.2f}\n"
        )


class Task(BaseModel):
    """One unit of requested work with its lifecycle state."""

    id: str
    type: TaskType
    query: str
    options: dict[str, Any] = Field(default_factory=dict)
    status: TaskStatus = TaskStatus.PENDING
    result: ResearchContext | None = None
    error: str | None = None
    steps: list[ExecutionStep] = Field(default_factory=list)

    # Timestamps
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_seconds(self) -> float | None:
        """Calculate task duration in seconds."""
        if not self.started_at:
            return None
        end = self.completed_at or _now()
        return (end - self.started_at).total_seconds()


class HealthReport(BaseModel):
    """Liveness of the runner's collaborators."""

    status: str
    llm: bool
    memory: bool | None = None
    tools: dict[str, bool] = Field(default_factory=dict)
