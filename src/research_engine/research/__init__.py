"""Research task orchestration: lifecycle, pipelines and scoring."""

from .machine import AnalysisMachine, ResearchMachine, StepRecorder, SynthesisMachine
from .models import ExecutionStep, HealthReport, ResearchContext, StepKind, StepStatus, Task, TaskStatus, TaskType
from .registry import TaskRegistry
from .runner import TaskRunner

__all__ = [
    "AnalysisMachine",
    "ExecutionStep",
    "HealthReport",
    "ResearchContext",
    "ResearchMachine",
    "StepKind",
    "StepRecorder",
    "StepStatus",
    "SynthesisMachine",
    "Task",
    "TaskRegistry",
    "TaskRunner",
    "TaskStatus",
    "TaskType",
]
