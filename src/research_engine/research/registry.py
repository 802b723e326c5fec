"""In-memory task registry owned by one runner."""

import asyncio
import logging
from collections.abc import Collection
from datetime import UTC, datetime
from typing import Any

from .models import TERMINAL_STATUSES, ExecutionStep, ResearchContext, StepKind, StepStatus, Task, TaskStatus

logger = logging.getLogger(__name__)


class TaskRegistry:
    """Maps task id to Task for the lifetime of the process.

    Every read and write goes through one lock, and reads hand out deep copies,
    so a status transition is never observed half-applied.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._lock = asyncio.Lock()

    async def add(self, task: Task) -> None:
        async with self._lock:
            if task.id in self._tasks:
                raise ValueError(f"Task {task.id} is already registered")
            self._tasks[task.id] = task.model_copy(deep=True)

    async def get(self, task_id: str) -> Task | None:
        """Get a snapshot of a task by ID."""
        async with self._lock:
            task = self._tasks.get(task_id)
            return task.model_copy(deep=True) if task else None

    async def list_tasks(self, status: TaskStatus | None = None) -> list[Task]:
        """List task snapshots in creation order."""
        async with self._lock:
            return [t.model_copy(deep=True) for t in self._tasks.values() if status is None or t.status == status]

    async def status_of(self, task_id: str) -> TaskStatus | None:
        async with self._lock:
            task = self._tasks.get(task_id)
            return task.status if task else None

    async def transition(
        self,
        task_id: str,
        new_status: TaskStatus,
        expected: Collection[TaskStatus],
        result: ResearchContext | None = None,
        error: str | None = None,
    ) -> bool:
        """Move a task to ``new_status`` if its current status is in ``expected``.

        Returns:
            False (and changes nothing) for unknown ids or unexpected statuses.
        """
        async with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.status not in expected:
                return False

            now = datetime.now(UTC)
            task.status = new_status
            task.updated_at = now
            if new_status == TaskStatus.RUNNING:
                task.started_at = now
            elif new_status in TERMINAL_STATUSES:
                task.completed_at = now
            task.result = result if new_status == TaskStatus.COMPLETED else None
            task.error = error if new_status == TaskStatus.FAILED else None

            logger.debug(f"Task {task_id} -> {new_status.value}")
            return True

    async def append_step(
        self,
        task_id: str,
        kind: StepKind,
        description: str,
        status: StepStatus = StepStatus.COMPLETED,
        data: dict[str, Any] | None = None,
    ) -> ExecutionStep | None:
        """Append a step to a task's trace.

        Returns:
            The recorded step, or None when the task is unknown or already
            cancelled (only the cancellation marker itself is accepted then).
        """
        async with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return None
            if task.status == TaskStatus.CANCELLED and kind != StepKind.TASK_CANCELLED:
                return None

            step = ExecutionStep(index=len(task.steps) + 1, kind=kind, status=status, description=description, data=data or {})
            task.steps.append(step)
            task.updated_at = step.timestamp
            return step

    async def remove(self, task_id: str) -> bool:
        async with self._lock:
            return self._tasks.pop(task_id, None) is not None

    def __len__(self) -> int:
        return len(self._tasks)
