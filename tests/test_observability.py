"""Tests for task logging context and the task history store."""

import asyncio
from datetime import UTC, datetime, timedelta

import structlog

from research_engine.observability import TaskHistory, bind_task_context, clear_task_context
from research_engine.research import ResearchContext, StepKind, StepStatus, Task, TaskStatus, TaskType
from research_engine.research.models import ExecutionStep


def make_task(task_id: str, status: TaskStatus = TaskStatus.PENDING, **kwargs) -> Task:
    return Task(id=task_id, type=TaskType.RESEARCH, query=f"query {task_id}", status=status, **kwargs)


class TestTaskContext:
    """contextvars-bound task context."""

    async def test_context_isolated_between_tasks(self):
        async def worker(task_id: str) -> None:
            bind_task_context(task_id, "research")
            await asyncio.sleep(0)
            context = structlog.contextvars.get_contextvars()
            assert context["task_id"] == task_id
            assert context["task_type"] == "research"
            clear_task_context()
            await asyncio.sleep(0)
            assert "task_id" not in structlog.contextvars.get_contextvars()

        await asyncio.gather(worker("t1"), worker("t2"), worker("t3"))

    def test_clear_keeps_unrelated_keys(self):
        structlog.contextvars.bind_contextvars(request_id="r1")
        bind_task_context("t1", "analysis")
        clear_task_context()

        context = structlog.contextvars.get_contextvars()
        assert context.get("request_id") == "r1"
        assert "task_id" not in context
        assert "task_type" not in context
        structlog.contextvars.clear_contextvars()

    async def test_runner_clears_context(self, runner):
        task = await runner.create_task(TaskType.ANALYSIS, "query")
        await runner.execute_task(task)
        assert "task_id" not in structlog.contextvars.get_contextvars()


class TestTaskHistory:
    """SQLite task snapshots."""

    async def test_record_and_get_round_trip(self, tmp_path):
        history = TaskHistory(db_path=tmp_path / "tasks.db")
        task = make_task(
            "t1",
            status=TaskStatus.COMPLETED,
            result=ResearchContext(query="query t1", findings=("f",), sources=("s",), synthesis="done", confidence=0.5),
            steps=[ExecutionStep(index=1, kind=StepKind.TASK_START, description="start")],
        )

        await history.record(task)
        loaded = await history.get("t1")

        assert loaded == task
        assert await history.get("missing") is None

    async def test_record_overwrites(self, tmp_path):
        history = TaskHistory(db_path=tmp_path / "tasks.db")
        task = make_task("t1")
        await history.record(task)

        task.status = TaskStatus.FAILED
        task.error = "boom"
        task.steps.append(ExecutionStep(index=1, kind=StepKind.TASK_ERROR, status=StepStatus.FAILED, description="boom"))
        await history.record(task)

        loaded = await history.get("t1")
        assert loaded.status == TaskStatus.FAILED
        assert loaded.error == "boom"
        assert len(await history.list_tasks()) == 1

    async def test_list_newest_first_with_filter(self, tmp_path):
        history = TaskHistory(db_path=tmp_path / "tasks.db")
        now = datetime.now(UTC)
        await history.record(make_task("old", created_at=now - timedelta(minutes=5)))
        await history.record(make_task("new", status=TaskStatus.COMPLETED, created_at=now))

        assert [t.id for t in await history.list_tasks()] == ["new", "old"]
        assert [t.id for t in await history.list_tasks(status=TaskStatus.PENDING)] == ["old"]
        assert len(await history.list_tasks(limit=1)) == 1

    async def test_stats(self, tmp_path):
        history = TaskHistory(db_path=tmp_path / "tasks.db")
        await history.record(make_task("a", status=TaskStatus.COMPLETED))
        await history.record(make_task("b", status=TaskStatus.COMPLETED))
        await history.record(make_task("c", status=TaskStatus.FAILED))
        await history.record(make_task("d", status=TaskStatus.RUNNING))

        stats = await history.stats()
        assert stats["total_tasks"] == 4
        assert stats["running_count"] == 1
        assert stats["by_type"] == {"research": 4}
        assert stats["success_rate"] == 66.7

    async def test_cleanup_removes_only_old_terminal_tasks(self, tmp_path):
        history = TaskHistory(db_path=tmp_path / "tasks.db")
        old = datetime.now(UTC) - timedelta(days=30)
        await history.record(make_task("old-done", status=TaskStatus.COMPLETED, created_at=old))
        await history.record(make_task("old-running", status=TaskStatus.RUNNING, created_at=old))
        await history.record(make_task("recent-done", status=TaskStatus.COMPLETED))

        assert await history.cleanup(days=7) == 1
        assert {t.id for t in await history.list_tasks()} == {"old-running", "recent-done"}
