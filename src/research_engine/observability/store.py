"""SQLite-based task history for persistence across restarts."""

import asyncio
from datetime import UTC, datetime, timedelta
from pathlib import Path

import aiosqlite

from ..research.models import Task, TaskStatus


class TaskHistory:
    """Async SQLite store of task snapshots.

    Stores one row per task, overwritten on every recorded transition, for:
    - History of past executions
    - Status queries after the in-memory registry is gone
    """

    def __init__(self, db_path: Path | None = None):
        """Initialize TaskHistory.

        Args:
            db_path: Path to SQLite database. Defaults to ~/.config/research-engine/tasks.db
        """
        if db_path is None:
            from ..config import settings

            db_path = settings.get_history_db_path()
        self.db_path = db_path
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create schema if not exists."""
        if self._initialized:
            return

        # Concurrent tasks can race on PRAGMAs/DDL.
        async with self._init_lock:
            if self._initialized:
                return

            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA journal_mode = WAL")
                await db.execute("PRAGMA busy_timeout = 5000")

                await db.execute("""
                    CREATE TABLE IF NOT EXISTS tasks (
                        task_id TEXT PRIMARY KEY,
                        task_type TEXT NOT NULL,
                        status TEXT NOT NULL,
                        query TEXT NOT NULL,
                        error TEXT,
                        step_count INTEGER DEFAULT 0,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        completed_at TEXT,
                        payload TEXT NOT NULL
                    )
                """)

                await db.execute("CREATE INDEX IF NOT EXISTS idx_status ON tasks(status)")
                await db.execute("CREATE INDEX IF NOT EXISTS idx_created_at ON tasks(created_at)")
                await db.commit()

            self._initialized = True

    async def record(self, task: Task) -> None:
        """Insert or overwrite the snapshot of a task."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO tasks (
                    task_id, task_type, status, query, error, step_count,
                    created_at, updated_at, completed_at, payload
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(task_id) DO UPDATE SET
                    status = excluded.status,
                    error = excluded.error,
                    step_count = excluded.step_count,
                    updated_at = excluded.updated_at,
                    completed_at = excluded.completed_at,
                    payload = excluded.payload
            """,
                (
                    task.id,
                    task.type.value,
                    task.status.value,
                    task.query,
                    task.error[:2000] if task.error else None,
                    len(task.steps),
                    task.created_at.isoformat(),
                    task.updated_at.isoformat(),
                    task.completed_at.isoformat() if task.completed_at else None,
                    task.model_dump_json(),
                ),
            )
            await db.commit()

    async def get(self, task_id: str) -> Task | None:
        """Get a single task by ID."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT payload FROM tasks WHERE task_id = ?", (task_id,)) as cursor:
                row = await cursor.fetchone()
                if row:
                    return Task.model_validate_json(row[0])
        return None

    async def list_tasks(self, limit: int = 100, status: TaskStatus | None = None) -> list[Task]:
        """Get task history, newest first, with optional status filtering."""
        await self.initialize()

        query = "SELECT payload FROM tasks"
        params: list = []
        if status:
            query += " WHERE status = ?"
            params.append(status.value)
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
                return [Task.model_validate_json(row[0]) for row in rows]

    async def stats(self) -> dict:
        """Get aggregate statistics."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT status, COUNT(*) FROM tasks GROUP BY status") as cursor:
                status_counts = {row[0]: row[1] for row in await cursor.fetchall()}

            async with db.execute("SELECT task_type, COUNT(*) FROM tasks GROUP BY task_type") as cursor:
                type_counts = {row[0]: row[1] for row in await cursor.fetchall()}

        finished = sum(status_counts.get(s.value, 0) for s in (TaskStatus.COMPLETED, TaskStatus.FAILED))
        completed = status_counts.get(TaskStatus.COMPLETED.value, 0)
        return {
            "by_status": status_counts,
            "by_type": type_counts,
            "total_tasks": sum(status_counts.values()),
            "running_count": status_counts.get(TaskStatus.RUNNING.value, 0),
            "success_rate": round(completed / finished * 100, 1) if finished else 0,
        }

    async def cleanup(self, days: int = 7) -> int:
        """Delete terminal tasks older than N days. Returns count deleted."""
        await self.initialize()

        cutoff = (datetime.now(UTC) - timedelta(days=days)).isoformat()
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                DELETE FROM tasks
                WHERE created_at < ? AND status IN (?, ?, ?)
            """,
                (cutoff, TaskStatus.COMPLETED.value, TaskStatus.FAILED.value, TaskStatus.CANCELLED.value),
            )
            await db.commit()
            return cursor.rowcount
