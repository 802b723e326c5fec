"""SQLite-based memory store for text fragments and their vectors."""

import asyncio
import json
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import aiosqlite

from ..embeddings import cosine_similarity
from .models import MemoryEntry, SimilarityMatch

if TYPE_CHECKING:
    from ..research.models import ResearchContext

logger = logging.getLogger(__name__)


class MemoryStore:
    """Async SQLite store answering "most similar to X" queries.

    Vectors are stored as JSON and ranked in Python with cosine similarity,
    a linear scan that suits the per-user research memory sizes involved.
    """

    def __init__(self, db_path: Path | None = None):
        """Initialize MemoryStore.

        Args:
            db_path: Path to SQLite database. Defaults to ~/.config/research-engine/memory.db
        """
        if db_path is None:
            from ..config import settings

            db_path = settings.get_memory_db_path()
        self.db_path = db_path
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create schema if not exists."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA journal_mode = WAL")
                await db.execute("PRAGMA busy_timeout = 5000")

                await db.execute("""
                    CREATE TABLE IF NOT EXISTS memories (
                        id TEXT PRIMARY KEY,
                        text TEXT NOT NULL,
                        vector TEXT NOT NULL,
                        metadata TEXT NOT NULL,
                        type TEXT,
                        source TEXT,
                        created_at TEXT NOT NULL
                    )
                """)

                await db.execute("CREATE INDEX IF NOT EXISTS idx_memories_type ON memories(type)")
                await db.execute("CREATE INDEX IF NOT EXISTS idx_memories_created_at ON memories(created_at)")
                await db.commit()

            self._initialized = True

    async def store(self, text: str, vector: list[float], metadata: dict[str, Any] | None = None) -> str:
        """Persist a fragment and return its id."""
        await self.initialize()

        entry = MemoryEntry(id=uuid4().hex, text=text, vector=list(vector), metadata=dict(metadata or {}))
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO memories (id, text, vector, metadata, type, source, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    entry.id,
                    entry.text,
                    json.dumps(entry.vector),
                    json.dumps(entry.metadata, default=str),
                    entry.type,
                    entry.source,
                    entry.created_at.isoformat(),
                ),
            )
            await db.commit()
        return entry.id

    async def query_similar(
        self,
        vector: list[float],
        k: int = 10,
        threshold: float | None = None,
        type: str | None = None,
    ) -> list[SimilarityMatch]:
        """Return up to ``k`` entries ranked by cosine similarity to ``vector``.

        Entries stored with a different vector length are skipped. Ties keep insertion order.
        Only entries scoring at least ``threshold`` are kept when one is given.
        """
        await self.initialize()

        query = "SELECT * FROM memories"
        params: list = []
        if type:
            query += " WHERE type = ?"
            params.append(type)
        query += " ORDER BY rowid"

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()

        matches = []
        for row in rows:
            entry = self._row_to_entry(row)
            if len(entry.vector) != len(vector):
                continue
            similarity = cosine_similarity(vector, entry.vector)
            if threshold is None or similarity >= threshold:
                matches.append(SimilarityMatch(entry=entry, similarity=similarity))

        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:k]

    async def get(self, memory_id: str) -> MemoryEntry | None:
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM memories WHERE id = ?", (memory_id,)) as cursor:
                row = await cursor.fetchone()
                if row:
                    return self._row_to_entry(row)
        return None

    async def delete(self, memory_id: str) -> bool:
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def count(self) -> int:
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT COUNT(*) FROM memories") as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    async def stats(self) -> dict:
        """Get aggregate statistics."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT COALESCE(type, 'other'), COUNT(*) FROM memories GROUP BY type") as cursor:
                by_type = {row[0]: row[1] for row in await cursor.fetchall()}

            async with db.execute("SELECT COALESCE(source, 'unknown'), COUNT(*) FROM memories GROUP BY source") as cursor:
                by_source = {row[0]: row[1] for row in await cursor.fetchall()}

        return {
            "total_count": sum(by_type.values()),
            "by_type": by_type,
            "by_source": by_source,
        }

    async def clear_older_than(self, days: int = 90) -> int:
        """Delete memories older than N days. Returns count deleted."""
        await self.initialize()

        cutoff = (datetime.now(UTC) - timedelta(days=days)).isoformat()
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM memories WHERE created_at < ?", (cutoff,))
            await db.commit()
            return cursor.rowcount

    async def store_research_result(self, context: "ResearchContext", vector: list[float], metadata: dict[str, Any] | None = None) -> str:
        """Store a completed research context as a single ``research`` entry."""
        findings = "\n".join(f"- {finding}" for finding in context.findings)
        sources = "\n".join(f"- {source}" for source in context.sources)
        text = f"Research Query: {context.query}\nSummary: {context.synthesis}\nConfidence: {context.confidence}\n\nKey Findings:\n{findings}\n\nSources:\n{sources}"

        return await self.store(
            text,
            vector,
            {
                **(metadata or {}),
                "type": "research",
                "query": context.query,
                "confidence": context.confidence,
                "source_count": len(context.sources),
                "finding_count": len(context.findings),
            },
        )

    async def store_task_failure(self, query: str, error: str, vector: list[float], metadata: dict[str, Any] | None = None) -> str:
        """Store a failed task as a ``failure`` entry so later runs can see what went wrong."""
        return await self.store(
            f"Research Query: {query}\nFailed: {error}",
            vector,
            {**(metadata or {}), "type": "failure", "query": query, "error": error},
        )

    async def health(self) -> bool:
        """Check the database answers a trivial query."""
        try:
            await self.initialize()
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute("SELECT 1") as cursor:
                    await cursor.fetchone()
            return True
        except Exception as e:
            logger.warning(f"Memory store health check failed: {e}")
            return False

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> MemoryEntry:
        """Convert DB row to MemoryEntry."""
        try:
            metadata = json.loads(row["metadata"])
        except json.JSONDecodeError:
            metadata = {}

        return MemoryEntry(
            id=row["id"],
            text=row["text"],
            vector=json.loads(row["vector"]),
            metadata=metadata if isinstance(metadata, dict) else {},
            created_at=datetime.fromisoformat(row["created_at"]),
        )
