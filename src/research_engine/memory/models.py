"""Data models for the memory store."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class MemoryEntry:
    """A stored text fragment and its vector."""

    id: str
    text: str
    vector: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def type(self) -> str | None:
        return self.metadata.get("type")

    @property
    def source(self) -> str | None:
        return self.metadata.get("source")


@dataclass
class SimilarityMatch:
    """A memory entry ranked against a query vector."""

    entry: MemoryEntry
    similarity: float
