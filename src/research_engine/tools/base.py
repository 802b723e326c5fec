"""Uniform capability interface over external actions."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ToolCapability:
    """What a tool can do, exposed for introspection."""

    name: str
    description: str
    operations: tuple[str, ...]
    rate_limit_per_second: float | None = None
    constraints: dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchHit:
    """A candidate source returned by a search."""

    title: str
    url: str
    snippet: str = ""
    score: float | None = None


@dataclass
class ScrapedPage:
    """Full text fetched from one source."""

    url: str
    title: str
    content: str
    description: str | None = None


class Tool(ABC):
    """An external capability invoked by the task runner.

    ``invoke`` raises ``ToolInvocationError`` for every failure so callers can
    record it against the item being processed and move on.
    """

    name: str
    description: str

    @property
    @abstractmethod
    def capability(self) -> ToolCapability: ...

    @abstractmethod
    async def invoke(self, args: dict[str, Any]) -> Any: ...

    async def health(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None
