"""Pytest configuration and fixtures for research-engine tests."""

import asyncio
from collections import defaultdict
from typing import Any
from unittest.mock import MagicMock

import pytest

from research_engine.config import AppSettings, MemorySettings, ResearchSettings
from research_engine.embeddings import EmbeddingService
from research_engine.exceptions import GenerationError, ToolInvocationError
from research_engine.llm import LLMService
from research_engine.memory import MemoryStore
from research_engine.research import TaskRunner
from research_engine.tools import ScrapedPage, SearchHit, Tool, ToolCapability


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: Tests that take longer to run")


class FakeLLM(LLMService):
    """LLMService double with canned answers and per-operation failure switches."""

    def __init__(self, plan: list[str] | None = None, relevant: Any = True, synthesis: str = "Synthesized narrative."):
        super().__init__(llm=MagicMock())
        self.plan = plan if plan is not None else ["quantum error correction", "surface codes"]
        self.relevant = relevant
        self.synthesis = synthesis
        self.fail: set[str] = set()
        self.healthy = True
        self.calls: dict[str, int] = defaultdict(int)
        self.synthesized: list[list[str]] = []

    def _maybe_fail(self, operation: str) -> None:
        self.calls[operation] += 1
        if operation in self.fail:
            raise GenerationError(f"{operation} failed")

    async def generate_research_plan(self, query: str, max_terms: int = 3) -> list[str]:
        self._maybe_fail("plan")
        return list(self.plan)[:max_terms]

    async def is_content_relevant(self, content: str, query: str) -> bool:
        self._maybe_fail("relevance")
        return self.relevant(content) if callable(self.relevant) else self.relevant

    async def extract_key_points(self, content: str) -> list[str]:
        self._maybe_fail("extract")
        words = content.split()
        return [f"Finding on {' '.join(words[:4])}", f"Detail about {' '.join(words[4:8]) or 'topic'}"]

    async def synthesize_findings(self, findings: list[str]) -> str:
        self._maybe_fail("synthesize")
        self.synthesized.append(list(findings))
        return self.synthesis

    async def health(self) -> bool:
        return self.healthy


class FakeSearchTool(Tool):
    """Search double: hits per query, default hits otherwise."""

    name = "web_search"
    description = "Fake web search"

    def __init__(self, hits: dict[str, list[SearchHit]] | None = None, default: list[SearchHit] | None = None):
        self.hits = hits or {}
        self.default = default if default is not None else []
        self.failing: set[str] = set()
        self.queries: list[str] = []
        self.healthy = True

    @property
    def capability(self) -> ToolCapability:
        return ToolCapability(name=self.name, description=self.description, operations=("search",))

    async def invoke(self, args: dict[str, Any]) -> list[SearchHit]:
        query = args["query"]
        self.queries.append(query)
        if query in self.failing:
            raise ToolInvocationError(self.name, f"search failed for {query}")
        return list(self.hits.get(query, self.default))

    async def health(self) -> bool:
        return self.healthy


class FakeScraperTool(Tool):
    """Scraper double: returns generated text unless the URL is marked failing."""

    name = "web_scraper"
    description = "Fake page scraper"

    def __init__(self, pages: dict[str, str] | None = None):
        self.pages = pages or {}
        self.failing: set[str] = set()
        self.fetched: list[str] = []
        self.entered = asyncio.Event()
        self.gate: asyncio.Event | None = None

    @property
    def capability(self) -> ToolCapability:
        return ToolCapability(name=self.name, description=self.description, operations=("scrape",))

    async def invoke(self, args: dict[str, Any]) -> ScrapedPage:
        url = args["url"]
        self.fetched.append(url)
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if url in self.failing:
            raise ToolInvocationError(self.name, f"HTTP 500 for {url}")
        content = self.pages.get(url, f"Quantum computing article from {url} covering qubits coherence decoherence and error rates")
        return ScrapedPage(url=url, title=f"Page {url}", content=content)


def make_hits(*urls: str) -> list[SearchHit]:
    return [SearchHit(title=f"Result {url}", url=url, snippet="snippet") for url in urls]


@pytest.fixture
def app_settings() -> AppSettings:
    """Settings with memory disabled and no report saving."""
    return AppSettings(
        research=ResearchSettings(max_sources=5, save_directory=None),
        memory=MemorySettings(enabled=False),
    )


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def search_tool() -> FakeSearchTool:
    return FakeSearchTool(default=make_hits("https://a.example/1", "https://b.example/2", "https://c.example/3"))


@pytest.fixture
def scraper_tool() -> FakeScraperTool:
    return FakeScraperTool()


@pytest.fixture
def runner(fake_llm, search_tool, scraper_tool, app_settings) -> TaskRunner:
    return TaskRunner(fake_llm, [search_tool, scraper_tool], settings=app_settings)


@pytest.fixture
async def embeddings():
    service = EmbeddingService(provider="hash", model="sentence-transformers/all-MiniLM-L6-v2")
    yield service
    await service.aclose()


@pytest.fixture
def memory_store(tmp_path) -> MemoryStore:
    return MemoryStore(db_path=tmp_path / "memory.db")
