"""Web search tool backed by DuckDuckGo, Tavily or SerpAPI."""

import asyncio
import logging
import time
from typing import Any

import httpx

from ..config import NO_KEY_PROVIDERS, SearchSettings
from ..exceptions import ToolInvocationError
from .base import SearchHit, Tool, ToolCapability

logger = logging.getLogger(__name__)

DUCKDUCKGO_URL = "https://api.duckduckgo.com/"
TAVILY_URL = "https://api.tavily.com/search"
SERPAPI_URL = "https://serpapi.com/search.json"

MAX_QUERY_LENGTH = 1000
TAVILY_MAX_RESULTS = 20


class WebSearchTool(Tool):
    """Search the web and return candidate sources (title, URL, snippet)."""

    name = "web_search"
    description = "Search the web for candidate sources"

    def __init__(
        self,
        provider: str = "duckduckgo",
        api_key: str | None = None,
        max_results: int = 10,
        timeout: float = 30.0,
        min_interval: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provider = provider
        self.api_key = api_key
        self.max_results = max_results
        self.min_interval = min_interval
        self.request_count = 0
        self._last_request = 0.0
        self._rate_lock = asyncio.Lock()
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, search_settings: SearchSettings, transport: httpx.AsyncBaseTransport | None = None) -> "WebSearchTool":
        return cls(
            provider=search_settings.provider,
            api_key=search_settings.get_api_key_for_provider(),
            max_results=search_settings.max_results,
            timeout=search_settings.timeout,
            min_interval=search_settings.min_interval,
            transport=transport,
        )

    @property
    def capability(self) -> ToolCapability:
        return ToolCapability(
            name=self.name,
            description=self.description,
            operations=("search",),
            rate_limit_per_second=(1.0 / self.min_interval) if self.min_interval > 0 else None,
            constraints={
                "provider": self.provider,
                "max_results": TAVILY_MAX_RESULTS if self.provider == "tavily" else self.max_results,
                "max_query_length": MAX_QUERY_LENGTH,
            },
        )

    async def invoke(self, args: dict[str, Any]) -> list[SearchHit]:
        """Run one search.

        Args:
            args: ``query`` (required) and optional ``max_results``.

        Raises:
            ToolInvocationError: On invalid queries, provider misconfiguration or HTTP failure.
        """
        query = args.get("query")
        max_results = int(args.get("max_results") or self.max_results)
        if not self.validate_query(query):
            raise ToolInvocationError(self.name, "Invalid search query")

        await self._enforce_rate_limit()

        try:
            match self.provider:
                case "duckduckgo":
                    hits = await self._search_duckduckgo(query, max_results)
                case "tavily":
                    hits = await self._search_tavily(query, max_results)
                case "serpapi":
                    hits = await self._search_serpapi(query, max_results)
                case _:
                    raise ToolInvocationError(self.name, f"Unsupported search provider: {self.provider}")
        except ToolInvocationError:
            raise
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            raise ToolInvocationError(self.name, f"{self.provider} search failed: {e}") from e

        logger.debug(f"Search '{query[:80]}' returned {len(hits)} hits")
        return hits

    @staticmethod
    def validate_query(query: Any) -> bool:
        return isinstance(query, str) and bool(query.strip()) and len(query) <= MAX_QUERY_LENGTH

    async def _enforce_rate_limit(self) -> None:
        async with self._rate_lock:
            elapsed = time.monotonic() - self._last_request
            if self._last_request and elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)
            self._last_request = time.monotonic()
            self.request_count += 1

    def _require_key(self) -> str:
        if not self.api_key:
            raise ToolInvocationError(self.name, f"API key required for search provider '{self.provider}'")
        return self.api_key

    async def _search_duckduckgo(self, query: str, max_results: int) -> list[SearchHit]:
        response = await self._client.get(
            DUCKDUCKGO_URL,
            params={"q": query, "format": "json", "no_html": 1, "skip_disambig": 1},
        )
        response.raise_for_status()
        data = response.json()

        hits: list[SearchHit] = []
        if data.get("Abstract") and data.get("AbstractURL"):
            hits.append(SearchHit(title=data.get("Heading") or "DuckDuckGo Result", url=data["AbstractURL"], snippet=data["Abstract"]))

        # Related topics may be nested one level inside named groups
        topics: list[dict] = []
        for topic in data.get("RelatedTopics") or []:
            topics.extend(topic.get("Topics", [topic]))
        for topic in topics:
            if topic.get("Text") and topic.get("FirstURL"):
                hits.append(SearchHit(title=topic["Text"].split(" - ")[0], url=topic["FirstURL"], snippet=topic["Text"]))

        return hits[:max_results]

    async def _search_tavily(self, query: str, max_results: int) -> list[SearchHit]:
        response = await self._client.post(
            TAVILY_URL,
            json={"query": query, "max_results": min(max_results, TAVILY_MAX_RESULTS), "search_depth": "basic", "include_images": False},
            headers={"Authorization": f"Bearer {self._require_key()}"},
        )
        response.raise_for_status()
        return [
            SearchHit(title=r.get("title") or r["url"], url=r["url"], snippet=r.get("content", ""), score=r.get("score"))
            for r in response.json().get("results", [])
        ]

    async def _search_serpapi(self, query: str, max_results: int) -> list[SearchHit]:
        response = await self._client.get(SERPAPI_URL, params={"q": query, "api_key": self._require_key()})
        response.raise_for_status()
        return [
            SearchHit(title=r.get("title") or r["link"], url=r["link"], snippet=r.get("snippet", ""))
            for r in response.json().get("organic_results", [])[:max_results]
        ]

    async def health(self) -> bool:
        return self.provider in NO_KEY_PROVIDERS or bool(self.api_key)

    async def aclose(self) -> None:
        await self._client.aclose()
