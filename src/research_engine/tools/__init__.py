"""Search and scraping tools behind one invocation contract."""

from .base import ScrapedPage, SearchHit, Tool, ToolCapability
from .scraper import ScraperTool
from .search import WebSearchTool

__all__ = [
    "ScrapedPage",
    "ScraperTool",
    "SearchHit",
    "Tool",
    "ToolCapability",
    "WebSearchTool",
]
