"""Page scraper tool: fetch a URL and extract readable text."""

import logging
from typing import Any
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from ..config import ScraperSettings
from ..exceptions import ToolInvocationError
from .base import ScrapedPage, Tool, ToolCapability

logger = logging.getLogger(__name__)

NON_SCRAPABLE_EXTENSIONS = (
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".zip", ".rar", ".7z", ".tar", ".gz",
    ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".svg", ".webp",
    ".mp4", ".avi", ".mov", ".wmv", ".flv", ".webm",
    ".mp3", ".wav", ".ogg", ".flac", ".aac",
    ".exe", ".dmg", ".pkg", ".deb", ".rpm",
)  # fmt: skip

NON_SCRAPABLE_CONTENT_TYPES = (
    "application/pdf",
    "application/msword",
    "application/vnd.",
    "application/zip",
    "application/x-rar-compressed",
    "application/octet-stream",
    "image/",
    "video/",
    "audio/",
)

STRIPPED_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside", "form", "iframe"]


class ScraperTool(Tool):
    """Fetch a web page and return its title and main text."""

    name = "web_scraper"
    description = "Extract clean text content from web pages"

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = "Mozilla/5.0 (compatible; research-engine/0.1)",
        max_content_length: int = 50_000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.user_agent = user_agent
        self.max_content_length = max_content_length
        self._client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": user_agent},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, scraper_settings: ScraperSettings, transport: httpx.AsyncBaseTransport | None = None) -> "ScraperTool":
        return cls(
            timeout=scraper_settings.timeout,
            user_agent=scraper_settings.user_agent,
            max_content_length=scraper_settings.max_content_length,
            transport=transport,
        )

    @property
    def capability(self) -> ToolCapability:
        return ToolCapability(
            name=self.name,
            description=self.description,
            operations=("scrape",),
            constraints={
                "schemes": ["http", "https"],
                "max_content_length": self.max_content_length,
                "rejected_extensions": list(NON_SCRAPABLE_EXTENSIONS),
            },
        )

    @staticmethod
    def validate_url(url: Any) -> bool:
        """Accept only http(s) URLs that do not point at binary documents or media."""
        if not isinstance(url, str):
            return False
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return False
        return not parsed.path.lower().endswith(NON_SCRAPABLE_EXTENSIONS)

    async def invoke(self, args: dict[str, Any]) -> ScrapedPage:
        """Scrape one page.

        Args:
            args: ``url`` (required).

        Raises:
            ToolInvocationError: On invalid URLs, HTTP failures, non-HTML content or empty pages.
        """
        url = args.get("url")
        if not self.validate_url(url):
            raise ToolInvocationError(self.name, f"Invalid URL: {url}")

        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ToolInvocationError(self.name, f"HTTP {e.response.status_code} for {url}") from e
        except httpx.HTTPError as e:
            raise ToolInvocationError(self.name, f"Failed to fetch {url}: {e}") from e

        content_type = response.headers.get("content-type", "").lower()
        if any(t in content_type for t in NON_SCRAPABLE_CONTENT_TYPES):
            raise ToolInvocationError(self.name, f"Non-scrapable content type {content_type} for {url}")

        page = self.extract(url, response.text)
        if not page.content:
            raise ToolInvocationError(self.name, f"No text content found at {url}")

        logger.debug(f"Scraped {len(page.content)} characters from {url}")
        return page

    def extract(self, url: str, html: str) -> ScrapedPage:
        """Parse HTML into a ScrapedPage."""
        soup = BeautifulSoup(html, "html.parser")
        for tag in soup(STRIPPED_TAGS):
            tag.decompose()

        title = soup.title.get_text(strip=True) if soup.title else ""
        meta = soup.find("meta", attrs={"name": "description"})
        description = meta.get("content") if meta else None

        root = soup.find("main") or soup.find("article") or soup.body or soup
        text = " ".join(root.get_text(" ", strip=True).split())

        return ScrapedPage(
            url=url,
            title=title or url,
            content=text[: self.max_content_length],
            description=description,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
