"""
Web Tools
=========

Tools for fetching pages and searching the web.

These tools allow the agent to:
- Fetch a URL and read it as plain text
- Search the web through the Brave Search API

Web API Notes:
- Uses httpx for async HTTP requests
- Search needs a Brave Search subscription token (BRAVE_API_KEY)
- Fetched HTML is reduced to text with simple tag stripping, not a full
  readability extraction
"""

import html
import re
from pathlib import Path
from typing import Any

import httpx

from nanobot.exceptions import ToolExecutionError
from nanobot.tools import ToolParameter, ToolRegistry, int_arg, require_arg
from nanobot.utils.logger import Logger

logger = Logger("WebTools")

USER_AGENT = "Nanobot/1.0"
FETCH_TIMEOUT = 30.0
DEFAULT_MAX_CHARS = 50_000
DEFAULT_SEARCH_COUNT = 5

_SCRIPT_RE = re.compile(r"<(script|style|noscript)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_BLOCK_RE = re.compile(r"</?(p|div|br|li|tr|h[1-6])[^>]*>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACES_RE = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")


def html_to_text(markup: str) -> str:
    """Strip scripts, styles and tags, keeping paragraph breaks."""
    text = _SCRIPT_RE.sub("", markup)
    text = _BLOCK_RE.sub("\n", text)
    text = _TAG_RE.sub("", text)
    text = html.unescape(text)
    text = _SPACES_RE.sub(" ", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return "\n".join(line.strip() for line in text.splitlines()).strip()


class WebTools:
    """
    Web fetch and search executors sharing one configuration.

    Example:
        web = WebTools(search_api_key=config.web.search_api_key)
        web.register(registry)
    """

    def __init__(
        self,
        search_api_key: str | None = None,
        search_api_base: str = "https://api.search.brave.com",
        transport: httpx.AsyncBaseTransport | None = None
    ):
        self.search_api_key = search_api_key
        self.search_api_base = search_api_base.rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            follow_redirects=True,
            timeout=FETCH_TIMEOUT,
            headers={"User-Agent": USER_AGENT},
        )

    # ==========================================================================
    # Tool: Fetch
    # ==========================================================================

    async def fetch(self, args: dict[str, Any], workspace: Path | None = None) -> str:
        url = require_arg(args, "url")
        max_chars = int_arg(args, "max_chars", DEFAULT_MAX_CHARS)

        if not url.startswith(("http://", "https://")):
            raise ToolExecutionError(f"Only http and https URLs are supported: {url}")

        try:
            async with self._client() as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise ToolExecutionError(f"Error fetching URL: {e}") from e

        if response.status_code >= 400:
            raise ToolExecutionError(f"HTTP Error {response.status_code} for URL: {url}")

        body = response.text
        if not body:
            return f"No content received from: {url}"

        content_type = response.headers.get("content-type", "")
        text = html_to_text(body) if "html" in content_type or "<html" in body[:500].lower() else body

        truncated = len(text) > max_chars
        if truncated:
            text = text[:max_chars] + "\n\n[Content truncated]"

        lines = [
            f"URL: {url}",
            f"Final URL: {response.url}",
            f"Status: {response.status_code}",
            f"Length: {len(text)} chars",
        ]
        if truncated:
            lines.append("(Truncated)")
        lines.extend(["", "---", "", text])
        return "\n".join(lines)

    # ==========================================================================
    # Tool: Search
    # ==========================================================================

    async def search(self, args: dict[str, Any], workspace: Path | None = None) -> list[dict[str, str]]:
        """Run a Brave web search and return title, url and description per hit."""
        if not self.search_api_key:
            raise ToolExecutionError("Web search is not configured. Set BRAVE_API_KEY in .env")

        query = require_arg(args, "query")
        count = max(1, min(int_arg(args, "count", DEFAULT_SEARCH_COUNT), 20))

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.search_api_base}/res/v1/web/search",
                    params={"q": query, "count": count},
                    headers={
                        "Accept": "application/json",
                        "X-Subscription-Token": self.search_api_key,
                    },
                )
        except httpx.HTTPError as e:
            raise ToolExecutionError(f"Web search failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Search API error: {response.status_code} - {response.text[:200]}")
            raise ToolExecutionError(f"Search API returned {response.status_code}")

        results = response.json().get("web", {}).get("results", [])
        return [
            {
                "title": r.get("title", ""),
                "url": r.get("url", ""),
                "description": html_to_text(r.get("description", "")),
            }
            for r in results[:count]
        ]

    # ==========================================================================
    # Registration
    # ==========================================================================

    def register(self, registry: ToolRegistry) -> None:
        registry.register(
            "web_fetch",
            "Fetch a web page and return its readable text.",
            {
                "url": ToolParameter("string", "The http(s) URL to fetch", required=True),
                "max_chars": ToolParameter("integer", f"Maximum characters to return (default {DEFAULT_MAX_CHARS})"),
            },
            False,
            self.fetch,
        )
        registry.register(
            "web_search",
            "Search the web. Returns titles, URLs and snippets.",
            {
                "query": ToolParameter("string", "Search query", required=True),
                "count": ToolParameter("integer", f"Number of results, 1-20 (default {DEFAULT_SEARCH_COUNT})"),
            },
            False,
            self.search,
        )
        logger.info("Registered web tools" + ("" if self.search_api_key else " (search not configured)"))


def register_web_tools(
    registry: ToolRegistry,
    search_api_key: str | None = None,
    search_api_base: str = "https://api.search.brave.com"
) -> WebTools:
    web = WebTools(search_api_key, search_api_base)
    web.register(registry)
    return web
