"""research_assistant/search.py

Web-search collaborators for the tool-augmented strategy.

Exposed interfaces:
  SearchClient        - protocol the pipeline depends on
  DuckDuckGoSearch    - keyless DDG text search (no consolidated answer)
  TavilySearch        - Tavily API search with a synthesised answer
  build_search_client - pick a backend from settings
"""

from __future__ import annotations

# Standard Library
import logging
from typing import Any, Protocol

# Third-Party Libraries
import httpx
from ddgs import DDGS

# Local Modules
from research_assistant.config import AssistantSettings
from research_assistant.errors import ErrorKind, PipelineError
from research_assistant.models import SearchHit, SearchResponse

logger = logging.getLogger(__name__)

TAVILY_SEARCH_URL: str = "https://api.tavily.com/search"


class SearchClient(Protocol):
    def search(self, query: str, max_results: int = 5) -> SearchResponse: ...


class DuckDuckGoSearch:
    """DuckDuckGo text search, run in-process with no API key."""

    def search(self, query: str, max_results: int = 5) -> SearchResponse:
        """Search DuckDuckGo.

        Args:
            query: Natural-language search query.
            max_results: Cap on returned sources.

        Returns:
            A :class:`SearchResponse` with sources only.

        Raises:
            PipelineError: ``ToolUnavailable`` when the search itself fails.
        """
        logger.info("[search:ddg] query=%r max_results=%d", query, max_results)
        try:
            with DDGS() as ddgs:
                hits = [
                    SearchHit(url=hit.get("href", ""), title=hit.get("title", ""))
                    for hit in ddgs.text(query, max_results=max_results)
                ]
        except Exception as exc:
            logger.error("[search:ddg] DDG error: %s", exc, exc_info=True)
            raise PipelineError(ErrorKind.TOOL_UNAVAILABLE, f"Web search failed: {exc}") from exc

        hits = [hit for hit in hits if hit.url]
        logger.info("[search:ddg] returned %d results", len(hits))
        return SearchResponse(results=tuple(hits))


class TavilySearch:
    """Tavily search API client that also returns a consolidated answer."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self._owns_http = http_client is None
        self.http = http_client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http:
            self.http.close()

    def search(self, query: str, max_results: int = 5) -> SearchResponse:
        """Search via Tavily.

        Args:
            query: Natural-language search query.
            max_results: Cap on returned sources.

        Returns:
            A :class:`SearchResponse` with the answer and sources.

        Raises:
            PipelineError: ``ToolUnavailable`` on transport or HTTP errors.
        """
        payload: dict[str, Any] = {
            "api_key": self.api_key,
            "query": query,
            "max_results": max_results,
            "include_answer": True,
            "search_depth": "basic",
        }
        logger.info("[search:tavily] query=%r max_results=%d", query, max_results)
        try:
            response = self.http.post(TAVILY_SEARCH_URL, json=payload)
            response.raise_for_status()
            data: dict[str, Any] = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("[search:tavily] error: %s", exc, exc_info=True)
            raise PipelineError(ErrorKind.TOOL_UNAVAILABLE, f"Web search failed: {exc}") from exc

        hits = tuple(
            SearchHit(url=str(item.get("url", "")), title=str(item.get("title", "")))
            for item in data.get("results") or []
            if isinstance(item, dict) and item.get("url")
        )
        answer = data.get("answer")
        logger.info(
            "[search:tavily] answer=%s results=%d", bool(answer), len(hits)
        )
        return SearchResponse(
            consolidated_answer=str(answer) if answer else None,
            results=hits[:max_results],
        )


def build_search_client(settings: AssistantSettings) -> SearchClient:
    """Return the search backend named by ``settings.search_backend``.

    Tavily is only selected when an API key is configured; otherwise the
    keyless DuckDuckGo backend is used.
    """
    backend = settings.search_backend.strip().lower()
    if backend == "tavily":
        if settings.tavily_api_key:
            return TavilySearch(settings.tavily_api_key)
        logger.warning("TAVILY_API_KEY not set, falling back to DuckDuckGo")
    elif backend != "duckduckgo":
        logger.warning("Unknown search backend %r, using DuckDuckGo", backend)
    return DuckDuckGoSearch()
