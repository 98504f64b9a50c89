"""Tavily web search client used for research-mode prompts."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any

import httpx


logger = logging.getLogger(__name__)

TAVILY_SEARCH_URL = "https://api.tavily.com/search"


class SearchError(Exception):
    """Raised when a search cannot be performed or the API rejects it."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


@dataclass
class SearchResult:
    title: str
    url: str
    content: str
    score: float | None = None


@dataclass
class SearchResponse:
    query: str
    answer: str | None = None
    results: list[SearchResult] = field(default_factory=list)

    def as_context(self) -> str:
        """Render the answer and results as prompt context."""
        parts: list[str] = []
        if self.answer:
            parts.append(f"Tavily Summary: {self.answer}\n")
        parts.append("Search Results:")
        parts.extend(f"- {r.title}: {r.content}" for r in self.results)
        return "\n".join(parts)


def _parse_response(query: str, data: dict[str, Any]) -> SearchResponse:
    results: list[SearchResult] = []
    for item in data.get("results") or []:
        if not isinstance(item, dict):
            continue
        score = item.get("score")
        results.append(
            SearchResult(
                title=str(item.get("title") or ""),
                url=str(item.get("url") or ""),
                content=str(item.get("content") or ""),
                score=float(score) if isinstance(score, (int, float)) else None,
            )
        )
    answer = data.get("answer")
    return SearchResponse(query=query, answer=str(answer) if answer else None, results=results)


class TavilySearchClient:
    """Async Tavily search over httpx."""

    def __init__(
        self,
        api_key: str | None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    async def search(
        self,
        query: str,
        *,
        max_results: int = 5,
        search_depth: str = "advanced",
        include_answer: bool = True,
    ) -> SearchResponse:
        if not self.api_key:
            raise SearchError("Missing Tavily API key. Set TAVILY_API_KEY.")
        if not query.strip():
            raise SearchError("Search query must be non-empty.")

        body = {
            "api_key": self.api_key,
            "query": query,
            "search_depth": search_depth,
            "include_answer": include_answer,
            "max_results": max_results,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(TAVILY_SEARCH_URL, json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning("Tavily search failed with HTTP %d", status)
            raise SearchError(f"Tavily API responded with {status}: {e.response.text}", status) from e
        except httpx.HTTPError as e:
            raise SearchError(f"Tavily request failed: {e}") from e
        except ValueError as e:
            raise SearchError("Tavily returned a non-JSON response.") from e

        if not isinstance(data, dict):
            raise SearchError("Tavily returned an unexpected response shape.")
        return _parse_response(query, data)
