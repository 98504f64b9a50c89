"""Web search clients."""

from .tavily import SearchError, SearchResponse, SearchResult, TavilySearchClient

__all__ = ["SearchError", "SearchResponse", "SearchResult", "TavilySearchClient"]
