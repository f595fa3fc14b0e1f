"""Search-style enrichment providers (Tavily, SerpAPI)."""

from typing import Any

import httpx

from convograph.core.config import Settings
from convograph.core.logging import get_logger
from convograph.core.provider_chain import Provider
from convograph.core.schemas_providers import SearchRequest, SearchResponse

logger = get_logger(__name__)

TAVILY_SEARCH_URL = "https://api.tavily.com/search"
SERPAPI_BASE_URL = "https://serpapi.com/search"


class TavilySearchProvider(Provider[SearchRequest, SearchResponse]):
    """Tavily search with a synthesized answer."""

    name = "tavily"
    response_model = SearchResponse

    def __init__(self, api_key: str, timeout: float = 15.0):
        self.api_key = api_key
        self.timeout = timeout

    async def call(self, request: SearchRequest) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                TAVILY_SEARCH_URL,
                json={
                    "api_key": self.api_key,
                    "query": request.query,
                    "search_depth": request.depth,
                    "include_answer": True,
                    "max_results": request.max_results,
                },
            )
            response.raise_for_status()
            data = response.json()

        results = [
            {
                "title": item.get("title") or "",
                "url": item.get("url") or "",
                "content": item.get("content") or "",
            }
            for item in (data.get("results") or [])
            if isinstance(item, dict)
        ]
        logger.debug(f"Tavily search '{request.query[:50]}': {len(results)} results")
        return {"answer": data.get("answer"), "results": results}


class SerpApiSearchProvider(Provider[SearchRequest, SearchResponse]):
    """Google search via SerpAPI; answer box text stands in for an answer."""

    name = "serpapi"
    response_model = SearchResponse

    def __init__(self, api_key: str, timeout: float = 15.0):
        self.api_key = api_key
        self.timeout = timeout

    async def call(self, request: SearchRequest) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                SERPAPI_BASE_URL,
                params={
                    "api_key": self.api_key,
                    "q": request.query,
                    "num": request.max_results,
                    "engine": "google",
                },
            )
            response.raise_for_status()
            data = response.json()

        answer_box = data.get("answer_box")
        answer = None
        if isinstance(answer_box, dict):
            answer = answer_box.get("answer") or answer_box.get("snippet")

        results = []
        for item in (data.get("organic_results") or [])[: request.max_results]:
            if not isinstance(item, dict):
                continue
            results.append({
                "title": item.get("title") or "",
                "url": item.get("link") or "",
                "content": item.get("snippet") or "",
            })

        logger.debug(f"SerpAPI search '{request.query[:50]}': {len(results)} results")
        return {"answer": answer, "results": results}


def build_search_providers(settings: Settings) -> list[Provider[SearchRequest, SearchResponse]]:
    """Search providers in priority order, skipping any without credentials."""
    providers: list[Provider[SearchRequest, SearchResponse]] = []
    if settings.TAVILY_API_KEY:
        providers.append(TavilySearchProvider(settings.TAVILY_API_KEY, settings.PROVIDER_TIMEOUT_SECONDS))
    if settings.SERPAPI_API_KEY:
        providers.append(SerpApiSearchProvider(settings.SERPAPI_API_KEY, settings.PROVIDER_TIMEOUT_SECONDS))
    return providers
