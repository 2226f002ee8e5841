"""Web search HTTP client used to verify merchant hypotheses"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx

from merchant_discovery.config import settings
from merchant_discovery.domain.models import SearchResult, WebSearchResponse
from merchant_discovery.infrastructure.clients.rate_limiter import RateLimitedScheduler
from merchant_discovery.infrastructure.observability.metrics import web_search_counter

logger = logging.getLogger(__name__)


def summarize_results(results: List[SearchResult]) -> str:
    return "\n\n".join(
        f"{i}. {result.title}\n   {result.description}"
        for i, result in enumerate(results, start=1)
    )


class WebSearchClient(ABC):
    """Abstract base for web search providers"""

    @abstractmethod
    async def search(self, query: str, max_results: int = 5) -> WebSearchResponse:
        """
        Search the web for ``query``.

        Never raises: an unconfigured or failing provider yields zero results.
        """


class BraveSearchClient(WebSearchClient):
    """Client for the Brave Search web API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        scheduler: Optional[RateLimitedScheduler] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.brave_search_api_key
        self.base_url = base_url or settings.brave_search_base_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.scheduler = scheduler or RateLimitedScheduler(settings.web_search_min_interval_seconds)
        self._transport = transport

    async def search(self, query: str, max_results: int = 5) -> WebSearchResponse:
        if not self.api_key:
            logger.warning("Web search skipped: BRAVE_SEARCH_API_KEY is not configured")
            web_search_counter.labels(outcome="unconfigured").inc()
            return WebSearchResponse(query=query)

        try:
            results = await self.scheduler.run(self._fetch, query, max_results)
        except httpx.TimeoutException:
            logger.warning(f"Web search timeout after {self.timeout}s", extra={"query": query})
            web_search_counter.labels(outcome="failure").inc()
            return WebSearchResponse(query=query)
        except httpx.HTTPStatusError as e:
            logger.warning(f"Web search error: {e.response.status_code}", extra={"query": query})
            web_search_counter.labels(outcome="failure").inc()
            return WebSearchResponse(query=query)
        except (httpx.HTTPError, KeyError, ValueError, TypeError) as e:
            logger.warning(f"Web search failed: {e}", extra={"query": query})
            web_search_counter.labels(outcome="failure").inc()
            return WebSearchResponse(query=query)

        web_search_counter.labels(outcome="success" if results else "empty").inc()
        return WebSearchResponse(query=query, results=results, summary=summarize_results(results))

    async def _fetch(self, query: str, max_results: int) -> List[SearchResult]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(
                self.base_url,
                params={"q": query, "count": max_results},
                headers={
                    "Accept": "application/json",
                    "Accept-Encoding": "gzip",
                    "X-Subscription-Token": self.api_key,
                },
            )
            response.raise_for_status()
            data = response.json()

        web = data.get("web") if isinstance(data, dict) else None
        web_results = web.get("results") if isinstance(web, dict) else None
        if not isinstance(web_results, list):
            return []

        # Entries that are not objects are skipped
        return [
            SearchResult(
                title=item.get("title", ""),
                description=item.get("description", ""),
                url=item.get("url", ""),
                age=item.get("age"),
            )
            for item in web_results
            if isinstance(item, dict)
        ][:max_results]
