"""Web search provider for shelter and resource lookups."""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

import requests
from pydantic import ValidationError

from errors import ProviderUnavailable
from llm.resilience import RetryPolicy, RateLimiter, call_with_retry
from schemas.evidence import SearchHit, SearchResponse

logger = logging.getLogger(__name__)


class BaseSearchProvider(ABC):
    """Abstract search provider."""

    @abstractmethod
    async def search(self, query: str, max_results: Optional[int] = None) -> SearchResponse:
        """
        Run a web search.

        Raises:
            ProviderUnavailable: If the provider cannot answer
        """
        pass

    def is_available(self) -> bool:
        return True


class TavilySearchProvider(BaseSearchProvider):
    """
    Tavily search API provider.

    Requests are blocking ``requests`` calls moved to a worker thread, and
    every search goes through the shared retry/timeout/rate-limit wrapper.
    """

    API_URL = "https://api.tavily.com/search"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = 8.0,
        max_results: int = 8,
        search_depth: str = "basic",
        policy: Optional[RetryPolicy] = None,
        rate_limiter: Optional[RateLimiter] = None
    ):
        """
        Initialize Tavily provider.

        Args:
            api_key: Tavily API key (falls back to TAVILY_API_KEY env var)
            timeout: HTTP timeout in seconds
            max_results: Default number of hits requested
            search_depth: "basic" or "advanced"
            policy: Retry policy for each search
            rate_limiter: Optional shared rate limiter
        """
        self.api_key = api_key or os.environ.get("TAVILY_API_KEY")
        self.timeout = timeout
        self.max_results = max_results
        self.search_depth = search_depth
        self.policy = policy or RetryPolicy(timeout_seconds=timeout + 1)
        self.rate_limiter = rate_limiter

        if not self.api_key:
            logger.warning("No Tavily API key provided")

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _get_headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _search_sync(self, query: str, max_results: int) -> SearchResponse:
        if not self.api_key:
            raise ProviderUnavailable("tavily", "no API key configured", retryable=False)

        payload = {
            "query": query,
            "search_depth": self.search_depth,
            "max_results": max_results,
            "include_answer": False,
            "include_raw_content": False,
        }

        try:
            response = requests.post(
                self.API_URL,
                json=payload,
                headers=self._get_headers(),
                timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            raise ProviderUnavailable("tavily", f"Request timeout after {self.timeout}s")
        except requests.exceptions.ConnectionError as e:
            raise ProviderUnavailable("tavily", f"Connection error: {e}")

        if response.status_code in (401, 403):
            raise ProviderUnavailable(
                "tavily", f"Authentication failed: {response.status_code}", retryable=False
            )
        if response.status_code == 429 or response.status_code >= 500:
            raise ProviderUnavailable("tavily", f"API returned status {response.status_code}")
        if response.status_code != 200:
            raise ProviderUnavailable(
                "tavily",
                f"API returned status {response.status_code}: {response.text}",
                retryable=False
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderUnavailable("tavily", f"Invalid JSON response: {e}", retryable=False)

        if not isinstance(data, dict):
            logger.warning(f"Unexpected Tavily response format: {type(data)}")
            return SearchResponse(query=query)

        hits = []
        for item in data.get("results") or []:
            try:
                hits.append(SearchHit(
                    title=item.get("title") or "",
                    url=item.get("url") or "",
                    content=item.get("content") or "",
                    score=float(item.get("score") or 0.0),
                ))
            except (ValidationError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Failed to parse search hit: {e}")
                continue

        return SearchResponse(query=query, answer=data.get("answer"), results=hits)

    async def search(self, query: str, max_results: Optional[int] = None) -> SearchResponse:
        """Search Tavily with retry, timeout and rate limiting."""
        limit = max_results or self.max_results
        logger.info(f"Searching Tavily for: {query[:100]}")
        response = await call_with_retry(
            lambda: asyncio.to_thread(self._search_sync, query, limit),
            provider="tavily",
            policy=self.policy,
            rate_limiter=self.rate_limiter,
        )
        logger.info(f"Tavily returned {len(response.results)} results")
        return response
