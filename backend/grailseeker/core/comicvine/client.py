"""ComicVine API client with rate limiting, retry logic, and caching.

Only the two read-only lookups the scanner needs are exposed as typed
helpers: volume search and issue-within-volume search. Every failure mode
(timeout, non-2xx, ComicVine error status, malformed payload) is raised as a
CatalogError so callers have one exception type to degrade on.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import random
import time
from collections import deque
from pathlib import Path
from typing import Any

import httpx
import structlog

from grailseeker.core.errors import CatalogError

logger = structlog.get_logger("grailseeker.core.comicvine.client")

USER_AGENT = "GrailSeeker/1.0 (+https://panelcomics.com)"

# ComicVine returns status_code 1 for success inside the JSON body
COMICVINE_OK = 1

MAX_VOLUME_SEARCH_LIMIT = 20
MAX_ISSUE_SEARCH_LIMIT = 10

VOLUME_FIELDS = "id,name,publisher,start_year"
ISSUE_FIELDS = "id,name,issue_number,volume,cover_date,image"


class ComicVineClient:
    """ComicVine API client.

    Features:
    - Sliding-window rate limiting shared by concurrent callers
    - Exponential backoff with jitter on HTTP 420/429 and network errors
    - Response caching to disk
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://comicvine.gamespot.com/api",
        timeout: float = 15.0,
        rate_limit: int = 40,  # requests per period
        rate_limit_period: int = 60,  # seconds
        max_retries: int = 2,
        cache_dir: Path | None = None,
        cache_enabled: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize ComicVine client.

        Args:
            api_key: ComicVine API key
            base_url: ComicVine API base URL
            timeout: Per-request timeout in seconds
            rate_limit: Maximum requests per rate_limit_period
            rate_limit_period: Time window in seconds for rate limiting
            max_retries: Maximum number of retries on rate limit and network errors
            cache_dir: Directory for cached responses (required when cache_enabled)
            cache_enabled: Whether to cache responses on disk
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.rate_limit = rate_limit
        self.rate_limit_period = rate_limit_period
        self.max_retries = max_retries
        self.cache_enabled = cache_enabled and cache_dir is not None
        self.cache_dir = cache_dir
        self._transport = transport

        self._request_times: deque[float] = deque()
        self._rate_limit_lock = asyncio.Lock()

        if self.cache_enabled and self.cache_dir is not None:
            self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _get_cache_key(self, endpoint: str, params: dict[str, Any]) -> str:
        """Generate cache key from endpoint and params."""
        sorted_params = sorted(params.items())
        cache_data = f"{endpoint}:{json.dumps(sorted_params, sort_keys=True)}"
        return hashlib.sha256(cache_data.encode()).hexdigest()

    def _get_cache_path(self, cache_key: str) -> Path:
        """Get cache file path for a cache key."""
        assert self.cache_dir is not None
        return self.cache_dir / f"{cache_key}.json"

    def _load_from_cache(self, cache_key: str) -> dict[str, Any] | None:
        """Load response from cache if available."""
        if not self.cache_enabled:
            return None

        cache_path = self._get_cache_path(cache_key)
        if not cache_path.exists():
            return None

        try:
            with open(cache_path) as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Failed to load cache", cache_key=cache_key[:8], error=str(e))
            return None

    def _save_to_cache(self, cache_key: str, data: dict[str, Any]) -> None:
        """Save response to cache."""
        if not self.cache_enabled:
            return

        try:
            with open(self._get_cache_path(cache_key), "w") as f:
                json.dump(data, f)
        except OSError as e:
            logger.warning("Failed to save cache", cache_key=cache_key[:8], error=str(e))

    async def _wait_for_rate_limit(self) -> None:
        """Wait until another request fits in the rate limit window.

        The lock serialises the bookkeeping so concurrent fan-out calls never
        exceed the limit together.
        """
        async with self._rate_limit_lock:
            now = time.monotonic()

            while self._request_times and self._request_times[0] < now - self.rate_limit_period:
                self._request_times.popleft()

            if len(self._request_times) >= self.rate_limit:
                wait_time = self._request_times[0] + self.rate_limit_period - now + 0.1
                if wait_time > 0:
                    logger.debug(
                        "Rate limit reached, waiting",
                        wait_seconds=wait_time,
                        current_count=len(self._request_times),
                    )
                    await asyncio.sleep(wait_time)
                    now = time.monotonic()
                    while (
                        self._request_times
                        and self._request_times[0] < now - self.rate_limit_period
                    ):
                        self._request_times.popleft()

            self._request_times.append(now)

    def _build_url(self, endpoint: str) -> str:
        """Build ComicVine API URL for an endpoint."""
        return f"{self.base_url}/{endpoint.strip('/')}/"

    async def fetch(
        self,
        endpoint: str,
        params: dict[str, Any],
        operation: str = "fetch",
        use_cache: bool = True,
    ) -> dict[str, Any]:
        """Fetch data from ComicVine API with rate limiting, retry, and caching.

        Args:
            endpoint: API endpoint (e.g., "search" or "issues")
            params: Query parameters (api_key and format are added automatically)
            operation: Operation name recorded on raised errors and logs
            use_cache: Whether to use cached responses if available

        Returns:
            JSON response body from ComicVine

        Raises:
            CatalogError: For HTTP errors, network errors (after retries),
                ComicVine error statuses and malformed payloads
        """
        cache_key = self._get_cache_key(endpoint, params)
        if use_cache:
            cached = self._load_from_cache(cache_key)
            if cached is not None:
                logger.debug("Using cached response", endpoint=endpoint, cache_key=cache_key[:8])
                return cached

        request_params = {"format": "json", **params, "api_key": self.api_key}
        url = self._build_url(endpoint)
        logger.debug("Calling ComicVine API", endpoint=endpoint, operation=operation)

        for attempt in range(self.max_retries + 1):
            await self._wait_for_rate_limit()
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self._transport
                ) as client:
                    response = await client.get(
                        url,
                        params=request_params,
                        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
                    )
                    response.raise_for_status()
                    data = response.json()
            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code in (420, 429) and attempt < self.max_retries:
                    base_wait = 2**attempt
                    wait_time = base_wait + random.uniform(0, base_wait * 0.5)
                    logger.warning(
                        "Rate limited by ComicVine, retrying",
                        status_code=status_code,
                        attempt=attempt + 1,
                        wait_seconds=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise CatalogError(
                    f"ComicVine request failed: HTTP {status_code}",
                    operation=operation,
                    status_code=status_code,
                ) from e
            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    wait_time = 2**attempt
                    logger.warning(
                        "Network error, retrying",
                        error=str(e),
                        attempt=attempt + 1,
                        wait_seconds=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise CatalogError(
                    f"ComicVine request failed: {type(e).__name__}", operation=operation
                ) from e
            except ValueError as e:
                raise CatalogError(
                    "ComicVine returned a non-JSON body", operation=operation
                ) from e

            self._validate_payload(data, operation)
            if use_cache:
                self._save_to_cache(cache_key, data)
            return data

        raise CatalogError("ComicVine request failed after retries", operation=operation)

    @staticmethod
    def _validate_payload(data: Any, operation: str) -> None:
        """Reject payloads that are not a successful ComicVine envelope."""
        if not isinstance(data, dict):
            raise CatalogError("ComicVine returned invalid data structure", operation=operation)

        status_code = data.get("status_code", COMICVINE_OK)
        if status_code != COMICVINE_OK:
            raise CatalogError(
                f"ComicVine error status {status_code}: {data.get('error', 'unknown')}",
                operation=operation,
            )

    @staticmethod
    def _results_list(data: dict[str, Any]) -> list[dict[str, Any]]:
        results = data.get("results")
        if not isinstance(results, list):
            return []
        return [item for item in results if isinstance(item, dict)]

    async def search_volumes(
        self, query: str, limit: int = MAX_VOLUME_SEARCH_LIMIT
    ) -> list[dict[str, Any]]:
        """Search volumes by free text.

        Args:
            query: Search text (usually the parsed title)
            limit: Maximum number of results (capped at 20)

        Returns:
            Volume records with id, name, publisher and start_year
        """
        data = await self.fetch(
            "search",
            {
                "query": query,
                "resources": "volume",
                "field_list": VOLUME_FIELDS,
                "limit": min(limit, MAX_VOLUME_SEARCH_LIMIT),
            },
            operation="search_volumes",
        )
        return self._results_list(data)

    async def search_issues(
        self,
        volume_id: str | int,
        issue_number: str,
        limit: int = MAX_ISSUE_SEARCH_LIMIT,
    ) -> list[dict[str, Any]]:
        """Find a specific issue number within a volume.

        Args:
            volume_id: ComicVine volume id
            issue_number: Issue number exactly as parsed from the input
            limit: Maximum number of results (capped at 10)

        Returns:
            Issue records with id, issue_number, volume, cover_date and image
        """
        data = await self.fetch(
            "issues",
            {
                "filter": f"volume:{volume_id},issue_number:{issue_number}",
                "field_list": ISSUE_FIELDS,
                "limit": min(limit, MAX_ISSUE_SEARCH_LIMIT),
            },
            operation="search_issues",
        )
        return self._results_list(data)


def create_comicvine_client(settings: Any, api_key: str | None = None) -> ComicVineClient:
    """Build a client from application settings.

    Args:
        settings: grailseeker.core.config.Settings instance
        api_key: Validated API key (defaults to settings.comicvine_api_key)

    Returns:
        ComicVineClient instance
    """
    return ComicVineClient(
        api_key=api_key or settings.comicvine_api_key or "",
        base_url=settings.comicvine_base_url,
        timeout=settings.comicvine_timeout,
        rate_limit=settings.comicvine_rate_limit,
        rate_limit_period=settings.comicvine_rate_limit_period,
        max_retries=settings.comicvine_max_retries,
        cache_dir=settings.cache_dir / "comicvine",
        cache_enabled=settings.comicvine_cache_enabled,
    )
