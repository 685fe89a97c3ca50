"""
================================================================================
StreamScout v1.0 - Base Catalog Provider
================================================================================
Abstract base class for the upstream catalog (TMDB today).

The pipeline only ever talks to this interface:
  - search_multi()         - free-text search across movies and series
  - get_watch_providers()  - streaming/purchase offers per region
  - get_popular()          - popular listings (title corpus seed)
  - get_external_ids()     - IMDb and friends

Providers handle:
  - Rate limiting (min interval between requests)
  - Retries with exponential backoff on 429, fixed delay on 5xx/network
  - Bounded waits (httpx timeout)
  - Mapping every failure to UpstreamError with an HTTP-like status
================================================================================
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import time
import asyncio
import logging

import httpx

from ..errors import UpstreamError, MalformedPayloadError
from .models import SearchPage, WatchProvidersResponse, CandidateItem, ExternalIds, MediaKind


logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Min-interval rate limiter for API requests.

    TMDB allows roughly 40 requests per 10 seconds; the default of 240/min
    spaces requests 250ms apart.
    """

    def __init__(self, requests_per_minute: int):
        """
        Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests allowed per minute
        """
        self.requests_per_minute = requests_per_minute
        self.min_interval = 60.0 / requests_per_minute  # Seconds between requests
        self.last_request = 0.0
        self._lock: Optional[asyncio.Lock] = None

    async def acquire(self):
        """Wait until a request slot is available."""
        # created on first use so it binds to the loop that runs the requests
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            now = time.monotonic()
            time_since_last = now - self.last_request

            if time_since_last < self.min_interval:
                wait_time = self.min_interval - time_since_last
                logger.debug(f"Rate limit: waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)

            self.last_request = time.monotonic()


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get('Retry-After')
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class BaseCatalogProvider(ABC):
    """
    Abstract base class for catalog providers.

    Subclasses implement the four catalog operations on top of _request().
    """

    # Provider identification
    id: str = "base"
    name: str = "Base Catalog"

    # API configuration
    base_url: str = ""

    # Rate limiting (requests per minute)
    rate_limit: int = 240

    # Request timeout (seconds)
    timeout: float = 5.0

    # Retry configuration
    max_retries: int = 3
    retry_delay: float = 1.0

    user_agent: str = "StreamScout/1.0"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        rate_limit: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """Initialize provider with rate limiter; the HTTP client is created lazily."""
        if base_url is not None:
            self.base_url = base_url.rstrip('/')
        if timeout is not None:
            self.timeout = timeout
        if rate_limit is not None:
            self.rate_limit = rate_limit
        if max_retries is not None:
            self.max_retries = max(1, max_retries)
        if retry_delay is not None:
            self.retry_delay = retry_delay

        self.rate_limiter = RateLimiter(self.rate_limit)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    'User-Agent': self.user_agent,
                    'Accept': 'application/json'
                }
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _default_params(self) -> Dict[str, str]:
        """Query parameters sent with every request (API keys and the like)."""
        return {}

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Make a rate-limited HTTP request with retries.

        Args:
            method: HTTP method (GET, POST)
            path: Path relative to base_url
            params: Query parameters

        Returns:
            Decoded JSON body

        Raises:
            UpstreamError: On request failure after retries
            MalformedPayloadError: If the body is not JSON
        """
        client = await self._get_client()
        query = {**self._default_params(), **(params or {})}
        last_error: Optional[UpstreamError] = None

        for attempt in range(self.max_retries):
            try:
                await self.rate_limiter.acquire()

                response = await client.request(method, path, params=query)
                response.raise_for_status()

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                last_error = UpstreamError(self._error_message(e.response), status)

                if status == 429:  # Rate limited
                    wait_time = _retry_after(e.response)
                    if wait_time is None:
                        wait_time = self.retry_delay * (2 ** attempt)  # Exponential backoff
                    if attempt < self.max_retries - 1:
                        logger.warning(f"{self.id}: Rate limited (429), waiting {wait_time}s")
                        await asyncio.sleep(wait_time)
                        continue
                elif status >= 500:  # Server error
                    if attempt < self.max_retries - 1:
                        logger.warning(
                            f"{self.id}: Server error ({status}), "
                            f"retry {attempt + 1}/{self.max_retries}"
                        )
                        await asyncio.sleep(self.retry_delay)
                        continue
                raise last_error

            except httpx.TimeoutException as e:
                last_error = UpstreamError(f"{self.id}: request timed out ({e.__class__.__name__})", 0)
                if attempt < self.max_retries - 1:
                    logger.warning(f"{self.id}: Timeout, retry {attempt + 1}/{self.max_retries}")
                    await asyncio.sleep(self.retry_delay)
                    continue
                raise last_error

            except httpx.RequestError as e:
                last_error = UpstreamError(f"{self.id}: network error ({e})", 0)
                if attempt < self.max_retries - 1:
                    logger.warning(
                        f"{self.id}: Request error ({e}), "
                        f"retry {attempt + 1}/{self.max_retries}"
                    )
                    await asyncio.sleep(self.retry_delay)
                    continue
                raise last_error

            try:
                data = response.json()
            except ValueError:
                raise MalformedPayloadError(f"{self.id}: response for {path} is not JSON", response.status_code)

            self._raise_for_error_body(data, response.status_code)
            return data

        raise last_error or UpstreamError(f"{self.id}: Max retries exceeded", 0)

    def _error_message(self, response: httpx.Response) -> str:
        """Best-effort error message from an error response."""
        return f"{self.id}: HTTP {response.status_code}"

    def _raise_for_error_body(self, data: Any, status_code: int) -> None:
        """Hook for APIs that report errors inside a 200 body."""
        return None

    # =========================================================================
    # ABSTRACT METHODS (must be implemented by providers)
    # =========================================================================

    @abstractmethod
    async def search_multi(self, query: str, page: int = 1) -> SearchPage:
        """Search movies and series by free text."""

    @abstractmethod
    async def get_watch_providers(self, item_id: int, kind: MediaKind) -> WatchProvidersResponse:
        """Get streaming providers for a title, keyed by region."""

    @abstractmethod
    async def get_popular(self, kind: MediaKind, page: int = 1) -> List[CandidateItem]:
        """Get a page of currently popular titles of one kind."""

    @abstractmethod
    async def get_external_ids(self, item_id: int, kind: MediaKind) -> ExternalIds:
        """Get external ids (IMDb, TVDB, ...) for a title."""

    def __repr__(self):
        return f"<{self.__class__.__name__}(id='{self.id}', rate_limit={self.rate_limit}/min)>"
