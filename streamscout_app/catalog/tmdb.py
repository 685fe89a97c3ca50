"""
================================================================================
StreamScout v1.0 - TMDB Provider
================================================================================
REST client for The Movie Database (TMDB) v3.

Endpoints used:
  - /search/multi                    - title search (movies, series, people)
  - /{movie|tv}/{id}/watch/providers - streaming offers per region
  - /{movie|tv}/{id}/external_ids    - IMDb id etc.
  - /movie/popular, /tv/popular      - seed for the title corpus

API Docs: https://developer.themoviedb.org/reference/intro/getting-started
================================================================================
"""

from typing import Any, Dict, List, Optional
import logging

import httpx

from .base import BaseCatalogProvider
from .models import SearchPage, WatchProvidersResponse, CandidateItem, ExternalIds, MediaKind
from ..errors import UpstreamError, MalformedPayloadError

logger = logging.getLogger(__name__)

IMAGE_BASE_URL = "https://image.tmdb.org/t/p"


class TMDBCatalogProvider(BaseCatalogProvider):
    """TMDB v3 API provider (api_key query-parameter auth)."""

    id = "tmdb"
    name = "The Movie Database"
    base_url = "https://api.themoviedb.org/3"
    rate_limit = 240  # ~40 requests / 10 seconds

    def __init__(self, api_key: str, **kwargs):
        if not api_key:
            raise ValueError("TMDB API key is required")
        self.api_key = api_key
        super().__init__(**kwargs)

    def _default_params(self) -> Dict[str, str]:
        return {'api_key': self.api_key}

    def _error_message(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get('status_message'):
            return str(body['status_message'])
        return f"{self.id}: HTTP {response.status_code}"

    def _raise_for_error_body(self, data: Any, status_code: int) -> None:
        # TMDB error bodies look like {"status_code": 34, "status_message": "...", "success": false}
        if isinstance(data, dict) and isinstance(data.get('status_code'), int) and 'results' not in data \
                and data.get('success') is False:
            raise UpstreamError(data.get('status_message') or 'Unknown error occurred', status_code)

    # =========================================================================
    # CATALOG OPERATIONS
    # =========================================================================

    async def search_multi(self, query: str, page: int = 1) -> SearchPage:
        """
        Search movies, series and people by title.

        Args:
            query: Free-text query
            page: 1-based result page

        Returns:
            SearchPage (people included; callers filter by media kind)
        """
        if not query or not query.strip():
            raise UpstreamError('Search query cannot be empty', 400)

        data = await self._request('GET', '/search/multi', params={
            'query': query.strip(),
            'page': str(page),
        })
        return SearchPage.from_payload(data)

    async def get_watch_providers(self, item_id: int, kind: MediaKind) -> WatchProvidersResponse:
        media_kind = MediaKind.parse(kind)
        if media_kind is None:
            raise UpstreamError(f'Cannot get watch providers for media type {kind!r}', 400)

        data = await self._request('GET', f'/{media_kind.value}/{item_id}/watch/providers')
        return WatchProvidersResponse.from_payload(data)

    async def get_external_ids(self, item_id: int, kind: MediaKind) -> ExternalIds:
        media_kind = MediaKind.parse(kind)
        if media_kind is None:
            raise UpstreamError('External IDs are only available for movies and TV shows', 400)

        data = await self._request('GET', f'/{media_kind.value}/{item_id}/external_ids')
        return ExternalIds.from_payload(data)

    async def get_popular(self, kind: MediaKind, page: int = 1) -> List[CandidateItem]:
        """Popular movies or series; each item is tagged with its media type."""
        media_kind = MediaKind.parse(kind)
        if media_kind is None:
            raise UpstreamError(f'No popular listing for media type {kind!r}', 400)

        data = await self._request('GET', f'/{media_kind.value}/popular', params={'page': str(page)})
        if not isinstance(data, dict) or not isinstance(data.get('results'), list):
            raise MalformedPayloadError(f"{self.id}: popular {media_kind.value} response has no results list")

        items = []
        for entry in data['results']:
            try:
                items.append(CandidateItem.from_payload(entry, default_media_type=media_kind.value))
            except MalformedPayloadError as e:
                logger.debug(f"{self.id}: skipping popular entry: {e}")
        return items

    # =========================================================================
    # IMAGE HELPERS
    # =========================================================================

    @staticmethod
    def image_url(path: Optional[str], size: str = 'w185') -> Optional[str]:
        """Full image URL for a poster/logo path ('w92', 'w185', 'w500', 'original')."""
        if not path:
            return None
        return f"{IMAGE_BASE_URL}/{size}{path}"

    @classmethod
    def provider_logo_url(cls, logo_path: Optional[str]) -> Optional[str]:
        return cls.image_url(logo_path, 'w92')
