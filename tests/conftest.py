"""Shared fixtures: an in-process catalog, a controllable clock, and a wired pipeline."""

import asyncio
from typing import Any, Dict, List, Tuple

import pytest

from streamscout_app.cache import MemoryBackend
from streamscout_app.catalog.base import BaseCatalogProvider
from streamscout_app.catalog.models import (
    CandidateItem, ExternalIds, MediaKind, SearchPage, WatchProvidersResponse,
)
from streamscout_app.config import Settings
from streamscout_app.services import build_pipeline


def movie(item_id: int, title: str, popularity: float = 10.0, year: str = "2000") -> Dict[str, Any]:
    return {
        'id': item_id,
        'media_type': 'movie',
        'title': title,
        'release_date': f'{year}-01-01',
        'popularity': popularity,
    }


def tv(item_id: int, name: str, popularity: float = 10.0, year: str = "2000") -> Dict[str, Any]:
    return {
        'id': item_id,
        'media_type': 'tv',
        'name': name,
        'first_air_date': f'{year}-01-01',
        'popularity': popularity,
    }


def person(item_id: int, name: str) -> Dict[str, Any]:
    return {'id': item_id, 'media_type': 'person', 'name': name}


def providers_payload(item_id: int, region: str = 'US', flatrate=None, buy=None, rent=None) -> Dict[str, Any]:
    region_data: Dict[str, Any] = {'link': f'https://www.themoviedb.org/{item_id}/watch'}
    if flatrate is not None:
        region_data['flatrate'] = flatrate
    if buy is not None:
        region_data['buy'] = buy
    if rent is not None:
        region_data['rent'] = rent
    return {'id': item_id, 'results': {region: region_data}}


NETFLIX = {'provider_id': 8, 'provider_name': 'Netflix', 'logo_path': '/netflix.png', 'display_priority': 1}
APPLE = {'provider_id': 2, 'provider_name': 'Apple TV', 'logo_path': '/apple.png', 'display_priority': 4}


class FakeCatalog(BaseCatalogProvider):
    """
    Catalog answering from dictionaries.

    search_results: lowercased query -> list of raw result payloads
    provider_payloads: (kind, id) -> raw watch/providers payload
    errors: ('search' | 'providers' | 'popular' | 'external_ids', key) -> exception
    """

    id = "fake"
    name = "Fake Catalog"

    def __init__(self):
        super().__init__(rate_limit=60000)
        self.search_results: Dict[str, List[Dict[str, Any]]] = {}
        self.provider_payloads: Dict[Tuple[str, int], Dict[str, Any]] = {}
        self.popular: Dict[MediaKind, List[Dict[str, Any]]] = {MediaKind.MOVIE: [], MediaKind.SERIES: []}
        self.external_ids: Dict[Tuple[str, int], Dict[str, Any]] = {}
        self.errors: Dict[Tuple[str, Any], Exception] = {}
        self.delays: Dict[Tuple[str, Any], float] = {}
        self.calls: List[Tuple[str, Any]] = []

    async def _maybe_fail(self, op: str, key: Any) -> None:
        self.calls.append((op, key))
        delay = self.delays.get((op, key))
        if delay:
            await asyncio.sleep(delay)
        error = self.errors.get((op, key)) or self.errors.get((op, '*'))
        if error is not None:
            raise error

    def search_calls(self) -> List[str]:
        return [key for op, key in self.calls if op == 'search']

    def provider_calls(self) -> List[Tuple[str, int]]:
        return [key for op, key in self.calls if op == 'providers']

    async def search_multi(self, query: str, page: int = 1) -> SearchPage:
        key = query.strip().lower()
        await self._maybe_fail('search', key)
        results = self.search_results.get(key, [])
        return SearchPage.from_payload({
            'page': page,
            'results': results if page == 1 else [],
            'total_pages': 1 if results else 0,
            'total_results': len(results),
        })

    async def get_watch_providers(self, item_id: int, kind: MediaKind) -> WatchProvidersResponse:
        key = (MediaKind.parse(kind).value, item_id)
        await self._maybe_fail('providers', key)
        payload = self.provider_payloads.get(key, {'id': item_id, 'results': {}})
        return WatchProvidersResponse.from_payload(payload)

    async def get_popular(self, kind: MediaKind, page: int = 1) -> List[CandidateItem]:
        await self._maybe_fail('popular', kind)
        return [CandidateItem.from_payload(p, default_media_type=kind.value) for p in self.popular[kind]]

    async def get_external_ids(self, item_id: int, kind: MediaKind) -> ExternalIds:
        key = (MediaKind.parse(kind).value, item_id)
        await self._maybe_fail('external_ids', key)
        return ExternalIds.from_payload(self.external_ids.get(key, {'id': item_id}))


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        tmdb_api_key='test-key',
        cache_backend='memory',
        cache_file=str(tmp_path / 'search-cache.json'),
        corpus_pages_per_kind=1,
        availability_item_delay=0.0,
        upstream_timeout=1.0,
        disable_rate_limiting=True,
        debug_logging=False,
    )


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend(max_size=100)


@pytest.fixture
def pipeline(settings, catalog, backend):
    return build_pipeline(settings, catalog, backend)


@pytest.fixture
def office_catalog(catalog) -> FakeCatalog:
    """Catalog where 'the ofice' finds nothing but 'the office' finds three titles."""
    catalog.search_results['the office'] = [
        tv(2316, 'The Office', popularity=300),
        tv(2996, 'The Office', popularity=40, year='2001'),
        movie(1000001, 'The Office Party', popularity=20),
    ]
    return catalog
