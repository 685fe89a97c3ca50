"""
Upstream catalog client package.

  - base.py   - BaseCatalogProvider (rate limiting, retries, typed errors)
  - tmdb.py   - TMDB v3 implementation
  - models.py - typed payload views (SearchPage, ProviderSet, ...)
"""

from .base import BaseCatalogProvider, RateLimiter
from .models import (
    MediaKind, CandidateItem, SearchPage, Provider, ProviderSet,
    WatchProvidersResponse, ExternalIds,
)
from .tmdb import TMDBCatalogProvider

__all__ = [
    'BaseCatalogProvider', 'RateLimiter', 'TMDBCatalogProvider',
    'MediaKind', 'CandidateItem', 'SearchPage', 'Provider', 'ProviderSet',
    'WatchProvidersResponse', 'ExternalIds',
]
