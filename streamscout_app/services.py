"""
================================================================================
StreamScout v1.0 - Service Wiring
================================================================================
Builds every pipeline component from Settings and bundles them for the web
layer. Nothing is looked up from module globals; tests pass their own fakes.

Flask routes are sync while the pipeline is async. All coroutines run on one
background event loop (AsyncRunner) so the shared httpx client and asyncio
locks always live on the same loop.
================================================================================
"""

import asyncio
import logging
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Awaitable, Optional, TypeVar

from .cache import CacheBackend, create_backend
from .catalog.base import BaseCatalogProvider
from .catalog.tmdb import TMDBCatalogProvider
from .config import Settings
from .search.availability import BatchAvailabilityResolver, ProviderBatchFetcher
from .search.cache import ResultCache
from .search.corpus import TitleCorpus
from .search.franchise import FranchiseExpander
from .search.matcher import MatchIndex
from .search.pipeline import SearchPipeline
from .search.suggestions import SuggestionEngine

logger = logging.getLogger(__name__)

T = TypeVar('T')


class AsyncRunner:
    """A single event loop on a daemon thread, fed from sync code."""

    def __init__(self, name: str = "streamscout-async"):
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None or self._loop.is_closed():
                loop = asyncio.new_event_loop()
                thread = threading.Thread(target=loop.run_forever, name=self.name, daemon=True)
                thread.start()
                self._loop = loop
                self._thread = thread
            return self._loop

    def run(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Run coro on the background loop and block for its result."""
        loop = self._ensure_loop()
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        try:
            return future.result(timeout)
        except FutureTimeoutError:
            future.cancel()
            raise

    def iterate(self, agen, timeout: Optional[float] = None):
        """Drive an async generator from sync code, one item at a time."""
        try:
            while True:
                try:
                    item = self.run(agen.__anext__(), timeout)
                except StopAsyncIteration:
                    return
                yield item
        finally:
            self.run(agen.aclose(), timeout)

    def stop(self) -> None:
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = None
            self._thread = None
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=5)
        loop.close()


@dataclass
class PipelineServices:
    """Everything the routes need."""
    settings: Settings
    catalog: BaseCatalogProvider
    backend: CacheBackend
    pipeline: SearchPipeline
    runner: AsyncRunner

    def run(self, coro: Awaitable[T]) -> T:
        return self.runner.run(coro)

    def close(self) -> None:
        try:
            self.runner.run(self.catalog.close(), timeout=5)
        finally:
            self.runner.stop()


def build_pipeline(settings: Settings, catalog: BaseCatalogProvider, backend: CacheBackend) -> SearchPipeline:
    corpus = TitleCorpus(
        catalog,
        pages_per_kind=settings.corpus_pages_per_kind,
        freshness_seconds=settings.corpus_freshness,
        request_timeout=settings.upstream_timeout,
    )
    index = MatchIndex(corpus, accept_distance=settings.match_accept_distance)
    suggestions = SuggestionEngine(
        index,
        reject_distance=settings.suggestion_reject_distance,
        typo_confidence=settings.typo_confidence,
    )
    fetcher = ProviderBatchFetcher(
        catalog,
        region=settings.region,
        item_delay=settings.availability_item_delay,
        request_timeout=settings.upstream_timeout,
        provider_cache_ttl=settings.provider_cache_ttl,
    )
    return SearchPipeline(
        catalog=catalog,
        cache=ResultCache(backend, ttl_seconds=settings.cache_ttl),
        suggestions=suggestions,
        franchises=FranchiseExpander(max_extra_searches=settings.franchise_max_searches),
        resolver=BatchAvailabilityResolver(fetcher, chunk_size=settings.availability_chunk_size),
        region=settings.region,
        request_timeout=settings.upstream_timeout,
    )


def build_services(
    settings: Settings,
    catalog: Optional[BaseCatalogProvider] = None,
    backend: Optional[CacheBackend] = None,
    runner: Optional[AsyncRunner] = None,
) -> PipelineServices:
    """
    Construct the production service graph.

    Args:
        settings: Runtime configuration
        catalog: Catalog client (defaults to TMDB; needs TMDB_API_KEY)
        backend: Cache backend (defaults to create_backend(settings))
        runner: Background loop (a new one by default)
    """
    if catalog is None:
        catalog = TMDBCatalogProvider(
            settings.tmdb_api_key,
            base_url=settings.tmdb_base_url,
            timeout=settings.upstream_timeout,
            rate_limit=settings.tmdb_rate_limit,
            max_retries=settings.tmdb_max_retries,
            retry_delay=settings.tmdb_retry_delay,
        )
    if backend is None:
        backend = create_backend(settings)

    pipeline = build_pipeline(settings, catalog, backend)
    logger.info(
        f"Services ready: catalog={catalog.id}, cache={backend.name}, region={settings.region}"
    )
    return PipelineServices(
        settings=settings,
        catalog=catalog,
        backend=backend,
        pipeline=pipeline,
        runner=runner or AsyncRunner(),
    )
