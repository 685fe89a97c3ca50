"""
================================================================================
StreamScout v1.0 - Search Pipeline
================================================================================
Resolves a raw search string into an enriched, cached result.

Flow (one coroutine per query, upstream calls made sequentially):
  1. Validate query and page
  2. Cache check (hit short-circuits)
  3. Catalog search, movies and series only, deduplicated
  4. Franchise expansion (page 1 only, capped number of extra searches)
  5. Suggestion check against the post-expansion result count
  6. Corrected search when a typo is likely and auto-correct is on
  7. Cache write (non-empty, non-degraded results only)

Only ValidationError escapes search(). A failed primary search leaves an empty,
degraded result that still goes through expansion and the suggestion check;
failed extra searches are skipped.
================================================================================
"""

import time
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple, TypeVar

from ..catalog.base import BaseCatalogProvider
from ..catalog.models import CandidateItem, ExternalIds, MediaKind, ProviderSet, SearchPage
from ..errors import UpstreamError, ValidationError
from .availability import BatchAvailabilityResolver
from .cache import ResultCache
from .franchise import FranchiseExpander
from .models import (
    AvailabilityKey, AvailabilityRecord, AvailabilitySnapshot, EnrichedResult, TitleRecord,
)
from .suggestions import SuggestionEngine

logger = logging.getLogger(__name__)

T = TypeVar('T')

MAX_QUERY_LENGTH = 200
MAX_PAGE = 500


def sanitize_query(value: Any) -> str:
    """Strip control characters and surrounding whitespace."""
    if not isinstance(value, str):
        return ""
    return ''.join(c for c in value if c >= ' ').strip()


class SearchPipeline:
    """
    Query resolution and enrichment.

    All collaborators are passed in; see services.build_services() for the
    production wiring.
    """

    def __init__(
        self,
        catalog: BaseCatalogProvider,
        cache: ResultCache,
        suggestions: SuggestionEngine,
        franchises: FranchiseExpander,
        resolver: BatchAvailabilityResolver,
        region: str = "US",
        request_timeout: float = 5.0,
    ):
        self.catalog = catalog
        self.cache = cache
        self.suggestions = suggestions
        self.franchises = franchises
        self.resolver = resolver
        self.region = region.upper()
        self.request_timeout = request_timeout

    # =========================================================================
    # VALIDATION
    # =========================================================================

    @staticmethod
    def validate_query(query: Any) -> str:
        cleaned = sanitize_query(query)
        if not cleaned:
            raise ValidationError("Query parameter is required", field='query')
        if len(cleaned) > MAX_QUERY_LENGTH:
            raise ValidationError(f"Query exceeds max length {MAX_QUERY_LENGTH}", field='query')
        return cleaned

    @staticmethod
    def validate_page(page: Any) -> int:
        if isinstance(page, bool) or not isinstance(page, int):
            raise ValidationError("Page must be an integer", field='page')
        if page < 1 or page > MAX_PAGE:
            raise ValidationError(f"Page must be between 1 and {MAX_PAGE}", field='page')
        return page

    # =========================================================================
    # UPSTREAM
    # =========================================================================

    async def _bounded(self, call: Awaitable[T], what: str) -> T:
        """Await an upstream call with the per-call timeout."""
        try:
            return await asyncio.wait_for(call, timeout=self.request_timeout)
        except asyncio.TimeoutError:
            raise UpstreamError(f"{what} timed out after {self.request_timeout}s", 0)

    async def _search_page(self, text: str, page: int) -> SearchPage:
        return await self._bounded(self.catalog.search_multi(text, page), f"search '{text}'")

    @staticmethod
    def _keep_new(items: Iterable[CandidateItem], seen: Set[Tuple[str, int]]) -> List[CandidateItem]:
        """Movies and series not already in seen (seen is updated)."""
        kept = []
        for item in items:
            if item.media_kind is None or item.key in seen:
                continue
            seen.add(item.key)
            kept.append(item)
        return kept

    # =========================================================================
    # SEARCH
    # =========================================================================

    async def search(
        self,
        query: str,
        page: int = 1,
        region: Optional[str] = None,
        auto_correct: bool = True,
        use_cache: bool = True,
    ) -> EnrichedResult:
        """
        Search the catalog with typo correction and franchise expansion.

        Args:
            query: Raw user query
            page: 1-based result page (1..500)
            region: Region for the cache key (defaults to the configured one)
            auto_correct: Re-search with the suggested title when a typo is likely
            use_cache: Read and write the result cache

        Returns:
            EnrichedResult

        Raises:
            ValidationError: Bad query/page, or upstream rejected the request as malformed (400/422)
        """
        start_time = time.time()
        query = self.validate_query(query)
        page = self.validate_page(page)
        region = (region or self.region).upper()

        if use_cache:
            cached = self.cache.get(query, page, region)
            if cached is not None:
                logger.info(f"Cache HIT for '{query}' page {page} ({len(cached.results)} results)")
                return cached

        seen: Set[Tuple[str, int]] = set()
        try:
            primary = await self._search_page(query, page)
        except UpstreamError as e:
            if e.is_bad_request:
                raise ValidationError(e.message, field='query') from e
            logger.warning(f"⚠️ Search for '{query}' degraded: {e}")
            result = EnrichedResult(page=page, degraded=True)
        else:
            result = EnrichedResult(
                page=primary.page,
                results=self._keep_new(primary.results, seen),
                total_pages=primary.total_pages,
                total_results=primary.total_results,
            )

        if page == 1:
            franchise = self.franchises.detect_franchise(query)
            if franchise:
                result.detected_franchise = franchise
                await self._expand_franchise(franchise, result, seen)

        await self._apply_suggestion(query, result, auto_correct)

        if use_cache and not result.degraded:
            self.cache.set(query, page, region, result)

        logger.info(
            f"Search '{query}' page {page}: {len(result.results)} results "
            f"in {time.time() - start_time:.2f}s"
            + (f" (auto-corrected to '{result.suggestion.suggested_title}')" if result.did_auto_correct else "")
        )
        return result

    async def _expand_franchise(self, franchise: str, result: EnrichedResult, seen: Set[Tuple[str, int]]) -> None:
        added = 0
        for title in self.franchises.expansion_terms(franchise):
            try:
                related = await self._search_page(title, 1)
            except UpstreamError as e:
                logger.warning(f"Franchise search '{title}' ({franchise}) skipped: {e}")
                continue
            new_items = self._keep_new(related.results, seen)
            result.results.extend(new_items)
            added += len(new_items)
        logger.debug(f"Franchise '{franchise}' added {added} results")

    async def _apply_suggestion(self, query: str, result: EnrichedResult, auto_correct: bool) -> None:
        count = len(result.results)
        if count >= self.suggestions.enough_results:
            return

        suggestion = await self.suggestions.get_suggestion(query)
        if suggestion is None:
            return

        result.suggestion = suggestion
        if not (auto_correct and self.suggestions.is_likely_typo(suggestion, count)):
            return

        try:
            corrected = await self._search_page(suggestion.suggested_title, 1)
        except UpstreamError as e:
            logger.warning(f"Corrected search '{suggestion.suggested_title}' failed, keeping original: {e}")
            return

        corrected_items = self._keep_new(corrected.results, set())
        if len(corrected_items) > count:
            result.results = corrected_items
            result.page = corrected.page
            result.total_pages = corrected.total_pages
            result.total_results = corrected.total_results
            result.did_auto_correct = True
            result.original_query = query

    # =========================================================================
    # SUGGESTIONS / AVAILABILITY
    # =========================================================================

    async def autocomplete(self, query: str, limit: int = 5) -> List[TitleRecord]:
        query = self.validate_query(query)
        return await self.suggestions.get_multiple_suggestions(query, limit)

    async def resolve_availability(self, items: Iterable[Any]):
        """Async iterator of AvailabilitySnapshot, one per chunk."""
        async for snapshot in self.resolver.resolve(items):
            yield snapshot

    async def resolve_availability_batch(
        self,
        items: Iterable[Any],
        on_chunk: Optional[Callable[[AvailabilitySnapshot], Any]] = None,
    ) -> Mapping[AvailabilityKey, AvailabilityRecord]:
        return await self.resolver.resolve_all(items, on_chunk)

    async def fetch_providers_batch(self, items: List[Any]) -> List[AvailabilityRecord]:
        """A single upstream batch (<= max batch size)."""
        return await self.resolver.fetcher.fetch_batch(items)

    async def get_external_ids(self, item_id: int, kind: MediaKind) -> ExternalIds:
        return await self._bounded(
            self.catalog.get_external_ids(item_id, kind), f"external ids {kind.value}/{item_id}"
        )

    async def get_providers(self, item_id: int, kind: MediaKind) -> Optional[ProviderSet]:
        """Providers for one title in the configured region. Upstream errors propagate."""
        response = await self._bounded(
            self.catalog.get_watch_providers(item_id, kind), f"providers {kind.value}/{item_id}"
        )
        return response.for_region(self.region)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def warm_up(self) -> Dict[str, Any]:
        """Load the corpus and build the match index."""
        size = await self.suggestions.index.warm_up()
        logger.info(f"🔥 Match index warmed up with {size} titles")
        return await self.stats()

    async def stats(self) -> Dict[str, Any]:
        return {
            'cache': self.cache.stats(),
            'corpus': self.suggestions.index.corpus.stats(),
            'index': await self.suggestions.index.stats(),
            'region': self.region,
        }
