"""
================================================================================
StreamScout v1.0 - Title Corpus
================================================================================
In-memory list of known titles that the typo index is built from.

Sources (in precedence order):
  1. A curated seed of very popular titles (always present)
  2. N pages each of upstream popular movies and popular series

The snapshot is an immutable tuple, replaced wholesale on refresh. A refresh
is all-or-nothing: if any upstream page fails the previous snapshot stays in
place and the next staleness check retries.
================================================================================
"""

import re
import time
import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..catalog.base import BaseCatalogProvider
from ..catalog.models import MediaKind
from ..errors import UpstreamError
from .models import TitleRecord

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r'\s+')


def normalize_title(title: str) -> str:
    """Lowercase, trim, collapse internal whitespace."""
    if not title:
        return ""
    return _WHITESPACE.sub(' ', title.lower()).strip()


def _record(item_id: int, title: str, kind: MediaKind, popularity: float, year: str = "") -> TitleRecord:
    return TitleRecord(
        id=item_id,
        normalized_title=normalize_title(title),
        display_title=title.strip(),
        media_kind=kind,
        popularity=popularity,
        year=year,
    )


# Seed titles users misspell most often. Always part of the corpus.
CURATED_TITLES: Tuple[TitleRecord, ...] = (
    _record(2316, 'The Office', MediaKind.SERIES, 1000),
    _record(1668, 'Friends', MediaKind.SERIES, 1000),
    _record(1396, 'Breaking Bad', MediaKind.SERIES, 1000),
    _record(66732, 'Stranger Things', MediaKind.SERIES, 1000),
    _record(82856, 'The Mandalorian', MediaKind.SERIES, 1000),
    _record(1399, 'Game of Thrones', MediaKind.SERIES, 1000),
    _record(60735, 'The Flash', MediaKind.SERIES, 900),
    _record(1402, 'The Walking Dead', MediaKind.SERIES, 900),
    _record(60574, 'Peaky Blinders', MediaKind.SERIES, 900),
    _record(63174, 'Lucifer', MediaKind.SERIES, 900),
    _record(680, 'Pulp Fiction', MediaKind.MOVIE, 900),
    _record(155, 'The Dark Knight', MediaKind.MOVIE, 900),
    _record(13, 'Forrest Gump', MediaKind.MOVIE, 900),
    _record(550, 'Fight Club', MediaKind.MOVIE, 900),
    _record(27205, 'Inception', MediaKind.MOVIE, 900),
    _record(603, 'The Matrix', MediaKind.MOVIE, 900),
    _record(11, 'Star Wars', MediaKind.MOVIE, 900),
    _record(24428, 'The Avengers', MediaKind.MOVIE, 900),
    _record(157336, 'Interstellar', MediaKind.MOVIE, 900),
    _record(118340, 'Guardians of the Galaxy', MediaKind.MOVIE, 900),
)


def build_snapshot(records: Iterable[TitleRecord]) -> Tuple[TitleRecord, ...]:
    """
    Dedupe by (id, kind) keeping the first occurrence, then stable-sort by
    popularity descending.
    """
    seen = set()
    unique: List[TitleRecord] = []
    for record in records:
        if not record.normalized_title or record.key in seen:
            continue
        seen.add(record.key)
        unique.append(record)
    unique.sort(key=lambda r: r.popularity, reverse=True)
    return tuple(unique)


class TitleCorpus:
    """Refreshable title snapshot shared by the match index."""

    def __init__(
        self,
        catalog: BaseCatalogProvider,
        curated: Sequence[TitleRecord] = CURATED_TITLES,
        pages_per_kind: int = 3,
        freshness_seconds: float = 86400,
        request_timeout: float = 5.0,
        clock: Callable[[], float] = time.time,
    ):
        self.catalog = catalog
        self.curated = tuple(curated)
        self.pages_per_kind = pages_per_kind
        self.freshness_seconds = freshness_seconds
        self.request_timeout = request_timeout
        self._clock = clock

        self._snapshot: Tuple[TitleRecord, ...] = ()
        self._last_updated: Optional[float] = None
        self._refresh_lock = threading.Lock()
        self._last_error: Optional[str] = None

    @property
    def snapshot(self) -> Tuple[TitleRecord, ...]:
        return self._snapshot

    @property
    def is_refreshing(self) -> bool:
        return self._refresh_lock.locked()

    def is_stale(self) -> bool:
        if not self._snapshot or self._last_updated is None:
            return True
        return (self._clock() - self._last_updated) > self.freshness_seconds

    async def refresh_if_stale(self) -> None:
        if self.is_stale():
            await self.refresh()

    async def get_all(self) -> Tuple[TitleRecord, ...]:
        """Current snapshot, refreshed first if stale."""
        await self.refresh_if_stale()
        return self._snapshot

    async def refresh(self) -> bool:
        """
        Rebuild the snapshot from the curated seed and upstream popular pages.

        Returns:
            True if the snapshot was replaced. False if another refresh was
            already running or an upstream page failed.
        """
        if not self._refresh_lock.acquire(blocking=False):
            logger.debug("Corpus refresh already in progress, serving current snapshot")
            return False

        try:
            start = time.time()
            try:
                fetched = await self._fetch_popular()
            except (UpstreamError, asyncio.TimeoutError) as e:
                self._last_error = str(e) or e.__class__.__name__
                logger.warning(
                    f"⚠️ Corpus refresh failed, keeping {len(self._snapshot)} existing titles: {self._last_error}"
                )
                return False

            snapshot = build_snapshot(list(self.curated) + fetched)
            self._snapshot = snapshot
            self._last_updated = self._clock()
            self._last_error = None
            logger.info(f"Corpus refreshed: {len(snapshot)} titles in {time.time() - start:.2f}s")
            return True
        finally:
            self._refresh_lock.release()

    async def _fetch_popular(self) -> List[TitleRecord]:
        records: List[TitleRecord] = []
        for kind in (MediaKind.MOVIE, MediaKind.SERIES):
            for page in range(1, self.pages_per_kind + 1):
                items = await asyncio.wait_for(self.catalog.get_popular(kind, page), timeout=self.request_timeout)
                for item in items:
                    if not item.title:
                        continue
                    records.append(_record(item.id, item.title, kind, item.popularity, item.release_year))
        return records

    def stats(self) -> Dict:
        movies = sum(1 for r in self._snapshot if r.media_kind is MediaKind.MOVIE)
        last_updated = None
        if self._last_updated is not None:
            last_updated = datetime.fromtimestamp(self._last_updated, tz=timezone.utc).isoformat()
        return {
            'total': len(self._snapshot),
            'movies': movies,
            'series': len(self._snapshot) - movies,
            'last_updated': last_updated,
            'is_stale': self.is_stale(),
            'is_refreshing': self.is_refreshing,
            'last_error': self._last_error,
        }
