"""
================================================================================
StreamScout v1.0 - Batch Availability Resolver
================================================================================
Resolves "where can I stream this" for many titles without tripping upstream
rate or size limits.

Two layers:
  - ProviderBatchFetcher      - one batch (<= 50 items), items fetched one at
                                a time with a short delay in between
  - BatchAvailabilityResolver - splits any number of items into chunks and
                                feeds them through the fetcher strictly in
                                sequence, yielding an immutable snapshot of
                                everything resolved so far after each chunk

Failure policy: nothing here raises for a bad item. Invalid input, upstream
errors, timeouts and malformed payloads all become providers=None for that
item only. The only error is a ValidationError for an empty or oversized
batch.
================================================================================
"""

import time
import asyncio
import logging
import threading
from typing import (
    Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple,
)

from ..catalog.base import BaseCatalogProvider
from ..catalog.models import MediaKind, ProviderSet
from ..errors import UpstreamError, ValidationError
from .models import (
    AvailabilityKey, AvailabilityRecord, AvailabilityRequest, AvailabilitySnapshot,
)

logger = logging.getLogger(__name__)


_MISSING = object()


class ProviderMemo:
    """Short-lived provider cache keyed by (kind, id, region). Stores None too."""

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: Dict[Tuple[str, int, str], Tuple[Optional[ProviderSet], float]] = {}
        self._lock = threading.Lock()

    def get(self, kind: str, item_id: int, region: str) -> Any:
        """ProviderSet or None if cached, _MISSING otherwise."""
        key = (kind, item_id, region)
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return _MISSING
            providers, stored_at = item
            if self._clock() - stored_at > self.ttl_seconds:
                del self._data[key]
                return _MISSING
            return providers

    def set(self, kind: str, item_id: int, region: str, providers: Optional[ProviderSet]) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._data[(kind, item_id, region)] = (providers, self._clock())

    def cleanup(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, stored_at) in self._data.items() if now - stored_at > self.ttl_seconds]
            for key in expired:
                del self._data[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self):
        return len(self._data)


class ProviderBatchFetcher:
    """One upstream batch call: up to max_batch_size items, fetched sequentially."""

    def __init__(
        self,
        catalog: BaseCatalogProvider,
        region: str,
        max_batch_size: int = 50,
        item_delay: float = 0.1,
        request_timeout: float = 5.0,
        provider_cache_ttl: float = 300,
    ):
        self.catalog = catalog
        self.region = region.upper()
        self.max_batch_size = max_batch_size
        self.item_delay = item_delay
        self.request_timeout = request_timeout
        self.memo = ProviderMemo(ttl_seconds=provider_cache_ttl)
        self.calls = 0

    async def fetch_batch(self, requests: Sequence[Any]) -> List[AvailabilityRecord]:
        """
        Resolve providers for one batch.

        Args:
            requests: AvailabilityRequests or raw {'id', 'media_type'} dicts

        Returns:
            One AvailabilityRecord per request, in request order

        Raises:
            ValidationError: If the batch is empty or larger than max_batch_size
        """
        if not requests:
            raise ValidationError("Items array is required and must not be empty", field='items')
        if len(requests) > self.max_batch_size:
            raise ValidationError(
                f"Maximum {self.max_batch_size} items allowed per batch request", field='items'
            )

        self.calls += 1
        self.memo.cleanup()
        parsed = [AvailabilityRequest.from_payload(r) for r in requests]
        records: List[AvailabilityRecord] = []

        for index, request in enumerate(parsed):
            record, contacted_upstream = await self._fetch_one(request)
            records.append(record)

            if contacted_upstream and self.item_delay > 0 and index < len(parsed) - 1:
                await asyncio.sleep(self.item_delay)

        resolved = sum(1 for r in records if r.providers is not None)
        logger.info(f"Provider batch complete: {resolved}/{len(records)} items with providers")
        return records

    async def _fetch_one(self, request: AvailabilityRequest) -> Tuple[AvailabilityRecord, bool]:
        """Returns (record, whether upstream was contacted)."""
        target_id = request.id or 0
        media_type = request.media_type or MediaKind.MOVIE.value

        if not request.is_resolvable:
            logger.debug(f"Skipping invalid availability item id={request.id!r} media_type={request.media_type!r}")
            return AvailabilityRecord(target_id, media_type, None), False

        kind = request.media_kind
        media_type = kind.value
        cached = self.memo.get(media_type, target_id, self.region)
        if cached is not _MISSING:
            return AvailabilityRecord(target_id, media_type, cached), False

        try:
            response = await asyncio.wait_for(
                self.catalog.get_watch_providers(target_id, kind),
                timeout=self.request_timeout,
            )
            providers = response.for_region(self.region)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ Providers for {media_type}/{target_id} timed out after {self.request_timeout}s")
            return AvailabilityRecord(target_id, media_type, None), True
        except UpstreamError as e:
            logger.warning(f"❌ Providers for {media_type}/{target_id} failed: {e}")
            return AvailabilityRecord(target_id, media_type, None), True

        self.memo.set(media_type, target_id, self.region, providers)
        return AvailabilityRecord(target_id, media_type, providers), True


class BatchAvailabilityResolver:
    """Chunked, strictly sequential availability resolution with progressive snapshots."""

    def __init__(self, fetcher: ProviderBatchFetcher, chunk_size: int = 50):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.fetcher = fetcher
        self.chunk_size = min(chunk_size, fetcher.max_batch_size)

    def chunk(self, items: Sequence[Any]) -> List[List[Any]]:
        return [list(items[i:i + self.chunk_size]) for i in range(0, len(items), self.chunk_size)]

    async def resolve(self, items: Iterable[Any]) -> AsyncIterator[AvailabilitySnapshot]:
        """
        Yield one snapshot per chunk.

        Chunk N is merged and yielded before chunk N+1 is requested, so a
        consumer that stops iterating never leaves a request in flight and
        the remaining chunks are simply never fetched.
        """
        chunks = self.chunk(list(items))
        total = len(chunks)
        merged: Dict[AvailabilityKey, AvailabilityRecord] = {}

        for index, chunk in enumerate(chunks, start=1):
            logger.debug(f"Resolving availability chunk {index}/{total} ({len(chunk)} items)")
            records = await self.fetcher.fetch_batch(chunk)
            for record in records:
                merged[record.key] = record

            yield AvailabilitySnapshot(
                chunk_index=index,
                total_chunks=total,
                chunk_records=tuple(records),
                records=AvailabilitySnapshot.freeze(merged),
            )

    async def resolve_all(
        self,
        items: Iterable[Any],
        on_chunk: Optional[Callable[[AvailabilitySnapshot], Any]] = None,
    ) -> Mapping[AvailabilityKey, AvailabilityRecord]:
        """Drive resolve() to completion; on_chunk (sync or async) sees every snapshot."""
        final: Mapping[AvailabilityKey, AvailabilityRecord] = AvailabilitySnapshot.freeze({})
        async for snapshot in self.resolve(items):
            if on_chunk is not None:
                outcome = on_chunk(snapshot)
                if asyncio.iscoroutine(outcome):
                    await outcome
            final = snapshot.records
        return final
