"""
Cache policy for enriched search results.

Design:
  - Key = "search:" + normalized query + ":" + page + ":" + REGION, so
    "Star Wars " and "star wars" share an entry
  - TTL-based expiration (30 minutes), checked lazily on read
  - Empty result sets are never stored
  - Backend failures are logged and treated as a miss / skipped write

Usage:
    cache = ResultCache(MemoryBackend(), ttl_seconds=1800)

    cached = cache.get("the office", 1, "US")
    if cached is None:
        result = ...
        cache.set("the office", 1, "US", result)

    cache.stats()
"""

import re
import time
import logging
import threading
from typing import Any, Callable, Dict, Optional

from ..cache import CacheBackend
from ..errors import CacheBackendError, MalformedPayloadError
from .models import CachedResultEntry, EnrichedResult

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r'\s+')


class ResultCache:
    """TTL cache of EnrichedResult payloads on top of a CacheBackend."""

    def __init__(self, backend: CacheBackend, ttl_seconds: int = 1800, clock: Callable[[], float] = time.time):
        """
        Initialize cache.

        Args:
            backend: Storage backend
            ttl_seconds: Time-to-live in seconds (default: 30 minutes)
            clock: Time source (epoch seconds)
        """
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._writes = 0
        self._skipped_empty = 0
        self._errors = 0

    @staticmethod
    def make_key(query: str, page: int, region: str) -> str:
        """
        Build the cache key.

        Case- and whitespace-insensitive in the query, case-insensitive in
        the region.
        """
        normalized = _WHITESPACE.sub(' ', (query or '').lower()).strip()
        return f"search:{normalized}:{page}:{(region or '').upper()}"

    def _count(self, attr: str) -> None:
        with self._lock:
            setattr(self, attr, getattr(self, attr) + 1)

    def get(self, query: str, page: int, region: str) -> Optional[EnrichedResult]:
        """
        Cached result, or None if not found/expired/unreadable.

        Returns:
            EnrichedResult with from_cache=True
        """
        key = self.make_key(query, page, region)
        try:
            entry = self.backend.get(key)
        except CacheBackendError as e:
            self._count('_errors')
            self._count('_misses')
            logger.warning(f"Cache read failed for {key}, treating as miss: {e}")
            return None

        if entry is None:
            self._count('_misses')
            logger.debug(f"Cache MISS: {key}")
            return None

        age = self._clock() - entry.stored_at
        if age > self.ttl_seconds:
            self._count('_misses')
            logger.debug(f"Cache EXPIRED: {key} (age={age:.0f}s)")
            self._safe_delete(key)
            return None

        try:
            result = EnrichedResult.from_dict(entry.payload)
        except (KeyError, TypeError, ValueError, MalformedPayloadError) as e:
            self._count('_errors')
            self._count('_misses')
            logger.warning(f"Dropping undecodable cache entry {key}: {e}")
            self._safe_delete(key)
            return None

        self._count('_hits')
        logger.debug(f"Cache HIT: {key} (age={age:.0f}s)")
        result.from_cache = True
        return result

    def set(self, query: str, page: int, region: str, result: EnrichedResult) -> bool:
        """
        Store result. Empty result sets are skipped.

        Returns:
            True if the entry was written
        """
        if result.is_empty:
            self._count('_skipped_empty')
            return False

        key = self.make_key(query, page, region)
        payload = result.to_dict()
        payload['fromCache'] = False
        entry = CachedResultEntry(payload=payload, stored_at=self._clock(), normalized_query_key=key)
        try:
            self.backend.set(key, entry, self.ttl_seconds)
        except CacheBackendError as e:
            self._count('_errors')
            logger.warning(f"Cache write failed for {key}, skipping: {e}")
            return False

        self._count('_writes')
        return True

    def invalidate(self, query: str, page: int, region: str) -> None:
        self._safe_delete(self.make_key(query, page, region))

    def _safe_delete(self, key: str) -> None:
        try:
            self.backend.delete(key)
        except CacheBackendError as e:
            self._count('_errors')
            logger.warning(f"Cache delete failed for {key}: {e}")

    def clear(self) -> None:
        """Clear all cache entries and reset statistics."""
        try:
            self.backend.clear()
        except CacheBackendError as e:
            self._count('_errors')
            logger.warning(f"Cache clear failed: {e}")
            return
        with self._lock:
            self._hits = 0
            self._misses = 0
            self._writes = 0
            self._skipped_empty = 0
        logger.info("Search cache cleared")

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0
            data = {
                'ttl': self.ttl_seconds,
                'hits': self._hits,
                'misses': self._misses,
                'writes': self._writes,
                'skipped_empty': self._skipped_empty,
                'errors': self._errors,
                'hit_rate': round(hit_rate, 2),
            }
        data['backend'] = self.backend.stats()
        return data
