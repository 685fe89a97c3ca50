"""
================================================================================
StreamScout v1.0 - Cache Backends
================================================================================
Pluggable storage for cached search results.

  - MemoryBackend   - thread-safe OrderedDict with TTL + LRU eviction
  - FileBackend     - MemoryBackend persisted to a JSON file
  - RedisBackend    - shared across workers (SET ... EX ttl)
  - DatabaseBackend - search_cache table via SQLAlchemy

All backends store CachedResultEntry objects and raise CacheBackendError when
the underlying store fails; the ResultCache policy layer turns that into a
miss or a skipped write.

SEARCH_CACHE_BACKEND=auto picks Redis when REDIS_URL is set and reachable,
otherwise the file backend.
================================================================================
"""

import os
import json
import time
import logging
import tempfile
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import redis
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .database import get_db_session, init_database
from .errors import CacheBackendError
from .models import SearchCacheEntry
from .search.models import CachedResultEntry

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Storage interface for cached search results."""

    name = "base"

    @abstractmethod
    def get(self, key: str) -> Optional[CachedResultEntry]:
        """Entry for key, or None if absent/expired."""

    @abstractmethod
    def set(self, key: str, entry: CachedResultEntry, ttl_seconds: int) -> None:
        """Store entry for ttl_seconds."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key if present."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""

    def stats(self) -> Dict[str, Any]:
        return {'backend': self.name}


# =============================================================================
# MEMORY
# =============================================================================

class MemoryBackend(CacheBackend):
    """In-memory storage with lazy expiry and LRU eviction."""

    name = "memory"

    def __init__(self, max_size: int = 1000, clock: Callable[[], float] = time.time):
        self.max_size = max_size
        self._clock = clock
        self._data: "OrderedDict[str, Tuple[CachedResultEntry, float]]" = OrderedDict()
        self._lock = threading.Lock()
        self._evictions = 0

    def get(self, key: str) -> Optional[CachedResultEntry]:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            entry, expires_at = item
            if self._clock() >= expires_at:
                del self._data[key]
                self._on_change()
                return None
            self._data.move_to_end(key)
            return entry

    def set(self, key: str, entry: CachedResultEntry, ttl_seconds: int) -> None:
        with self._lock:
            if key not in self._data and len(self._data) >= self.max_size:
                self._data.popitem(last=False)
                self._evictions += 1
            self._data[key] = (entry, self._clock() + ttl_seconds)
            self._data.move_to_end(key)
            self._on_change()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._on_change()

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self._on_change()

    def sweep(self) -> int:
        """Drop all expired entries. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, (_, expires_at) in self._data.items() if now >= expires_at]
            for key in expired:
                del self._data[key]
            if expired:
                self._on_change()
        return len(expired)

    def __len__(self):
        return len(self._data)

    def _on_change(self) -> None:
        """Called with the lock held after every mutation."""

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'backend': self.name,
                'size': len(self._data),
                'max_size': self.max_size,
                'evictions': self._evictions,
            }


# =============================================================================
# FILE
# =============================================================================

class FileBackend(MemoryBackend):
    """
    MemoryBackend mirrored to a JSON file.

    The file is loaded once at start (a missing or corrupt file means an
    empty cache) and rewritten atomically after every mutation.
    """

    name = "file"

    def __init__(self, path: str, max_size: int = 1000, clock: Callable[[], float] = time.time):
        super().__init__(max_size=max_size, clock=clock)
        self.path = path
        self._load()

    def _load(self) -> None:
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️ Ignoring unreadable cache file {self.path}: {e}")
            return

        now = self._clock()
        loaded = 0
        for key, item in (raw.items() if isinstance(raw, dict) else []):
            try:
                entry = CachedResultEntry.from_dict(item['entry'])
                expires_at = float(item['expires_at'])
            except (KeyError, TypeError, ValueError):
                continue
            if expires_at > now and len(self._data) < self.max_size:
                self._data[key] = (entry, expires_at)
                loaded += 1
        logger.info(f"Loaded {loaded} cached searches from {self.path}")

    def _on_change(self) -> None:
        payload = {
            key: {'entry': entry.to_dict(), 'expires_at': expires_at}
            for key, (entry, expires_at) in self._data.items()
        }
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.search-cache-', suffix='.tmp')
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise CacheBackendError(f"Failed to write cache file {self.path}: {e}") from e

    def stats(self) -> Dict[str, Any]:
        data = super().stats()
        data['path'] = self.path
        return data


# =============================================================================
# REDIS
# =============================================================================

class RedisBackend(CacheBackend):
    """Redis-based storage, shared across worker processes."""

    name = "redis"

    def __init__(self, url: Optional[str] = None, prefix: str = "streamscout:", client=None):
        self.url = url
        self.prefix = prefix
        self.client = client if client is not None else redis.from_url(url, decode_responses=True)

    def _k(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            raise CacheBackendError(f"Redis PING failed: {e}") from e

    def get(self, key: str) -> Optional[CachedResultEntry]:
        try:
            raw = self.client.get(self._k(key))
        except redis.RedisError as e:
            raise CacheBackendError(f"Redis GET failed: {e}") from e
        if not raw:
            return None
        try:
            return CachedResultEntry.from_dict(json.loads(raw))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Dropping undecodable cache entry {key}: {e}")
            self.delete(key)
            return None

    def set(self, key: str, entry: CachedResultEntry, ttl_seconds: int) -> None:
        try:
            self.client.set(self._k(key), json.dumps(entry.to_dict()), ex=max(1, int(ttl_seconds)))
        except redis.RedisError as e:
            raise CacheBackendError(f"Redis SET failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._k(key))
        except redis.RedisError as e:
            raise CacheBackendError(f"Redis DELETE failed: {e}") from e

    def clear(self) -> None:
        try:
            keys = list(self.client.scan_iter(match=f"{self.prefix}*"))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as e:
            raise CacheBackendError(f"Redis clear failed: {e}") from e

    def stats(self) -> Dict[str, Any]:
        data = super().stats()
        try:
            data['size'] = sum(1 for _ in self.client.scan_iter(match=f"{self.prefix}*"))
        except redis.RedisError as e:
            data['error'] = str(e)
        return data


# =============================================================================
# DATABASE
# =============================================================================

class DatabaseBackend(CacheBackend):
    """search_cache table. Expired rows are deleted when read."""

    name = "database"

    def __init__(self, engine=None, database_url: Optional[str] = None, clock: Callable[[], float] = time.time):
        self.engine = init_database(database_url=database_url, engine=engine)
        self._clock = clock

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    @staticmethod
    def _aware(value: datetime) -> datetime:
        # SQLite hands back naive datetimes; everything is stored in UTC
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    def get(self, key: str) -> Optional[CachedResultEntry]:
        try:
            with get_db_session(self.engine) as session:
                row = session.get(SearchCacheEntry, key)
                if row is None:
                    return None
                if self._aware(row.expires_at) <= self._now():
                    session.delete(row)
                    return None
                return CachedResultEntry.from_dict(row.data)
        except SQLAlchemyError as e:
            raise CacheBackendError(f"Database cache read failed: {e}") from e

    def set(self, key: str, entry: CachedResultEntry, ttl_seconds: int) -> None:
        now = self._now()
        try:
            with get_db_session(self.engine) as session:
                session.merge(SearchCacheEntry(
                    key=key,
                    data=entry.to_dict(),
                    expires_at=now + timedelta(seconds=ttl_seconds),
                    created_at=now,
                ))
        except SQLAlchemyError as e:
            raise CacheBackendError(f"Database cache write failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            with get_db_session(self.engine) as session:
                session.query(SearchCacheEntry).filter(SearchCacheEntry.key == key).delete()
        except SQLAlchemyError as e:
            raise CacheBackendError(f"Database cache delete failed: {e}") from e

    def clear(self) -> None:
        try:
            with get_db_session(self.engine) as session:
                session.query(SearchCacheEntry).delete()
        except SQLAlchemyError as e:
            raise CacheBackendError(f"Database cache clear failed: {e}") from e

    def sweep(self) -> int:
        """Delete all expired rows. Returns the number removed."""
        try:
            with get_db_session(self.engine) as session:
                removed = session.query(SearchCacheEntry).filter(
                    SearchCacheEntry.expires_at <= self._now()
                ).delete()
        except SQLAlchemyError as e:
            raise CacheBackendError(f"Database cache sweep failed: {e}") from e
        if removed:
            logger.info(f"🗑️ Swept {removed} expired cached searches")
        return removed

    def stats(self) -> Dict[str, Any]:
        data = super().stats()
        try:
            with get_db_session(self.engine) as session:
                data['size'] = session.query(SearchCacheEntry).count()
        except SQLAlchemyError as e:
            data['error'] = str(e)
        data['dialect'] = self.engine.dialect.name
        return data


# =============================================================================
# FACTORY
# =============================================================================

def create_backend(settings: Settings) -> CacheBackend:
    """Build the backend named by settings.cache_backend."""
    choice = settings.cache_backend

    if choice == 'memory':
        return MemoryBackend(max_size=settings.cache_max_size)

    if choice == 'file':
        return FileBackend(settings.cache_file, max_size=settings.cache_max_size)

    if choice == 'database':
        backend = DatabaseBackend(database_url=settings.database_url)
        logger.info(f"Search cache: database ({backend.engine.dialect.name})")
        return backend

    if choice == 'redis':
        if not settings.redis_url:
            raise ValueError("SEARCH_CACHE_BACKEND=redis requires REDIS_URL")
        logger.info("Search cache: Redis")
        return RedisBackend(settings.redis_url)

    # auto
    if settings.redis_url:
        try:
            backend = RedisBackend(settings.redis_url)
            backend.ping()
            logger.info("🚀 Search cache initialized with Redis")
            return backend
        except CacheBackendError as e:
            logger.warning(f"⚠️ Redis connection failed, falling back to file cache: {e}")

    logger.info(f"ℹ️ Search cache initialized with FileBackend ({settings.cache_file})")
    return FileBackend(settings.cache_file, max_size=settings.cache_max_size)
