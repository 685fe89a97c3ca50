"""
================================================================================
StreamScout v1.0 - Configuration
================================================================================
All tunables are read from environment variables (a .env file is loaded by the
app factory via python-dotenv before this module is used).

The thresholds used by the suggestion engine were chosen empirically and are
kept here as configuration rather than hard-coded in the algorithms.
================================================================================
"""

import os
from dataclasses import dataclass, field
from typing import Optional


BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
INSTANCE_DIR = os.path.join(BASE_DIR, 'instance')

TRUTHY = ('1', 'true', 'yes', 'on')


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or value.strip() == '':
        return default
    return value.strip()


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = _env_str(name)
    if raw is None:
        return default
    return raw.lower() in TRUTHY


@dataclass
class Settings:
    """Runtime configuration for the pipeline and its collaborators."""

    # Upstream catalog
    tmdb_api_key: Optional[str] = None
    tmdb_base_url: str = "https://api.themoviedb.org/3"
    region: str = "US"
    upstream_timeout: float = 5.0
    tmdb_rate_limit: int = 240          # requests per minute (TMDB allows ~40/10s)
    tmdb_max_retries: int = 3
    tmdb_retry_delay: float = 1.0

    # Result cache
    cache_backend: str = "auto"         # auto | memory | file | redis | database
    cache_ttl: int = 30 * 60
    cache_max_size: int = 1000
    cache_file: str = field(default_factory=lambda: os.path.join(INSTANCE_DIR, 'search-cache.json'))
    redis_url: Optional[str] = None
    database_url: Optional[str] = None

    # Title corpus / match index
    corpus_freshness: int = 24 * 60 * 60
    corpus_pages_per_kind: int = 3
    match_accept_distance: float = 0.3
    suggestion_reject_distance: float = 0.5
    typo_confidence: float = 0.7

    # Franchise expansion
    franchise_max_searches: int = 5

    # Availability
    availability_chunk_size: int = 50
    availability_item_delay: float = 0.1
    provider_cache_ttl: int = 5 * 60

    # Web layer
    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = False
    disable_rate_limiting: bool = False
    debug_logging: bool = True

    def __post_init__(self):
        self.region = (self.region or "US").upper()
        if self.cache_backend not in ('auto', 'memory', 'file', 'redis', 'database'):
            raise ValueError(f"Unknown SEARCH_CACHE_BACKEND: {self.cache_backend}")
        if self.availability_chunk_size < 1:
            raise ValueError("AVAILABILITY_CHUNK_SIZE must be at least 1")
        for name in ('match_accept_distance', 'suggestion_reject_distance', 'typo_confidence'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        return cls(
            tmdb_api_key=_env_str('TMDB_API_KEY'),
            tmdb_base_url=_env_str('TMDB_BASE_URL', cls.tmdb_base_url),
            region=_env_str('STREAMSCOUT_REGION', cls.region),
            upstream_timeout=_env_float('UPSTREAM_TIMEOUT', cls.upstream_timeout),
            tmdb_rate_limit=_env_int('TMDB_RATE_LIMIT', cls.tmdb_rate_limit, minimum=1),
            tmdb_max_retries=_env_int('TMDB_MAX_RETRIES', cls.tmdb_max_retries, minimum=1),
            tmdb_retry_delay=_env_float('TMDB_RETRY_DELAY', cls.tmdb_retry_delay),
            cache_backend=_env_str('SEARCH_CACHE_BACKEND', cls.cache_backend).lower(),
            cache_ttl=_env_int('SEARCH_CACHE_TTL', cls.cache_ttl, minimum=1),
            cache_max_size=_env_int('SEARCH_CACHE_MAX_SIZE', cls.cache_max_size, minimum=1),
            cache_file=_env_str('SEARCH_CACHE_FILE', os.path.join(INSTANCE_DIR, 'search-cache.json')),
            redis_url=_env_str('REDIS_URL'),
            database_url=_env_str('DATABASE_URL'),
            corpus_freshness=_env_int('CORPUS_FRESHNESS', cls.corpus_freshness, minimum=1),
            corpus_pages_per_kind=_env_int('CORPUS_PAGES_PER_KIND', cls.corpus_pages_per_kind),
            match_accept_distance=_env_float('MATCH_ACCEPT_DISTANCE', cls.match_accept_distance),
            suggestion_reject_distance=_env_float('SUGGESTION_REJECT_DISTANCE', cls.suggestion_reject_distance),
            typo_confidence=_env_float('TYPO_CONFIDENCE', cls.typo_confidence),
            franchise_max_searches=_env_int('FRANCHISE_MAX_SEARCHES', cls.franchise_max_searches),
            availability_chunk_size=_env_int('AVAILABILITY_CHUNK_SIZE', cls.availability_chunk_size, minimum=1),
            availability_item_delay=_env_float('AVAILABILITY_ITEM_DELAY', cls.availability_item_delay),
            provider_cache_ttl=_env_int('PROVIDER_CACHE_TTL', cls.provider_cache_ttl),
            host=_env_str('FLASK_HOST', cls.host),
            port=_env_int('FLASK_PORT', cls.port, minimum=1),
            debug=_env_bool('FLASK_DEBUG', cls.debug),
            disable_rate_limiting=_env_bool('DISABLE_RATE_LIMITING', cls.disable_rate_limiting),
            debug_logging=_env_bool('DEBUG_LOGGING', cls.debug_logging),
        )
