"""
================================================================================
StreamScout v1.0 - Catalog Models
================================================================================
Typed views over TMDB payloads.

Every payload coming back from the catalog is parsed here exactly once. A
payload that does not have the expected shape raises MalformedPayloadError,
so nothing downstream needs to sniff dict shapes at runtime.
================================================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..errors import MalformedPayloadError


# =============================================================================
# ENUMS
# =============================================================================

class MediaKind(str, Enum):
    """Resolvable media kinds. Values are TMDB wire values."""
    MOVIE = "movie"
    SERIES = "tv"

    @classmethod
    def parse(cls, value: Any) -> Optional["MediaKind"]:
        """Return the MediaKind for a wire value, or None (e.g. for 'person')."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


# =============================================================================
# SEARCH RESULTS
# =============================================================================

@dataclass
class CandidateItem:
    """A single catalog search result (movie, series, or anything else TMDB returns)."""
    id: int
    media_type: str
    title: str
    release_year: str = ""
    poster_path: Optional[str] = None
    popularity: float = 0.0
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def media_kind(self) -> Optional[MediaKind]:
        return MediaKind.parse(self.media_type)

    @property
    def key(self) -> Tuple[str, int]:
        return (self.media_type, self.id)

    @classmethod
    def from_payload(cls, payload: Any, default_media_type: Optional[str] = None) -> "CandidateItem":
        """
        Parse one TMDB result.

        Movies carry title/release_date, series carry name/first_air_date.
        Popular listings have no media_type, so the caller supplies it.
        """
        if not isinstance(payload, dict):
            raise MalformedPayloadError(f"Result item must be an object, got {type(payload).__name__}")

        item_id = _as_int(payload.get('id'))
        if item_id is None:
            raise MalformedPayloadError("Result item has no integer id")

        media_type = payload.get('media_type') or default_media_type or ''
        title = payload.get('title') or payload.get('name') or ''
        date = payload.get('release_date') or payload.get('first_air_date') or ''

        raw = dict(payload)
        raw['media_type'] = media_type

        return cls(
            id=item_id,
            media_type=str(media_type),
            title=str(title),
            release_year=str(date)[:4] if date else '',
            poster_path=payload.get('poster_path'),
            popularity=_as_float(payload.get('popularity')),
            raw=raw,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Upstream fields, unchanged, with media_type always present."""
        data = dict(self.raw)
        data.setdefault('id', self.id)
        data['media_type'] = self.media_type
        return data


@dataclass
class SearchPage:
    """One page of /search/multi."""
    page: int
    results: List[CandidateItem]
    total_pages: int = 0
    total_results: int = 0

    @classmethod
    def from_payload(cls, payload: Any) -> "SearchPage":
        if not isinstance(payload, dict):
            raise MalformedPayloadError("Search response must be an object")
        results = payload.get('results')
        if not isinstance(results, list):
            raise MalformedPayloadError("Search response has no results list")

        items = []
        for entry in results:
            try:
                items.append(CandidateItem.from_payload(entry))
            except MalformedPayloadError:
                # One broken row should not cost us the whole page
                continue

        return cls(
            page=_as_int(payload.get('page')) or 1,
            results=items,
            total_pages=_as_int(payload.get('total_pages')) or 0,
            total_results=_as_int(payload.get('total_results')) or 0,
        )


# =============================================================================
# WATCH PROVIDERS
# =============================================================================

@dataclass(frozen=True)
class Provider:
    """A streaming/purchase provider (Netflix, Apple TV, ...)."""
    provider_id: int
    provider_name: str
    logo_path: str
    display_priority: int = 0

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["Provider"]:
        """Return None for entries missing an id, a name, or a logo."""
        if not isinstance(payload, dict):
            return None
        provider_id = _as_int(payload.get('provider_id'))
        name = payload.get('provider_name')
        logo = payload.get('logo_path')
        if not provider_id or not isinstance(name, str) or not name.strip():
            return None
        if not isinstance(logo, str) or not logo:
            return None
        return cls(
            provider_id=provider_id,
            provider_name=name,
            logo_path=logo,
            display_priority=_as_int(payload.get('display_priority')) or 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'provider_id': self.provider_id,
            'provider_name': self.provider_name,
            'logo_path': self.logo_path,
            'display_priority': self.display_priority,
        }


def _provider_list(value: Any) -> List[Provider]:
    if not isinstance(value, list):
        return []
    providers = []
    for entry in value:
        provider = Provider.from_payload(entry)
        if provider is not None:
            providers.append(provider)
    return providers


@dataclass(frozen=True)
class ProviderSet:
    """Providers for one region, split by offer type."""
    subscription: Tuple[Provider, ...] = ()
    purchase: Tuple[Provider, ...] = ()
    rental: Tuple[Provider, ...] = ()
    free: Tuple[Provider, ...] = ()
    link: Optional[str] = None

    # TMDB wire names for each offer type
    WIRE_KEYS = (
        ('subscription', 'flatrate'),
        ('purchase', 'buy'),
        ('rental', 'rent'),
        ('free', 'free'),
    )

    @classmethod
    def from_payload(cls, payload: Any) -> "ProviderSet":
        if not isinstance(payload, dict):
            raise MalformedPayloadError("Region providers must be an object")
        link = payload.get('link')
        return cls(
            subscription=tuple(_provider_list(payload.get('flatrate'))),
            purchase=tuple(_provider_list(payload.get('buy'))),
            rental=tuple(_provider_list(payload.get('rent'))),
            free=tuple(_provider_list(payload.get('free'))),
            link=link if isinstance(link, str) and link else None,
        )

    @property
    def is_empty(self) -> bool:
        return not (self.subscription or self.purchase or self.rental or self.free)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for attr, wire in self.WIRE_KEYS:
            data[wire] = [p.to_dict() for p in getattr(self, attr)]
        if self.link:
            data['link'] = self.link
        return data


@dataclass
class WatchProvidersResponse:
    """/{kind}/{id}/watch/providers, keyed by region code."""
    id: Optional[int]
    regions: Dict[str, Dict[str, Any]]

    @classmethod
    def from_payload(cls, payload: Any) -> "WatchProvidersResponse":
        if not isinstance(payload, dict):
            raise MalformedPayloadError("Provider response must be an object")
        results = payload.get('results')
        if not isinstance(results, dict):
            raise MalformedPayloadError("Provider response has no results map")
        return cls(id=_as_int(payload.get('id')), regions=results)

    def for_region(self, region: str) -> Optional[ProviderSet]:
        """ProviderSet for region, or None if upstream has no data for it."""
        data = self.regions.get(region.upper())
        if data is None:
            return None
        return ProviderSet.from_payload(data)


# =============================================================================
# EXTERNAL IDS
# =============================================================================

@dataclass
class ExternalIds:
    """/{kind}/{id}/external_ids"""
    id: Optional[int] = None
    imdb_id: Optional[str] = None
    tvdb_id: Optional[int] = None
    wikidata_id: Optional[str] = None
    facebook_id: Optional[str] = None
    instagram_id: Optional[str] = None
    twitter_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "ExternalIds":
        if not isinstance(payload, dict):
            raise MalformedPayloadError("External ids response must be an object")

        def _text(key: str) -> Optional[str]:
            value = payload.get(key)
            return value if isinstance(value, str) and value else None

        return cls(
            id=_as_int(payload.get('id')),
            imdb_id=_text('imdb_id'),
            tvdb_id=_as_int(payload.get('tvdb_id')),
            wikidata_id=_text('wikidata_id'),
            facebook_id=_text('facebook_id'),
            instagram_id=_text('instagram_id'),
            twitter_id=_text('twitter_id'),
            raw=dict(payload),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.raw)
        data.update({
            'id': self.id,
            'imdb_id': self.imdb_id,
            'tvdb_id': self.tvdb_id,
            'wikidata_id': self.wikidata_id,
            'facebook_id': self.facebook_id,
            'instagram_id': self.instagram_id,
            'twitter_id': self.twitter_id,
        })
        return data
