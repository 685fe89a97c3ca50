"""
================================================================================
StreamScout v1.0 - Search Pipeline Models
================================================================================
Value objects passed between the pipeline components.

  - TitleRecord         - one entry of the title corpus (immutable)
  - MatchResult         - nearest-title hit with a distance in [0, 1]
  - Suggestion          - "did you mean" hint with confidence = 1 - distance
  - EnrichedResult      - what search() returns (and what gets cached)
  - CachedResultEntry   - EnrichedResult payload + bookkeeping
  - AvailabilityRecord  - providers for one (media_type, id), None if unknown
  - AvailabilitySnapshot- immutable partial map delivered after each chunk
================================================================================
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..catalog.models import CandidateItem, MediaKind, ProviderSet


AvailabilityKey = Tuple[str, int]


# =============================================================================
# CORPUS / MATCHING
# =============================================================================

@dataclass(frozen=True)
class TitleRecord:
    """A known title. normalized_title is lowercase/trimmed, display_title is as shown."""
    id: int
    normalized_title: str
    display_title: str
    media_kind: MediaKind
    popularity: float = 0.0
    year: str = ""

    @property
    def key(self) -> Tuple[int, MediaKind]:
        return (self.id, self.media_kind)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.normalized_title,
            'originalTitle': self.display_title,
            'mediaType': self.media_kind.value,
            'popularity': self.popularity,
            'year': self.year,
        }


@dataclass(frozen=True)
class MatchResult:
    record: TitleRecord
    distance: float  # 0 = exact


@dataclass(frozen=True)
class Suggestion:
    original_query: str
    suggested_title: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'query': self.original_query,
            'suggestion': self.suggested_title,
            'confidence': round(self.confidence, 4),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Suggestion":
        return cls(
            original_query=data.get('query', ''),
            suggested_title=data.get('suggestion', ''),
            confidence=float(data.get('confidence', 0.0)),
        )


# =============================================================================
# SEARCH RESULT
# =============================================================================

@dataclass
class EnrichedResult:
    """Catalog search page plus everything the pipeline learned about the query."""
    page: int
    results: List[CandidateItem] = field(default_factory=list)
    total_pages: int = 0
    total_results: int = 0
    suggestion: Optional[Suggestion] = None
    did_auto_correct: bool = False
    original_query: Optional[str] = None
    detected_franchise: Optional[str] = None
    from_cache: bool = False
    degraded: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.results

    def availability_items(self) -> List[Dict[str, Any]]:
        """(id, media_type) pairs for the availability flow."""
        return [{'id': item.id, 'media_type': item.media_type} for item in self.results]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'page': self.page,
            'results': [item.to_dict() for item in self.results],
            'total_pages': self.total_pages,
            'total_results': self.total_results,
            'suggestion': self.suggestion.to_dict() if self.suggestion else None,
            'didAutoCorrect': self.did_auto_correct,
            'fromCache': self.from_cache,
            'degraded': self.degraded,
        }
        if self.original_query is not None:
            data['originalQuery'] = self.original_query
        if self.detected_franchise is not None:
            data['detectedFranchise'] = self.detected_franchise
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EnrichedResult":
        suggestion = data.get('suggestion')
        return cls(
            page=int(data.get('page', 1)),
            results=[CandidateItem.from_payload(item) for item in data.get('results', [])],
            total_pages=int(data.get('total_pages', 0)),
            total_results=int(data.get('total_results', 0)),
            suggestion=Suggestion.from_dict(suggestion) if suggestion else None,
            did_auto_correct=bool(data.get('didAutoCorrect', False)),
            original_query=data.get('originalQuery'),
            detected_franchise=data.get('detectedFranchise'),
            from_cache=bool(data.get('fromCache', False)),
            degraded=bool(data.get('degraded', False)),
        )


@dataclass
class CachedResultEntry:
    payload: Dict[str, Any]
    stored_at: float
    normalized_query_key: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'payload': self.payload,
            'stored_at': self.stored_at,
            'normalized_query_key': self.normalized_query_key,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedResultEntry":
        return cls(
            payload=data['payload'],
            stored_at=float(data['stored_at']),
            normalized_query_key=data.get('normalized_query_key', ''),
        )


# =============================================================================
# AVAILABILITY
# =============================================================================

@dataclass(frozen=True)
class AvailabilityRequest:
    """
    One (id, media type) pair as supplied by a caller.

    Parsing never fails: missing or unusable fields come back as None and the
    fetcher answers providers=None for them without calling upstream.
    """
    id: Optional[int]
    media_type: Optional[str]

    @classmethod
    def from_payload(cls, payload: Any) -> "AvailabilityRequest":
        if isinstance(payload, cls):
            return payload
        if not isinstance(payload, dict):
            return cls(id=None, media_type=None)

        raw_id = payload.get('id')
        item_id = raw_id if isinstance(raw_id, int) and not isinstance(raw_id, bool) else None
        if item_id is None and isinstance(raw_id, str) and raw_id.strip().isdigit():
            item_id = int(raw_id.strip())

        media_type = payload.get('media_type') or payload.get('mediaKind') or payload.get('media_kind')
        if isinstance(media_type, MediaKind):
            media_type = media_type.value
        return cls(id=item_id, media_type=media_type if isinstance(media_type, str) else None)

    @property
    def media_kind(self) -> Optional[MediaKind]:
        return MediaKind.parse(self.media_type)

    @property
    def is_resolvable(self) -> bool:
        return bool(self.id) and self.id > 0 and self.media_kind is not None


@dataclass(frozen=True)
class AvailabilityRecord:
    target_id: int
    media_type: str
    providers: Optional[ProviderSet]

    @property
    def key(self) -> AvailabilityKey:
        return (self.media_type, self.target_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.target_id,
            'media_type': self.media_type,
            'providers': self.providers.to_dict() if self.providers is not None else None,
        }


@dataclass(frozen=True)
class AvailabilitySnapshot:
    """State of the availability map after chunk_index (1-based) of total_chunks."""
    chunk_index: int
    total_chunks: int
    chunk_records: Tuple[AvailabilityRecord, ...]
    records: Mapping[AvailabilityKey, AvailabilityRecord]

    @property
    def is_final(self) -> bool:
        return self.chunk_index >= self.total_chunks

    @staticmethod
    def freeze(records: Dict[AvailabilityKey, AvailabilityRecord]) -> Mapping[AvailabilityKey, AvailabilityRecord]:
        return MappingProxyType(dict(records))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'chunk': self.chunk_index,
            'totalChunks': self.total_chunks,
            'results': [record.to_dict() for record in self.chunk_records],
            'providers': {
                f"{media_type}-{target_id}": (record.providers.to_dict() if record.providers is not None else None)
                for (media_type, target_id), record in self.records.items()
            },
            'done': self.is_final,
        }
