"""
Streaming status and external links.

Helpers used by the availability routes to summarize a ProviderSet and to
turn TMDB external ids into outbound links.
"""

import re
from dataclasses import dataclass, asdict
from typing import Callable, Iterable, List, Optional, TypeVar

from ..catalog.models import ExternalIds, ProviderSet

T = TypeVar('T')

IMDB_ID_PATTERN = re.compile(r'^tt\d{7,8}$')


# =============================================================================
# STREAMING STATUS
# =============================================================================

@dataclass(frozen=True)
class StreamingStatus:
    is_streaming: bool
    has_subscription: bool  # flatrate
    has_purchase: bool      # buy
    has_rental: bool        # rent
    has_free: bool          # free with ads
    region: str

    def to_dict(self):
        return {
            'isStreaming': self.is_streaming,
            'hasSubscription': self.has_subscription,
            'hasPurchase': self.has_purchase,
            'hasRental': self.has_rental,
            'hasFree': self.has_free,
            'region': self.region,
        }


def get_streaming_status(providers: Optional[ProviderSet], region: str = 'US') -> StreamingStatus:
    """A title counts as streaming if any offer type is available."""
    if providers is None:
        return StreamingStatus(False, False, False, False, False, region)

    has_subscription = bool(providers.subscription)
    has_purchase = bool(providers.purchase)
    has_rental = bool(providers.rental)
    has_free = bool(providers.free)
    return StreamingStatus(
        is_streaming=has_subscription or has_purchase or has_rental or has_free,
        has_subscription=has_subscription,
        has_purchase=has_purchase,
        has_rental=has_rental,
        has_free=has_free,
        region=region,
    )


def is_streamable(providers: Optional[ProviderSet], region: str = 'US') -> bool:
    return get_streaming_status(providers, region).is_streaming


def filter_by_streaming_status(
    items: Iterable[T],
    get_providers: Callable[[T], Optional[ProviderSet]],
    streaming_only: bool,
    region: str = 'US',
) -> List[T]:
    """Keep streamable items (streaming_only=True) or only the non-streamable ones."""
    return [
        item for item in items
        if is_streamable(get_providers(item), region) == streaming_only
    ]


# =============================================================================
# EXTERNAL LINKS
# =============================================================================

@dataclass(frozen=True)
class ExternalLink:
    name: str
    url: str
    icon: str

    def to_dict(self):
        return asdict(self)


def get_imdb_link(external_ids: ExternalIds) -> Optional[ExternalLink]:
    """IMDb link, or None when the id is missing or not of the form tt + 7-8 digits."""
    imdb_id = external_ids.imdb_id
    if not imdb_id or not IMDB_ID_PATTERN.match(imdb_id):
        return None
    return ExternalLink(name='IMDb', url=f'https://www.imdb.com/title/{imdb_id}', icon='🎬')


def get_external_links(external_ids: ExternalIds) -> List[ExternalLink]:
    links = []
    imdb = get_imdb_link(external_ids)
    if imdb:
        links.append(imdb)
    return links


def has_external_links(external_ids: ExternalIds) -> bool:
    return bool(get_external_links(external_ids))


def get_primary_external_link(external_ids: ExternalIds) -> Optional[ExternalLink]:
    """IMDb if present, otherwise the first available link."""
    links = get_external_links(external_ids)
    for link in links:
        if link.name == 'IMDb':
            return link
    return links[0] if links else None
