"""
Franchise detection and expansion.

Queries that mention a well-known franchise ("star wars", "mcu", ...) are
expanded with extra searches for the franchise's spin-off series, which
upstream title search does not surface on its own.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FranchiseMapping:
    keywords: Tuple[str, ...]
    related_titles: Tuple[str, ...]
    tmdb_keyword_ids: Tuple[int, ...] = field(default=())


# Order matters: the first franchise with a matching keyword wins.
FRANCHISE_MAPPINGS = OrderedDict([
    ('star wars', FranchiseMapping(
        keywords=('star wars', 'jedi', 'sith', 'force', 'galaxy far far away'),
        related_titles=(
            'Andor', 'The Mandalorian', 'Obi-Wan Kenobi', 'The Book of Boba Fett',
            'Ahsoka', 'The Acolyte', 'Skeleton Crew', 'The Bad Batch',
        ),
        tmdb_keyword_ids=(350768,),
    )),
    ('marvel', FranchiseMapping(
        keywords=('marvel', 'mcu', 'avengers', 'superhero'),
        related_titles=(
            'Loki', 'WandaVision', 'The Falcon and the Winter Soldier', 'Hawkeye',
            'Moon Knight', 'Ms. Marvel', 'She-Hulk', 'Secret Invasion', 'Echo', 'What If...?',
        ),
        tmdb_keyword_ids=(180547,),
    )),
    ('dc', FranchiseMapping(
        keywords=('dc', 'batman', 'superman', 'justice league'),
        related_titles=('Peacemaker', 'Titans', 'Doom Patrol', 'Harley Quinn', 'Young Justice', 'Pennyworth'),
    )),
    ('lord of the rings', FranchiseMapping(
        keywords=('lord of the rings', 'lotr', 'middle earth', 'tolkien'),
        related_titles=('The Rings of Power', 'The Hobbit'),
    )),
    ('game of thrones', FranchiseMapping(
        keywords=('game of thrones', 'got', 'westeros'),
        related_titles=('House of the Dragon', 'The Hedge Knight'),
    )),
])


class FranchiseExpander:
    """Keyword lookup over FRANCHISE_MAPPINGS."""

    def __init__(self, mappings=None, max_extra_searches: int = 5):
        self.mappings = mappings if mappings is not None else FRANCHISE_MAPPINGS
        self.max_extra_searches = max_extra_searches

    def detect_franchise(self, query: str) -> Optional[str]:
        """
        First franchise (table order) with a keyword contained in the query.

        Matching is plain substring matching on the lowercased, trimmed
        query, so 'got' also fires inside 'forgotten'.
        """
        if not query:
            return None
        text = query.lower().strip()
        if not text:
            return None
        for name, mapping in self.mappings.items():
            if any(keyword in text for keyword in mapping.keywords):
                return name
        return None

    def get_related_titles(self, franchise: str) -> List[str]:
        mapping = self.mappings.get(franchise)
        return list(mapping.related_titles) if mapping else []

    def expansion_terms(self, franchise: str) -> List[str]:
        """Related titles to search for, capped at max_extra_searches."""
        return self.get_related_titles(franchise)[:self.max_extra_searches]
