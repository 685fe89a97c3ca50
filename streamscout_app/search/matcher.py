"""
================================================================================
StreamScout v1.0 - Approximate Title Matcher
================================================================================
Nearest-title lookup over the title corpus, used for typo detection and
autocomplete.

Scoring (rapidfuzz):
  - token_sort_ratio, so word order and position in the string don't matter
  - normalized title weighted 0.7, display title (punctuation folded) 0.3
  - distance = 1 - weighted_score / 100, 0 = identical

The index is rebuilt lazily whenever the corpus hands back a different
snapshot.
================================================================================
"""

import logging
import threading
from typing import List, Optional, Tuple

from rapidfuzz import fuzz
from rapidfuzz.utils import default_process

from ..errors import IndexUnavailable
from .corpus import TitleCorpus, normalize_title
from .models import MatchResult, TitleRecord

logger = logging.getLogger(__name__)


_IndexEntry = Tuple[TitleRecord, str]


class MatchIndex:
    """
    Fuzzy matcher over the corpus snapshot.

    Examples:
        "the ofice"  -> The Office (distance ~0.05)
        "breakng bad" -> Breaking Bad
        "x"          -> [] (too short to match)
    """

    def __init__(
        self,
        corpus: TitleCorpus,
        accept_distance: float = 0.3,
        primary_weight: float = 0.7,
        alias_weight: float = 0.3,
        min_match_chars: int = 2,
    ):
        self.corpus = corpus
        self.accept_distance = accept_distance
        self.primary_weight = primary_weight
        self.alias_weight = alias_weight
        self.min_match_chars = min_match_chars

        self._source: Optional[Tuple[TitleRecord, ...]] = None
        self._entries: List[_IndexEntry] = []
        self._lock = threading.Lock()
        self._builds = 0

    def _ensure_index(self, snapshot: Tuple[TitleRecord, ...]) -> List[_IndexEntry]:
        with self._lock:
            if self._source is snapshot and len(self._entries) == len(snapshot):
                return self._entries
            self._entries = [(record, default_process(record.display_title)) for record in snapshot]
            self._source = snapshot
            self._builds += 1
            logger.debug(f"Match index rebuilt with {len(self._entries)} titles")
            return self._entries

    def _score(self, normalized: str, folded: str, record: TitleRecord, alias: str) -> float:
        """Weighted similarity, 0-100."""
        primary = fuzz.token_sort_ratio(normalized, record.normalized_title)
        secondary = fuzz.token_sort_ratio(folded, alias)
        total = self.primary_weight + self.alias_weight
        return (primary * self.primary_weight + secondary * self.alias_weight) / total

    async def query(self, text: str, limit: int = 5, max_distance: Optional[float] = None) -> List[MatchResult]:
        """
        Nearest titles to text, best first.

        Args:
            text: Raw user query
            limit: Maximum matches to return
            max_distance: Acceptance threshold (defaults to accept_distance)

        Returns:
            MatchResults with distance < max_distance; ties keep corpus
            (popularity) order

        Raises:
            IndexUnavailable: If the corpus has no titles yet
        """
        snapshot = await self.corpus.get_all()
        if not snapshot:
            raise IndexUnavailable("Title corpus is empty")

        significant = sum(1 for ch in (text or '') if ch.isalnum())
        if significant < self.min_match_chars or limit <= 0:
            return []

        if max_distance is None:
            max_distance = self.accept_distance

        normalized = normalize_title(text)
        folded = default_process(text)

        matches: List[MatchResult] = []
        for record, alias in self._ensure_index(snapshot):
            score = self._score(normalized, folded, record, alias)
            distance = round(1.0 - score / 100.0, 6)
            if distance < max_distance:
                matches.append(MatchResult(record=record, distance=distance))

        # sort is stable, so equal distances keep popularity order
        matches.sort(key=lambda m: m.distance)
        return matches[:limit]

    async def warm_up(self) -> int:
        """Load the corpus and build the index. Returns the index size."""
        snapshot = await self.corpus.get_all()
        return len(self._ensure_index(snapshot))

    async def stats(self) -> dict:
        return {
            'size': len(self._entries),
            'ready': bool(self._entries),
            'builds': self._builds,
            'accept_distance': self.accept_distance,
        }
