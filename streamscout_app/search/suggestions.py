"""
"Did you mean" decisions on top of the match index.

A suggestion is offered when the nearest corpus title is close enough and is
not simply the query itself. Whether the pipeline should act on it (re-search
with the corrected title) also depends on how many results upstream returned.
"""

import logging
from typing import List, Optional

from ..errors import IndexUnavailable
from .matcher import MatchIndex
from .models import Suggestion, TitleRecord

logger = logging.getLogger(__name__)


class SuggestionEngine:

    def __init__(
        self,
        index: MatchIndex,
        reject_distance: float = 0.5,
        typo_confidence: float = 0.7,
        enough_results: int = 3,
        few_results: int = 2,
    ):
        self.index = index
        self.reject_distance = reject_distance
        self.typo_confidence = typo_confidence
        self.enough_results = enough_results
        self.few_results = few_results

    async def get_suggestion(self, query: str) -> Optional[Suggestion]:
        """
        Best "did you mean" for query, or None.

        None when nothing matches, the best match is too far away, or the
        best match is the query itself (case-insensitive).
        """
        if not query or not query.strip():
            return None

        try:
            matches = await self.index.query(query, limit=1)
        except IndexUnavailable as e:
            logger.info(f"No suggestion for '{query}': {e}")
            return None

        if not matches:
            return None

        best = matches[0]
        if best.distance >= self.reject_distance:
            return None
        if best.record.display_title.strip().lower() == query.strip().lower():
            return None

        return Suggestion(
            original_query=query,
            suggested_title=best.record.display_title,
            confidence=1.0 - best.distance,
        )

    def is_likely_typo(self, suggestion: Optional[Suggestion], upstream_result_count: int) -> bool:
        """Pure decision: enough results means no typo, otherwise need a confident suggestion and few results."""
        if upstream_result_count >= self.enough_results:
            return False
        if suggestion is None:
            return False
        return suggestion.confidence > self.typo_confidence and upstream_result_count < self.few_results

    async def has_likely_typo(self, query: str, upstream_result_count: int) -> bool:
        if upstream_result_count >= self.enough_results:
            return False
        suggestion = await self.get_suggestion(query)
        return self.is_likely_typo(suggestion, upstream_result_count)

    async def get_multiple_suggestions(self, query: str, limit: int = 5) -> List[TitleRecord]:
        """Autocomplete: up to limit corpus titles close to query."""
        if not query or not query.strip():
            return []
        try:
            matches = await self.index.query(query, limit=limit)
        except IndexUnavailable as e:
            logger.info(f"No autocomplete for '{query}': {e}")
            return []
        return [m.record for m in matches if m.distance < self.reject_distance]
