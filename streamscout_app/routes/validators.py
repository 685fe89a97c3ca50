"""Lightweight request validation helpers."""

from typing import Any, Dict, List, Optional, Tuple

from ..catalog.models import MediaKind
from ..search.pipeline import MAX_PAGE

# Suggestion list limits
DEFAULT_SUGGESTION_LIMIT = 5
MAX_SUGGESTION_LIMIT = 20

# Upper bound for one streamed availability request (chunked internally)
MAX_RESOLVE_ITEMS = 1000

TRUTHY = ('1', 'true', 'yes', 'on')
FALSY = ('0', 'false', 'no', 'off')


def sanitize_string(value: Any, max_length: Optional[int] = None) -> str:
    """
    Sanitize a string by removing control characters and limiting length.

    Args:
        value: Raw value (non-strings become "")
        max_length: Truncate to this length (None keeps the full value)

    Returns:
        Sanitized string
    """
    if not isinstance(value, str):
        return ""
    result = ''.join(c for c in value if c >= ' ')
    result = result.strip()
    return result if max_length is None else result[:max_length]


def parse_page(raw: Optional[str]) -> Tuple[int, Optional[str]]:
    """
    Parse a page query parameter.

    Returns:
        Tuple of (page, error_or_none)
    """
    if raw is None or raw == '':
        return 1, None
    try:
        page = int(raw)
    except (TypeError, ValueError):
        return 1, "Invalid page number"
    if page < 1 or page > MAX_PAGE:
        return 1, f"Page must be between 1 and {MAX_PAGE}"
    return page, None


def parse_limit(raw: Optional[str], default: int = DEFAULT_SUGGESTION_LIMIT,
                maximum: int = MAX_SUGGESTION_LIMIT) -> int:
    """Lenient: bad values fall back to the default, large ones are capped."""
    try:
        limit = int(raw) if raw is not None else default
    except (TypeError, ValueError):
        return default
    if limit < 1:
        return default
    return min(limit, maximum)


def parse_bool(raw: Optional[str], default: bool = True) -> bool:
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in TRUTHY:
        return True
    if value in FALSY:
        return False
    return default


def validate_title_params(args: Dict[str, Any]) -> Tuple[Optional[int], Optional[MediaKind], Optional[str]]:
    """
    Validate the id/type pair used by the single-title routes.

    Returns:
        Tuple of (id, kind, error_or_none)
    """
    raw_id = args.get('id')
    raw_type = args.get('type')
    if not raw_id or not raw_type:
        return None, None, "Both id and type parameters are required"

    kind = MediaKind.parse(raw_type)
    if kind is None:
        return None, None, 'Type must be either "movie" or "tv"'

    try:
        item_id = int(raw_id)
    except (TypeError, ValueError):
        return None, None, "id must be a positive integer"
    if item_id < 1:
        return None, None, "id must be a positive integer"
    return item_id, kind, None


def validate_items(payload: Dict[str, Any], max_items: Optional[int] = None) -> Tuple[List[Any], Optional[str]]:
    """
    Validate the items array of an availability request body.

    Only the container is checked here; individual items are parsed leniently
    by the resolver and bad ones come back with providers=None.
    """
    items = payload.get('items')
    if not isinstance(items, list) or not items:
        return [], "Items array is required and must not be empty"
    if max_items is not None and len(items) > max_items:
        return [], f"Maximum {max_items} items allowed per request"
    return items, None
