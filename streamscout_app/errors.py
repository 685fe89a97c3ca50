"""
Error taxonomy for the search pipeline.

Only ValidationError is allowed to terminate a query. Everything else is
caught at the component that owns it and downgraded to partial or null data.
"""

from typing import Optional

BAD_REQUEST_STATUSES = frozenset({400, 422})


class StreamScoutError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(StreamScoutError):
    """Raised when input to the pipeline boundary is missing or malformed."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)


class UpstreamError(StreamScoutError):
    """
    Raised when the catalog API fails.

    status_code carries the HTTP status of the failed call, or 0 for
    network errors and timeouts.
    """

    def __init__(self, message: str, status_code: int = 0):
        self.message = message
        self.status_code = status_code
        super().__init__(f"{message} (status={status_code})")

    @property
    def is_bad_request(self) -> bool:
        """
        Upstream rejected the request itself as malformed (400/422).

        Other 4xx (401 bad key, 403, 404, 429) are server-side faults, not
        something the caller can fix by changing the query.
        """
        return self.status_code in BAD_REQUEST_STATUSES

    @property
    def is_timeout(self) -> bool:
        return self.status_code == 0


class MalformedPayloadError(UpstreamError):
    """Raised when an upstream payload does not have the expected shape."""

    def __init__(self, message: str, status_code: int = 200):
        super().__init__(message, status_code)


class CacheBackendError(StreamScoutError):
    """Raised by a cache backend when its store cannot be reached or decoded."""


class IndexUnavailable(StreamScoutError):
    """Raised when the title corpus is empty and no match index can be built."""
