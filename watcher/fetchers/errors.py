"""
Catalog fetch error taxonomy.

Every failure of a catalog fetch is one of these. None of them is fatal
to the process; the sync orchestrator decides how each one is surfaced.
"""

from typing import Optional


class FetchError(Exception):
    """Base class for catalog fetch failures."""

    kind = "fetch_error"

    def __init__(self, message: str = "", domain: Optional[str] = None):
        self.domain = domain
        super().__init__(message or self.default_message())

    def default_message(self) -> str:
        return "Catalog fetch failed"


class NetworkUnavailable(FetchError):
    """DNS resolution or connection failure."""

    kind = "network_unavailable"

    def default_message(self) -> str:
        return "Network unavailable"


class FetchTimeout(FetchError):
    """A page request exceeded its timeout; the whole fetch is discarded."""

    kind = "timeout"

    def default_message(self) -> str:
        return "Catalog request timed out"


class ServerError(FetchError):
    """The origin answered with a non-2xx status."""

    kind = "server_error"

    def __init__(self, status_code: int, message: str = "", domain: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or f"HTTP {status_code}", domain=domain)


class InvalidResponse(FetchError):
    """The body was not a catalog listing (bad JSON or unexpected shape)."""

    kind = "invalid_response"

    def default_message(self) -> str:
        return "Invalid catalog response"


class RemoteRateLimited(FetchError):
    """The origin answered 429; ``retry_after`` is in seconds."""

    kind = "rate_limited"

    def __init__(self, retry_after: float, message: str = "", domain: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(message or f"Rate limited by origin, retry after {retry_after:.0f}s", domain=domain)
