"""
Sync error taxonomy.

The orchestrator is the first layer that turns failures into user-visible
state, so every error it raises carries the strings an inline banner
needs: a short description, the reason, and a recovery suggestion.
"""

from typing import Optional

from watcher.fetchers.errors import (
    FetchError,
    FetchTimeout,
    InvalidResponse,
    NetworkUnavailable,
    RemoteRateLimited,
    ServerError,
)


class SyncError(Exception):
    """Base class for errors raised by the sync orchestrator."""

    kind = "sync_error"
    is_retryable = True

    @property
    def description(self) -> str:
        return str(self)

    @property
    def failure_reason(self) -> Optional[str]:
        return None

    @property
    def recovery_suggestion(self) -> Optional[str]:
        return None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.description,
            "failure_reason": self.failure_reason,
            "recovery_suggestion": self.recovery_suggestion,
            "retryable": self.is_retryable,
        }


class StoreNotFound(SyncError):
    kind = "store_not_found"
    is_retryable = False

    def __init__(self, store_id):
        self.store_id = store_id
        super().__init__(f"Store {store_id} not found")


class LocalRateLimited(SyncError):
    """
    The store was synced too recently.

    Distinct from RemoteRateLimited: this comes from the local gate and no
    request was made.
    """

    kind = "rate_limited"

    def __init__(self, retry_after: float):
        self.retry_after = retry_after
        super().__init__(f"Please wait {int(round(retry_after))} seconds before syncing again")

    @property
    def failure_reason(self) -> str:
        return "This store was synced moments ago."

    @property
    def recovery_suggestion(self) -> str:
        return f"Try again in {int(round(self.retry_after))} seconds."

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["retry_after"] = self.retry_after
        return data


class SyncFetchFailed(SyncError):
    """Wraps a FetchError raised while fetching the catalog."""

    kind = "fetch_failed"

    def __init__(self, fetch_error: FetchError, store_name: str = ""):
        self.fetch_error = fetch_error
        self.store_name = store_name
        prefix = f"Could not sync {store_name}" if store_name else "Could not sync store"
        super().__init__(f"{prefix}: {fetch_error}")

    @property
    def retry_after(self) -> Optional[float]:
        return getattr(self.fetch_error, "retry_after", None)

    @property
    def is_retryable(self) -> bool:
        return not isinstance(self.fetch_error, InvalidResponse)

    @property
    def failure_reason(self) -> str:
        return _fetch_failure_reason(self.fetch_error)

    @property
    def recovery_suggestion(self) -> str:
        return _fetch_recovery_suggestion(self.fetch_error)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["fetch_error"] = self.fetch_error.kind
        data["retry_after"] = self.retry_after
        return data


class PersistenceFailed(SyncError):
    """The reconcile transaction failed and was rolled back."""

    kind = "persistence_failed"

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Could not save sync results: {cause}")

    @property
    def failure_reason(self) -> str:
        return "The local database rejected the update."

    @property
    def recovery_suggestion(self) -> str:
        return "Nothing was changed. Try syncing again."


class StoreValidationFailed(SyncError):
    """The validating probe for a new store failed; nothing was saved."""

    kind = "validation_failed"
    is_retryable = False

    def __init__(self, domain: str, fetch_error: Optional[FetchError] = None, message: str = ""):
        self.domain = domain
        self.fetch_error = fetch_error
        super().__init__(message or f"{domain} does not look like a supported store")

    @property
    def failure_reason(self) -> Optional[str]:
        if self.fetch_error is None:
            return None
        return _fetch_failure_reason(self.fetch_error)

    @property
    def recovery_suggestion(self) -> str:
        return "Check the domain and make sure the store's product catalog is public."


def _fetch_failure_reason(error: FetchError) -> str:
    if isinstance(error, NetworkUnavailable):
        return "The store could not be reached."
    if isinstance(error, FetchTimeout):
        return "The store took too long to respond."
    if isinstance(error, RemoteRateLimited):
        return "The store is limiting requests."
    if isinstance(error, ServerError):
        return f"The store returned an error (HTTP {error.status_code})."
    if isinstance(error, InvalidResponse):
        return "The store returned data that could not be read."
    return "The catalog could not be fetched."


def _fetch_recovery_suggestion(error: FetchError) -> str:
    if isinstance(error, NetworkUnavailable):
        return "Check your internet connection and try again."
    if isinstance(error, RemoteRateLimited):
        return f"Wait {int(round(error.retry_after))} seconds and try again."
    if isinstance(error, InvalidResponse):
        return "The store may no longer publish its catalog."
    return "Try again later."
