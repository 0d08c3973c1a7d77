"""
Sentry error tracking for catalog syncs.

- Breadcrumbs for sync context (store, domain, phase)
- Exceptions captured with store tags
- Sensitive fields filtered from extra context

Usage:
    from watcher.monitoring import capture_sync_error, add_sync_breadcrumb

    try:
        await orchestrator.sync_store(store_id)
    except Exception as e:
        capture_sync_error(e, store=store, extra_context={"phase": "fetch"})

Every call is a no-op when Sentry was not initialised (no SENTRY_DSN).
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

# Sensitive fields to filter from Sentry events
SENSITIVE_FIELDS = {
    "cookies",
    "cookie",
    "authorization",
    "auth",
    "password",
    "secret",
    "token",
    "dsn",
}


def _filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Replace values of sensitive-looking keys, recursing into nested dicts."""
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive_data(value)
        else:
            filtered[key] = value
    return filtered


def add_sync_breadcrumb(
    store_name: str,
    domain: str,
    message: str = "Sync operation",
    level: str = "info",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Add a breadcrumb describing a sync step.

    Args:
        store_name: Display name of the store
        domain: Catalog origin
        message: Description of the operation
        level: Log level (info, warning, error)
        extra_data: Additional context data
    """
    if not sentry_sdk.is_initialized():
        return

    breadcrumb_data = {"store": store_name, "domain": domain}
    if extra_data:
        breadcrumb_data.update(_filter_sensitive_data(extra_data))

    try:
        sentry_sdk.add_breadcrumb(
            category="sync",
            message=message,
            level=level,
            data=breadcrumb_data,
        )
    except Exception as e:
        logger.warning(f"Failed to add Sentry breadcrumb: {e}")


def capture_sync_error(
    error: Exception,
    store=None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture a sync failure to Sentry with store context.

    Args:
        error: The exception that occurred
        store: Store instance or StoreDTO (optional)
        extra_context: Additional context (filtered for sensitive data)
    """
    if not sentry_sdk.is_initialized():
        logger.debug(f"Sentry not initialised, not capturing: {error}")
        return

    store_name = store.name if store else "Unknown"
    domain = store.domain if store else "Unknown"

    add_sync_breadcrumb(
        store_name=store_name,
        domain=domain,
        message=f"Error: {type(error).__name__}",
        level="error",
        extra_data=extra_context,
    )

    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("watcher.store", store_name)
            scope.set_tag("watcher.domain", domain)
            scope.set_tag("watcher.error_kind", getattr(error, "kind", type(error).__name__))

            if store is not None:
                scope.set_extra("store_id", str(store.id))
            if extra_context:
                scope.set_extra("sync_context", _filter_sensitive_data(extra_context))

            sentry_sdk.capture_exception(error)

    except Exception as e:
        logger.warning(f"Failed to capture exception to Sentry: {e}")


def capture_alert(
    message: str,
    level: str = "warning",
    store_id: Optional[str] = None,
    store_name: Optional[str] = None,
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture an alert message to Sentry (threshold breaches).

    Args:
        message: Alert message
        level: Severity level (warning, error)
        store_id: Store id
        store_name: Store display name
        extra_data: Additional alert data
    """
    if not sentry_sdk.is_initialized():
        logger.debug(f"Sentry not initialised, alert logged only: {message}")
        return

    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("alert.type", "threshold_breach")
            if store_name:
                scope.set_tag("watcher.store", store_name)
            if store_id:
                scope.set_extra("store_id", store_id)
            if extra_data:
                scope.set_extra("alert_data", _filter_sensitive_data(extra_data))

            sentry_sdk.capture_message(message, level=level)

    except Exception as e:
        logger.warning(f"Failed to capture alert to Sentry: {e}")
