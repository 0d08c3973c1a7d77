"""
Monitoring and alerting for catalog syncs.

- Sentry error tracking with store context
- Consecutive failure tracking via Redis
"""

from .sentry_integration import capture_sync_error, add_sync_breadcrumb, capture_alert
from .failure_tracker import FailureTracker, get_failure_tracker

__all__ = [
    "capture_sync_error",
    "add_sync_breadcrumb",
    "capture_alert",
    "FailureTracker",
    "get_failure_tracker",
]
