"""
Consecutive sync failure tracking per store.

- Counts failures per store in Redis
- Alerts through Sentry once a store reaches the threshold (default 5)
- Resets the counter on a successful sync

Tracking is disabled (counts read as 0) when Redis cannot be reached;
a missing Redis never affects syncing.

Usage:
    from watcher.monitoring import get_failure_tracker

    tracker = get_failure_tracker()
    count = tracker.record_failure(store_id, store_name)
    tracker.record_success(store_id)
"""

import logging
from typing import Optional

import redis
from django.conf import settings

from .sentry_integration import capture_alert

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 5

# TTL for failure counters in Redis (24 hours)
FAILURE_COUNTER_TTL = 86400


def trigger_threshold_alert(
    store_id: str,
    failure_count: int,
    threshold: int,
    store_name: Optional[str] = None,
) -> None:
    message = (
        f"Store {store_name or store_id} failed to sync "
        f"{failure_count} times in a row"
    )
    logger.warning(message)
    capture_alert(
        message=message,
        level="warning",
        store_id=store_id,
        store_name=store_name,
        extra_data={"failure_count": failure_count, "threshold": threshold},
    )


class FailureTracker:
    """Consecutive failure counters per store, kept in Redis."""

    def __init__(
        self,
        redis_client=None,
        threshold: int = DEFAULT_FAILURE_THRESHOLD,
        key_prefix: str = "watcher:failures:",
    ):
        self.redis_client = redis_client
        self.threshold = threshold
        self.key_prefix = key_prefix

    def _get_key(self, store_id) -> str:
        return f"{self.key_prefix}{store_id}"

    def record_failure(self, store_id, store_name: Optional[str] = None) -> int:
        """
        Increment the store's counter, alerting when it reaches the threshold.

        Returns:
            Failure count after increment (0 when tracking is disabled)
        """
        if self.redis_client is None:
            return 0

        key = self._get_key(store_id)
        try:
            count = self.redis_client.incr(key)
            if count == 1:
                self.redis_client.expire(key, FAILURE_COUNTER_TTL)
        except redis.RedisError as e:
            logger.warning(f"Failed to record failure in Redis: {e}")
            return 0

        logger.debug(f"Recorded failure for store {store_id}: count={count}, threshold={self.threshold}")

        # Alert once on reaching the threshold, not on every later failure
        if count == self.threshold:
            trigger_threshold_alert(str(store_id), count, self.threshold, store_name)

        return count

    def record_success(self, store_id) -> None:
        if self.redis_client is None:
            return
        try:
            self.redis_client.delete(self._get_key(store_id))
        except redis.RedisError as e:
            logger.warning(f"Failed to reset failure counter in Redis: {e}")

    def get_failure_count(self, store_id) -> int:
        if self.redis_client is None:
            return 0
        try:
            count = self.redis_client.get(self._get_key(store_id))
        except redis.RedisError as e:
            logger.warning(f"Failed to get failure count from Redis: {e}")
            return 0
        return int(count) if count else 0


_failure_tracker: Optional[FailureTracker] = None


def get_failure_tracker() -> FailureTracker:
    """Global tracker, connecting to Redis on first use."""
    global _failure_tracker

    if _failure_tracker is None:
        _failure_tracker = FailureTracker(
            redis_client=_get_redis_client(),
            threshold=getattr(settings, "WATCHER_FAILURE_THRESHOLD", DEFAULT_FAILURE_THRESHOLD),
        )

    return _failure_tracker


def _get_redis_client():
    """Redis client from the Celery broker URL, or None if it cannot be reached."""
    if not getattr(settings, "WATCHER_TRACK_FAILURES", True):
        return None

    broker_url = getattr(settings, "CELERY_BROKER_URL", "redis://localhost:6379/1")
    try:
        client = redis.from_url(broker_url, socket_connect_timeout=2)
        client.ping()
        return client
    except redis.RedisError as e:
        logger.warning(f"Failed to connect to Redis for failure tracking: {e}")
        return None
