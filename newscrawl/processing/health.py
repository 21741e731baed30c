"""
Feed Health Tracking
====================

Writes a run's terminal state back to the feed registry. Bookkeeping is
best effort: failures here are logged and reported through the return
value, never raised into the run.
"""

from datetime import datetime, timezone
from typing import Optional

from ..storage.feed_repository import FeedRepository
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import HealthUpdateError


class HealthTracker:
    """Translates run outcomes into feed registry updates."""

    def __init__(self, feed_repository: FeedRepository):
        self.feeds = feed_repository
        self.logger = get_logger_for_component("health")

    def record_success(self, feed_id: int, timestamp: Optional[datetime] = None) -> bool:
        """Reset the error count, clear the last error and stamp the success time."""
        return self._update(feed_id, True, None, timestamp)

    def record_failure(
        self, feed_id: int, error_message: str, timestamp: Optional[datetime] = None
    ) -> bool:
        """Increment the error count by one and store the failure cause."""
        return self._update(feed_id, False, error_message, timestamp)

    def _update(
        self,
        feed_id: int,
        success: bool,
        error_message: Optional[str],
        timestamp: Optional[datetime],
    ) -> bool:
        timestamp = timestamp or datetime.now(timezone.utc)

        try:
            updated = self.feeds.update_feed_health(
                feed_id, success=success, error_message=error_message, timestamp=timestamp
            )
            if not updated:
                raise HealthUpdateError(
                    f"Feed {feed_id} vanished before its health could be recorded",
                    feed_id=feed_id,
                )
            return True

        except Exception as e:
            error = e if isinstance(e, HealthUpdateError) else HealthUpdateError(
                f"Health update failed for feed {feed_id}: {e}", feed_id=feed_id
            )
            self.logger.error(str(error), extra=error.to_dict())
            return False
