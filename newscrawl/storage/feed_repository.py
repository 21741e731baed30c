"""
Feed Repository
===============

Repository pattern implementation for the feed registry.
Provides database abstraction for feed CRUD and health bookkeeping.
"""

import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..database.connection import DatabaseConnection
from ..database.models import Feed
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class FeedRepository:
    """Repository for managing feed registry rows."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize feed repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("feed_repository")

    def create_feed(self, feed: Feed) -> int:
        """Create a new feed in the registry.

        Args:
            feed: Feed object to create

        Returns:
            New feed ID

        Raises:
            DatabaseError: If the feed URL is already registered or the insert fails
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO feeds (
                        name, url, source, category, description, enabled,
                        error_count, last_error, last_crawled_at, last_fetched_at,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        feed.name,
                        str(feed.url),
                        feed.source,
                        feed.category,
                        feed.description,
                        feed.enabled,
                        feed.error_count,
                        feed.last_error,
                        _ts(feed.last_crawled_at),
                        _ts(feed.last_fetched_at),
                        _ts(feed.created_at),
                        _ts(feed.updated_at),
                    ),
                )
                feed_id = cursor.lastrowid
                conn.commit()

            self.logger.info(f"Created feed {feed_id}: {feed.url}")
            return feed_id

        except sqlite3.IntegrityError as e:
            raise DatabaseError(
                f"Feed already registered: {feed.url}",
                error_code=ErrorCode.DUPLICATE_RESOURCE,
                recoverable=False,
            ) from e
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to create feed: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def get_feed_by_id(self, feed_id: int) -> Optional[Feed]:
        """Get feed by ID.

        Args:
            feed_id: Feed ID

        Returns:
            Feed object if found, None otherwise

        Raises:
            DatabaseError: If the lookup itself fails
        """
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM feeds WHERE id = ?", (feed_id,)
                ).fetchone()

            return self._row_to_feed(row) if row else None

        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to get feed {feed_id}: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def list_feeds(self, enabled_only: bool = False) -> List[Feed]:
        """List registered feeds.

        Args:
            enabled_only: If True, only return enabled feeds

        Returns:
            List of Feed objects ordered by ID. Rows that fail validation
            are logged and left out.
        """
        try:
            with self.db.get_connection() as conn:
                if enabled_only:
                    rows = conn.execute(
                        "SELECT * FROM feeds WHERE enabled = ? ORDER BY id", (True,)
                    ).fetchall()
                else:
                    rows = conn.execute("SELECT * FROM feeds ORDER BY id").fetchall()

        except sqlite3.Error as e:
            self.logger.error(f"Failed to list feeds: {e}")
            return []

        feeds = []
        for row in rows:
            try:
                feeds.append(self._row_to_feed(row))
            except DatabaseError as e:
                self.logger.error(f"Skipping feed: {e.message}", extra=e.to_dict())
        return feeds

    def update_feed_health(
        self,
        feed_id: int,
        success: bool,
        error_message: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> bool:
        """Record the outcome of an ingestion run.

        Success resets the error count, clears the last error and stamps
        the success time. Failure increments the error count by exactly one
        and stores the message; the success stamp is left alone.

        Args:
            feed_id: Feed ID
            success: Whether the run succeeded
            error_message: Failure cause (ignored on success)
            timestamp: Run completion time (default now)

        Returns:
            True if a feed row was updated, False if the feed does not exist

        Raises:
            DatabaseError: If the update fails
        """
        timestamp = _ts(timestamp or datetime.now(timezone.utc))

        if success:
            query = """
                UPDATE feeds
                SET error_count = 0, last_error = NULL,
                    last_crawled_at = ?, last_fetched_at = ?, updated_at = ?
                WHERE id = ?
            """
            params = (timestamp, timestamp, timestamp, feed_id)
        else:
            query = """
                UPDATE feeds
                SET error_count = error_count + 1, last_error = ?,
                    last_fetched_at = ?, updated_at = ?
                WHERE id = ?
            """
            params = (error_message or "Unknown error", timestamp, timestamp, feed_id)

        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(query, params)
                conn.commit()

            if cursor.rowcount == 0:
                self.logger.warning(f"No feed found with ID {feed_id}")
                return False
            return True

        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to update health for feed {feed_id}: {e}",
                query=query,
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

    def set_enabled(self, feed_id: int, enabled: bool) -> bool:
        """Enable or disable a feed.

        Returns:
            True if a feed row was updated
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    "UPDATE feeds SET enabled = ?, updated_at = ? WHERE id = ?",
                    (enabled, _ts(datetime.now(timezone.utc)), feed_id),
                )
                conn.commit()

            if cursor.rowcount > 0:
                self.logger.info(f"{'Enabled' if enabled else 'Disabled'} feed {feed_id}")
                return True
            self.logger.warning(f"No feed found with ID {feed_id}")
            return False

        except sqlite3.Error as e:
            self.logger.error(f"Failed to update feed {feed_id}: {e}")
            return False

    def delete_feed(self, feed_id: int) -> bool:
        """Delete a feed. Its articles stay, detached from the feed."""
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute("DELETE FROM feeds WHERE id = ?", (feed_id,))
                conn.commit()

            if cursor.rowcount > 0:
                self.logger.info(f"Deleted feed {feed_id}")
                return True
            self.logger.warning(f"No feed found with ID {feed_id}")
            return False

        except sqlite3.Error as e:
            self.logger.error(f"Failed to delete feed {feed_id}: {e}")
            return False

    def _row_to_feed(self, row) -> Feed:
        """Convert database row to Feed object.

        Raises:
            DatabaseError: If the stored row no longer validates as a Feed
        """
        try:
            return Feed(
                id=row["id"],
                name=row["name"],
                url=row["url"],
                source=row["source"],
                category=row["category"],
                description=row["description"],
                enabled=bool(row["enabled"]),
                error_count=row["error_count"],
                last_error=row["last_error"],
                last_crawled_at=row["last_crawled_at"],
                last_fetched_at=row["last_fetched_at"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )
        except PydanticValidationError as e:
            raise DatabaseError(
                f"Feed row {row['id']} is invalid: {e.errors()[0]['msg']}",
                error_code=ErrorCode.DATABASE_ERROR,
                context={"feed_id": row["id"]},
                recoverable=False,
            ) from e
