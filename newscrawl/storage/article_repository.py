"""
Article Repository
==================

Repository pattern implementation for the article store. The URL column
carries a UNIQUE constraint, which is the final word on duplicates no
matter how many runs race to insert the same story.
"""

import sqlite3
from typing import List, Optional

from ..database.models import Article
from ..database.connection import DatabaseConnection
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ArticleConflictError, ErrorCode


class ArticleRepository:
    """Repository for Article lookups and inserts."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize article repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("article_repository")

    def insert_article(self, article: Article) -> Article:
        """Insert a new article.

        Args:
            article: Article model to insert

        Returns:
            The stored article

        Raises:
            ArticleConflictError: If an article with the same URL already exists
            DatabaseError: If the insert fails for any other reason
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO articles (id, title, url, summary, source, image_url,
                                          published_at, extracted_at, created_at,
                                          updated_at, feed_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(url) DO NOTHING
                    """,
                    (
                        article.id, article.title, article.url, article.summary,
                        article.source, article.image_url,
                        article.published_at.isoformat(),
                        article.extracted_at.isoformat(),
                        article.created_at.isoformat(),
                        article.updated_at.isoformat(),
                        article.feed_id,
                    )
                )
                conn.commit()

        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to insert article {article.url}: {e}",
                error_code=ErrorCode.DATABASE_ERROR
            ) from e

        if cursor.rowcount == 0:
            raise ArticleConflictError(article.url)

        self.logger.debug(f"Inserted article {article.id}: {article.url}")
        return article

    def find_by_url(self, url: str) -> Optional[Article]:
        """Find article by canonical URL.

        Args:
            url: Canonical URL

        Returns:
            Article model or None if not found

        Raises:
            DatabaseError: If the lookup fails
        """
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM articles WHERE url = ?", (url,)
                ).fetchone()

        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to look up article {url}: {e}",
                error_code=ErrorCode.DATABASE_ERROR
            ) from e

        return Article(**dict(row)) if row else None

    def get_article(self, article_id: str) -> Optional[Article]:
        """Get article by ID.

        Args:
            article_id: Article ID to retrieve

        Returns:
            Article model or None if not found
        """
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM articles WHERE id = ?",
                    (article_id,)
                ).fetchone()

            return Article(**dict(row)) if row else None

        except sqlite3.Error as e:
            self.logger.error(f"Failed to get article {article_id}: {e}")
            return None

    def get_articles_by_feed(self, feed_id: int, limit: int = 100) -> List[Article]:
        """Get the newest articles first delivered by a feed.

        Args:
            feed_id: Feed ID
            limit: Maximum number of articles to return

        Returns:
            List of Article models
        """
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM articles
                    WHERE feed_id = ?
                    ORDER BY published_at DESC
                    LIMIT ?
                    """,
                    (feed_id, limit)
                ).fetchall()

            return [Article(**dict(row)) for row in rows]

        except sqlite3.Error as e:
            self.logger.error(f"Failed to get articles for feed {feed_id}: {e}")
            return []

    def count_articles(self) -> int:
        """Get total number of articles."""
        try:
            with self.db.get_connection() as conn:
                result = conn.execute("SELECT COUNT(*) FROM articles").fetchone()
            return result[0] if result else 0

        except sqlite3.Error as e:
            self.logger.error(f"Failed to get article count: {e}")
            return 0
