"""
NewsCrawl Database Schema
=========================

SQLite schema for the two stores the ingestion pipeline talks to:
- feeds: the feed registry, including per-feed health
- articles: normalized articles, unique by canonical URL
"""

import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class DatabaseSchema:
    """Database schema manager for the NewsCrawl SQLite database."""

    TABLES = ("feeds", "articles")

    def __init__(self, db_path: str = "data/newscrawl.db"):
        """Initialize database schema manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables with proper schema."""
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("PRAGMA foreign_keys = ON")

            self._create_feeds_table(conn)
            self._create_articles_table(conn)
            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")
        finally:
            conn.close()

    def _create_feeds_table(self, conn: sqlite3.Connection) -> None:
        """Create feeds table (the feed registry)."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS feeds (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                url TEXT NOT NULL UNIQUE,
                source TEXT NOT NULL,
                category TEXT,
                description TEXT,
                enabled BOOLEAN NOT NULL DEFAULT TRUE,
                error_count INTEGER NOT NULL DEFAULT 0 CHECK (error_count >= 0),
                last_error TEXT,
                last_crawled_at TIMESTAMP,
                last_fetched_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_articles_table(self, conn: sqlite3.Connection) -> None:
        """Create articles table; url is the global deduplication key."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS articles (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                url TEXT NOT NULL UNIQUE,
                summary TEXT,
                source TEXT NOT NULL,
                image_url TEXT,
                published_at TIMESTAMP NOT NULL,
                extracted_at TIMESTAMP NOT NULL,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                feed_id INTEGER,
                FOREIGN KEY (feed_id) REFERENCES feeds(id) ON DELETE SET NULL
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        """Create database indexes for optimal query performance."""
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_feeds_enabled ON feeds(enabled)",
            "CREATE INDEX IF NOT EXISTS idx_feeds_error_count ON feeds(error_count)",
            "CREATE INDEX IF NOT EXISTS idx_articles_published ON articles(published_at)",
            "CREATE INDEX IF NOT EXISTS idx_articles_source ON articles(source)",
            "CREATE INDEX IF NOT EXISTS idx_articles_feed ON articles(feed_id)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def drop_tables(self) -> None:
        """Drop all tables (for testing/reset purposes)."""
        conn = sqlite3.connect(self.db_path)
        try:
            for table in ("articles", "feeds"):
                conn.execute(f"DROP TABLE IF EXISTS {table}")
            conn.commit()
            logger.info("All database tables dropped")
        finally:
            conn.close()

    def verify_schema(self) -> bool:
        """Verify database schema is correctly created."""
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute(
                """
                SELECT name FROM sqlite_master
                WHERE type='table' AND name NOT LIKE 'sqlite_%'
            """
            )
            tables = {row[0] for row in cursor.fetchall()}
            missing = set(self.TABLES) - tables

            if missing:
                logger.error(f"Missing tables: {sorted(missing)}")
                return False

            logger.info("Database schema verification passed")
            return True

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False
        finally:
            conn.close()
