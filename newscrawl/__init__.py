"""
NewsCrawl - News Feed Ingestion Pipeline
========================================

Fetches RSS/Atom feeds from independent publishers and stores a
normalized, de-duplicated article set.

Main Components:
- Database: SQLite with connection pooling and schema management
- Configuration: environment variables with Pydantic validation
- Ingestion: fetching, format detection, item extraction, normalization
- Processing: deduplication gate, feed health tracking, run orchestration
"""

__version__ = "0.3.0"
__author__ = "NewsCrawl Development Team"
__description__ = "RSS/Atom news feed ingestion pipeline"

# Core imports for easy access
from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import NewsCrawlError

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "NewsCrawlError",
]
