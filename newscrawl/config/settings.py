"""
NewsCrawl Configuration System
==============================

Configuration management with environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence.
"""

from pathlib import Path
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from .. import __version__
from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class FetcherSettings(BaseModel):
    """HTTP fetch configuration."""
    timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0, description="Total request timeout in seconds")
    user_agent: str = Field(
        default=f"NewsCrawl/{__version__} (+https://github.com/newscrawl/newscrawl)",
        description="Client identifier sent with every request",
    )
    accept: str = Field(
        default="application/rss+xml, application/atom+xml, application/xml, text/xml;q=0.9, */*;q=0.8",
        description="Accept header for feed requests",
    )
    max_body_bytes: int = Field(default=10 * 1024 * 1024, ge=1024, description="Largest feed body accepted")

    @field_validator('user_agent')
    @classmethod
    def validate_user_agent(cls, v):
        """A blank client identifier is not allowed."""
        v = v.strip()
        if not v:
            raise ValueError("user_agent cannot be empty")
        return v


class ProcessingSettings(BaseModel):
    """Ingestion pipeline configuration."""
    parallel_feeds: int = Field(default=5, ge=1, le=50, description="Concurrent feed runs in a multi-feed crawl")
    max_summary_length: int = Field(default=5000, ge=100, le=100000, description="Summaries longer than this are truncated")


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/newscrawl.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default=None, description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class NewsCrawlSettings(BaseSettings):
    """Main application settings."""

    fetcher: FetcherSettings = Field(default_factory=FetcherSettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="NewsCrawl", description="Application name")
    version: str = Field(default=__version__, description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "NEWSCRAWL_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        try:
            db_path = Path(self.database.path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> NewsCrawlSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        # Precedence: environment, then .env, then Field defaults
        settings = NewsCrawlSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        ) from e


# Global settings instance
_settings: Optional[NewsCrawlSettings] = None


def get_settings(reload: bool = False) -> NewsCrawlSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
