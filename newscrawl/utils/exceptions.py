"""
NewsCrawl Custom Exceptions
===========================

Exception hierarchy for the ingestion pipeline with error codes,
context information and caller-facing messages.
"""

import asyncio
import sqlite3
from typing import Optional, Dict, Any
from enum import Enum

import aiohttp
from lxml import etree


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"

    # Database errors (D001-D099)
    DATABASE_CONNECTION = "D001"
    DATABASE_CONSTRAINT = "D003"
    DATABASE_ERROR = "D006"

    # Feed ingestion errors (F001-F099)
    FEED_FETCH_TIMEOUT = "F002"
    FEED_PARSE_ERROR = "F003"
    FEED_NETWORK_ERROR = "F004"
    FEED_HTTP_STATUS = "F005"
    FEED_NOT_FOUND = "F006"
    FEED_UNSUPPORTED_FORMAT = "F007"
    FEED_NO_VALID_ITEMS = "F008"
    FEED_HEALTH_UPDATE = "F009"

    # Content processing errors (P001-P099)
    PERSISTENCE_FAILED = "P002"

    # Resource errors (R001-R099)
    DUPLICATE_RESOURCE = "R001"



class FetchErrorCause(str, Enum):
    """Why a feed fetch failed."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    HTTP_STATUS = "http_status"


class NewsCrawlError(Exception):
    """Base exception for all NewsCrawl errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize NewsCrawl error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: Caller-facing error message
            recoverable: Whether a later run may succeed
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _passthrough(kwargs: Dict[str, Any], *consumed: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in consumed}


class ConfigurationError(NewsCrawlError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_passthrough(kwargs, "context", "error_code", "user_message"),
        )


class DatabaseError(NewsCrawlError):
    """Database-related errors."""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        """Initialize database error.

        Args:
            message: Error message
            query: SQL query that caused the error
            **kwargs: Additional arguments for NewsCrawlError
        """
        context = kwargs.get("context", {})
        if query:
            context["query"] = query

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.DATABASE_CONNECTION),
            context=context,
            user_message=kwargs.get("user_message", "Database operation failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class ArticleConflictError(DatabaseError):
    """An article with the same URL was inserted by someone else first."""

    def __init__(self, url: str, **kwargs):
        context = kwargs.pop("context", {})
        context["url"] = url
        self.url = url

        super().__init__(
            f"Article already exists: {url}",
            error_code=ErrorCode.DATABASE_CONSTRAINT,
            context=context,
            user_message="Article already stored",
            recoverable=False,
            **kwargs,
        )


class FeedError(NewsCrawlError):
    """Feed ingestion and parsing errors."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        """Initialize feed error.

        Args:
            message: Error message
            feed_url: Feed URL that caused the error
            **kwargs: Additional arguments for NewsCrawlError
        """
        context = kwargs.get("context", {})
        if feed_url:
            context["feed_url"] = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_PARSE_ERROR),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Feed processing failed: {message}"
            ),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class FeedNotFoundError(NewsCrawlError):
    """Feed identifier is unknown to the registry."""

    def __init__(self, feed_id: Any, **kwargs):
        context = kwargs.pop("context", {})
        context["feed_id"] = feed_id
        self.feed_id = feed_id

        super().__init__(
            f"Feed not found: {feed_id}",
            error_code=ErrorCode.FEED_NOT_FOUND,
            context=context,
            user_message="Feed not found",
            recoverable=False,
            **kwargs,
        )


class FeedFetchError(FeedError):
    """Feed could not be downloaded."""

    _CODES = {
        FetchErrorCause.TIMEOUT: ErrorCode.FEED_FETCH_TIMEOUT,
        FetchErrorCause.NETWORK: ErrorCode.FEED_NETWORK_ERROR,
        FetchErrorCause.HTTP_STATUS: ErrorCode.FEED_HTTP_STATUS,
    }

    def __init__(
        self,
        message: str,
        cause: FetchErrorCause = FetchErrorCause.NETWORK,
        status_code: Optional[int] = None,
        feed_url: Optional[str] = None,
        **kwargs,
    ):
        """Initialize fetch error.

        Args:
            message: Error message
            cause: timeout, network or http_status
            status_code: HTTP status for http_status failures
            feed_url: Feed URL being fetched
        """
        context = kwargs.pop("context", {})
        context["cause"] = cause.value
        if status_code is not None:
            context["status_code"] = status_code
        self.cause = cause
        self.status_code = status_code

        kwargs.setdefault("error_code", self._CODES[cause])
        super().__init__(message, feed_url=feed_url, context=context, **kwargs)


class UnsupportedFormatError(FeedError):
    """Document is neither RSS nor Atom."""

    def __init__(self, message: str = "Unsupported feed format", **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_UNSUPPORTED_FORMAT)
        kwargs.setdefault("recoverable", False)
        super().__init__(message, **kwargs)


class NoValidItemsError(FeedError):
    """Feed parsed but no candidate survived normalization."""

    def __init__(self, message: str = "Feed contains no valid items", **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_NO_VALID_ITEMS)
        super().__init__(message, **kwargs)


class PersistenceError(NewsCrawlError):
    """Hard article store failure while persisting a run."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if url:
            context["url"] = url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.PERSISTENCE_FAILED),
            context=context,
            user_message=kwargs.get("user_message", "Failed to store articles"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class HealthUpdateError(NewsCrawlError):
    """Feed health bookkeeping failed. Logged, never escalated."""

    def __init__(self, message: str, feed_id: Any = None, **kwargs):
        context = kwargs.get("context", {})
        if feed_id is not None:
            context["feed_id"] = feed_id

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_HEALTH_UPDATE),
            context=context,
            recoverable=True,
            **_passthrough(kwargs, "context", "error_code", "recoverable"),
        )


# Exception handling utilities


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> NewsCrawlError:
    """Map a foreign exception onto the ingestion error taxonomy and log it.

    NewsCrawl errors pass through unchanged. Timeouts and aiohttp failures
    become FeedFetchError, lxml failures UnsupportedFormatError, sqlite3
    failures DatabaseError; anything else is a plain NewsCrawlError. The
    original exception is kept as __cause__.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        Classified NewsCrawl exception
    """
    if isinstance(exception, NewsCrawlError):
        logger.error(f"Operation '{operation}' failed: {exception}", extra=exception.to_dict())
        return exception

    context = dict(context or {})
    context["operation"] = operation
    context["original_exception_type"] = type(exception).__name__
    detail = f"{operation}: {exception}"

    # aiohttp timeouts subclass asyncio.TimeoutError, which is not TimeoutError before 3.11
    if isinstance(exception, (asyncio.TimeoutError, TimeoutError)):
        error: NewsCrawlError = FeedFetchError(
            f"Timed out during {detail}", cause=FetchErrorCause.TIMEOUT, context=context
        )

    elif isinstance(exception, aiohttp.ClientResponseError):
        error = FeedFetchError(
            f"HTTP {exception.status} during {operation}",
            cause=FetchErrorCause.HTTP_STATUS,
            status_code=exception.status,
            context=context,
        )

    elif isinstance(exception, (aiohttp.ClientError, ConnectionError)):
        error = FeedFetchError(
            f"Network error during {detail}", cause=FetchErrorCause.NETWORK, context=context
        )

    elif isinstance(exception, etree.LxmlError):
        error = UnsupportedFormatError(f"Unparseable document during {detail}", context=context)

    elif isinstance(exception, sqlite3.IntegrityError):
        error = DatabaseError(
            f"Constraint violated during {detail}",
            error_code=ErrorCode.DATABASE_CONSTRAINT,
            context=context,
            recoverable=False,
        )

    elif isinstance(exception, sqlite3.Error):
        error = DatabaseError(
            f"Database failure during {detail}",
            error_code=ErrorCode.DATABASE_ERROR,
            context=context,
        )

    else:
        error = NewsCrawlError(
            message=f"Unexpected error during {detail}",
            context=context,
            user_message="An unexpected error occurred",
            recoverable=True,
        )

    error.__cause__ = exception
    logger.error(f"Operation '{operation}' failed: {error}", extra=error.to_dict())
    return error


def get_user_friendly_message(exception: Exception) -> str:
    """Get caller-facing error message for any exception."""
    if isinstance(exception, NewsCrawlError):
        return exception.user_message

    return "An unexpected error occurred. Please try again later."
