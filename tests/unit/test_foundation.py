"""
Foundation Component Tests
==========================

Settings, logging, exception handling and schema management.
"""

import asyncio
import json
import logging
import sqlite3
from unittest.mock import Mock

import aiohttp
import pytest
from lxml import etree

from newscrawl import __version__
from newscrawl.config.settings import NewsCrawlSettings, get_settings
from newscrawl.database.connection import DatabaseConnection
from newscrawl.database.schema import DatabaseSchema
from newscrawl.utils.exceptions import (
    ConfigurationError,
    DatabaseError,
    ErrorCode,
    FeedFetchError,
    FetchErrorCause,
    NewsCrawlError,
    UnsupportedFormatError,
    get_user_friendly_message,
    handle_exception,
)
from newscrawl.utils.logging import (
    ConsoleFormatter,
    PerformanceLogger,
    StructuredFormatter,
    configure_application_logging,
    get_logger_for_component,
)


def _record(msg, args=()):
    return logging.LogRecord("newscrawl.test", logging.INFO, __file__, 1, msg, args, None)


def _lxml_failure():
    try:
        etree.fromstring(b"")
    except etree.XMLSyntaxError as e:
        return e


class TestSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("NEWSCRAWL_FETCHER__TIMEOUT_SECONDS", raising=False)

        settings = NewsCrawlSettings()

        assert settings.fetcher.timeout_seconds == 30
        assert settings.fetcher.user_agent.startswith(f"NewsCrawl/{__version__}")
        assert settings.processing.parallel_feeds == 5
        assert settings.processing.max_summary_length == 5000

    def test_nested_environment_override(self, monkeypatch):
        monkeypatch.setenv("NEWSCRAWL_PROCESSING__PARALLEL_FEEDS", "9")
        monkeypatch.setenv("NEWSCRAWL_LOGGING__LEVEL", "WARNING")

        settings = NewsCrawlSettings()

        assert settings.processing.parallel_feeds == 9
        assert settings.logging.level.value == "WARNING"

    def test_debug_forces_debug_log_level(self):
        assert NewsCrawlSettings(debug=True).get_effective_log_level() == "DEBUG"

    def test_invalid_value_raises_configuration_error(self, monkeypatch):
        monkeypatch.setenv("NEWSCRAWL_FETCHER__TIMEOUT_SECONDS", "0")
        try:
            with pytest.raises(ConfigurationError):
                get_settings(reload=True)
        finally:
            monkeypatch.undo()
            get_settings(reload=True)


class TestSchema:

    def test_create_and_verify(self, tmp_path):
        schema = DatabaseSchema(str(tmp_path / "schema.db"))
        schema.create_tables()

        assert schema.verify_schema()

        schema.drop_tables()
        assert not schema.verify_schema()

    def test_database_info(self, temp_db):
        db = DatabaseConnection(temp_db, pool_size=2)
        try:
            info = db.get_database_info()
        finally:
            db.close_all_connections()

        assert info["table_counts"] == {"feeds": 0, "articles": 0}
        assert info["total_connections"] == 2


class TestExceptions:

    def test_fetch_error_codes_follow_cause(self):
        timeout = FeedFetchError("slow", cause=FetchErrorCause.TIMEOUT)
        status = FeedFetchError("HTTP 500", cause=FetchErrorCause.HTTP_STATUS, status_code=500)

        assert timeout.error_code == ErrorCode.FEED_FETCH_TIMEOUT
        assert status.error_code == ErrorCode.FEED_HTTP_STATUS
        assert status.context == {"cause": "http_status", "status_code": 500}
        assert str(status) == "[F005] HTTP 500"

    def test_to_dict(self):
        data = FeedFetchError("down", feed_url="https://x.example.com/rss").to_dict()

        assert data["error_type"] == "FeedFetchError"
        assert data["error_code"] == "F004"
        assert data["context"]["feed_url"] == "https://x.example.com/rss"
        assert data["recoverable"] is True

    @pytest.mark.parametrize(
        "exception, error_type, code",
        [
            (asyncio.TimeoutError(), FeedFetchError, ErrorCode.FEED_FETCH_TIMEOUT),
            (
                aiohttp.ClientConnectionError("connection reset"),
                FeedFetchError,
                ErrorCode.FEED_NETWORK_ERROR,
            ),
            (ConnectionResetError("reset"), FeedFetchError, ErrorCode.FEED_NETWORK_ERROR),
            (_lxml_failure(), UnsupportedFormatError, ErrorCode.FEED_UNSUPPORTED_FORMAT),
            (
                sqlite3.IntegrityError("UNIQUE constraint failed: articles.url"),
                DatabaseError,
                ErrorCode.DATABASE_CONSTRAINT,
            ),
            (sqlite3.OperationalError("database is locked"), DatabaseError, ErrorCode.DATABASE_ERROR),
            (ValueError("odd"), NewsCrawlError, None),
        ],
    )
    def test_handle_exception_classifies(self, exception, error_type, code):
        error = handle_exception(exception, logging.getLogger("test"), "unit_test")

        assert type(error) is error_type
        assert error.error_code == code
        assert error.context["operation"] == "unit_test"
        assert error.__cause__ is exception

    def test_handle_exception_keeps_http_status(self):
        exception = aiohttp.ClientResponseError(
            Mock(real_url="https://x.example.com/rss"), (), status=503, message="Unavailable"
        )

        error = handle_exception(exception, logging.getLogger("test"), "feed fetch")

        assert error.cause == FetchErrorCause.HTTP_STATUS
        assert error.status_code == 503
        assert error.context["status_code"] == 503

    def test_handle_exception_logs_once_with_error_fields(self, caplog):
        with caplog.at_level(logging.ERROR, logger="test"):
            handle_exception(sqlite3.OperationalError("locked"), logging.getLogger("test"), "op")

        assert len(caplog.records) == 1
        assert caplog.records[0].error_type == "DatabaseError"
        assert caplog.records[0].error_code == "D006"

    def test_handle_exception_passes_through_own_errors(self):
        original = ConfigurationError("bad")
        assert handle_exception(original, logging.getLogger("test"), "op") is original

    def test_user_friendly_message(self):
        assert get_user_friendly_message(ConfigurationError("x")) == "Configuration error: x"
        assert "unexpected" in get_user_friendly_message(RuntimeError("x"))


class TestLogging:

    def test_structured_formatter_lifts_run_fields(self):
        record = _record("hello %s", ("world",))
        record.feed_id = 3
        record.items_persisted = 2
        record.guid = "tag:example.com,2024:1"

        data = json.loads(StructuredFormatter().format(record))

        assert data["message"] == "hello world"
        assert data["level"] == "INFO"
        assert data["feed_id"] == 3
        assert data["items_persisted"] == 2
        assert data["context"] == {"guid": "tag:example.com,2024:1"}

    def test_structured_formatter_flattens_error_dict(self):
        error = FeedFetchError(
            "HTTP 404", cause=FetchErrorCause.HTTP_STATUS, status_code=404,
            feed_url="https://x.example.com/rss",
        )
        record = _record("crawl failed")
        record.__dict__.update(error.to_dict())

        data = json.loads(StructuredFormatter().format(record))

        assert data["error_kind"] == "FeedFetchError"
        assert data["error_code"] == "F005"
        assert data["feed_url"] == "https://x.example.com/rss"
        assert data["context"]["status_code"] == 404
        assert "error_type" not in data["context"]

    def test_console_formatter_names_component_and_feed(self):
        record = _record("fetched")
        record.component = "orchestrator"
        record.feed_id = 7

        line = ConsoleFormatter().format(record)

        assert "orchestrator feed=7 - fetched" in line

    def test_bound_logger_adds_feed_context(self, caplog):
        logger = get_logger_for_component("orchestrator").bind(feed_id=5)

        with caplog.at_level(logging.INFO, logger="newscrawl.orchestrator"):
            logger.info("run finished", extra={"feed_id": 6, "items_seen": 1})

        record = caplog.records[-1]
        assert record.component == "orchestrator"
        assert record.feed_id == 6
        assert record.items_seen == 1

    def test_configure_replaces_handlers(self, tmp_path):
        log_file = tmp_path / "logs" / "newscrawl.log"

        configure_application_logging(log_file=str(log_file), enable_console=False)
        logger = configure_application_logging(log_file=str(log_file), enable_console=False)
        try:
            assert len(logger.handlers) == 1
            get_logger_for_component("fetcher", feed_id=1).warning("slow feed")
            logger.handlers[0].flush()

            line = json.loads(log_file.read_text(encoding="utf-8").strip().splitlines()[-1])
            assert line["component"] == "fetcher"
            assert line["feed_id"] == 1
        finally:
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
            logger.setLevel(logging.NOTSET)

    def test_component_logger_adds_context(self, caplog):
        logger = get_logger_for_component("orchestrator", feed_id=12)

        with caplog.at_level(logging.INFO, logger="newscrawl.orchestrator"):
            logger.info("run finished", extra={"items_seen": 4})

        record = caplog.records[-1]
        assert record.name == "newscrawl.orchestrator"
        assert record.component == "orchestrator"
        assert record.feed_id == 12
        assert record.items_seen == 4

    def test_performance_logger_records_duration(self, caplog):
        logger = logging.getLogger("newscrawl.perf")

        with caplog.at_level(logging.DEBUG, logger="newscrawl.perf"):
            with PerformanceLogger(logger, "feed fetch", url="https://x.example.com") as perf:
                pass

        assert perf.duration is not None
        assert any("Completed feed fetch" in r.getMessage() for r in caplog.records)

    def test_performance_logger_warns_on_failure(self, caplog):
        logger = logging.getLogger("newscrawl.perf")

        with caplog.at_level(logging.WARNING, logger="newscrawl.perf"):
            with pytest.raises(RuntimeError):
                with PerformanceLogger(logger, "feed fetch"):
                    raise RuntimeError("boom")

        failure = next(r for r in caplog.records if "Failed feed fetch" in r.getMessage())
        assert failure.error_kind == "RuntimeError"
