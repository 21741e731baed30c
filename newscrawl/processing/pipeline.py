"""
Ingestion Orchestrator
======================

Drives one end-to-end run for a single feed:

    fetch -> parse/detect -> extract -> normalize -> dedup/persist -> health

States advance strictly forward. Any component error short-circuits the
run to FAILED carrying the originating error; every other path ends in
SUCCEEDED, including a run where every item was already stored. The
feed's health is written after the terminal state is settled and cannot
change it.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp

from ..config.settings import get_settings, NewsCrawlSettings
from ..database.connection import DatabaseConnection
from ..database.models import ArticleProjection, Feed, utc_now
from ..ingestion.extractor import extract_items
from ..ingestion.fetcher import FeedFetcher
from ..ingestion.format_detector import detect_format, parse_document
from ..ingestion.normalizer import normalize_candidates
from ..storage.article_repository import ArticleRepository
from ..storage.feed_repository import FeedRepository
from ..utils.logging import get_logger_for_component, PerformanceLogger
from ..utils.exceptions import (
    DatabaseError,
    FeedNotFoundError,
    NewsCrawlError,
    NoValidItemsError,
    handle_exception,
)

from .dedup import DeduplicationGate, GateResult
from .health import HealthTracker


class RunState(str, Enum):
    FETCHING = "fetching"
    PARSING = "parsing"
    EXTRACTING = "extracting"
    NORMALIZING = "normalizing"
    PERSISTING = "persisting"
    FINALIZING = "finalizing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class RunOutcome:
    """Structured result of one ingestion run."""
    feed_id: Any
    feed: Optional[Dict[str, Any]] = None
    state: RunState = RunState.FETCHING
    items_seen: int = 0
    items_valid: int = 0
    items_persisted: int = 0
    items_skipped: int = 0
    items_rejected: int = 0
    items_failed: int = 0
    saved_items: List[ArticleProjection] = field(default_factory=list)
    error: Optional[NewsCrawlError] = None
    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    health_updated: Optional[bool] = None  # None: no health update attempted

    @property
    def success(self) -> bool:
        return self.state == RunState.SUCCEEDED

    @property
    def error_kind(self) -> Optional[str]:
        return type(self.error).__name__ if self.error else None

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error else None

    @property
    def status_code(self) -> int:
        """HTTP-style status for boundary callers."""
        if self.success:
            return 200
        if isinstance(self.error, FeedNotFoundError):
            return 404
        return 500

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def apply_gate(self, gate: GateResult) -> None:
        self.items_persisted = len(gate.persisted)
        self.items_skipped = gate.skipped
        self.items_failed = len(gate.failed_urls)
        self.saved_items = [article.to_projection() for article in gate.persisted]

    def succeed(self) -> None:
        self.state = RunState.SUCCEEDED
        self.finished_at = utc_now()

    def fail(self, error: NewsCrawlError) -> None:
        self.error = error
        self.state = RunState.FAILED
        self.finished_at = utc_now()

    def to_dict(self) -> Dict[str, Any]:
        timestamp = (self.finished_at or utc_now()).isoformat()

        if not self.success:
            return {
                "success": False,
                "error": self.error_message or "Unknown error",
                "error_kind": self.error_kind,
                "error_code": self.error.error_code.value
                if self.error and self.error.error_code
                else None,
                "feed_id": self.feed_id,
                "timestamp": timestamp,
            }

        return {
            "success": True,
            "message": f"{self.items_persisted} new articles saved",
            "timestamp": timestamp,
            "feed": self.feed,
            "stats": {
                "processed": self.items_valid,
                "saved": self.items_persisted,
                "skipped": self.items_skipped,
                "seen": self.items_seen,
                "rejected": self.items_rejected,
            },
            "saved_items": [item.to_dict() for item in self.saved_items],
        }


class IngestionOrchestrator:
    """Runs the ingestion pipeline for registered feeds."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        fetcher: Optional[FeedFetcher] = None,
        settings: Optional[NewsCrawlSettings] = None,
    ):
        """Initialize the orchestrator.

        Args:
            db_connection: Database connection manager
            fetcher: Feed fetcher (default built from settings)
            settings: Application settings (default global settings)
        """
        self.db = db_connection
        self.settings = settings or get_settings()
        self.logger = get_logger_for_component("orchestrator")

        self.fetcher = fetcher or FeedFetcher(self.settings.fetcher)
        self.feeds = FeedRepository(db_connection)
        self.articles = ArticleRepository(db_connection)
        self.gate = DeduplicationGate(self.articles)
        self.health = HealthTracker(self.feeds)

    async def run(
        self, feed_id: int, session: Optional[aiohttp.ClientSession] = None
    ) -> RunOutcome:
        """Run ingestion for one feed. Never raises; failures live in the outcome.

        The feed's enabled flag is not consulted: a direct run is a manual
        trigger.

        Args:
            feed_id: Registry identifier of the feed
            session: Shared HTTP session (a private one is opened when omitted)

        Returns:
            RunOutcome in state SUCCEEDED or FAILED
        """
        outcome = RunOutcome(feed_id=feed_id)
        logger = self.logger.bind(feed_id=feed_id)

        try:
            feed = self.feeds.get_feed_by_id(feed_id)
        except DatabaseError as e:
            outcome.fail(e)
            logger.error(f"Could not load feed {feed_id}: {e}", extra=e.to_dict())
            return outcome

        if feed is None:
            outcome.fail(FeedNotFoundError(feed_id))
            logger.warning(f"Feed {feed_id} not found")
            return outcome

        outcome.feed = feed.identity()

        try:
            await self._execute(feed, outcome, session, logger)
            outcome.succeed()
        except NewsCrawlError as e:
            outcome.fail(e)
        except Exception as e:
            outcome.fail(
                handle_exception(e, logger, "ingestion_run", {"feed_id": feed_id})
            )

        self._record_health(feed, outcome)
        self._log_outcome(feed, outcome, logger)
        return outcome

    async def _execute(
        self,
        feed: Feed,
        outcome: RunOutcome,
        session: Optional[aiohttp.ClientSession],
        logger,
    ) -> None:
        url = str(feed.url)
        run_time = outcome.started_at

        outcome.state = RunState.FETCHING
        with PerformanceLogger(logger, "feed fetch", url=url):
            response = await self.fetcher.fetch(url, session=session)

        outcome.state = RunState.PARSING
        document = parse_document(response.body)
        feed_format = detect_format(document)

        outcome.state = RunState.EXTRACTING
        candidates = list(extract_items(document))
        outcome.items_seen = len(candidates)
        logger.debug(f"Extracted {len(candidates)} {feed_format.value} candidates from {url}")

        outcome.state = RunState.NORMALIZING
        normalized = normalize_candidates(
            candidates,
            source=feed.source,
            now=run_time,
            feed_id=feed.id,
            max_summary_length=self.settings.processing.max_summary_length,
        )
        outcome.items_rejected = normalized.rejected
        outcome.items_valid = len(normalized.articles)

        if not normalized.articles:
            raise NoValidItemsError(
                f"None of the {len(candidates)} items in the feed are valid",
                feed_url=url,
            )

        outcome.state = RunState.PERSISTING
        gate_result = GateResult()
        try:
            self.gate.admit(normalized.articles, result=gate_result)
        finally:
            outcome.apply_gate(gate_result)

        outcome.state = RunState.FINALIZING

    def _record_health(self, feed: Feed, outcome: RunOutcome) -> None:
        if outcome.success:
            outcome.health_updated = self.health.record_success(
                feed.id, timestamp=outcome.finished_at
            )
        else:
            outcome.health_updated = self.health.record_failure(
                feed.id, outcome.error_message or "Unknown error", timestamp=outcome.finished_at
            )

    def _log_outcome(self, feed: Feed, outcome: RunOutcome, logger) -> None:
        if outcome.success:
            logger.info(
                f"Crawled {feed.name}: {outcome.items_persisted} saved, "
                f"{outcome.items_skipped} skipped, {outcome.items_rejected} rejected "
                f"of {outcome.items_seen} items",
                extra={
                    "items_seen": outcome.items_seen,
                    "items_persisted": outcome.items_persisted,
                    "items_skipped": outcome.items_skipped,
                    "items_rejected": outcome.items_rejected,
                    "duration_seconds": outcome.duration_seconds,
                },
            )
        else:
            logger.warning(
                f"Crawl of {feed.name} failed: {outcome.error}",
                extra={
                    "error_kind": outcome.error_kind,
                    "error_code": outcome.error.error_code.value
                    if outcome.error.error_code
                    else None,
                    "items_persisted": outcome.items_persisted,
                    "items_failed": outcome.items_failed,
                },
            )

    async def run_enabled_feeds(self) -> List[RunOutcome]:
        """Run every enabled feed concurrently over one shared HTTP session.

        Concurrency is bounded by processing.parallel_feeds. Runs share no
        state besides the session and the store.

        Returns:
            One RunOutcome per enabled feed, in registry order
        """
        feeds = self.feeds.list_feeds(enabled_only=True)
        if not feeds:
            self.logger.info("No enabled feeds to crawl")
            return []

        parallel = self.settings.processing.parallel_feeds
        semaphore = asyncio.Semaphore(parallel)
        self.logger.info(f"Crawling {len(feeds)} enabled feeds ({parallel} at a time)")

        async with self.fetcher.get_session(limit=parallel * 2) as session:

            async def bounded_run(feed_id: int) -> RunOutcome:
                async with semaphore:
                    return await self.run(feed_id, session=session)

            outcomes = await asyncio.gather(*(bounded_run(feed.id) for feed in feeds))

        succeeded = sum(1 for outcome in outcomes if outcome.success)
        self.logger.info(
            f"Crawl finished: {succeeded}/{len(outcomes)} feeds succeeded, "
            f"{sum(o.items_persisted for o in outcomes)} new articles"
        )
        return list(outcomes)
