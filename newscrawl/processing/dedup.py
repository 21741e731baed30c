"""
Deduplication Gate
==================

Lookup-then-insert by canonical URL. The lookup saves a write for the
common case; the store's UNIQUE constraint settles races between runs,
and losing such a race counts as a skip.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..database.models import Article
from ..storage.article_repository import ArticleRepository
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import ArticleConflictError, DatabaseError, PersistenceError


@dataclass
class GateResult:
    """Articles stored by this run and URLs that were already known."""

    persisted: List[Article] = field(default_factory=list)
    skipped_urls: List[str] = field(default_factory=list)
    failed_urls: List[str] = field(default_factory=list)
    conflicts: int = 0

    @property
    def skipped(self) -> int:
        return len(self.skipped_urls)


class DeduplicationGate:
    """Filters previously seen URLs and persists the rest."""

    def __init__(self, article_repository: ArticleRepository):
        self.articles = article_repository
        self.logger = get_logger_for_component("dedup")

    def admit(
        self, articles: Iterable[Article], result: Optional[GateResult] = None
    ) -> GateResult:
        """Persist every article whose URL is not stored yet, in order.

        Existing articles are never updated. A hard store failure only
        loses the article it happened on; the rest of the batch is still
        admitted. Tallies accumulate into `result` when one is given, so a
        caller holds the counts even when the batch ends in an error.

        Raises:
            PersistenceError: After the batch, if any article hit a hard
                store failure (not a URL conflict). Names the first one.
        """
        if result is None:
            result = GateResult()

        first_failure: Optional[PersistenceError] = None

        for article in articles:
            try:
                if self.articles.find_by_url(article.url) is not None:
                    result.skipped_urls.append(article.url)
                    continue

                result.persisted.append(self.articles.insert_article(article))

            except ArticleConflictError:
                self.logger.debug(f"Lost insert race for {article.url}, skipping")
                result.skipped_urls.append(article.url)
                result.conflicts += 1

            except DatabaseError as e:
                self.logger.error(f"Failed to persist article {article.url}: {e.message}")
                result.failed_urls.append(article.url)
                if first_failure is None:
                    first_failure = PersistenceError(
                        f"Failed to persist article {article.url}: {e.message}",
                        url=article.url,
                    )
                    first_failure.__cause__ = e

        self.logger.debug(
            f"Dedup gate: {len(result.persisted)} stored, {result.skipped} skipped, "
            f"{len(result.failed_urls)} failed ({result.conflicts} insert conflicts)"
        )

        if first_failure is not None:
            first_failure.context["failed_count"] = len(result.failed_urls)
            raise first_failure

        return result
