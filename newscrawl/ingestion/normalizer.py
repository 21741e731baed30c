"""
Field Normalization
===================

Turns extracted candidates into canonical Article records. Candidates
without a title, without a link, or with a date that does not resolve to
an absolute instant are dropped, not raised.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from dateutil import parser as date_parser
from dateutil.tz import tzoffset

from ..database.models import Article
from ..utils.logging import get_logger_for_component
from .extractor import CandidateItem, select_image_url

logger = get_logger_for_component("normalizer")

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}")

# RFC 822 zone names; dateutil only knows UTC/GMT on its own
RFC822_ZONES = {
    "UT": tzoffset("UT", 0),
    "EST": tzoffset("EST", -5 * 3600),
    "EDT": tzoffset("EDT", -4 * 3600),
    "CST": tzoffset("CST", -6 * 3600),
    "CDT": tzoffset("CDT", -5 * 3600),
    "MST": tzoffset("MST", -7 * 3600),
    "MDT": tzoffset("MDT", -6 * 3600),
    "PST": tzoffset("PST", -8 * 3600),
    "PDT": tzoffset("PDT", -7 * 3600),
}


def _parse_iso(raw: str) -> Optional[datetime]:
    try:
        return date_parser.isoparse(raw)
    except ValueError:
        return None


def parse_published(raw: Optional[str]) -> Optional[datetime]:
    """Parse a feed date string into an aware UTC datetime.

    W3C-DTF/ISO 8601 (Atom, dc:date) keeps its fractional seconds. RFC 822
    (RSS) and its usual sloppy variants go through the general parser.
    Strings without an offset are taken as UTC.

    Returns:
        The instant, or None when the string cannot be understood
    """
    if not raw or not raw.strip():
        return None
    raw = raw.strip()

    parsed = _parse_iso(raw) if ISO_DATE_PATTERN.match(raw) else None
    if parsed is None:
        try:
            parsed = date_parser.parse(raw, tzinfos=RFC822_ZONES)
        except (ValueError, OverflowError):
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class NormalizationResult:
    articles: List[Article] = field(default_factory=list)
    rejected: int = 0


def _truncate(text: Optional[str], limit: int) -> Optional[str]:
    if text and len(text) > limit:
        return text[:limit] + "..."
    return text


def normalize_candidate(
    candidate: CandidateItem,
    source: str,
    now: datetime,
    feed_id: Optional[int] = None,
    max_summary_length: int = 5000,
) -> Optional[Article]:
    """Map one candidate onto an Article, or None if it must be dropped."""
    title = (candidate.title or "").strip()
    link = (candidate.link or "").strip()

    if not title:
        logger.debug("Dropping candidate without title", extra={"guid": candidate.guid})
        return None
    if not link:
        logger.debug(f"Dropping candidate without link: {title[:80]}")
        return None

    published_at = parse_published(candidate.published)
    if published_at is None:
        logger.debug(
            f"Dropping candidate with unusable date {candidate.published!r}: {link}"
        )
        return None

    summary = (candidate.description or "").strip() or None

    return Article(
        title=title,
        url=link,
        summary=_truncate(summary, max_summary_length),
        source=source,
        image_url=select_image_url(candidate.media),
        published_at=published_at,
        extracted_at=now,
        created_at=now,
        updated_at=now,
        feed_id=feed_id,
    )


def normalize_candidates(
    candidates: Iterable[CandidateItem],
    source: str,
    now: Optional[datetime] = None,
    feed_id: Optional[int] = None,
    max_summary_length: int = 5000,
) -> NormalizationResult:
    """Normalize candidates in order, counting the ones dropped.

    Args:
        candidates: Extracted candidates
        source: Source label of the feed
        now: Run time stamped on every article (default now)
        feed_id: Feed delivering the candidates
        max_summary_length: Summary truncation threshold

    Returns:
        NormalizationResult with accepted articles and the rejected count
    """
    now = now or datetime.now(timezone.utc)
    result = NormalizationResult()

    for candidate in candidates:
        article = normalize_candidate(
            candidate, source, now, feed_id=feed_id, max_summary_length=max_summary_length
        )
        if article is None:
            result.rejected += 1
        else:
            result.articles.append(article)

    return result
