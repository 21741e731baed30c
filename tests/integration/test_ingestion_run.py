"""
End-to-End Ingestion Tests
==========================

Drives the real FeedFetcher (over a canned aiohttp-shaped session) through
the orchestrator into a temporary SQLite store.
"""

import asyncio

import pytest

from newscrawl.database.models import Feed
from newscrawl.ingestion.fetcher import FeedFetcher
from newscrawl.processing.pipeline import IngestionOrchestrator


class CannedContent:
    def __init__(self, body):
        self._body = body

    async def iter_chunked(self, n):
        for start in range(0, len(self._body), n):
            yield self._body[start:start + n]


class CannedResponse:
    def __init__(self, url, body, status=200):
        self.url = url
        self.status = status
        self.reason = "OK" if status == 200 else "Error"
        self.headers = {"Content-Type": "application/xml"}
        self.content_length = len(body)
        self.content = CannedContent(body)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class CannedSession:
    """Serves bodies by URL; unknown URLs answer 404."""

    def __init__(self, bodies):
        self.bodies = bodies
        self.user_agents = []

    def get(self, url, headers=None, **kwargs):
        self.user_agents.append((headers or {}).get("User-Agent"))
        if url in self.bodies:
            return CannedResponse(url, self.bodies[url])
        return CannedResponse(url, b"", status=404)


@pytest.fixture
def orchestrator(db_connection, test_settings):
    return IngestionOrchestrator(
        db_connection, fetcher=FeedFetcher(test_settings.fetcher), settings=test_settings
    )


def _register(feed_repo, name, url, source):
    return feed_repo.create_feed(Feed(name=name, url=url, source=source))


class TestIngestionRun:

    @pytest.mark.asyncio
    async def test_rss_then_rerun(self, orchestrator, feed_repo, article_repo, rss_feed_xml):
        feed_id = _register(feed_repo, "News", "https://news.example.com/rss.xml", "News")
        session = CannedSession({"https://news.example.com/rss.xml": rss_feed_xml})

        first = await orchestrator.run(feed_id, session=session)
        second = await orchestrator.run(feed_id, session=session)

        assert (first.items_persisted, first.items_skipped) == (3, 0)
        assert (second.items_persisted, second.items_skipped) == (0, 3)
        assert second.success
        assert article_repo.count_articles() == 3
        assert all(ua and ua.startswith("NewsCrawl/") for ua in session.user_agents)

        images = {
            a.url: a.image_url for a in article_repo.get_articles_by_feed(feed_id)
        }
        assert images == {
            "https://news.example.com/first": "https://img.example.com/thumb-first.jpg",
            "https://news.example.com/second": None,
            "https://news.example.com/third": "https://img.example.com/third.jpg",
        }

    @pytest.mark.asyncio
    async def test_single_item_feed_is_ingested(self, orchestrator, feed_repo, article_repo, single_item_rss_xml):
        feed_id = _register(feed_repo, "Lonely", "https://lonely.example.com/rss", "Lonely")
        session = CannedSession({"https://lonely.example.com/rss": single_item_rss_xml})

        outcome = await orchestrator.run(feed_id, session=session)

        assert outcome.success
        assert outcome.items_persisted == 1
        assert article_repo.find_by_url("https://lonely.example.com/only").title == "The Only Story"

    @pytest.mark.asyncio
    async def test_atom_feed_is_ingested(self, orchestrator, feed_repo, article_repo, atom_feed_xml):
        feed_id = _register(feed_repo, "Blog", "https://blog.example.com/atom.xml", "Blog")
        session = CannedSession({"https://blog.example.com/atom.xml": atom_feed_xml})

        outcome = await orchestrator.run(feed_id, session=session)

        assert outcome.items_persisted == 2
        two = article_repo.find_by_url("https://blog.example.com/posts/two")
        assert two.image_url == "https://img.example.com/two.png"

    @pytest.mark.asyncio
    async def test_http_404_marks_feed_unhealthy(self, orchestrator, feed_repo):
        feed_id = _register(feed_repo, "Gone", "https://gone.example.com/rss", "Gone")

        outcome = await orchestrator.run(feed_id, session=CannedSession({}))

        assert outcome.error_kind == "FeedFetchError"
        assert outcome.error.status_code == 404
        assert outcome.status_code == 500

        feed = feed_repo.get_feed_by_id(feed_id)
        assert feed.error_count == 1
        assert "404" in feed.last_error
        assert not feed.is_healthy()

    @pytest.mark.asyncio
    async def test_syndicated_urls_stored_once_across_feeds(
        self, orchestrator, feed_repo, article_repo, rss_feed_xml
    ):
        first_id = _register(feed_repo, "Origin", "https://news.example.com/rss.xml", "Origin")
        mirror_id = _register(feed_repo, "Mirror", "https://mirror.example.com/rss.xml", "Mirror")
        session = CannedSession({
            "https://news.example.com/rss.xml": rss_feed_xml,
            "https://mirror.example.com/rss.xml": rss_feed_xml,
        })

        outcomes = await asyncio.gather(
            orchestrator.run(first_id, session=session),
            orchestrator.run(mirror_id, session=session),
        )

        assert all(o.success for o in outcomes)
        assert sum(o.items_persisted for o in outcomes) == 3
        assert sum(o.items_skipped for o in outcomes) == 3
        assert article_repo.count_articles() == 3
        assert feed_repo.get_feed_by_id(mirror_id).error_count == 0
