"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for NewsCrawl tests.

HTTP is never touched: fetcher tests use a fake aiohttp session and
orchestrator tests use the StubFetcher below.
"""

import pytest
import tempfile
import os
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
_TEST_DIR = Path(tempfile.gettempdir()) / "newscrawl_tests"
_TEST_DIR.mkdir(exist_ok=True)
os.environ["NEWSCRAWL_DATABASE__PATH"] = str(_TEST_DIR / "newscrawl_default.db")
os.environ["NEWSCRAWL_FETCHER__TIMEOUT_SECONDS"] = "5"
os.environ["NEWSCRAWL_DEBUG"] = "true"


# ============================================================================
# Sample Feed Documents
# ============================================================================

RSS_SAMPLE = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Example News</title>
    <link>https://news.example.com</link>
    <description>Example news feed</description>
    <item>
      <title>First Story</title>
      <link>https://news.example.com/first</link>
      <description><![CDATA[<p><img src="https://img.example.com/inline-first.jpg"/> Lead paragraph.</p>]]></description>
      <pubDate>Thu, 05 Sep 2024 12:00:00 GMT</pubDate>
      <guid isPermaLink="false">first-story-guid</guid>
      <media:thumbnail url="https://img.example.com/thumb-first.jpg"/>
    </item>
    <item>
      <title>Second Story</title>
      <link>https://news.example.com/second</link>
      <description>Plain summary</description>
      <pubdate>Thu, 05 Sep 2024 13:30:00 GMT</pubdate>
    </item>
    <item>
      <title>Third Story</title>
      <link>https://news.example.com/third</link>
      <description>With an enclosure</description>
      <pubDate>Thu, 05 Sep 2024 21:00:00 +0900</pubDate>
      <enclosure url="https://img.example.com/third.jpg" type="image/jpeg" length="1024"/>
    </item>
  </channel>
</rss>
"""

ATOM_SAMPLE = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Atom</title>
  <id>urn:example:feed</id>
  <updated>2024-09-05T12:00:00Z</updated>
  <entry>
    <title type="html">Atom Entry One</title>
    <link rel="alternate" href="https://blog.example.com/posts/one"/>
    <id>urn:example:entry:1</id>
    <published>2024-09-05T10:00:00+02:00</published>
    <summary>Entry one summary</summary>
  </entry>
  <entry>
    <title>Atom Entry Two</title>
    <link href="https://blog.example.com/posts/two"/>
    <updated>2024-09-06T08:15:00Z</updated>
    <content type="html">&lt;p&gt;&lt;img src="https://img.example.com/two.png"&gt;&lt;/p&gt;</content>
  </entry>
</feed>
"""

SINGLE_ITEM_RSS = b"""<?xml version="1.0"?>
<rss version="2.0">
  <channel>
    <title>Lonely Feed</title>
    <item>
      <title>The Only Story</title>
      <link>https://lonely.example.com/only</link>
      <pubDate>Fri, 06 Sep 2024 09:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""

INVALID_ITEMS_RSS = b"""<?xml version="1.0"?>
<rss version="2.0">
  <channel>
    <title>Broken Feed</title>
    <item>
      <link>https://broken.example.com/no-title</link>
      <pubDate>Fri, 06 Sep 2024 09:00:00 GMT</pubDate>
    </item>
    <item>
      <title>No date at all</title>
      <link>https://broken.example.com/no-date</link>
    </item>
    <item>
      <title>Garbage date</title>
      <link>https://broken.example.com/bad-date</link>
      <pubDate>sometime last week</pubDate>
    </item>
  </channel>
</rss>
"""


class StubFetcher:
    """Stands in for FeedFetcher; serves canned bodies or raises canned errors.

    Args:
        responses: Map of URL to body bytes or to an exception instance
        default: Body or exception for URLs not in the map
    """

    def __init__(self, responses=None, default=None):
        self.responses = responses or {}
        self.default = default
        self.calls = []
        self.sessions_opened = 0

    async def fetch(self, url, session=None):
        from newscrawl.ingestion.fetcher import FetchResponse

        self.calls.append((url, session))
        result = self.responses.get(url, self.default)
        if isinstance(result, Exception):
            raise result
        if result is None:
            raise AssertionError(f"StubFetcher has no response for {url}")
        return FetchResponse(url=url, status=200, body=result)

    @asynccontextmanager
    async def get_session(self, limit=10):
        self.sessions_opened += 1
        yield f"shared-session-{self.sessions_opened}"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def temp_db():
    """Temporary database file with the schema created."""
    from newscrawl.database.schema import DatabaseSchema

    temp_file = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    db_path = temp_file.name
    temp_file.close()

    schema = DatabaseSchema(db_path)
    schema.create_tables()

    yield db_path

    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(db_path + suffix)
        except FileNotFoundError:
            pass


@pytest.fixture
def db_connection(temp_db):
    from newscrawl.database.connection import DatabaseConnection

    conn = DatabaseConnection(temp_db, pool_size=2)
    yield conn
    conn.close_all_connections()


@pytest.fixture
def feed_repo(db_connection):
    from newscrawl.storage.feed_repository import FeedRepository

    return FeedRepository(db_connection)


@pytest.fixture
def article_repo(db_connection):
    from newscrawl.storage.article_repository import ArticleRepository

    return ArticleRepository(db_connection)


@pytest.fixture
def sample_feed(feed_repo):
    """Registered, enabled RSS feed."""
    from newscrawl.database.models import Feed

    feed_id = feed_repo.create_feed(
        Feed(
            name="Example News",
            url="https://news.example.com/rss.xml",
            source="Example",
            category="general",
        )
    )
    return feed_repo.get_feed_by_id(feed_id)


@pytest.fixture
def make_article():
    """Factory for Article models with sensible defaults."""
    from newscrawl.database.models import Article

    def _make(url="https://news.example.com/story", **overrides):
        fields = {
            "title": "A Story",
            "url": url,
            "summary": "Summary text",
            "source": "Example",
            "published_at": datetime(2024, 9, 5, 12, 0, tzinfo=timezone.utc),
        }
        fields.update(overrides)
        return Article(**fields)

    return _make


@pytest.fixture
def test_settings():
    from newscrawl.config.settings import NewsCrawlSettings

    return NewsCrawlSettings()


@pytest.fixture
def stub_fetcher_class():
    return StubFetcher


# ============================================================================
# Sample Document Fixtures
# ============================================================================


@pytest.fixture
def rss_feed_xml():
    return RSS_SAMPLE


@pytest.fixture
def atom_feed_xml():
    return ATOM_SAMPLE


@pytest.fixture
def single_item_rss_xml():
    return SINGLE_ITEM_RSS


@pytest.fixture
def invalid_items_rss_xml():
    return INVALID_ITEMS_RSS
