"""
NewsCrawl Storage Layer
=======================

Repository implementations for the feed registry and the article store.
"""

from .article_repository import ArticleRepository
from .feed_repository import FeedRepository

__all__ = [
    "ArticleRepository",
    "FeedRepository",
]
