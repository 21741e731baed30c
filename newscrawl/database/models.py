"""
NewsCrawl Data Models
=====================

Pydantic data models for the feed registry and the article store.
These models correspond to the database schema and provide validation,
serialization, and type hints.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
import uuid

from pydantic import BaseModel, Field, field_validator, AnyHttpUrl


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(v):
    """Naive datetimes coming back from SQLite are UTC."""
    if isinstance(v, datetime) and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class Feed(BaseModel):
    """Feed registry entry with operational health."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    url: AnyHttpUrl = Field(..., description="RSS/Atom endpoint")
    source: str = Field(..., min_length=1, max_length=255, description="Source label copied onto articles")
    category: Optional[str] = Field(default=None, max_length=100, description="Free-form category")
    description: Optional[str] = Field(default=None, max_length=1000, description="Feed description")
    enabled: bool = Field(default=True, description="Whether scheduled crawls include this feed")
    error_count: int = Field(default=0, ge=0, description="Consecutive failed runs")
    last_error: Optional[str] = Field(default=None, description="Cause of the most recent failure")
    last_crawled_at: Optional[datetime] = Field(default=None, description="Last successful run")
    last_fetched_at: Optional[datetime] = Field(default=None, description="Last run attempt")
    created_at: Optional[datetime] = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = Field(default_factory=utc_now)

    @field_validator('name', 'source')
    @classmethod
    def validate_label(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator('last_crawled_at', 'last_fetched_at', 'created_at', 'updated_at')
    @classmethod
    def validate_timezone(cls, v):
        return _as_utc(v)

    def is_healthy(self) -> bool:
        """Check if feed is considered healthy."""
        return self.enabled and self.error_count == 0

    def identity(self) -> Dict[str, Any]:
        """Basic identity echoed back to run callers."""
        return {"id": self.id, "name": self.name, "source": self.source}

    def __str__(self) -> str:
        return f"Feed({self.name}:{self.url})"


class Article(BaseModel):
    """Canonical article, unique by URL."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique article ID")
    title: str = Field(..., min_length=1, description="Article title")
    url: str = Field(..., min_length=1, description="Canonical URL, the deduplication key")
    summary: Optional[str] = Field(default=None, description="Description or summary text")
    source: str = Field(..., min_length=1, description="Source label of the delivering feed")
    image_url: Optional[str] = Field(default=None, description="Representative image")
    published_at: datetime = Field(..., description="Publication instant (UTC)")
    extracted_at: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    feed_id: Optional[int] = Field(default=None, description="Feed that first delivered this URL")

    @field_validator('title', 'url')
    @classmethod
    def validate_required_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator('published_at', 'extracted_at', 'created_at', 'updated_at')
    @classmethod
    def validate_timezone(cls, v):
        return _as_utc(v)

    def to_projection(self) -> "ArticleProjection":
        return ArticleProjection(
            id=self.id,
            title=self.title,
            url=self.url,
            source=self.source,
            published_at=self.published_at,
            has_image=bool(self.image_url),
        )

    def __str__(self) -> str:
        return f"Article({self.title[:50]}...)"


class ArticleProjection(BaseModel):
    """Minimal view of a newly persisted article returned to callers."""
    id: str
    title: str
    url: str
    source: str
    published_at: datetime
    has_image: bool

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump()
        data["published_at"] = self.published_at.isoformat()
        return data

