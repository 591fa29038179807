"""Cache data models."""

from datetime import datetime

from pydantic import BaseModel, Field

from bookshelf.models.book import BookContent


class CacheMetadata(BaseModel):
    """Metadata for cache invalidation."""

    file_path: str
    file_hash: str
    file_size: int
    file_mtime: float
    cached_at: datetime = Field(default_factory=datetime.now)
    cache_version: str = "1"


class CachedContent(BaseModel):
    """Extracted content of one book file."""

    cache_metadata: CacheMetadata
    content: BookContent


class CacheIndex(BaseModel):
    """Index mapping file paths to cache entries."""

    entries: dict[str, str] = Field(default_factory=dict)  # path -> hash
