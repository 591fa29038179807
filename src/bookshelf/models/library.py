"""Data models for library records."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from bookshelf.models.book import DEFAULT_LANGUAGE, UNKNOWN_AUTHOR


class BookStatus(str, Enum):
    """Reading status of a library book."""

    UNREAD = "unread"
    READING = "reading"
    ON_HOLD = "on_hold"
    FINISHED = "finished"


class Folder(BaseModel):
    """User folder grouping books."""

    id: int
    name: str


class BookRecord(BaseModel):
    """A book as persisted in the library."""

    id: int | None = None
    identifier: str = ""
    title: str
    authors: list[str] = Field(default_factory=list)
    author: str = UNKNOWN_AUTHOR
    description: str | None = None
    publisher: str | None = None
    language: str = DEFAULT_LANGUAGE
    isbn: str | None = None
    published_date: str | None = None
    file_path: str
    file_size: int = 0
    content_hash: str = ""
    title_author_key: str = ""
    cover_path: str | None = None
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    status: BookStatus = BookStatus.UNREAD
    folder_id: int | None = None
    forced: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class BookUpdate(BaseModel):
    """Partial update for a book; only explicitly set fields are written."""

    title: str | None = None
    author: str | None = None
    progress: float | None = Field(default=None, ge=0.0, le=1.0)
    status: BookStatus | None = None
    folder_id: int | None = None
    cover_path: str | None = None


class BookCounts(BaseModel):
    """Number of books per reading status."""

    unread: int = 0
    reading: int = 0
    on_hold: int = 0
    finished: int = 0


class SuppliedMetadata(BaseModel):
    """Metadata supplied by the caller alongside a buffer import.

    Any field left as None keeps the value parsed from the package.
    """

    title: str | None = None
    authors: list[str] | None = None
    language: str | None = None
    description: str | None = None
    publisher: str | None = None
    isbn: str | None = None
    published_date: str | None = None
