"""Data models for import requests and their outcomes."""

from enum import Enum

from pydantic import BaseModel, Field

from bookshelf.models.book import PartialContentWarning
from bookshelf.models.duplicate import DuplicateVerdict
from bookshelf.models.library import BookRecord


class ImportState(str, Enum):
    """Lifecycle of a single import request."""

    PENDING = "pending"
    PARSING = "parsing"
    DUPLICATE_CHECK = "duplicate_check"
    BLOCKED = "blocked"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class ImportStatus(str, Enum):
    """Caller-facing outcome of an import."""

    IMPORTED = "imported"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"


class ImportResult(BaseModel):
    """Result returned to the calling shell."""

    status: ImportStatus
    state: ImportState
    verdict: DuplicateVerdict | None = None
    book: BookRecord | None = None
    warnings: list[PartialContentWarning] = Field(default_factory=list)

    @property
    def imported(self) -> bool:
        return self.status == ImportStatus.IMPORTED
