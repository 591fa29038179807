"""Data models for fingerprints and duplicate verdicts."""

from enum import Enum

from pydantic import BaseModel, Field


class SignalKind(str, Enum):
    """Independent signals used to recognize the same publication."""

    ISBN = "isbn"
    TITLE_AUTHOR = "title_author_normalized"
    FILE_HASH = "file_hash"
    FILE_SIZE_AND_TITLE = "file_size_and_title"


class Classification(str, Enum):
    """How confident we are that a candidate is already in the library."""

    NONE = "none"
    EXACT = "exact"
    PROBABLE = "probable"


class Fingerprint(BaseModel):
    """Multi-signal fingerprint of a candidate book."""

    isbn: str | None = None
    title_author: str
    file_hash: str | None = None
    file_size: int | None = None


class FingerprintSignal(BaseModel):
    """One lookup against the library index."""

    kind: SignalKind
    value: str
    file_size: int | None = None  # Only for FILE_SIZE_AND_TITLE
    tolerance: int = 0


class CandidateMetadata(BaseModel):
    """Caller-supplied description of a book to check for duplicates."""

    title: str
    author: str = ""
    isbn: str | None = None
    file_hash: str | None = None
    file_size: int | None = None


class DuplicateVerdict(BaseModel):
    """Outcome of a duplicate check."""

    classification: Classification = Classification.NONE
    book_id: int | None = None
    matched_signals: list[SignalKind] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    message: str = ""

    @property
    def is_duplicate(self) -> bool:
        return self.classification != Classification.NONE
