"""Data models."""

from bookshelf.models.book import (
    BookContent,
    Chapter,
    ManifestItem,
    PackageDescriptor,
    PartialContentWarning,
    TOCEntry,
)
from bookshelf.models.duplicate import (
    CandidateMetadata,
    Classification,
    DuplicateVerdict,
    Fingerprint,
    FingerprintSignal,
    SignalKind,
)
from bookshelf.models.importing import ImportResult, ImportState, ImportStatus
from bookshelf.models.library import (
    BookCounts,
    BookRecord,
    BookStatus,
    BookUpdate,
    Folder,
    SuppliedMetadata,
)
from bookshelf.models.session import (
    DayStats,
    ReadingSession,
    ReadingStats,
    ReadingSummary,
    SessionFilter,
)

__all__ = [
    # Book models
    "ManifestItem",
    "PackageDescriptor",
    "TOCEntry",
    "Chapter",
    "PartialContentWarning",
    "BookContent",
    # Library models
    "BookStatus",
    "Folder",
    "BookRecord",
    "BookUpdate",
    "BookCounts",
    "SuppliedMetadata",
    # Duplicate detection models
    "SignalKind",
    "Classification",
    "Fingerprint",
    "FingerprintSignal",
    "CandidateMetadata",
    "DuplicateVerdict",
    # Session models
    "ReadingSession",
    "SessionFilter",
    "ReadingSummary",
    "DayStats",
    "ReadingStats",
    # Import models
    "ImportState",
    "ImportStatus",
    "ImportResult",
]
