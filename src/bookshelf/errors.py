"""Error taxonomy for the ingestion engine."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bookshelf.models.duplicate import DuplicateVerdict


class ErrorKind(str, Enum):
    """Closed set of failure kinds callers can branch on."""

    CORRUPT_ARCHIVE = "corrupt_archive"
    MISSING_ENTRY = "missing_entry"
    MALFORMED_PACKAGE = "malformed_package"
    PARTIAL_CONTENT = "partial_content"
    INVALID_INTERVAL = "invalid_interval"
    DUPLICATE_BLOCKED = "duplicate_blocked"
    IMPORT_FAILED = "import_failed"
    FOLDER_EXISTS = "folder_exists"
    UNKNOWN_FOLDER = "unknown_folder"
    INVALID_TRANSITION = "invalid_transition"
    CANCELLED = "cancelled"


class LibraryError(Exception):
    """Base error raised by library operations."""

    kind: ErrorKind = ErrorKind.IMPORT_FAILED

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"{self.kind.value}: {message}")


class CorruptArchive(LibraryError):
    """Container cannot be opened or an entry fails its checksum."""

    kind = ErrorKind.CORRUPT_ARCHIVE


class MissingEntry(LibraryError):
    """A named entry is not present in the container."""

    kind = ErrorKind.MISSING_ENTRY

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"no entry named {name!r}")


class MalformedPackage(LibraryError):
    """Package descriptor is structurally invalid."""

    kind = ErrorKind.MALFORMED_PACKAGE


class InvalidInterval(LibraryError):
    """Reading session ends before it starts."""

    kind = ErrorKind.INVALID_INTERVAL


class DuplicateBlocked(LibraryError):
    """Import stopped because the candidate already exists."""

    kind = ErrorKind.DUPLICATE_BLOCKED

    def __init__(self, message: str, verdict: DuplicateVerdict | None = None):
        self.verdict = verdict
        super().__init__(message)


class ImportFailed(LibraryError):
    """Persisting a parsed book failed; nothing was recorded."""

    kind = ErrorKind.IMPORT_FAILED


class FolderExists(LibraryError):
    """A folder with that name already exists."""

    kind = ErrorKind.FOLDER_EXISTS


class UnknownFolder(LibraryError):
    """A book was assigned to a folder that does not exist."""

    kind = ErrorKind.UNKNOWN_FOLDER


class InvalidTransition(LibraryError):
    """Import job was asked to move to a state it cannot reach."""

    kind = ErrorKind.INVALID_TRANSITION


class ImportCancelled(LibraryError):
    """Import was abandoned by the caller before persisting."""

    kind = ErrorKind.CANCELLED
