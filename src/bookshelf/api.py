"""Library service: the single entry point shells talk to."""

import logging
from pathlib import Path

from bookshelf.cache.manager import ContentCache
from bookshelf.config import LibrarySettings, load_settings
from bookshelf.core.content_processor import ContentProcessor, TextFormat
from bookshelf.core.duplicate_resolver import DuplicateResolver
from bookshelf.core.epub_parser import read_book
from bookshelf.core.importer import ImportOrchestrator
from bookshelf.core.scanner import FolderScanner, ScanReport
from bookshelf.core.sessions import ReadingSessionAggregator
from bookshelf.errors import ImportFailed
from bookshelf.models import (
    BookContent,
    BookCounts,
    BookRecord,
    BookUpdate,
    CandidateMetadata,
    DuplicateVerdict,
    Folder,
    ImportResult,
    ReadingSession,
    ReadingStats,
    ReadingSummary,
    SessionFilter,
    SuppliedMetadata,
)
from bookshelf.storage.store import LibraryStore, SqliteLibraryStore

log = logging.getLogger(__name__)


class LibraryService:
    """Wire the store, importer, resolver, sessions and cache for one library."""

    def __init__(self, settings: LibrarySettings, store: LibraryStore | None = None):
        self.settings = settings
        if store is None:
            sqlite_store = SqliteLibraryStore(settings.db_path)
            sqlite_store.initialize()
            store = sqlite_store
        self.store = store
        self.resolver = DuplicateResolver(store, settings.size_tolerance_bytes)
        self.importer = ImportOrchestrator(store, settings, resolver=self.resolver)
        self.sessions = ReadingSessionAggregator(store)
        self.cache = ContentCache(settings.cache_dir)
        self.processor = ContentProcessor()

    @classmethod
    def open(cls, library_dir: Path | None = None) -> "LibraryService":
        """Open (creating if needed) the library at the resolved directory."""
        settings = load_settings(library_dir)
        settings.ensure_dirs()
        return cls(settings)

    def close(self) -> None:
        self.importer.shutdown()

    # Importing

    def import_from_path(
        self, path: Path, force: bool = False, folder_id: int | None = None
    ) -> ImportResult:
        return self.importer.import_path(path, force=force, folder_id=folder_id)

    def import_from_buffer(
        self,
        data: bytes,
        file_name: str,
        supplied_meta: SuppliedMetadata | None = None,
        force: bool = False,
        folder_id: int | None = None,
    ) -> ImportResult:
        return self.importer.import_from_buffer(
            data, file_name, supplied=supplied_meta, force=force, folder_id=folder_id
        )

    def check_duplicate(self, candidate: CandidateMetadata) -> DuplicateVerdict:
        return self.resolver.check(candidate)

    def _watched_folder(self, folder: Path | None) -> Path:
        folder = folder or self.settings.default_import_folder
        if folder is None:
            raise ValueError("no folder given and no default import folder configured")
        return folder

    def scan_folder(self, folder: Path | None = None) -> ScanReport:
        scanner = FolderScanner(self.importer, self.settings.scan_index_path)
        return scanner.scan_once(self._watched_folder(folder))

    def watch_folder(
        self,
        folder: Path | None = None,
        interval: float | None = None,
        iterations: int | None = None,
    ) -> None:
        """Keep scanning a folder; the interval defaults to the configured one."""
        scanner = FolderScanner(self.importer, self.settings.scan_index_path)
        scanner.watch(
            self._watched_folder(folder),
            interval or self.settings.scan_interval_seconds,
            iterations=iterations,
        )

    # Content

    def get_content(self, path: Path) -> BookContent:
        """Extract a book's chapters and TOC, using the cache when enabled."""
        if not path.exists():
            raise ImportFailed(f"file not found: {path}")

        if self.settings.cache_enabled:
            cached = self.cache.get(path)
            if cached is not None:
                log.debug("Content cache hit for %s", path)
                return cached

        _, content = read_book(path, limits=self.settings.archive)

        if self.settings.cache_enabled:
            self.cache.put(path, content)
        return content

    def get_text(self, path: Path, output_format: TextFormat = "markdown") -> str:
        """Whole book rendered as one document, chapter by chapter."""
        content = self.get_content(path)
        parts = []
        for chapter in content.chapters:
            body = self.processor.render(chapter.content, output_format)
            if output_format == "markdown":
                parts.append(f"## {chapter.title}\n\n{body}".rstrip())
            elif output_format == "html":
                parts.append(f"<section>{body}</section>")
            else:
                parts.append(f"{chapter.title}\n\n{body}".rstrip())
        return "\n\n".join(parts)

    # Reading sessions

    def add_reading_session(self, session: ReadingSession) -> bool:
        self.sessions.record(session)
        return True

    def get_reading_sessions(self, session_filter: SessionFilter | None = None) -> list[ReadingSession]:
        return self.sessions.query(session_filter)

    def reading_summaries(self, session_filter: SessionFilter | None = None) -> list[ReadingSummary]:
        return self.sessions.summarize_by_book(session_filter)

    def reading_stats(self, session_filter: SessionFilter | None = None) -> ReadingStats:
        return self.sessions.stats(session_filter)

    # Folders and books

    def get_folders(self) -> list[Folder]:
        return self.store.get_folders()

    def add_folder(self, name: str) -> Folder:
        return self.store.add_folder(name)

    def rename_folder(self, folder_id: int, name: str) -> bool:
        return self.store.rename_folder(folder_id, name)

    def delete_folder(self, folder_id: int) -> bool:
        return self.store.delete_folder(folder_id)

    def get_books(self, folder_id: int | None = None) -> list[BookRecord]:
        return self.store.get_books(folder_id)

    def get_book(self, book_id: int) -> BookRecord | None:
        return self.store.get_book(book_id)

    def get_book_counts(self) -> BookCounts:
        return self.store.get_book_counts()

    def update_book(self, book_id: int, update: BookUpdate) -> bool:
        return self.store.update_book(book_id, update)

    def delete_book(self, book_id: int) -> bool:
        """Remove a book, its sessions and its stored files."""
        record = self.store.delete_book(book_id)
        if record is None:
            return False
        for stored in (record.file_path, record.cover_path):
            if not stored:
                continue
            try:
                Path(stored).unlink(missing_ok=True)
            except OSError as exc:
                log.warning("Could not remove %s: %s", stored, exc)
        return True
