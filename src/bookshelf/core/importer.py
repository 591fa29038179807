"""Drive a book from source file to library record."""

import logging
import re
import shutil
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from bookshelf.config import LibrarySettings
from bookshelf.core.archive import EpubArchive
from bookshelf.core.duplicate_resolver import DuplicateResolver
from bookshelf.core.epub_parser import EpubParser
from bookshelf.core.fingerprint import compute_fingerprint, get_bytes_hash, get_file_hash
from bookshelf.core.package_parser import PackageParser
from bookshelf.errors import (
    DuplicateBlocked,
    ImportCancelled,
    ImportFailed,
    InvalidTransition,
    LibraryError,
)
from bookshelf.models.book import BookContent, PackageDescriptor
from bookshelf.models.duplicate import DuplicateVerdict, Fingerprint
from bookshelf.models.importing import ImportResult, ImportState, ImportStatus
from bookshelf.models.library import BookRecord, SuppliedMetadata
from bookshelf.storage.store import LibraryStore

log = logging.getLogger(__name__)

TRANSITIONS: dict[ImportState, set[ImportState]] = {
    ImportState.PENDING: {ImportState.PARSING, ImportState.FAILED},
    ImportState.PARSING: {ImportState.DUPLICATE_CHECK, ImportState.FAILED},
    ImportState.DUPLICATE_CHECK: {ImportState.BLOCKED, ImportState.PERSISTING, ImportState.FAILED},
    ImportState.BLOCKED: {ImportState.DUPLICATE_CHECK, ImportState.FAILED},
    # Blocked only when the store rejects the insert as a duplicate
    ImportState.PERSISTING: {ImportState.DONE, ImportState.BLOCKED, ImportState.FAILED},
    ImportState.DONE: set(),
    ImportState.FAILED: set(),
}

COVER_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
}


def sanitize_file_name(name: str) -> str:
    """Make a file name safe to store in the library directory."""
    cleaned = re.sub(r"[^A-Za-z0-9._-]", "_", Path(name).name)
    return cleaned.strip("._") or "book.epub"


class ImportSource:
    """A book to import, either a file on disk or an in-memory buffer."""

    def __init__(
        self,
        path: Path | None = None,
        data: bytes | None = None,
        file_name: str | None = None,
        supplied: SuppliedMetadata | None = None,
    ):
        if (path is None) == (data is None):
            raise ValueError("exactly one of path or data is required")
        self.path = Path(path) if path is not None else None
        self.data = data
        self.file_name = file_name or (self.path.name if self.path else "book.epub")
        self.supplied = supplied

    @classmethod
    def from_path(cls, path: Path | str) -> "ImportSource":
        return cls(path=Path(path))

    @classmethod
    def from_buffer(
        cls, data: bytes, file_name: str, supplied: SuppliedMetadata | None = None
    ) -> "ImportSource":
        return cls(data=bytes(data), file_name=file_name, supplied=supplied)


class ImportJob:
    """State machine for one import request."""

    def __init__(self, source: ImportSource, force: bool = False, folder_id: int | None = None):
        self.source = source
        self.force = force
        self.folder_id = folder_id
        self.state = ImportState.PENDING
        self.history: list[ImportState] = [ImportState.PENDING]
        self.reason: str | None = None

        self.descriptor: PackageDescriptor | None = None
        self.content: BookContent | None = None
        self.fingerprint: Fingerprint | None = None
        self.cover: tuple[bytes, str] | None = None
        self.verdict: DuplicateVerdict | None = None
        self.book: BookRecord | None = None

        self._cancelled = threading.Event()
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def finished(self) -> bool:
        return self.state in (ImportState.DONE, ImportState.FAILED)

    def transition(self, new_state: ImportState, reason: str | None = None) -> None:
        """Move to a new state.

        Raises:
            InvalidTransition: the move isn't allowed from the current state
            ImportCancelled: the job was cancelled and the move isn't to failed
        """
        with self._lock:
            if new_state not in TRANSITIONS[self.state]:
                raise InvalidTransition(
                    f"cannot move import of {self.source.file_name} "
                    f"from {self.state.value} to {new_state.value}"
                )
            if self._cancelled.is_set() and new_state != ImportState.FAILED:
                raise ImportCancelled(f"import of {self.source.file_name} was cancelled")
            old_state = self.state
            self.state = new_state
            self.history.append(new_state)
            if new_state == ImportState.FAILED:
                self.reason = reason
        log.debug("%s: %s -> %s", self.source.file_name, old_state.value, new_state.value)

    def cancel(self) -> bool:
        """Ask the job to stop. Returns False once persisting has begun."""
        with self._lock:
            if self.state in (ImportState.PERSISTING, ImportState.DONE, ImportState.FAILED):
                return False
            self._cancelled.set()
            return True


class ImportOrchestrator:
    """Parse, check and persist books into one library.

    Parsing runs without locks. The duplicate check and the insert that
    follows it run under a single index lock so concurrent imports of the
    same book cannot both pass the check.
    """

    def __init__(
        self,
        store: LibraryStore,
        settings: LibrarySettings,
        resolver: DuplicateResolver | None = None,
        max_workers: int = 2,
    ):
        self.store = store
        self.settings = settings
        self.resolver = resolver or DuplicateResolver(store, settings.size_tolerance_bytes)
        self.max_workers = max_workers
        self._index_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None

    def import_path(
        self, path: Path | str, force: bool = False, folder_id: int | None = None
    ) -> ImportResult:
        return self.run(ImportJob(ImportSource.from_path(path), force=force, folder_id=folder_id))

    def import_from_buffer(
        self,
        data: bytes,
        file_name: str,
        supplied: SuppliedMetadata | None = None,
        force: bool = False,
        folder_id: int | None = None,
    ) -> ImportResult:
        source = ImportSource.from_buffer(data, file_name, supplied)
        return self.run(ImportJob(source, force=force, folder_id=folder_id))

    def submit(self, job: ImportJob) -> "Future[ImportResult]":
        """Run a job on the background pool."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="bookshelf-import"
            )
        return self._executor.submit(self.run, job)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def run(self, job: ImportJob) -> ImportResult:
        """Run a pending job to completion.

        Blocked duplicates and cancellations are returned as results; parse
        and persist failures are raised after the job is marked failed.
        """
        try:
            self._parse(job)
            return self._check_and_persist(job)
        except ImportCancelled:
            return self._cancelled(job)
        except InvalidTransition:
            raise
        except LibraryError as exc:
            self._fail(job, exc.message)
            raise

    def resubmit(self, job: ImportJob, force: bool = True) -> ImportResult:
        """Re-run the duplicate check for a blocked job."""
        if job.state != ImportState.BLOCKED:
            raise InvalidTransition(
                f"only blocked imports can be resubmitted, not {job.state.value}"
            )
        job.force = force
        try:
            return self._check_and_persist(job)
        except ImportCancelled:
            return self._cancelled(job)
        except InvalidTransition:
            raise
        except LibraryError as exc:
            self._fail(job, exc.message)
            raise

    def _parse(self, job: ImportJob) -> None:
        job.transition(ImportState.PARSING)
        source = job.source

        try:
            if source.path is not None:
                file_size = source.path.stat().st_size
                file_hash = get_file_hash(source.path)
                archive_source = source.path
            else:
                file_size = len(source.data)
                file_hash = get_bytes_hash(source.data)
                archive_source = source.data
        except OSError as exc:
            raise ImportFailed(f"cannot read {source.file_name}: {exc}") from exc

        with EpubArchive(archive_source, limits=self.settings.archive) as archive:
            descriptor = PackageParser(archive, source_name=source.file_name).parse()
            if source.supplied is not None:
                descriptor = self._apply_supplied(descriptor, source.supplied)
            content = EpubParser(archive, descriptor).parse()
            job.cover = self._read_cover(archive, descriptor)

        job.descriptor = descriptor
        job.content = content
        job.fingerprint = compute_fingerprint(
            title=descriptor.title,
            author=descriptor.author,
            isbn=descriptor.isbn,
            file_hash=file_hash,
            file_size=file_size,
        )
        log.debug("Parsed %s: %d chapters", source.file_name, len(content.chapters))

    def _apply_supplied(
        self, descriptor: PackageDescriptor, supplied: SuppliedMetadata
    ) -> PackageDescriptor:
        """Caller-supplied metadata overrides what the package declares."""
        updates = supplied.model_dump(exclude_none=True)
        return descriptor.model_copy(update=updates)

    def _read_cover(
        self, archive: EpubArchive, descriptor: PackageDescriptor
    ) -> tuple[bytes, str] | None:
        item = descriptor.cover_item
        if item is None:
            return None
        try:
            data = archive.read_entry(item.href)
        except LibraryError as exc:
            log.warning("Cover %s unreadable, importing without it: %s", item.href, exc)
            return None
        extension = COVER_EXTENSIONS.get(item.media_type) or Path(item.href).suffix or ".img"
        return data, extension

    def _check_and_persist(self, job: ImportJob) -> ImportResult:
        with self._index_lock:
            job.transition(ImportState.DUPLICATE_CHECK)
            verdict = self.resolver.resolve(job.fingerprint)
            job.verdict = verdict

            if verdict.is_duplicate and not job.force:
                job.transition(ImportState.BLOCKED)
                log.info("Import of %s blocked: %s", job.source.file_name, verdict.message)
                return self._result(job, ImportStatus.BLOCKED)

            job.transition(ImportState.PERSISTING)
            try:
                job.book = self._persist(job, forced=verdict.is_duplicate)
            except DuplicateBlocked:
                job.verdict = self.resolver.resolve(job.fingerprint)
                job.transition(ImportState.BLOCKED)
                log.info("Import of %s rejected by library index", job.source.file_name)
                return self._result(job, ImportStatus.BLOCKED)

            job.transition(ImportState.DONE)

        log.info("Imported %s as book %s", job.source.file_name, job.book.id)
        return self._result(job, ImportStatus.IMPORTED)

    def _persist(self, job: ImportJob, forced: bool) -> BookRecord:
        """Store the file and cover, then insert the record.

        Written files are removed if any step fails.
        """
        source = job.source
        descriptor = job.descriptor
        fingerprint = job.fingerprint
        written: list[Path] = []

        try:
            self.settings.ensure_dirs()
            book_path = self._unique_path(
                self.settings.books_dir,
                f"{int(time.time() * 1000)}_{sanitize_file_name(source.file_name)}",
            )
            if source.path is not None:
                shutil.copy2(source.path, book_path)
            else:
                book_path.write_bytes(source.data)
            written.append(book_path)

            cover_path = None
            if job.cover is not None:
                data, extension = job.cover
                cover_path = self._unique_path(self.settings.covers_dir, book_path.stem + extension)
                cover_path.write_bytes(data)
                written.append(cover_path)

            record = BookRecord(
                identifier=descriptor.identifier,
                title=descriptor.title,
                authors=descriptor.authors,
                author=descriptor.author,
                description=descriptor.description,
                publisher=descriptor.publisher,
                language=descriptor.language,
                isbn=fingerprint.isbn,
                published_date=descriptor.published_date,
                file_path=str(book_path),
                file_size=fingerprint.file_size or 0,
                content_hash=fingerprint.file_hash or "",
                title_author_key=fingerprint.title_author,
                cover_path=str(cover_path) if cover_path else None,
                folder_id=job.folder_id,
                forced=forced,
            )
            record.id = self.store.insert_book(record)
            return record
        except DuplicateBlocked:
            self._remove(written)
            raise
        except Exception as exc:
            self._remove(written)
            raise ImportFailed(f"could not store {source.file_name}: {exc}") from exc

    def _unique_path(self, directory: Path, name: str) -> Path:
        path = directory / name
        counter = 1
        while path.exists():
            path = directory / f"{Path(name).stem}_{counter}{Path(name).suffix}"
            counter += 1
        return path

    def _remove(self, paths: list[Path]) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                log.warning("Could not remove %s after failed import: %s", path, exc)

    def _fail(self, job: ImportJob, reason: str) -> None:
        if job.finished:
            return
        job.transition(ImportState.FAILED, reason)
        log.warning("Import of %s failed: %s", job.source.file_name, reason)

    def _cancelled(self, job: ImportJob) -> ImportResult:
        if not job.finished:
            job.transition(ImportState.FAILED, "cancelled")
        log.info("Import of %s cancelled", job.source.file_name)
        return self._result(job, ImportStatus.CANCELLED)

    def _result(self, job: ImportJob, status: ImportStatus) -> ImportResult:
        return ImportResult(
            status=status,
            state=job.state,
            verdict=job.verdict,
            book=job.book,
            warnings=job.content.warnings if job.content else [],
        )
