"""Library store interface and its SQLite implementation."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Protocol

from bookshelf.core.fingerprint import title_author_key
from bookshelf.errors import DuplicateBlocked, FolderExists, UnknownFolder
from bookshelf.models.duplicate import FingerprintSignal, SignalKind
from bookshelf.models.library import BookCounts, BookRecord, BookUpdate, Folder
from bookshelf.models.session import ReadingSession
from bookshelf.storage.schema import SCHEMA

log = logging.getLogger(__name__)

_BOOK_COLUMNS = (
    "identifier", "title", "authors", "author", "description", "publisher",
    "language", "isbn", "published_date", "cover_path", "file_path",
    "file_size", "content_hash", "title_author_key", "progress", "status",
    "folder_id", "forced", "created_at", "updated_at",
)

_SIGNAL_WHERE = {
    SignalKind.ISBN: "isbn = ?",
    SignalKind.FILE_HASH: "content_hash = ?",
    SignalKind.TITLE_AUTHOR: "title_author_key = ?",
    SignalKind.FILE_SIZE_AND_TITLE: "title_author_key = ? AND ABS(file_size - ?) <= ?",
}


class LibraryStore(Protocol):
    """Operations the engine needs from the library backend."""

    def get_folders(self) -> list[Folder]: ...

    def add_folder(self, name: str) -> Folder: ...

    def delete_folder(self, folder_id: int) -> bool: ...

    def rename_folder(self, folder_id: int, name: str) -> bool: ...

    def get_books(self, folder_id: Optional[int] = None) -> list[BookRecord]: ...

    def get_book(self, book_id: int) -> Optional[BookRecord]: ...

    def get_book_counts(self) -> BookCounts: ...

    def insert_book(self, record: BookRecord) -> int: ...

    def update_book(self, book_id: int, update: BookUpdate) -> bool: ...

    def delete_book(self, book_id: int) -> Optional[BookRecord]: ...

    def find_by_fingerprint_signal(self, signal: FingerprintSignal) -> Optional[BookRecord]: ...

    def append_session(self, session: ReadingSession) -> int: ...

    def list_sessions(self, book_id: Optional[int] = None) -> list[ReadingSession]: ...


class SqliteLibraryStore:
    """SQLite-backed library store.

    Every operation opens its own connection, so one instance can be shared
    between threads.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create schema if not exists."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)

    # Folders

    def get_folders(self) -> list[Folder]:
        with self.connection() as conn:
            rows = conn.execute("SELECT id, name FROM folders ORDER BY name ASC").fetchall()
        return [Folder(id=row["id"], name=row["name"]) for row in rows]

    def add_folder(self, name: str) -> Folder:
        name = name.strip()
        if not name:
            raise ValueError("folder name must not be empty")
        try:
            with self.connection() as conn:
                cursor = conn.execute("INSERT INTO folders (name) VALUES (?)", (name,))
                folder_id = cursor.lastrowid
        except sqlite3.IntegrityError as exc:
            raise FolderExists(f"folder {name!r} already exists") from exc
        return Folder(id=folder_id, name=name)

    def delete_folder(self, folder_id: int) -> bool:
        """Delete a folder. Its books stay in the library, unfiled."""
        with self.connection() as conn:
            conn.execute(
                "UPDATE books SET folder_id = NULL, updated_at = ? WHERE folder_id = ?",
                (_now(), folder_id),
            )
            cursor = conn.execute("DELETE FROM folders WHERE id = ?", (folder_id,))
            return cursor.rowcount > 0

    def rename_folder(self, folder_id: int, name: str) -> bool:
        name = name.strip()
        if not name:
            raise ValueError("folder name must not be empty")
        try:
            with self.connection() as conn:
                cursor = conn.execute(
                    "UPDATE folders SET name = ? WHERE id = ?", (name, folder_id)
                )
                return cursor.rowcount > 0
        except sqlite3.IntegrityError as exc:
            raise FolderExists(f"folder {name!r} already exists") from exc

    # Books

    def get_books(self, folder_id: Optional[int] = None) -> list[BookRecord]:
        with self.connection() as conn:
            if folder_id is None:
                rows = conn.execute(
                    "SELECT * FROM books ORDER BY title COLLATE NOCASE ASC, id ASC"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM books WHERE folder_id = ? "
                    "ORDER BY title COLLATE NOCASE ASC, id ASC",
                    (folder_id,),
                ).fetchall()
        return [_row_to_book(row) for row in rows]

    def get_book(self, book_id: int) -> Optional[BookRecord]:
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        return _row_to_book(row) if row else None

    def get_book_counts(self) -> BookCounts:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS count FROM books GROUP BY status"
            ).fetchall()
        return BookCounts(**{row["status"]: row["count"] for row in rows})

    def insert_book(self, record: BookRecord) -> int:
        """Insert a book and return its id.

        Raises:
            DuplicateBlocked: a non-forced record with the same content hash exists
        """
        values = _book_values(record)
        placeholders = ", ".join("?" for _ in _BOOK_COLUMNS)
        try:
            with self.connection() as conn:
                cursor = conn.execute(
                    f"INSERT INTO books ({', '.join(_BOOK_COLUMNS)}) VALUES ({placeholders})",
                    values,
                )
                return cursor.lastrowid
        except sqlite3.IntegrityError as exc:
            if "content_hash" in str(exc):
                raise DuplicateBlocked("an identical file is already in the library") from exc
            raise

    def update_book(self, book_id: int, update: BookUpdate) -> bool:
        """Apply a partial update; the title/author key follows renames."""
        fields = update.model_dump(mode="json", exclude_unset=True)
        fields["updated_at"] = _now()
        try:
            with self.connection() as conn:
                if "title" in fields or "author" in fields:
                    row = conn.execute(
                        "SELECT title, author FROM books WHERE id = ?", (book_id,)
                    ).fetchone()
                    if row is None:
                        return False
                    title = fields.get("title") or row["title"]
                    author = fields.get("author") or row["author"]
                    if "author" in fields:
                        authors = [name.strip() for name in author.split(",") if name.strip()]
                        fields["authors"] = json.dumps(authors)
                    fields["title_author_key"] = title_author_key(title, author)

                assignments = ", ".join(f"{column} = ?" for column in fields)
                cursor = conn.execute(
                    f"UPDATE books SET {assignments} WHERE id = ?",
                    (*fields.values(), book_id),
                )
                return cursor.rowcount > 0
        except sqlite3.IntegrityError as exc:
            if "FOREIGN KEY" in str(exc):
                raise UnknownFolder(f"no folder with id {fields.get('folder_id')}") from exc
            raise

    def delete_book(self, book_id: int) -> Optional[BookRecord]:
        """Delete a book and its reading sessions; returns the removed record."""
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            if row is None:
                return None
            conn.execute("DELETE FROM reading_sessions WHERE book_id = ?", (book_id,))
            conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        return _row_to_book(row)

    def find_by_fingerprint_signal(self, signal: FingerprintSignal) -> Optional[BookRecord]:
        """Oldest book matching one fingerprint signal."""
        where = _SIGNAL_WHERE[signal.kind]
        params: tuple = (signal.value,)
        if signal.kind == SignalKind.FILE_SIZE_AND_TITLE:
            if signal.file_size is None:
                return None
            params = (signal.value, signal.file_size, signal.tolerance)

        with self.connection() as conn:
            row = conn.execute(
                f"SELECT * FROM books WHERE {where} ORDER BY id ASC LIMIT 1", params
            ).fetchone()
        return _row_to_book(row) if row else None

    # Reading sessions

    def append_session(self, session: ReadingSession) -> int:
        with self.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO reading_sessions (book_id, start_ts, end_ts, pages) "
                "VALUES (?, ?, ?, ?)",
                (session.book_id, session.start, session.end, session.pages),
            )
            return cursor.lastrowid

    def list_sessions(self, book_id: Optional[int] = None) -> list[ReadingSession]:
        """Sessions in insertion order."""
        sql = "SELECT book_id, start_ts, end_ts, pages FROM reading_sessions"
        params: tuple = ()
        if book_id is not None:
            sql += " WHERE book_id = ?"
            params = (book_id,)
        with self.connection() as conn:
            rows = conn.execute(sql + " ORDER BY id ASC", params).fetchall()
        return [
            ReadingSession(
                book_id=row["book_id"],
                start=row["start_ts"],
                end=row["end_ts"],
                pages=row["pages"],
            )
            for row in rows
        ]


def _now() -> str:
    return datetime.now().isoformat()


def _book_values(record: BookRecord) -> tuple:
    data = record.model_dump(mode="json", exclude={"id"})
    data["authors"] = json.dumps(record.authors)
    data["forced"] = 1 if record.forced else 0
    return tuple(data[column] for column in _BOOK_COLUMNS)


def _row_to_book(row: sqlite3.Row) -> BookRecord:
    data = dict(row)
    data["authors"] = json.loads(data["authors"] or "[]")
    data["forced"] = bool(data["forced"])
    return BookRecord.model_validate(data)
