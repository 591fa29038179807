"""SQLite schema for the library database."""

SCHEMA = """
CREATE TABLE IF NOT EXISTS folders (
    id   INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS books (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    identifier       TEXT NOT NULL DEFAULT '',
    title            TEXT NOT NULL,
    authors          TEXT NOT NULL DEFAULT '[]',
    author           TEXT NOT NULL DEFAULT 'Unknown',
    description      TEXT,
    publisher        TEXT,
    language         TEXT NOT NULL DEFAULT 'en',
    isbn             TEXT,
    published_date   TEXT,
    cover_path       TEXT,
    file_path        TEXT NOT NULL UNIQUE,
    file_size        INTEGER NOT NULL DEFAULT 0,
    content_hash     TEXT NOT NULL DEFAULT '',
    title_author_key TEXT NOT NULL DEFAULT '',
    progress         REAL NOT NULL DEFAULT 0.0,
    status           TEXT NOT NULL DEFAULT 'unread'
                     CHECK (status IN ('unread', 'reading', 'on_hold', 'finished')),
    folder_id        INTEGER REFERENCES folders (id) ON DELETE SET NULL,
    forced           INTEGER NOT NULL DEFAULT 0,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL
);

-- Backstop against double inserts of the same file; forced imports are exempt
CREATE UNIQUE INDEX IF NOT EXISTS idx_books_unique_hash
    ON books (content_hash) WHERE forced = 0 AND content_hash != '';
CREATE INDEX IF NOT EXISTS idx_books_isbn ON books (isbn) WHERE isbn IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_books_title_author ON books (title_author_key);
CREATE INDEX IF NOT EXISTS idx_books_folder ON books (folder_id);

CREATE TABLE IF NOT EXISTS reading_sessions (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id    INTEGER NOT NULL,
    start_ts   INTEGER NOT NULL,
    end_ts     INTEGER NOT NULL,
    pages      INTEGER,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    CHECK (end_ts >= start_ts)
);

CREATE INDEX IF NOT EXISTS idx_sessions_book ON reading_sessions (book_id);
CREATE INDEX IF NOT EXISTS idx_sessions_time ON reading_sessions (start_ts, end_ts);
"""
