"""Content cache with hash/mtime invalidation."""

import json
import logging
import shutil
import threading
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from bookshelf.cache.models import CachedContent, CacheIndex, CacheMetadata
from bookshelf.core.fingerprint import get_file_hash
from bookshelf.models.book import BookContent

log = logging.getLogger(__name__)


class ContentCache:
    """Caches extracted book content keyed by file path and content hash."""

    INDEX_FILE = "index.json"
    CONTENT_DIR = "content"
    CACHE_VERSION = "1"

    def __init__(self, cache_root: Path):
        self.cache_root = cache_root
        self.index_path = self.cache_root / self.INDEX_FILE
        self._index: CacheIndex | None = None
        self._lock = threading.RLock()

    def _ensure_cache_dir(self) -> None:
        """Create cache directory if it doesn't exist."""
        self.cache_root.mkdir(parents=True, exist_ok=True)

    def _load_index(self) -> CacheIndex:
        """Load or create cache index."""
        if self._index is not None:
            return self._index

        if self.index_path.exists():
            try:
                data = json.loads(self.index_path.read_text())
                self._index = CacheIndex.model_validate(data)
            except (json.JSONDecodeError, ValidationError, OSError) as exc:
                log.warning("Discarding unreadable cache index %s: %s", self.index_path, exc)
                self._index = CacheIndex()
        else:
            self._index = CacheIndex()

        return self._index

    def _save_index(self) -> None:
        """Save cache index to disk."""
        self._ensure_cache_dir()
        index = self._load_index()
        self.index_path.write_text(index.model_dump_json(indent=2))

    def _entry_path(self, file_hash: str) -> Path:
        return self.cache_root / self.CONTENT_DIR / file_hash / "content.json"

    def _read_entry(self, cache_file: Path) -> CachedContent | None:
        try:
            return CachedContent.model_validate_json(cache_file.read_text())
        except (ValidationError, OSError) as exc:
            log.debug("Ignoring unreadable cache entry %s: %s", cache_file, exc)
            return None

    def get(self, file_path: Path) -> BookContent | None:
        """Cached content for a file, or None if missing or stale."""
        with self._lock:
            if not self.cache_root.exists():
                return None

            index = self._load_index()
            path_key = str(file_path.resolve())
            file_hash = index.entries.get(path_key)
            if file_hash is None:
                return None

            cache_file = self._entry_path(file_hash)
            if not cache_file.exists():
                return None

            cached = self._read_entry(cache_file)
            if cached is None or cached.cache_metadata.cache_version != self.CACHE_VERSION:
                return None

            try:
                stat = file_path.stat()
            except OSError:
                return None

            # Fast path: check mtime and size first
            if (
                cached.cache_metadata.file_mtime == stat.st_mtime
                and cached.cache_metadata.file_size == stat.st_size
            ):
                return cached.content

            # Slow path: mtime changed, verify with hash
            if cached.cache_metadata.file_hash == get_file_hash(file_path):
                cached.cache_metadata.file_mtime = stat.st_mtime
                cache_file.write_text(cached.model_dump_json(indent=2))
                return cached.content

            return None

    def put(self, file_path: Path, content: BookContent) -> None:
        """Save extracted content to cache."""
        stat = file_path.stat()
        file_hash = get_file_hash(file_path)

        cached = CachedContent(
            cache_metadata=CacheMetadata(
                file_path=str(file_path.resolve()),
                file_hash=file_hash,
                file_size=stat.st_size,
                file_mtime=stat.st_mtime,
                cached_at=datetime.now(),
                cache_version=self.CACHE_VERSION,
            ),
            content=content,
        )

        with self._lock:
            cache_file = self._entry_path(file_hash)
            cache_file.parent.mkdir(parents=True, exist_ok=True)
            cache_file.write_text(cached.model_dump_json(indent=2))

            index = self._load_index()
            index.entries[str(file_path.resolve())] = file_hash
            self._save_index()

    def clear_cache(self) -> int:
        """Clear all cached data. Returns number of entries cleared."""
        with self._lock:
            if not self.cache_root.exists():
                return 0

            content_dir = self.cache_root / self.CONTENT_DIR
            count = len(list(content_dir.iterdir())) if content_dir.exists() else 0

            shutil.rmtree(self.cache_root)
            self._index = None
            return count

    def list_cached(self) -> list[tuple[str, str]]:
        """List all cached books. Returns list of (path, hash)."""
        with self._lock:
            index = self._load_index()
            return list(index.entries.items())
