"""Library settings persisted alongside the library."""

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

log = logging.getLogger(__name__)

HOME_ENV_VAR = "BOOKSHELF_HOME"
DEFAULT_HOME = Path.home() / ".bookshelf"
SETTINGS_FILE = "settings.json"


class ArchiveLimits(BaseModel):
    """Guards applied when reading archive entries."""

    max_entry_bytes: int = Field(default=64 * 1024 * 1024, gt=0)


class LibrarySettings(BaseModel):
    """Settings for one library instance."""

    library_dir: Path = DEFAULT_HOME
    size_tolerance_bytes: int = Field(default=0, ge=0)
    archive: ArchiveLimits = Field(default_factory=ArchiveLimits)
    default_import_folder: Path | None = None
    scan_interval_seconds: float = Field(default=10.0, gt=0)
    cache_enabled: bool = True

    @property
    def books_dir(self) -> Path:
        return self.library_dir / "books"

    @property
    def covers_dir(self) -> Path:
        return self.library_dir / "covers"

    @property
    def db_path(self) -> Path:
        return self.library_dir / "library.db"

    @property
    def cache_dir(self) -> Path:
        return self.library_dir / "cache"

    @property
    def scan_index_path(self) -> Path:
        return self.library_dir / "auto_import_index.json"

    @property
    def settings_path(self) -> Path:
        return self.library_dir / SETTINGS_FILE

    def ensure_dirs(self) -> None:
        """Create the library directory tree if it doesn't exist."""
        for directory in (self.library_dir, self.books_dir, self.covers_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def save(self) -> Path:
        """Write settings to the library directory."""
        self.library_dir.mkdir(parents=True, exist_ok=True)
        self.settings_path.write_text(
            self.model_dump_json(indent=2, exclude={"library_dir"})
        )
        return self.settings_path


def resolve_library_dir(library_dir: Path | None = None) -> Path:
    """Pick the library directory: explicit value, then env var, then default."""
    if library_dir is not None:
        return library_dir.expanduser().resolve()
    env_value = os.environ.get(HOME_ENV_VAR)
    if env_value:
        return Path(env_value).expanduser().resolve()
    return DEFAULT_HOME


def load_settings(library_dir: Path | None = None) -> LibrarySettings:
    """Load settings for a library, falling back to defaults.

    A missing or unreadable settings file yields defaults; the file is
    never rewritten here.
    """
    root = resolve_library_dir(library_dir)
    settings_path = root / SETTINGS_FILE

    if settings_path.exists():
        try:
            data = json.loads(settings_path.read_text())
            data["library_dir"] = root
            return LibrarySettings.model_validate(data)
        except (json.JSONDecodeError, ValidationError, TypeError) as exc:
            log.warning("Ignoring invalid settings file %s: %s", settings_path, exc)

    return LibrarySettings(library_dir=root)
