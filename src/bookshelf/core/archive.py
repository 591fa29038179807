"""Lazy read access to EPUB (ZIP) containers."""

import io
import logging
import zipfile
import zlib
from pathlib import Path
from typing import BinaryIO

from bookshelf.config import ArchiveLimits
from bookshelf.errors import CorruptArchive, MissingEntry

log = logging.getLogger(__name__)

ArchiveSource = Path | str | bytes | bytearray | BinaryIO


class EpubArchive:
    """Open a container and read its entries on demand.

    Only the central directory is read on open. Use as a context manager
    so the underlying file handle is released on every exit path.
    """

    def __init__(self, source: ArchiveSource, limits: ArchiveLimits | None = None):
        self.limits = limits or ArchiveLimits()
        self.name = self._describe(source)
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(bytes(source))
        elif isinstance(source, str):
            source = Path(source)

        try:
            self._zip: zipfile.ZipFile | None = zipfile.ZipFile(source, "r")
        except FileNotFoundError:
            raise
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, EOFError) as exc:
            raise CorruptArchive(f"cannot open {self.name}: {exc}") from exc

    @staticmethod
    def _describe(source: ArchiveSource) -> str:
        if isinstance(source, (str, Path)):
            return Path(source).name
        return "<buffer>"

    def __enter__(self) -> "EpubArchive":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._zip is None

    def close(self) -> None:
        """Release the underlying handle. Safe to call more than once."""
        if self._zip is not None:
            self._zip.close()
            self._zip = None

    def _handle(self) -> zipfile.ZipFile:
        if self._zip is None:
            raise ValueError(f"archive {self.name} is closed")
        return self._zip

    def names(self) -> list[str]:
        """All file entry names, in central directory order."""
        return [info.filename for info in self._handle().infolist() if not info.is_dir()]

    def has_entry(self, name: str) -> bool:
        try:
            self._handle().getinfo(name)
        except KeyError:
            return False
        return True

    def read_entry(self, name: str) -> bytes:
        """Read one entry's bytes.

        Raises:
            MissingEntry: no entry with that name
            CorruptArchive: entry is oversized or fails decompression/CRC
        """
        zf = self._handle()
        try:
            info = zf.getinfo(name)
        except KeyError:
            raise MissingEntry(name) from None

        if info.file_size > self.limits.max_entry_bytes:
            raise CorruptArchive(
                f"entry {name!r} in {self.name} is {info.file_size} bytes, "
                f"limit is {self.limits.max_entry_bytes}"
            )

        try:
            return zf.read(info)
        except (zipfile.BadZipFile, zlib.error, EOFError, OSError) as exc:
            log.debug("Failed reading %s from %s: %s", name, self.name, exc)
            raise CorruptArchive(f"entry {name!r} in {self.name} is damaged: {exc}") from exc
