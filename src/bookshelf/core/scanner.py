"""Import new books dropped into a watched folder."""

import json
import logging
import time
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from bookshelf.core.importer import ImportOrchestrator
from bookshelf.errors import LibraryError
from bookshelf.models.importing import ImportResult

log = logging.getLogger(__name__)


class FileSignature(BaseModel):
    mtime: float
    size: int


class ScanIndex(BaseModel):
    """Files already seen, keyed by resolved path."""

    files: dict[str, FileSignature] = Field(default_factory=dict)


class ScanReport(BaseModel):
    """What one pass over the folder did."""

    imported: list[str] = Field(default_factory=list)
    blocked: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
    skipped: int = 0


class FolderScanner:
    """Poll a folder and import EPUB files that are new or changed.

    Imports never force past a duplicate verdict. Blocked and failed files
    are remembered so they are not retried until they change on disk.
    """

    def __init__(self, orchestrator: ImportOrchestrator, index_path: Path):
        self.orchestrator = orchestrator
        self.index_path = index_path

    def _load_index(self) -> ScanIndex:
        if not self.index_path.exists():
            return ScanIndex()
        try:
            return ScanIndex.model_validate(json.loads(self.index_path.read_text()))
        except (json.JSONDecodeError, ValidationError, OSError) as exc:
            log.warning("Starting with an empty scan index, %s unreadable: %s", self.index_path, exc)
            return ScanIndex()

    def _save_index(self, index: ScanIndex) -> None:
        self.index_path.parent.mkdir(parents=True, exist_ok=True)
        self.index_path.write_text(index.model_dump_json(indent=2))

    def scan_once(self, folder: Path) -> ScanReport:
        report = ScanReport()
        if not folder.is_dir():
            log.warning("Watched folder %s does not exist", folder)
            return report

        index = self._load_index()
        for path in sorted(folder.iterdir()):
            if not path.is_file() or path.suffix.lower() != ".epub":
                continue

            stat = path.stat()
            signature = FileSignature(mtime=stat.st_mtime, size=stat.st_size)
            key = str(path.resolve())
            if index.files.get(key) == signature:
                report.skipped += 1
                continue

            try:
                result: ImportResult = self.orchestrator.import_path(path, force=False)
            except LibraryError as exc:
                log.warning("Auto-import of %s failed: %s", path.name, exc)
                report.failed[path.name] = exc.message
            else:
                if result.imported:
                    report.imported.append(path.name)
                else:
                    report.blocked.append(path.name)

            index.files[key] = signature
            self._save_index(index)

        return report

    def watch(self, folder: Path, interval: float, iterations: int | None = None) -> None:
        """Scan repeatedly, sleeping between passes. Runs forever without iterations."""
        count = 0
        while iterations is None or count < iterations:
            report = self.scan_once(folder)
            if report.imported or report.blocked or report.failed:
                log.info(
                    "Scan of %s: %d imported, %d blocked, %d failed",
                    folder,
                    len(report.imported),
                    len(report.blocked),
                    len(report.failed),
                )
            count += 1
            if iterations is None or count < iterations:
                time.sleep(interval)
