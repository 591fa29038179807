"""Tests for the import orchestrator and its state machine."""

import re
import sqlite3
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from bookshelf.config import LibrarySettings
from bookshelf.core.importer import (
    ImportJob,
    ImportOrchestrator,
    ImportSource,
    sanitize_file_name,
)
from bookshelf.errors import CorruptArchive, ImportFailed, InvalidTransition, MalformedPackage
from bookshelf.models import (
    Classification,
    DuplicateVerdict,
    ImportState,
    ImportStatus,
    SignalKind,
    SuppliedMetadata,
)
from bookshelf.storage.store import SqliteLibraryStore

from epub_factory import PNG_BYTES, build_epub, chapter_xhtml, opf_document, raw_epub


class ImporterTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        root = Path(self.tmp.name)
        self.settings = LibrarySettings(library_dir=root / "library")
        self.settings.ensure_dirs()
        self.store = SqliteLibraryStore(self.settings.db_path)
        self.store.initialize()
        self.orchestrator = ImportOrchestrator(self.store, self.settings)
        self.source_dir = root / "incoming"
        self.source_dir.mkdir()

    def tearDown(self):
        self.orchestrator.shutdown()
        self.tmp.cleanup()

    def stored_files(self) -> list[Path]:
        return sorted(self.settings.books_dir.iterdir())


class TestImportPath(ImporterTestCase):

    def test_import_new_book(self):
        path = build_epub(self.source_dir / "My Book.epub", title="Fresh", cover=PNG_BYTES)

        result = self.orchestrator.import_path(path)

        self.assertEqual(result.status, ImportStatus.IMPORTED)
        self.assertEqual(result.state, ImportState.DONE)
        self.assertTrue(result.imported)
        self.assertEqual(result.verdict.classification, Classification.NONE)

        book = self.store.get_book(result.book.id)
        self.assertEqual(book.title, "Fresh")
        self.assertEqual(book.author, "Jane Doe")
        self.assertFalse(book.forced)
        self.assertEqual(book.file_size, path.stat().st_size)

        stored = Path(book.file_path)
        self.assertEqual(stored.parent, self.settings.books_dir)
        self.assertRegex(stored.name, r"^\d+_My_Book\.epub$")
        self.assertEqual(stored.read_bytes(), path.read_bytes())

        cover = Path(book.cover_path)
        self.assertEqual(cover.parent, self.settings.covers_dir)
        self.assertEqual(cover.suffix, ".png")
        self.assertEqual(cover.read_bytes(), PNG_BYTES)

    def test_reimport_identical_file_is_blocked(self):
        first = build_epub(self.source_dir / "a.epub", title="Same")
        self.orchestrator.import_path(first)

        copy = self.source_dir / "renamed copy.epub"
        copy.write_bytes(first.read_bytes())
        result = self.orchestrator.import_path(copy)

        self.assertEqual(result.status, ImportStatus.BLOCKED)
        self.assertEqual(result.state, ImportState.BLOCKED)
        self.assertEqual(result.verdict.classification, Classification.EXACT)
        self.assertEqual(result.verdict.confidence, 1.0)
        self.assertIn(SignalKind.FILE_HASH, result.verdict.matched_signals)
        self.assertIsNone(result.book)
        self.assertEqual(len(self.store.get_books()), 1)
        self.assertEqual(len(self.stored_files()), 1)

    def test_same_isbn_different_file_is_exact(self):
        self.orchestrator.import_path(
            build_epub(self.source_dir / "a.epub", title="Edition One", isbn="9780306406157")
        )
        result = self.orchestrator.import_path(
            build_epub(self.source_dir / "b.epub", title="Edition Two", isbn="9780306406157")
        )
        self.assertEqual(result.status, ImportStatus.BLOCKED)
        self.assertEqual(result.verdict.classification, Classification.EXACT)
        self.assertEqual(result.verdict.matched_signals, [SignalKind.ISBN])

    def test_same_title_and_author_is_probable(self):
        self.orchestrator.import_path(build_epub(self.source_dir / "a.epub", title="Twins"))
        other = build_epub(
            self.source_dir / "b.epub",
            title="Twins",
            identifier="urn:uuid:other",
            chapters=[("Only", "<p>Entirely different text in this edition.</p>")],
        )
        result = self.orchestrator.import_path(other)
        self.assertEqual(result.status, ImportStatus.BLOCKED)
        self.assertEqual(result.verdict.classification, Classification.PROBABLE)

    def test_force_imports_duplicate(self):
        path = build_epub(self.source_dir / "a.epub")
        self.orchestrator.import_path(path)

        result = self.orchestrator.import_path(path, force=True)

        self.assertEqual(result.status, ImportStatus.IMPORTED)
        self.assertEqual(result.verdict.classification, Classification.EXACT)
        self.assertTrue(result.book.forced)
        self.assertEqual(len(self.store.get_books()), 2)

    def test_folder_assignment(self):
        folder = self.store.add_folder("Shelf")
        result = self.orchestrator.import_path(build_epub(self.source_dir / "a.epub"), folder_id=folder.id)
        self.assertEqual(self.store.get_book(result.book.id).folder_id, folder.id)

    def test_partial_content_is_imported_with_warning(self):
        data = raw_epub({"OEBPS/text/c1.xhtml": chapter_xhtml("First")}, opf=opf_document())
        path = self.source_dir / "partial.epub"
        path.write_bytes(data)

        result = self.orchestrator.import_path(path)

        self.assertEqual(result.status, ImportStatus.IMPORTED)
        self.assertEqual(len(result.warnings), 1)
        self.assertEqual(result.warnings[0].chapter_id, "c2")


class TestImportFailures(ImporterTestCase):

    def test_corrupt_file_fails(self):
        path = self.source_dir / "broken.epub"
        path.write_bytes(b"not a zip at all")
        job = ImportJob(ImportSource.from_path(path))

        with self.assertRaises(CorruptArchive):
            self.orchestrator.run(job)

        self.assertEqual(job.state, ImportState.FAILED)
        self.assertIn("cannot open", job.reason)
        self.assertEqual(self.store.get_books(), [])

    def test_malformed_package_fails(self):
        path = self.source_dir / "bad.epub"
        path.write_bytes(raw_epub({}, opf=opf_document(spine=[])))
        with self.assertRaises(MalformedPackage):
            self.orchestrator.import_path(path)

    def test_missing_file(self):
        with self.assertRaises(ImportFailed):
            self.orchestrator.import_path(self.source_dir / "nope.epub")

    def test_store_failure_rolls_back_files(self):
        path = build_epub(self.source_dir / "a.epub", cover=PNG_BYTES)
        job = ImportJob(ImportSource.from_path(path))

        with patch.object(self.store, "insert_book", side_effect=sqlite3.OperationalError("disk I/O error")):
            with self.assertRaises(ImportFailed) as ctx:
                self.orchestrator.run(job)

        self.assertIsInstance(ctx.exception.__cause__, sqlite3.OperationalError)
        self.assertEqual(job.state, ImportState.FAILED)
        self.assertEqual(job.history[-2], ImportState.PERSISTING)
        self.assertEqual(self.stored_files(), [])
        self.assertEqual(list(self.settings.covers_dir.iterdir()), [])
        self.assertEqual(self.store.get_books(), [])

    def test_index_backstop_blocks_when_check_is_bypassed(self):
        path = build_epub(self.source_dir / "a.epub")
        self.orchestrator.import_path(path)

        resolver = MagicMock()
        resolver.resolve.return_value = DuplicateVerdict()
        orchestrator = ImportOrchestrator(self.store, self.settings, resolver=resolver)
        job = ImportJob(ImportSource.from_path(path))

        result = orchestrator.run(job)

        self.assertEqual(result.status, ImportStatus.BLOCKED)
        self.assertEqual(job.history[-2:], [ImportState.PERSISTING, ImportState.BLOCKED])
        self.assertEqual(len(self.store.get_books()), 1)
        self.assertEqual(len(self.stored_files()), 1)


class TestBufferImport(ImporterTestCase):

    def test_supplied_metadata_overrides_package(self):
        data = build_epub(self.source_dir / "a.epub", title="Package Title").read_bytes()
        supplied = SuppliedMetadata(title="Shared Title", authors=["Sharer"], isbn="978-0-306-40615-7")

        result = self.orchestrator.import_from_buffer(data, "shared.epub", supplied)

        self.assertEqual(result.status, ImportStatus.IMPORTED)
        book = self.store.get_book(result.book.id)
        self.assertEqual(book.title, "Shared Title")
        self.assertEqual(book.author, "Sharer")
        self.assertEqual(book.isbn, "9780306406157")
        self.assertTrue(Path(book.file_path).name.endswith("_shared.epub"))
        self.assertEqual(Path(book.file_path).read_bytes(), data)

    def test_buffer_duplicate_of_path_import(self):
        path = build_epub(self.source_dir / "a.epub")
        self.orchestrator.import_path(path)
        result = self.orchestrator.import_from_buffer(path.read_bytes(), "other-name.epub")
        self.assertEqual(result.status, ImportStatus.BLOCKED)
        self.assertEqual(result.verdict.classification, Classification.EXACT)


class TestJobLifecycle(ImporterTestCase):

    def test_history_of_successful_import(self):
        job = ImportJob(ImportSource.from_path(build_epub(self.source_dir / "a.epub")))
        self.orchestrator.run(job)
        self.assertEqual(
            job.history,
            [
                ImportState.PENDING,
                ImportState.PARSING,
                ImportState.DUPLICATE_CHECK,
                ImportState.PERSISTING,
                ImportState.DONE,
            ],
        )

    def test_illegal_transition(self):
        job = ImportJob(ImportSource(data=b"x", file_name="x.epub"))
        with self.assertRaises(InvalidTransition):
            job.transition(ImportState.DONE)
        self.assertEqual(job.state, ImportState.PENDING)

    def test_done_job_cannot_be_rerun(self):
        job = ImportJob(ImportSource.from_path(build_epub(self.source_dir / "a.epub")))
        self.orchestrator.run(job)
        with self.assertRaises(InvalidTransition):
            self.orchestrator.run(job)
        self.assertEqual(job.state, ImportState.DONE)

    def test_resubmit_blocked_with_force(self):
        path = build_epub(self.source_dir / "a.epub")
        self.orchestrator.import_path(path)
        job = ImportJob(ImportSource.from_path(path))
        self.assertEqual(self.orchestrator.run(job).status, ImportStatus.BLOCKED)

        result = self.orchestrator.resubmit(job, force=True)

        self.assertEqual(result.status, ImportStatus.IMPORTED)
        self.assertTrue(result.book.forced)
        self.assertEqual(
            job.history[-4:],
            [ImportState.BLOCKED, ImportState.DUPLICATE_CHECK, ImportState.PERSISTING, ImportState.DONE],
        )

    def test_resubmit_requires_blocked_job(self):
        job = ImportJob(ImportSource.from_path(build_epub(self.source_dir / "a.epub")))
        with self.assertRaises(InvalidTransition):
            self.orchestrator.resubmit(job)

    def test_cancel_before_run(self):
        job = ImportJob(ImportSource.from_path(build_epub(self.source_dir / "a.epub")))
        self.assertTrue(job.cancel())

        result = self.orchestrator.run(job)

        self.assertEqual(result.status, ImportStatus.CANCELLED)
        self.assertEqual(result.state, ImportState.FAILED)
        self.assertEqual(job.reason, "cancelled")
        self.assertEqual(self.store.get_books(), [])
        self.assertEqual(self.stored_files(), [])

    def test_cancel_during_parse(self):
        job = ImportJob(ImportSource.from_path(build_epub(self.source_dir / "a.epub")))
        original_parse = self.orchestrator._parse

        def parse_then_cancel(j):
            original_parse(j)
            j.cancel()

        with patch.object(self.orchestrator, "_parse", side_effect=parse_then_cancel):
            result = self.orchestrator.run(job)

        self.assertEqual(result.status, ImportStatus.CANCELLED)
        self.assertEqual(self.store.get_books(), [])

    def test_cancel_after_done_is_ignored(self):
        job = ImportJob(ImportSource.from_path(build_epub(self.source_dir / "a.epub")))
        self.orchestrator.run(job)
        self.assertFalse(job.cancel())
        self.assertEqual(job.state, ImportState.DONE)


class TestConcurrentImports(ImporterTestCase):

    def test_same_file_imported_concurrently(self):
        path = build_epub(self.source_dir / "a.epub")
        copy = self.source_dir / "b.epub"
        copy.write_bytes(path.read_bytes())

        barrier = threading.Barrier(2)
        results = []
        errors = []

        def worker(p):
            try:
                barrier.wait()
                results.append(self.orchestrator.import_path(p))
            except Exception as e:  # surfaced by the assertions below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(p,)) for p in (path, copy)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        statuses = sorted(r.status.value for r in results)
        self.assertEqual(statuses, ["blocked", "imported"])
        blocked = next(r for r in results if r.status == ImportStatus.BLOCKED)
        self.assertEqual(blocked.verdict.classification, Classification.EXACT)
        self.assertEqual(len(self.store.get_books()), 1)

    def test_submit_runs_on_pool(self):
        jobs = [
            ImportJob(ImportSource.from_path(build_epub(self.source_dir / f"{n}.epub", title=f"Book {n}", identifier=f"urn:uuid:{n}")))
            for n in range(3)
        ]
        futures = [self.orchestrator.submit(job) for job in jobs]
        results = [f.result(timeout=30) for f in futures]

        self.assertTrue(all(r.imported for r in results))
        self.assertEqual(len(self.store.get_books()), 3)


class TestSanitizeFileName(unittest.TestCase):

    def test_replaces_unsafe_characters(self):
        self.assertEqual(sanitize_file_name("My Book: Vol 1?.epub"), "My_Book__Vol_1_.epub")
        self.assertEqual(sanitize_file_name("../../etc/passwd"), "passwd")
        self.assertTrue(re.match(r"^[\w.-]+$", sanitize_file_name("Überbuch.epub")))

    def test_empty_name(self):
        self.assertEqual(sanitize_file_name("..."), "book.epub")


if __name__ == "__main__":
    unittest.main()
