"""Tests for duplicate classification."""

import tempfile
import unittest
from pathlib import Path

from bookshelf.core.duplicate_resolver import DuplicateResolver
from bookshelf.core.fingerprint import compute_fingerprint
from bookshelf.models import BookRecord, CandidateMetadata, Classification, SignalKind
from bookshelf.storage.store import SqliteLibraryStore


class TestDuplicateResolver(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = SqliteLibraryStore(Path(self.tmp.name) / "library.db")
        self.store.initialize()
        self.resolver = DuplicateResolver(self.store)

    def tearDown(self):
        self.tmp.cleanup()

    def add_book(self, title, author, file_hash, file_size=1000, isbn=None, path=None) -> int:
        fp = compute_fingerprint(title, author, isbn=isbn, file_hash=file_hash, file_size=file_size)
        return self.store.insert_book(
            BookRecord(
                title=title,
                authors=[author],
                author=author,
                isbn=fp.isbn,
                file_path=path or f"/books/{file_hash}.epub",
                file_size=file_size,
                content_hash=fp.file_hash,
                title_author_key=fp.title_author,
            )
        )

    def test_empty_library(self):
        verdict = self.resolver.check(CandidateMetadata(title="Dune", author="Frank Herbert"))
        self.assertEqual(verdict.classification, Classification.NONE)
        self.assertEqual(verdict.confidence, 0.0)
        self.assertIsNone(verdict.book_id)
        self.assertFalse(verdict.is_duplicate)

    def test_identical_file_is_exact(self):
        book_id = self.add_book("Dune", "Frank Herbert", "aaa")
        verdict = self.resolver.check(
            CandidateMetadata(title="Something Else", author="Nobody", file_hash="AAA", file_size=5)
        )
        self.assertEqual(verdict.classification, Classification.EXACT)
        self.assertEqual(verdict.confidence, 1.0)
        self.assertEqual(verdict.book_id, book_id)
        self.assertEqual(verdict.matched_signals, [SignalKind.FILE_HASH])

    def test_same_isbn_different_file_is_exact(self):
        book_id = self.add_book("Dune", "Frank Herbert", "aaa", isbn="978-0-441-17271-9")
        verdict = self.resolver.check(
            CandidateMetadata(title="Dune", author="Frank Herbert", isbn="9780441172719", file_hash="bbb", file_size=2000)
        )
        self.assertEqual(verdict.classification, Classification.EXACT)
        self.assertEqual(verdict.book_id, book_id)
        self.assertIn(SignalKind.ISBN, verdict.matched_signals)
        self.assertIn(SignalKind.TITLE_AUTHOR, verdict.matched_signals)
        self.assertNotIn(SignalKind.FILE_HASH, verdict.matched_signals)

    def test_title_author_and_size_is_probable(self):
        self.add_book("Dune", "Frank Herbert", "aaa", file_size=1000)
        verdict = self.resolver.check(
            CandidateMetadata(title="  DUNE ", author="frank herbert", file_hash="bbb", file_size=1000)
        )
        self.assertEqual(verdict.classification, Classification.PROBABLE)
        self.assertEqual(verdict.confidence, 0.7)
        self.assertEqual(
            verdict.matched_signals,
            [SignalKind.FILE_SIZE_AND_TITLE, SignalKind.TITLE_AUTHOR],
        )

    def test_title_author_alone_is_probable(self):
        self.add_book("Dune", "Frank Herbert", "aaa", file_size=1000)
        verdict = self.resolver.check(
            CandidateMetadata(title="Dune", author="Frank Herbert", file_hash="bbb", file_size=1200)
        )
        self.assertEqual(verdict.classification, Classification.PROBABLE)
        self.assertEqual(verdict.confidence, 0.4)
        self.assertEqual(verdict.matched_signals, [SignalKind.TITLE_AUTHOR])

    def test_size_tolerance(self):
        self.add_book("Dune", "Frank Herbert", "aaa", file_size=1000)
        resolver = DuplicateResolver(self.store, size_tolerance=300)
        verdict = resolver.check(
            CandidateMetadata(title="Dune", author="Frank Herbert", file_hash="bbb", file_size=1200)
        )
        self.assertEqual(verdict.confidence, 0.7)

    def test_isbn_outranks_hash(self):
        hash_match = self.add_book("Other", "Someone", "ccc")
        isbn_match = self.add_book("Dune", "Frank Herbert", "aaa", isbn="9780441172719")
        verdict = self.resolver.check(
            CandidateMetadata(title="X", author="Y", isbn="9780441172719", file_hash="ccc")
        )
        self.assertEqual(verdict.book_id, isbn_match)
        self.assertNotEqual(verdict.book_id, hash_match)
        self.assertEqual(verdict.matched_signals, [SignalKind.ISBN])

    def test_oldest_record_wins_within_signal(self):
        first = self.add_book("Dune", "Frank Herbert", "aaa")
        self.add_book("Dune", "Frank Herbert", "bbb")
        verdict = self.resolver.check(CandidateMetadata(title="Dune", author="Frank Herbert"))
        self.assertEqual(verdict.book_id, first)

    def test_repeated_checks_are_identical(self):
        self.add_book("Dune", "Frank Herbert", "aaa", isbn="9780441172719")
        candidate = CandidateMetadata(title="Dune", author="Frank Herbert", file_hash="aaa", file_size=1000)
        first = self.resolver.check(candidate)
        second = self.resolver.check(candidate)
        self.assertEqual(first, second)
        self.assertEqual(len(self.store.get_books()), 1)

    def test_message_names_the_match(self):
        self.add_book("Dune", "Frank Herbert", "aaa")
        verdict = self.resolver.check(CandidateMetadata(title="X", file_hash="aaa"))
        self.assertIn("Dune", verdict.message)
        self.assertIn("identical file", verdict.message)


if __name__ == "__main__":
    unittest.main()
