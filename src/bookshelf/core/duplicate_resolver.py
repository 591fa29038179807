"""Classify a candidate book against the library index."""

import logging

from bookshelf.core.fingerprint import fingerprint_candidate
from bookshelf.models.duplicate import (
    CandidateMetadata,
    Classification,
    DuplicateVerdict,
    Fingerprint,
    FingerprintSignal,
    SignalKind,
)
from bookshelf.models.library import BookRecord
from bookshelf.storage.store import LibraryStore

log = logging.getLogger(__name__)

# (signal, classification, confidence) in the order they are tried
RESOLUTION_ORDER = [
    (SignalKind.ISBN, Classification.EXACT, 1.0),
    (SignalKind.FILE_HASH, Classification.EXACT, 1.0),
    (SignalKind.FILE_SIZE_AND_TITLE, Classification.PROBABLE, 0.7),
    (SignalKind.TITLE_AUTHOR, Classification.PROBABLE, 0.4),
]


class DuplicateResolver:
    """Decide whether a fingerprint matches a book already in the library.

    The first signal that finds a record wins; within one signal the oldest
    record is returned by the store. The resolver keeps no state of its own,
    so repeated checks against an unchanged library give identical verdicts.
    """

    def __init__(self, store: LibraryStore, size_tolerance: int = 0):
        self.store = store
        self.size_tolerance = size_tolerance

    def check(self, candidate: CandidateMetadata) -> DuplicateVerdict:
        """Classify caller-supplied metadata without importing anything."""
        return self.resolve(fingerprint_candidate(candidate))

    def resolve(self, fingerprint: Fingerprint) -> DuplicateVerdict:
        for kind, classification, confidence in RESOLUTION_ORDER:
            signal = self._signal(kind, fingerprint)
            if signal is None:
                continue
            match = self.store.find_by_fingerprint_signal(signal)
            if match is None:
                continue

            matched = self._agreeing_signals(fingerprint, match)
            log.debug("Candidate %s matched book %s via %s", fingerprint.title_author, match.id, kind.value)
            return DuplicateVerdict(
                classification=classification,
                book_id=match.id,
                matched_signals=matched,
                confidence=confidence,
                message=self._message(classification, kind, match),
            )

        return DuplicateVerdict(message="No matching book in the library")

    def _signal(self, kind: SignalKind, fingerprint: Fingerprint) -> FingerprintSignal | None:
        if kind == SignalKind.ISBN:
            if not fingerprint.isbn:
                return None
            return FingerprintSignal(kind=kind, value=fingerprint.isbn)
        if kind == SignalKind.FILE_HASH:
            if not fingerprint.file_hash:
                return None
            return FingerprintSignal(kind=kind, value=fingerprint.file_hash)
        if kind == SignalKind.FILE_SIZE_AND_TITLE:
            if fingerprint.file_size is None:
                return None
            return FingerprintSignal(
                kind=kind,
                value=fingerprint.title_author,
                file_size=fingerprint.file_size,
                tolerance=self.size_tolerance,
            )
        return FingerprintSignal(kind=kind, value=fingerprint.title_author)

    def _agreeing_signals(self, fingerprint: Fingerprint, book: BookRecord) -> list[SignalKind]:
        """Every signal on which the matched book agrees with the candidate."""
        matched = []
        if fingerprint.isbn and book.isbn == fingerprint.isbn:
            matched.append(SignalKind.ISBN)
        if fingerprint.file_hash and book.content_hash == fingerprint.file_hash:
            matched.append(SignalKind.FILE_HASH)
        if book.title_author_key == fingerprint.title_author:
            if (
                fingerprint.file_size is not None
                and abs(book.file_size - fingerprint.file_size) <= self.size_tolerance
            ):
                matched.append(SignalKind.FILE_SIZE_AND_TITLE)
            matched.append(SignalKind.TITLE_AUTHOR)
        return matched

    def _message(self, classification: Classification, kind: SignalKind, book: BookRecord) -> str:
        reasons = {
            SignalKind.ISBN: "same ISBN",
            SignalKind.FILE_HASH: "identical file",
            SignalKind.FILE_SIZE_AND_TITLE: "same title, author and file size",
            SignalKind.TITLE_AUTHOR: "same title and author",
        }
        label = "Already in library" if classification == Classification.EXACT else "Possibly in library"
        return f'{label} as "{book.title}" by {book.author} ({reasons[kind]})'
