"""Fingerprints used to recognize the same publication across imports."""

import hashlib
import re
from pathlib import Path

from bookshelf.core.package_parser import normalize_isbn
from bookshelf.models.duplicate import CandidateMetadata, Fingerprint


def get_file_hash(file_path: Path) -> str:
    """Compute SHA-256 hash of a file."""
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def get_bytes_hash(data: bytes) -> str:
    """Compute SHA-256 hash of an in-memory file."""
    return hashlib.sha256(data).hexdigest()


def title_author_key(title: str, author: str) -> str:
    """Normalized "title|author" key.

    Title is lowercased, trimmed and whitespace-collapsed; author is
    lowercased and trimmed.
    """
    normalized_title = re.sub(r"\s+", " ", title.strip().lower())
    return f"{normalized_title}|{author.strip().lower()}"


def isbn_key(isbn: str | None) -> str | None:
    """Compact ISBN for comparison; values that aren't ISBN-shaped are kept compacted."""
    if not isbn or not isbn.strip():
        return None
    return normalize_isbn(isbn) or re.sub(r"[\s-]", "", isbn).upper()


def compute_fingerprint(
    title: str,
    author: str,
    isbn: str | None = None,
    file_hash: str | None = None,
    file_size: int | None = None,
) -> Fingerprint:
    return Fingerprint(
        isbn=isbn_key(isbn),
        title_author=title_author_key(title, author),
        file_hash=file_hash.lower() if file_hash else None,
        file_size=file_size,
    )


def fingerprint_candidate(candidate: CandidateMetadata) -> Fingerprint:
    """Fingerprint for caller-supplied metadata."""
    return compute_fingerprint(
        title=candidate.title,
        author=candidate.author,
        isbn=candidate.isbn,
        file_hash=candidate.file_hash,
        file_size=candidate.file_size,
    )
