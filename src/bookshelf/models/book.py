"""Data models for EPUB package structure and extracted content."""

from pydantic import BaseModel, ConfigDict, Field

from bookshelf.errors import ErrorKind

UNKNOWN_AUTHOR = "Unknown"
DEFAULT_LANGUAGE = "en"


class ManifestItem(BaseModel):
    """Single resource declared in the package manifest."""

    href: str  # Archive path, resolved against the package directory
    media_type: str
    properties: list[str] = Field(default_factory=list)

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")


class PackageDescriptor(BaseModel):
    """Parsed package document (OPF)."""

    identifier: str = ""
    title: str
    authors: list[str] = Field(default_factory=list)
    language: str = DEFAULT_LANGUAGE
    description: str | None = None
    publisher: str | None = None
    isbn: str | None = None
    published_date: str | None = None
    manifest: dict[str, ManifestItem] = Field(default_factory=dict)
    spine: list[str] = Field(default_factory=list)
    cover_id: str | None = None
    nav_id: str | None = None
    ncx_id: str | None = None
    package_path: str = ""

    @property
    def author(self) -> str:
        """Display author line."""
        return ", ".join(self.authors) if self.authors else UNKNOWN_AUTHOR

    @property
    def cover_item(self) -> ManifestItem | None:
        if self.cover_id is None:
            return None
        return self.manifest.get(self.cover_id)


class TOCEntry(BaseModel):
    """Single entry in the flattened table of contents."""

    title: str
    href: str = ""
    level: int = Field(default=0, ge=0)


class Chapter(BaseModel):
    """Chapter content and metadata."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    href: str
    order: int
    content: str = ""
    word_count: int = 0
    warning: str | None = None


class PartialContentWarning(BaseModel):
    """A chapter that could not be extracted."""

    kind: ErrorKind = ErrorKind.PARTIAL_CONTENT
    chapter_id: str
    href: str
    message: str


class BookContent(BaseModel):
    """Complete extracted reading content of a book."""

    title: str
    author: str
    language: str = DEFAULT_LANGUAGE
    chapters: list[Chapter]
    toc: list[TOCEntry] = Field(default_factory=list)
    warnings: list[PartialContentWarning] = Field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)
