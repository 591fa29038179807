"""Extract chapters and table of contents from an EPUB package."""

import logging
import posixpath
from pathlib import Path
from urllib.parse import unquote

from bs4 import BeautifulSoup

from bookshelf.config import ArchiveLimits
from bookshelf.core.archive import ArchiveSource, EpubArchive
from bookshelf.core.content_processor import ContentProcessor
from bookshelf.core.package_parser import PackageParser
from bookshelf.errors import CorruptArchive, LibraryError, MissingEntry
from bookshelf.models.book import (
    BookContent,
    Chapter,
    PackageDescriptor,
    PartialContentWarning,
    TOCEntry,
)

log = logging.getLogger(__name__)

NAV_FILENAMES = ("nav.xhtml", "toc.xhtml", "nav.html", "toc.ncx")


def toc_level_jumps(entries: list[TOCEntry]) -> list[int]:
    """Indices where nesting deepens by more than one level at once."""
    jumps = []
    previous = -1
    for index, entry in enumerate(entries):
        if entry.level > previous + 1:
            jumps.append(index)
        previous = entry.level
    return jumps


def _fallback_title(href: str, order: int) -> str:
    return posixpath.splitext(posixpath.basename(href))[0] or f"Chapter {order + 1}"


class EpubParser:
    """Walk a parsed package and extract its reading content."""

    def __init__(
        self,
        archive: EpubArchive,
        descriptor: PackageDescriptor,
        processor: ContentProcessor | None = None,
    ):
        self.archive = archive
        self.descriptor = descriptor
        self.processor = processor or ContentProcessor()

    def parse(self) -> BookContent:
        """Run the navigation and chapter passes."""
        toc = self._get_toc()
        chapters, warnings = self._get_chapters(toc)
        return BookContent(
            title=self.descriptor.title,
            author=self.descriptor.author,
            language=self.descriptor.language,
            chapters=chapters,
            toc=toc,
            warnings=warnings,
        )

    # -- chapter pass -------------------------------------------------------

    def _get_chapters(
        self, toc: list[TOCEntry]
    ) -> tuple[list[Chapter], list[PartialContentWarning]]:
        """Extract one chapter per reading-sequence entry, in order."""
        toc_titles = self._build_toc_title_map(toc)
        chapters: list[Chapter] = []
        warnings: list[PartialContentWarning] = []

        for order, item_id in enumerate(self.descriptor.spine):
            item = self.descriptor.manifest[item_id]
            try:
                raw = self.archive.read_entry(item.href)
            except (MissingEntry, CorruptArchive) as exc:
                log.warning("Chapter %s (%s) could not be read: %s", item_id, item.href, exc)
                warning = PartialContentWarning(
                    chapter_id=item_id, href=item.href, message=exc.message
                )
                warnings.append(warning)
                chapters.append(
                    Chapter(
                        id=item_id,
                        title=toc_titles.get(item.href) or _fallback_title(item.href, order),
                        href=item.href,
                        order=order,
                        warning=warning.message,
                    )
                )
                continue

            content = self.processor.sanitize(raw)
            # TOC title, then first heading, then file name, then position
            title = (
                toc_titles.get(item.href)
                or self._extract_title_from_content(raw)
                or _fallback_title(item.href, order)
            )
            chapters.append(
                Chapter(
                    id=item_id,
                    title=title,
                    href=item.href,
                    order=order,
                    content=content,
                    word_count=self.processor.word_count(content),
                )
            )

        return chapters, warnings

    def _build_toc_title_map(self, toc: list[TOCEntry]) -> dict[str, str]:
        """Map resource paths to the first TOC title pointing at them."""
        title_map: dict[str, str] = {}
        for entry in toc:
            file_ref = entry.href.split("#")[0]
            if file_ref and file_ref not in title_map:
                title_map[file_ref] = entry.title
        return title_map

    def _extract_title_from_content(self, content: bytes) -> str | None:
        """Try to extract title from HTML content."""
        soup = BeautifulSoup(content, "lxml")
        # Try h1 first, then h2, then title tag
        for tag in ["h1", "h2", "title"]:
            element = soup.find(tag)
            if element:
                text = element.get_text(" ", strip=True)
                if text:
                    return text
        return None

    # -- navigation pass ----------------------------------------------------

    def _get_toc(self) -> list[TOCEntry]:
        """Parse the navigation resource into a flat, ordered TOC.

        Tries the EPUB 3 nav document, then the NCX, then conventional file
        names. A book without navigation gets an empty TOC.
        """
        for href in self._navigation_candidates():
            try:
                data = self.archive.read_entry(href)
            except LibraryError as exc:
                log.warning("Navigation resource %s unreadable: %s", href, exc)
                continue

            if href.lower().endswith(".ncx"):
                entries = self._parse_ncx(data, posixpath.dirname(href))
            else:
                entries = self._parse_nav(data, posixpath.dirname(href))
            if entries:
                jumps = toc_level_jumps(entries)
                if jumps:
                    log.warning("TOC in %s skips nesting levels at %s", href, jumps)
                return entries

        return []

    def _navigation_candidates(self) -> list[str]:
        manifest = self.descriptor.manifest
        candidates = []
        for item_id in (self.descriptor.nav_id, self.descriptor.ncx_id):
            if item_id and item_id in manifest:
                candidates.append(manifest[item_id].href)

        package_dir = posixpath.dirname(self.descriptor.package_path)
        nearby, elsewhere = [], []
        for name in self.archive.names():
            if posixpath.basename(name).lower() in NAV_FILENAMES and name not in candidates:
                if posixpath.dirname(name) == package_dir:
                    nearby.append(name)
                else:
                    elsewhere.append(name)
        return candidates + nearby + elsewhere

    def _resolve_href(self, base_dir: str, href: str) -> str:
        if not href or "://" in href or href.startswith("mailto:"):
            return href
        path, _, fragment = href.partition("#")
        if path:
            path = posixpath.normpath(posixpath.join(base_dir, unquote(path)))
        return f"{path}#{fragment}" if fragment else path

    def _parse_nav(self, data: bytes, base_dir: str) -> list[TOCEntry]:
        soup = BeautifulSoup(data, "xml")
        navs = soup.find_all("nav")
        toc_nav = next(
            (nav for nav in navs if "toc" in (nav.get("epub:type") or nav.get("type") or "")),
            navs[0] if navs else None,
        )
        if toc_nav is None:
            return []

        top_list = toc_nav.find(["ol", "ul"])
        if top_list is None:
            return []

        entries: list[TOCEntry] = []
        self._walk_nav_list(top_list, base_dir, 0, entries)
        return entries

    def _walk_nav_list(self, list_el, base_dir: str, level: int, entries: list[TOCEntry]) -> None:
        """Recursively flatten nested nav lists."""
        for li in list_el.find_all("li", recursive=False):
            label = li.find(["a", "span"], recursive=False)
            href = label.get("href", "") if label is not None and label.name == "a" else ""
            title = label.get_text(" ", strip=True) if label is not None else ""
            nested = li.find(["ol", "ul"], recursive=False)

            if not title and not href and nested is None:
                continue

            entries.append(
                TOCEntry(
                    title=title or "Untitled",
                    href=self._resolve_href(base_dir, href),
                    level=level,
                )
            )
            if nested is not None:
                self._walk_nav_list(nested, base_dir, level + 1, entries)

    def _parse_ncx(self, data: bytes, base_dir: str) -> list[TOCEntry]:
        soup = BeautifulSoup(data, "xml")
        nav_map = soup.find("navMap")
        if nav_map is None:
            return []
        entries: list[TOCEntry] = []
        self._walk_nav_points(nav_map, base_dir, 0, entries)
        return entries

    def _walk_nav_points(self, parent, base_dir: str, level: int, entries: list[TOCEntry]) -> None:
        """Recursively flatten NCX navPoints."""
        for point in parent.find_all("navPoint", recursive=False):
            label = point.find("navLabel", recursive=False)
            title = label.get_text(" ", strip=True) if label is not None else ""
            content = point.find("content", recursive=False)
            href = content.get("src", "") if content is not None else ""

            entries.append(
                TOCEntry(
                    title=title or "Untitled",
                    href=self._resolve_href(base_dir, href),
                    level=level,
                )
            )
            self._walk_nav_points(point, base_dir, level + 1, entries)


def read_book(
    source: ArchiveSource,
    source_name: str | None = None,
    limits: ArchiveLimits | None = None,
) -> tuple[PackageDescriptor, BookContent]:
    """Open an EPUB, parse its package and extract its content."""
    with EpubArchive(source, limits=limits) as archive:
        if source_name is None and isinstance(source, (str, Path)):
            source_name = Path(source).name
        descriptor = PackageParser(archive, source_name=source_name).parse()
        content = EpubParser(archive, descriptor).parse()
    return descriptor, content
