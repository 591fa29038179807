"""Parse the EPUB package document (container pointer + OPF)."""

import logging
import posixpath
import re
from pathlib import PurePosixPath
from urllib.parse import unquote

from lxml import etree

from bookshelf.core.archive import EpubArchive
from bookshelf.errors import MalformedPackage
from bookshelf.models.book import DEFAULT_LANGUAGE, ManifestItem, PackageDescriptor

log = logging.getLogger(__name__)

CONTAINER_PATH = "META-INF/container.xml"
OPF_MEDIA_TYPE = "application/oebps-package+xml"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"

OPF_NS = "http://www.idpf.org/2007/opf"

_ISBN_SHAPE = re.compile(r"^(?:97[89])?\d{9}[\dX]$")
_XML_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


def normalize_isbn(raw: str | None) -> str | None:
    """Return the compact ISBN in ``raw``, or None if it isn't ISBN-shaped."""
    if not raw:
        return None
    value = raw.strip()
    for prefix in ("urn:isbn:", "isbn:"):
        if value.lower().startswith(prefix):
            value = value[len(prefix):]
            break
    compact = re.sub(r"[\s-]", "", value).upper()
    return compact if _ISBN_SHAPE.match(compact) else None


def fallback_title(file_name: str) -> str:
    """Derive a title from a file name ("my_book-v2.epub" -> "my book v2")."""
    stem = PurePosixPath(file_name.replace("\\", "/")).stem
    title = re.sub(r"[_-]+", " ", stem)
    title = re.sub(r"\s+", " ", title).strip()
    return title or "Untitled"


def _localname(element) -> str:
    if not isinstance(element.tag, str):
        return ""
    return etree.QName(element).localname


def _children(parent, name: str) -> list:
    return [child for child in parent if _localname(child) == name]


def _first(parent, name: str):
    for element in parent.iter():
        if _localname(element) == name:
            return element
    return None


def _text(element) -> str:
    return " ".join("".join(element.itertext()).split())


class PackageParser:
    """Parse the package descriptor of an open archive."""

    def __init__(self, archive: EpubArchive, source_name: str | None = None):
        self.archive = archive
        self.source_name = source_name or archive.name

    def parse(self) -> PackageDescriptor:
        """Locate and parse the package document."""
        package_path = self.locate_package()
        root = self._parse_xml(package_path)
        if _localname(root) != "package":
            raise MalformedPackage(f"{package_path} is not a package document")

        package_dir = posixpath.dirname(package_path)
        metadata = _first(root, "metadata")
        manifest_el = _first(root, "manifest")
        spine_el = _first(root, "spine")
        if manifest_el is None or spine_el is None:
            raise MalformedPackage(f"{package_path} has no manifest or spine")

        manifest = self._parse_manifest(manifest_el, package_dir)
        spine = self._parse_spine(spine_el, manifest)
        fields = self._parse_metadata(metadata, root)

        return PackageDescriptor(
            **fields,
            manifest=manifest,
            spine=spine,
            cover_id=self._resolve_cover_id(manifest, metadata),
            nav_id=self._resolve_nav_id(manifest),
            ncx_id=self._resolve_ncx_id(manifest, spine_el),
            package_path=package_path,
        )

    def locate_package(self) -> str:
        """Follow the container pointer to the package document path."""
        container = self._parse_xml(CONTAINER_PATH)
        rootfiles = [el for el in container.iter() if _localname(el) == "rootfile"]
        preferred = [el for el in rootfiles if el.get("media-type") == OPF_MEDIA_TYPE]
        for rootfile in preferred + rootfiles:
            full_path = rootfile.get("full-path")
            if full_path:
                return full_path
        raise MalformedPackage(f"{CONTAINER_PATH} names no package document")

    def _parse_xml(self, name: str):
        data = self.archive.read_entry(name)
        try:
            return etree.fromstring(data, parser=_XML_PARSER)
        except etree.XMLSyntaxError as exc:
            raise MalformedPackage(f"{name} is not well-formed XML: {exc}") from exc

    def _parse_metadata(self, metadata, root) -> dict:
        if metadata is None:
            return {"title": fallback_title(self.source_name)}

        def values(name: str) -> list[str]:
            found = [_text(el) for el in _children(metadata, name)]
            return [value for value in found if value]

        def single(name: str) -> str | None:
            found = values(name)
            return found[0] if found else None

        titles = values("title")
        if not titles:
            log.debug("No title in %s, using file name", self.source_name)

        return {
            "identifier": self._unique_identifier(metadata, root),
            "title": titles[0] if titles else fallback_title(self.source_name),
            "authors": values("creator"),
            "language": single("language") or DEFAULT_LANGUAGE,
            "description": single("description"),
            "publisher": single("publisher"),
            "isbn": self._find_isbn(metadata),
            "published_date": single("date"),
        }

    def _unique_identifier(self, metadata, root) -> str:
        identifiers = _children(metadata, "identifier")
        wanted = root.get("unique-identifier")
        for element in identifiers:
            if wanted and element.get("id") == wanted:
                return _text(element)
        return _text(identifiers[0]) if identifiers else ""

    def _find_isbn(self, metadata) -> str | None:
        """Pick the ISBN among dc:identifier elements.

        An explicit opf:scheme="ISBN" wins over prefix or shape matches.
        """
        candidates = []
        for element in _children(metadata, "identifier"):
            value = _text(element)
            scheme = element.get(f"{{{OPF_NS}}}scheme") or element.get("scheme") or ""
            if scheme.upper() == "ISBN":
                return normalize_isbn(value) or re.sub(r"[\s-]", "", value).upper()
            isbn = normalize_isbn(value)
            if isbn:
                candidates.append(isbn)
        return candidates[0] if candidates else None

    def _parse_manifest(self, manifest_el, package_dir: str) -> dict[str, ManifestItem]:
        manifest: dict[str, ManifestItem] = {}
        for item in _children(manifest_el, "item"):
            item_id = item.get("id")
            href = item.get("href")
            if not item_id or not href:
                continue
            resolved = posixpath.normpath(posixpath.join(package_dir, unquote(href)))
            manifest[item_id] = ManifestItem(
                href=resolved,
                media_type=item.get("media-type", ""),
                properties=(item.get("properties") or "").split(),
            )
        return manifest

    def _parse_spine(self, spine_el, manifest: dict[str, ManifestItem]) -> list[str]:
        spine = []
        for itemref in _children(spine_el, "itemref"):
            idref = itemref.get("idref")
            if not idref:
                continue
            if idref not in manifest:
                raise MalformedPackage(f"reading sequence references unknown item {idref!r}")
            spine.append(idref)
        if not spine:
            raise MalformedPackage("reading sequence is empty")
        return spine

    def _resolve_cover_id(self, manifest: dict[str, ManifestItem], metadata) -> str | None:
        for item_id, item in manifest.items():
            if "cover-image" in item.properties:
                return item_id

        if metadata is not None:
            for meta in _children(metadata, "meta"):
                if meta.get("name") != "cover":
                    continue
                content = meta.get("content", "")
                if content in manifest:
                    return content
                for item_id, item in manifest.items():
                    if content and item.href.endswith(content):
                        return item_id

        images = [(item_id, item) for item_id, item in manifest.items() if item.is_image]
        for item_id, item in images:
            haystack = f"{item_id} {item.href}".lower()
            if "cover" in haystack or "front" in haystack:
                return item_id
        return images[0][0] if images else None

    def _resolve_nav_id(self, manifest: dict[str, ManifestItem]) -> str | None:
        for item_id, item in manifest.items():
            if "nav" in item.properties:
                return item_id
        return None

    def _resolve_ncx_id(self, manifest: dict[str, ManifestItem], spine_el) -> str | None:
        toc_id = spine_el.get("toc")
        if toc_id and toc_id in manifest:
            return toc_id
        for item_id, item in manifest.items():
            if item.media_type == NCX_MEDIA_TYPE:
                return item_id
        return None
