"""Tests for chapter and table of contents extraction."""

import tempfile
import unittest
from pathlib import Path

from bookshelf.core.archive import EpubArchive
from bookshelf.core.epub_parser import EpubParser, read_book, toc_level_jumps
from bookshelf.core.package_parser import PackageParser
from bookshelf.errors import ErrorKind
from bookshelf.models import TOCEntry

from epub_factory import build_epub, chapter_xhtml, opf_document, raw_epub, simple_raw_epub

NAV_XHTML = """<?xml version="1.0" encoding="utf-8"?>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<body>
  <nav epub:type="landmarks"><ol><li><a href="text/c2.xhtml">Landmark</a></li></ol></nav>
  <nav epub:type="toc">
    <ol>
      <li><a href="text/c1.xhtml">Part One</a>
        <ol>
          <li><a href="text/c1.xhtml#s1">Section 1.1</a></li>
          <li><span>Unlinked heading</span></li>
        </ol>
      </li>
      <li><a href="text/c2.xhtml">Part Two</a></li>
    </ol>
  </nav>
</body>
</html>
"""

NCX = """<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <navMap>
    <navPoint id="p1" playOrder="1">
      <navLabel><text>Opening</text></navLabel>
      <content src="text/c1.xhtml"/>
      <navPoint id="p1a" playOrder="2">
        <navLabel><text>Nested</text></navLabel>
        <content src="text/c1.xhtml#part"/>
      </navPoint>
    </navPoint>
    <navPoint id="p2" playOrder="3">
      <navLabel><text>Closing</text></navLabel>
      <content src="text/c2.xhtml"/>
    </navPoint>
  </navMap>
</ncx>
"""

CHAPTERS = {
    "OEBPS/text/c1.xhtml": chapter_xhtml("First"),
    "OEBPS/text/c2.xhtml": chapter_xhtml("Second"),
}


def extract(data: bytes):
    with EpubArchive(data) as archive:
        descriptor = PackageParser(archive).parse()
        return EpubParser(archive, descriptor).parse()


class TestWriterOutput(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.tmp = tempfile.TemporaryDirectory()
        cls.path = build_epub(
            Path(cls.tmp.name) / "book.epub",
            chapters=[
                ("Chapter One", "<p>It was a bright cold day in April.</p>"),
                ("Chapter Two", '<div class="x"><p>The clocks were <em>striking</em> thirteen.</p></div>'),
                ("Chapter Three", "<p>Winston Smith slipped quickly through.</p>"),
            ],
        )
        cls.descriptor, cls.content = read_book(cls.path)

    @classmethod
    def tearDownClass(cls):
        cls.tmp.cleanup()

    def test_one_chapter_per_spine_entry(self):
        self.assertEqual(len(self.content.chapters), len(self.descriptor.spine))
        self.assertEqual([c.order for c in self.content.chapters], [0, 1, 2])
        self.assertEqual([c.id for c in self.content.chapters], self.descriptor.spine)

    def test_titles_from_toc(self):
        titles = [c.title for c in self.content.chapters]
        self.assertEqual(titles, ["Chapter One", "Chapter Two", "Chapter Three"])

    def test_content_is_sanitized(self):
        second = self.content.chapters[1]
        self.assertIn("<em>striking</em>", second.content)
        self.assertNotIn("class=", second.content)
        self.assertGreater(second.word_count, 0)

    def test_toc(self):
        self.assertEqual([e.title for e in self.content.toc], ["Chapter One", "Chapter Two", "Chapter Three"])
        self.assertTrue(all(e.level == 0 for e in self.content.toc))
        self.assertEqual(self.content.toc[0].href, self.content.chapters[0].href)

    def test_book_fields(self):
        self.assertEqual(self.content.title, "Test Book")
        self.assertEqual(self.content.author, "Jane Doe")
        self.assertFalse(self.content.has_warnings)


class TestNavigation(unittest.TestCase):

    def test_no_navigation_gives_empty_toc(self):
        content = extract(simple_raw_epub())
        self.assertEqual(content.toc, [])
        self.assertEqual(len(content.chapters), 2)
        # Titles come from the chapter headings
        self.assertEqual([c.title for c in content.chapters], ["First", "Second"])

    def test_nested_nav_document(self):
        manifest = [
            ("c1", "text/c1.xhtml", "application/xhtml+xml", ""),
            ("c2", "text/c2.xhtml", "application/xhtml+xml", ""),
            ("nav", "nav.xhtml", "application/xhtml+xml", "nav"),
        ]
        opf = opf_document(manifest=manifest, spine=["c1", "c2"])
        content = extract(raw_epub({**CHAPTERS, "OEBPS/nav.xhtml": NAV_XHTML}, opf=opf))

        self.assertEqual(
            [(e.title, e.level) for e in content.toc],
            [("Part One", 0), ("Section 1.1", 1), ("Unlinked heading", 1), ("Part Two", 0)],
        )
        self.assertEqual(content.toc[1].href, "OEBPS/text/c1.xhtml#s1")
        self.assertEqual(content.toc[2].href, "")
        self.assertEqual([c.title for c in content.chapters], ["Part One", "Part Two"])

    def test_ncx(self):
        manifest = [
            ("c1", "text/c1.xhtml", "application/xhtml+xml", ""),
            ("c2", "text/c2.xhtml", "application/xhtml+xml", ""),
            ("ncx", "toc.ncx", "application/x-dtbncx+xml", ""),
        ]
        opf = opf_document(manifest=manifest, spine=["c1", "c2"], spine_toc="ncx")
        content = extract(raw_epub({**CHAPTERS, "OEBPS/toc.ncx": NCX}, opf=opf))

        self.assertEqual(
            [(e.title, e.level) for e in content.toc],
            [("Opening", 0), ("Nested", 1), ("Closing", 0)],
        )
        self.assertEqual(content.toc[1].href, "OEBPS/text/c1.xhtml#part")

    def test_ncx_point_without_label_does_not_borrow_child_label(self):
        ncx = NCX.replace("<navLabel><text>Opening</text></navLabel>", "")
        manifest = [
            ("c1", "text/c1.xhtml", "application/xhtml+xml", ""),
            ("c2", "text/c2.xhtml", "application/xhtml+xml", ""),
            ("ncx", "toc.ncx", "application/x-dtbncx+xml", ""),
        ]
        opf = opf_document(manifest=manifest, spine=["c1", "c2"], spine_toc="ncx")
        content = extract(raw_epub({**CHAPTERS, "OEBPS/toc.ncx": ncx}, opf=opf))

        self.assertEqual(
            [e.title for e in content.toc], ["Untitled", "Nested", "Closing"]
        )

    def test_conventional_nav_file_outside_manifest(self):
        content = extract(
            raw_epub({**CHAPTERS, "OEBPS/toc.ncx": NCX}, opf=opf_document())
        )
        self.assertEqual(len(content.toc), 3)

    def test_unreadable_nav_falls_back_to_empty(self):
        manifest = [
            ("c1", "text/c1.xhtml", "application/xhtml+xml", ""),
            ("nav", "nav.xhtml", "application/xhtml+xml", "nav"),
        ]
        opf = opf_document(manifest=manifest, spine=["c1"])
        content = extract(raw_epub({"OEBPS/text/c1.xhtml": chapter_xhtml("Only")}, opf=opf))
        self.assertEqual(content.toc, [])
        self.assertEqual(len(content.chapters), 1)


class TestPartialContent(unittest.TestCase):

    def test_missing_chapter_entry(self):
        data = raw_epub({"OEBPS/text/c1.xhtml": chapter_xhtml("First")}, opf=opf_document())
        content = extract(data)

        self.assertEqual(len(content.chapters), 2)
        missing = content.chapters[1]
        self.assertEqual(missing.content, "")
        self.assertEqual(missing.word_count, 0)
        self.assertIsNotNone(missing.warning)
        self.assertEqual(missing.title, "c2")

        self.assertTrue(content.has_warnings)
        self.assertEqual(len(content.warnings), 1)
        self.assertEqual(content.warnings[0].kind, ErrorKind.PARTIAL_CONTENT)
        self.assertEqual(content.warnings[0].chapter_id, "c2")

    def test_chapter_without_heading_is_named_after_its_file(self):
        files = {
            "OEBPS/text/c1.xhtml": "<html><body><p>Just text.</p></body></html>",
            "OEBPS/text/c2.xhtml": chapter_xhtml("Second"),
        }
        content = extract(raw_epub(files, opf=opf_document()))
        self.assertEqual(content.chapters[0].title, "c1")
        self.assertEqual(content.chapters[0].content, "<p>Just text.</p>")


class TestTocLevelJumps(unittest.TestCase):

    def test_detects_skipped_levels(self):
        entries = [
            TOCEntry(title="a", level=0),
            TOCEntry(title="b", level=2),
            TOCEntry(title="c", level=1),
            TOCEntry(title="d", level=0),
        ]
        self.assertEqual(toc_level_jumps(entries), [1])

    def test_well_nested(self):
        entries = [TOCEntry(title="a", level=0), TOCEntry(title="b", level=1)]
        self.assertEqual(toc_level_jumps(entries), [])


if __name__ == "__main__":
    unittest.main()
