"""Sanitize chapter HTML and render it to reader-friendly formats."""

import re
import warnings
from typing import Literal

from bs4 import BeautifulSoup, Comment, XMLParsedAsHTMLWarning
from markdownify import markdownify as md

# EPUB chapters are XHTML; parsing them as HTML is intended
warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

TextFormat = Literal["markdown", "text", "html"]

ALLOWED_TAGS = frozenset(
    {"h1", "h2", "h3", "h4", "h5", "h6", "p", "br", "em", "strong", "i", "b",
     "ul", "ol", "li", "blockquote", "hr"}
)
DROP_TAGS = ["script", "style", "head", "link", "meta", "title", "noscript"]
CONTAINER_TAGS = frozenset({"div", "section", "article", "main", "aside", "header", "footer"})
BLOCK_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6", "p", "ul", "ol", "blockquote", "hr",
              *CONTAINER_TAGS]


class ContentProcessor:
    """Turn raw chapter documents into sanitized HTML fragments."""

    def sanitize(self, raw: bytes | str) -> str:
        """Reduce a chapter document to structural HTML.

        Keeps headings, paragraphs, lists, emphasis, line breaks and rules
        with all attributes removed. Leaf containers become paragraphs and
        every other tag is unwrapped so its text survives.
        """
        soup = BeautifulSoup(raw, "lxml")
        for tag in soup(DROP_TAGS):
            tag.decompose()

        body = soup.body
        if body is None:
            return ""

        for comment in body.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()

        for tag in list(body.find_all(True)):
            if tag.name in ALLOWED_TAGS:
                tag.attrs = {}
            elif tag.name in CONTAINER_TAGS:
                if tag.find(BLOCK_TAGS):
                    tag.unwrap()
                else:
                    tag.name = "p"
                    tag.attrs = {}
            else:
                tag.unwrap()

        html = "".join(str(child) for child in body.contents)
        return self._collapse_whitespace(html)

    def _collapse_whitespace(self, html: str) -> str:
        html = re.sub(r"[ \t\f\v\r]+", " ", html)
        html = re.sub(r" *\n\s*", "\n", html)
        return html.strip()

    def word_count(self, fragment: str) -> int:
        """Count words in an HTML fragment."""
        if not fragment:
            return 0
        text = BeautifulSoup(fragment, "lxml").get_text(separator=" ", strip=True)
        return len(text.split())

    def render(self, fragment: str, output_format: TextFormat = "markdown") -> str:
        """Convert a sanitized fragment to the requested format."""
        if output_format == "html":
            return fragment
        soup = BeautifulSoup(fragment, "lxml")
        if output_format == "text":
            return self._to_plain_text(soup)
        return self._to_markdown(soup)

    def _to_markdown(self, soup: BeautifulSoup) -> str:
        """Convert BeautifulSoup to clean Markdown."""
        body = soup.body or soup
        markdown = md(str(body), heading_style="ATX", bullets="-")
        lines = [line.rstrip() for line in markdown.split("\n")]
        # Remove multiple consecutive blank lines
        cleaned = []
        prev_blank = False
        for line in lines:
            is_blank = not line.strip()
            if is_blank and prev_blank:
                continue
            cleaned.append(line)
            prev_blank = is_blank

        return "\n".join(cleaned).strip()

    def _to_plain_text(self, soup: BeautifulSoup) -> str:
        """Extract plain text with paragraph preservation."""
        paragraphs = []
        for p in soup.find_all(["p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote"]):
            if p.find(["p", "li"]):
                continue
            text = p.get_text(" ", strip=True)
            if text:
                paragraphs.append(text)
        return "\n\n".join(paragraphs)
