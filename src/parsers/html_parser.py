# ============================================================================
# MailLens -- HTML Content Parser (src/parsers/html_parser.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Turns HTML into readable plain text. Used by:
#     1. EmlxParser (HTML mail bodies -> the text body we report)
#     2. HtmlAttachmentParser (.html / .htm attachments, below)
#
# TWO STRATEGIES:
#   1. Walk the markup with the stdlib HTMLParser, dropping script/style
#      blocks and turning block elements into line breaks.
#   2. If that raises, strip tags with a regex and replace the common
#      entities by hand. Crude, but mail HTML is often broken enough to
#      need it.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import re
from html.parser import HTMLParser as _StdlibHTMLParser
from typing import Any, Dict, List, Tuple


# Tags whose content should be completely discarded (not just the tags)
_SKIP_TAGS = frozenset({
    "script", "style", "noscript", "svg", "math", "template",
    "head", "iframe", "object", "embed",
})

# Block-level tags that should produce line breaks
_BLOCK_TAGS = frozenset({
    "p", "div", "section", "article", "header", "footer",
    "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "pre",
    "ul", "ol", "li", "table", "tr", "td", "th",
    "hr", "br",
})

# Entities replaced by the regex fallback
_FALLBACK_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&apos;", "'"),
    ("&amp;", "&"),     # last, so "&amp;lt;" stays "&lt;"
)


class _TextExtractor(_StdlibHTMLParser):
    """
    Collects visible text, skipping script/style blocks and converting
    block elements to line breaks.
    """

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self._pieces: List[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs: list) -> None:
        tag = tag.lower()
        if tag in _SKIP_TAGS:
            self._skip_depth += 1
        elif tag in _BLOCK_TAGS:
            self._pieces.append("\n")

    def handle_endtag(self, tag: str) -> None:
        tag = tag.lower()
        if tag in _SKIP_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
        elif tag in _BLOCK_TAGS:
            self._pieces.append("\n")

    def handle_data(self, data: str) -> None:
        if self._skip_depth > 0:
            return
        self._pieces.append(data)

    def get_text(self) -> str:
        raw = "".join(self._pieces).replace("\xa0", " ")
        text = re.sub(r"[ \t\r\f\v]+", " ", raw)
        lines = [line.strip() for line in text.split("\n")]
        text = "\n".join(lines)
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()


def strip_html(html: str) -> str:
    """Regex fallback: drop tags, replace common entities, squeeze spaces."""
    text = re.sub(r"(?is)<(script|style)\b.*?</\1\s*>", " ", html)
    text = re.sub(r"<[^>]+>", " ", text)
    for entity, char in _FALLBACK_ENTITIES:
        text = text.replace(entity, char)
    return re.sub(r"\s+", " ", text).strip()


def extract_text_from_html(html: str) -> Tuple[str, Dict[str, Any]]:
    """
    Extract readable text from an HTML string.

    Returns:
        (text, details) where details records which strategy produced
        the text and the character counts.
    """
    details: Dict[str, Any] = {
        "parser": "HTMLParser",
        "html_length": len(html),
    }

    try:
        extractor = _TextExtractor()
        extractor.feed(html)
        extractor.close()
        text = extractor.get_text()
        details["text_length"] = len(text)
        return text, details

    except Exception as e:
        details["error"] = f"HTML parse error: {type(e).__name__}: {e}"
        fallback = strip_html(html)
        details["fallback"] = True
        details["text_length"] = len(fallback)
        return fallback, details


def html_to_text(html: str) -> str:
    """Convenience wrapper when the details are not needed."""
    text, _ = extract_text_from_html(html)
    return text


class HtmlAttachmentParser:
    """
    .html / .htm attachments read from disk.

    Saved mail HTML is usually UTF-8; older messages are Latin-1.
    """

    def parse(self, file_path: str) -> str:
        text, _ = self.parse_with_details(file_path)
        return text

    def parse_with_details(self, file_path: str) -> Tuple[str, Dict[str, Any]]:
        details: Dict[str, Any] = {"file": file_path, "parser": "HtmlAttachmentParser"}
        try:
            with open(file_path, "rb") as f:
                raw = f.read()
        except OSError as e:
            details["error"] = f"{type(e).__name__}: {e}"
            return "", details

        try:
            html = raw.decode("utf-8")
            details["encoding"] = "utf-8"
        except UnicodeDecodeError:
            html = raw.decode("latin-1")
            details["encoding"] = "latin-1"

        text, parse_details = extract_text_from_html(html)
        details["html_parse"] = parse_details
        return text, details
