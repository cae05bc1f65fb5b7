# ============================================================================
# MailLens -- Parser Registry (src/parsers/registry.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   The central mapping from "what kind of file is this" to "which
#   parser reads it". Two lookups live here:
#
#     1. file extension -> MIME type (attachments in the index have a
#        filename but no type, so we guess from the extension)
#     2. MIME type -> ExtractionKind -> parser class
#
# WHY AN ENUM IN THE MIDDLE?
#   Declared MIME types in mail are messy ("application/x-pdf",
#   "text/rtf", "application/vnd.openxmlformats-..."). classify()
#   squeezes them into a small closed set of kinds, and every kind has
#   exactly one parser. UNKNOWN is an explicit member, not a missing
#   dictionary key.
#
# HOW TO ADD A NEW FORMAT:
#   1. Create a parser class in src/parsers/ with parse(file_path) and
#      parse_with_details(file_path)
#   2. Add a kind to ExtractionKind and a rule to classify()
#   3. Register it in ParserRegistry.__init__
#   4. Map its extension in EXTENSION_MIME_TYPES
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Type, Union

from .html_parser import HtmlAttachmentParser
from .office_docx_parser import DocxParser
from .pdf_parser import PDFParser
from .plain_text_parser import PlainTextParser
from .rtf_parser import RtfdParser, RtfParser
from .xml_parser import XmlParser

DEFAULT_MIME_TYPE = "application/octet-stream"

EXTENSION_MIME_TYPES: Dict[str, str] = {
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".log": "text/plain",
    ".md": "text/markdown",
    ".html": "text/html",
    ".htm": "text/html",
    ".rtf": "text/rtf",
    ".rtfd": "text/rtfd",
    ".csv": "text/csv",
    ".json": "application/json",
    ".xml": "application/xml",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".doc": "application/msword",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".zip": "application/zip",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".heic": "image/heic",
    ".ics": "text/calendar",
    ".vcf": "text/vcard",
    ".eml": "message/rfc822",
}


def mime_type_for_filename(filename: Union[str, Path]) -> str:
    """Guess a MIME type from the extension; octet-stream if unknown."""
    ext = Path(str(filename)).suffix.lower()
    return EXTENSION_MIME_TYPES.get(ext, DEFAULT_MIME_TYPE)


class ExtractionKind(Enum):
    PDF = "pdf"
    HTML = "html"
    RTF = "rtf"
    RTFD = "rtfd"
    PLAIN = "plain"
    XML = "xml"
    WORD = "word"
    UNKNOWN = "unknown"


def classify(mime_type: Optional[str]) -> ExtractionKind:
    """
    MIME type -> ExtractionKind. Substring rules, checked in order.

    Word is checked before XML because the OOXML types contain
    "openxmlformats".
    """
    t = (mime_type or "").lower()
    if "pdf" in t:
        return ExtractionKind.PDF
    if "text/plain" in t:
        return ExtractionKind.PLAIN
    if "text/html" in t:
        return ExtractionKind.HTML
    if "rtfd" in t:
        return ExtractionKind.RTFD
    if "rtf" in t:
        return ExtractionKind.RTF
    if "csv" in t or "json" in t:
        return ExtractionKind.PLAIN
    if "word" in t or "docx" in t:
        return ExtractionKind.WORD
    if "xml" in t:
        return ExtractionKind.XML
    return ExtractionKind.UNKNOWN


@dataclass(frozen=True)
class ParserInfo:
    name: str
    parser_cls: Type


class ParserRegistry:
    """
    Registry of ExtractionKind -> parser.

    UNKNOWN has no parser on purpose; the extractor handles it.
    """

    def __init__(self) -> None:
        self._map: Dict[ExtractionKind, ParserInfo] = {}

        self.register(ExtractionKind.PDF,   "PDFParser",            PDFParser)
        self.register(ExtractionKind.HTML,  "HtmlAttachmentParser", HtmlAttachmentParser)
        self.register(ExtractionKind.RTF,   "RtfParser",            RtfParser)
        self.register(ExtractionKind.RTFD,  "RtfdParser",           RtfdParser)
        self.register(ExtractionKind.PLAIN, "PlainTextParser",      PlainTextParser)
        self.register(ExtractionKind.XML,   "XmlParser",            XmlParser)
        self.register(ExtractionKind.WORD,  "DocxParser",           DocxParser)

    def register(self, kind: ExtractionKind, name: str, parser_cls) -> None:
        """Register a parser class for an extraction kind."""
        self._map[kind] = ParserInfo(name=name, parser_cls=parser_cls)

    def get(self, kind: ExtractionKind) -> Optional[ParserInfo]:
        """Look up the parser for a kind. None for UNKNOWN."""
        return self._map.get(kind)

    def supported_kinds(self) -> list:
        return sorted((k for k in self._map), key=lambda k: k.value)


REGISTRY = ParserRegistry()
