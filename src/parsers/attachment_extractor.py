# ============================================================================
# MailLens -- Attachment Content Extractor (src/parsers/attachment_extractor.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   The "traffic cop" for attachment files. Given a path and, if known,
#   the MIME type Mail recorded for it, decide which parser reads it and
#   return plain text:
#
#     1. Work out the type: declared MIME type if given, else guess from
#        the file extension
#     2. Squeeze that into an ExtractionKind (registry.classify)
#     3. Hand the file to the registered parser
#     4. Turn a parser failure into a readable "Cannot extract" line
#
# FAILURE RULES:
#   - File not on disk           -> AttachmentNotFoundError (raised)
#   - Parser failed on this file -> "Cannot extract text from <name>: <why>"
#   - Unknown type, not UTF-8    -> "Cannot extract text from this file type (<type>)"
#   The caller always gets a string back for a file that exists, so one
#   odd attachment never breaks a listing or a search.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from ..core.exceptions import AttachmentNotFoundError
from ..monitoring.logger import get_app_logger
from .plain_text_parser import PlainTextParser
from .registry import REGISTRY, ExtractionKind, ParserRegistry, classify, mime_type_for_filename


class AttachmentExtractor:
    """
    Usage:
        extractor = AttachmentExtractor()
        text = extractor.extract_text("/.../Attachments/12/2/report.pdf")
        text = extractor.extract_text(path, declared_type="application/pdf")
    """

    def __init__(self, registry: Optional[ParserRegistry] = None) -> None:
        self.registry = registry or REGISTRY
        self.logger = get_app_logger("attachment_extractor")

    def extract_text(
        self, path: Union[str, Path], declared_type: Optional[str] = None
    ) -> str:
        text, _ = self.extract_with_details(path, declared_type)
        return text

    def extract_with_details(
        self, path: Union[str, Path], declared_type: Optional[str] = None
    ) -> Tuple[str, Dict[str, Any]]:
        file_path = str(path)
        name = os.path.basename(file_path.rstrip("/")) or file_path
        # exists(), not isfile(): an RTFD bundle is a directory
        if not os.path.exists(file_path):
            raise AttachmentNotFoundError(filename=name)

        effective_type = (declared_type or "").strip().lower() or mime_type_for_filename(name)
        kind = classify(effective_type)

        info = self.registry.get(kind)
        if kind is ExtractionKind.UNKNOWN or info is None:
            text, details = PlainTextParser().parse_with_details(file_path)
            if "error" in details:
                text = f"Cannot extract text from this file type ({effective_type})"
        else:
            text, details = info.parser_cls().parse_with_details(file_path)
            if "error" in details:
                text = f"Cannot extract text from {name}: {details['error']}"

        details["kind"] = kind.value
        details["mime_type"] = effective_type
        if "error" in details:
            self.logger.warning(
                "attachment_extract_failed", file=name, kind=kind.value,
                mime_type=effective_type, error=details["error"],
            )
        else:
            self.logger.info(
                "attachment_extracted", file=name, kind=kind.value, chars=len(text),
            )
        return text, details
