# ============================================================================
# MailLens -- Message Container Parser (src/parsers/emlx_parser.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Reads one Mail container file (12345.emlx or 12345.partial.emlx)
#   and recovers the body text, the raw HTML body, the attachment list
#   and the Message-ID header.
#
# CONTAINER ANATOMY:
#   An .emlx file is three things glued together:
#
#     812\n                       <- decimal byte count N
#     Message-ID: <abc@x>\r\n     <- exactly N bytes of RFC 822 message
#     Subject: hello\r\n
#     \r\n
#     body...
#     <?xml ...><plist>...        <- Mail's own flags; ignored
#
#   .partial.emlx files are the same shape, but Mail has moved the
#   attachment payloads out into an Attachments/ folder next to the
#   Messages/ folder. The MIME headers still name each attachment, so
#   we record it and ask the locator where the file went.
#
# HOW IT WORKS:
#   1. Read the byte count from the first line; take the next N bytes
#      (fewer if the file is truncated)
#   2. Decode as UTF-8, falling back to Latin-1
#   3. Split headers from body at the first blank line
#   4. multipart/* -> mime_parts.parse_multipart(); otherwise the whole
#      body is one part
#   5. Body we report = HTML converted to text if there is HTML,
#      else the plain text part
#
# ERRORS:
#   InvalidFormatError when the first line is missing or not a number,
#   or there is no blank line between headers and body. Everything else
#   (odd encodings, broken parts) degrades quietly.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..core.exceptions import InvalidFormatError
from ..mail.locator import EMLXPART_SUFFIX
from ..mail.models import ParsedMessage
from ..monitoring.logger import get_app_logger
from .html_parser import html_to_text
from .mime_parts import (
    DEFAULT_CONTENT_TYPE,
    MimeParts,
    bytes_to_text,
    decode_content,
    extract_boundary,
    parse_headers,
    parse_multipart,
    primary_type,
    split_header_body,
)


def read_length_prefixed(data: bytes, source: Optional[str] = None) -> bytes:
    """
    Return the embedded message: the N bytes after the byte-count line.

    Raises InvalidFormatError if the first line is missing or is not a
    non-negative integer.
    """
    newline = data.find(b"\n")
    if newline == -1:
        raise InvalidFormatError(path=source)
    count_text = data[:newline].strip()
    try:
        count = int(count_text)
    except ValueError:
        raise InvalidFormatError(path=source) from None
    if count < 0:
        raise InvalidFormatError(path=source)
    start = newline + 1
    return data[start:start + count]


def final_body(parts: MimeParts) -> Optional[str]:
    """HTML rendered to text wins over the plain part."""
    if parts.html is not None:
        return html_to_text(parts.html)
    return parts.plain


class EmlxParser:
    """
    Parser for Mail's .emlx containers.

    Usage:
        parser = EmlxParser(locator)
        parsed = parser.parse_file("/.../Messages/12345.emlx")
        parsed.body, parsed.attachments, parsed.message_id

    The locator is optional. Without one, attachments are still listed
    but their path is None.
    """

    def __init__(self, locator=None) -> None:
        self.locator = locator
        self.logger = get_app_logger("emlx_parser")

    # -- entry points ---------------------------------------------------

    def parse_file(self, path: Union[str, Path]) -> ParsedMessage:
        """Read and parse a container file. OSError propagates."""
        parsed, _ = self.parse_with_details(path)
        return parsed

    def parse_with_details(
        self, path: Union[str, Path]
    ) -> Tuple[ParsedMessage, Dict[str, Any]]:
        """
        Parse a container and also return diagnostics
        (file size, body lengths, attachment count).
        """
        file_path = str(path)
        with open(file_path, "rb") as f:
            data = f.read()

        parsed = self.parse_bytes(data, container_path=file_path)
        details: Dict[str, Any] = {
            "parser": "EmlxParser",
            "file_path": file_path,
            "file_size_bytes": len(data),
            "partial": os.path.basename(file_path).endswith(".partial.emlx"),
            "body_chars": len(parsed.body or ""),
            "html_chars": len(parsed.html_body or ""),
            "attachments": len(parsed.attachments),
            "message_id": parsed.message_id,
        }
        self.logger.info("container_parsed", **details)
        return parsed, details

    def parse_bytes(
        self, data: bytes, container_path: Optional[Union[str, Path]] = None
    ) -> ParsedMessage:
        """Parse container bytes already in memory."""
        source = str(container_path) if container_path else None
        message = bytes_to_text(read_length_prefixed(data, source))

        split = split_header_body(message)
        if split is None:
            raise InvalidFormatError(path=source)
        header_block, body = split
        headers = parse_headers(header_block)
        message_id = headers.get("message-id") or None

        parts = self._parse_body(headers, body, container_path)
        return ParsedMessage(
            body=final_body(parts),
            html_body=parts.html,
            attachments=parts.attachments,
            message_id=message_id,
        )

    # -- internals ------------------------------------------------------

    def _parse_body(
        self,
        headers: Dict[str, str],
        body: str,
        container_path: Optional[Union[str, Path]],
    ) -> MimeParts:
        content_type = headers.get("content-type", DEFAULT_CONTENT_TYPE)
        mime = primary_type(content_type)

        if mime.startswith("multipart/"):
            boundary = extract_boundary(content_type)
            if boundary:
                return parse_multipart(body, boundary, self._lookup_for(container_path))

        decoded, _ = decode_content(body, headers.get("content-transfer-encoding"))
        if mime == "text/html":
            return MimeParts(html=decoded)
        return MimeParts(plain=decoded)

    def _lookup_for(self, container_path):
        if self.locator is None or not container_path:
            return None

        # .emlxpart files already matched to an earlier attachment
        taken: List[Path] = []

        def lookup(filename: str) -> Optional[str]:
            found = self.locator.find_sibling_attachment(
                container_path, filename, exclude=taken
            )
            if found is None:
                return None
            if found.name.endswith(EMLXPART_SUFFIX):
                taken.append(found)
            return str(found)

        return lookup
