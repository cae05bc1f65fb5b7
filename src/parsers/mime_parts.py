# ============================================================================
# MailLens -- MIME Part Helpers (src/parsers/mime_parts.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   The small, pure building blocks the container parser is made of:
#     - split a message into header block and body
#     - read headers (case-insensitive, folded lines joined)
#     - pull boundary / filename parameters out of a header value
#     - undo Content-Transfer-Encoding (base64, quoted-printable)
#     - walk a multipart body and return what it found
#
# WHY NOT THE STDLIB email PACKAGE?
#   Mail's containers are frequently truncated (.partial.emlx) or carry
#   headers the strict parser rejects. The rules here are deliberately
#   lenient: anything we can't make sense of is skipped, never raised.
#   The stdlib is still used for the fiddly bits (RFC 2047 encoded
#   filenames).
#
# THE PARTIAL RESULT:
#   parse_multipart() returns a MimeParts value instead of filling in
#   variables owned by the caller. Nested multiparts return their own
#   MimeParts and the caller combines them with merge_parts():
#     - first non-empty plain body wins
#     - first non-empty HTML body wins
#     - attachments are concatenated in document order
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from email.errors import HeaderParseError
from email.header import decode_header, make_header
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import unquote

from ..mail.models import Attachment

DEFAULT_CONTENT_TYPE = "text/plain"
DEFAULT_ATTACHMENT_NAME = "attachment"

_BOUNDARY_RE = re.compile(r'boundary="?([^";\s]+)"?', re.IGNORECASE)
_BOUNDARY_QUOTED_RE = re.compile(r'boundary="([^"]+)"', re.IGNORECASE)
_FILENAME_RE = re.compile(r'filename\*?=(?:"([^"]+)"|([^\s;]+))', re.IGNORECASE)
_NAME_RE = re.compile(r'(?:^|[;\s])name\*?=(?:"([^"]+)"|([^\s;]+))', re.IGNORECASE)
_QP_ESCAPE_RE = re.compile(r"=([0-9A-Fa-f]{2})")

# Given a filename, returns the on-disk path of the stored attachment (or None)
AttachmentPathLookup = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class MimeParts:
    """What one (possibly nested) multipart body contributed."""
    plain: Optional[str] = None
    html: Optional[str] = None
    attachments: Tuple[Attachment, ...] = ()


def merge_parts(first: MimeParts, second: MimeParts) -> MimeParts:
    """Combine two partial results; `first` has priority for bodies."""
    return MimeParts(
        plain=first.plain if first.plain is not None else second.plain,
        html=first.html if first.html is not None else second.html,
        attachments=first.attachments + second.attachments,
    )


# -------------------------------------------------------------------
# Headers
# -------------------------------------------------------------------

def split_header_body(text: str) -> Optional[Tuple[str, str]]:
    """
    Split at the first blank line (CRLF CRLF, else LF LF).
    None when there is no blank line at all.
    """
    for sep in ("\r\n\r\n", "\n\n"):
        idx = text.find(sep)
        if idx != -1:
            return text[:idx], text[idx + len(sep):]
    return None


def parse_headers(block: str) -> Dict[str, str]:
    """
    Header block -> {lower-cased name: value}.

    Folded lines (leading space or tab) are joined to the previous
    header with a single space. If a header repeats, the first one is
    kept, same as email.message.Message.get().
    """
    headers: Dict[str, str] = {}
    current_key: Optional[str] = None
    current_value = ""

    def _store() -> None:
        if current_key is not None and current_key not in headers:
            headers[current_key] = current_value.strip()

    for line in block.splitlines():
        if not line:
            continue
        if line[0] in " \t":
            if current_key is not None:
                current_value += " " + line.strip()
            continue
        if ":" not in line:
            continue
        _store()
        key, _, value = line.partition(":")
        current_key = key.strip().lower()
        current_value = value

    _store()
    return headers


def primary_type(content_type: Optional[str]) -> str:
    """'text/html; charset=utf-8' -> 'text/html'."""
    value = (content_type or DEFAULT_CONTENT_TYPE).split(";", 1)[0].strip().lower()
    return value or DEFAULT_CONTENT_TYPE


def extract_boundary(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    match = _BOUNDARY_QUOTED_RE.search(content_type) or _BOUNDARY_RE.search(content_type)
    return match.group(1) if match else None


def _decode_filename(raw: str) -> str:
    # RFC 2231: filename*=utf-8''r%C3%A9sum%C3%A9.pdf
    if "''" in raw:
        charset, _, encoded = raw.partition("''")
        try:
            return unquote(encoded, encoding=charset or "utf-8")
        except LookupError:
            return unquote(encoded)
    # RFC 2047: =?UTF-8?B?...?=
    if "=?" in raw:
        try:
            return str(make_header(decode_header(raw)))
        except (HeaderParseError, LookupError, UnicodeDecodeError):
            return raw
    return raw


def _param(regex: "re.Pattern[str]", header: str) -> Optional[str]:
    match = regex.search(header)
    if not match:
        return None
    value = match.group(1) or match.group(2)
    return _decode_filename(value) if value else None


def extract_filename(header: Optional[str]) -> Optional[str]:
    """filename= (or filename*=) first, then name=."""
    if not header:
        return None
    return _param(_FILENAME_RE, header) or _param(_NAME_RE, header)


def is_attachment(content_type: str, disposition: str) -> bool:
    if "attachment" in disposition.lower():
        return True
    return extract_filename(disposition) is not None or _param(_NAME_RE, content_type) is not None


# -------------------------------------------------------------------
# Transfer encodings
# -------------------------------------------------------------------

def bytes_to_text(data: bytes) -> str:
    """UTF-8, falling back to Latin-1 (which can decode anything)."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def decode_base64_bytes(text: str) -> Optional[bytes]:
    """Decoded bytes, or None if the payload is corrupt."""
    cleaned = "".join(text.split())
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError):
        return None


def decode_quoted_printable_bytes(text: str) -> bytes:
    """
    =XX hex escapes become bytes; '=' at end of line is a soft break
    and disappears together with the line terminator. Anything else,
    including a malformed escape, is kept literally.
    """
    text = text.replace("=\r\n", "").replace("=\n", "")
    out = bytearray()
    pos = 0
    for match in _QP_ESCAPE_RE.finditer(text):
        out += text[pos:match.start()].encode("utf-8")
        out.append(int(match.group(1), 16))
        pos = match.end()
    out += text[pos:].encode("utf-8")
    return bytes(out)


def decode_quoted_printable(text: str) -> str:
    return bytes_to_text(decode_quoted_printable_bytes(text))


def decode_base64(text: str) -> str:
    """Decoded text; the original text when the payload is corrupt."""
    data = decode_base64_bytes(text)
    return text if data is None else bytes_to_text(data)


def decode_content(content: str, encoding: Optional[str]) -> Tuple[str, int]:
    """
    Undo Content-Transfer-Encoding.

    Returns (text, decoded byte length). Unknown or absent encodings
    pass through unchanged.
    """
    kind = (encoding or "").strip().lower()
    if kind == "base64":
        data = decode_base64_bytes(content)
        if data is not None:
            return bytes_to_text(data), len(data)
    elif kind == "quoted-printable":
        data = decode_quoted_printable_bytes(content)
        return bytes_to_text(data), len(data)
    return content, len(content.encode("utf-8"))


# -------------------------------------------------------------------
# Multipart
# -------------------------------------------------------------------

def split_multipart(body: str, boundary: str) -> List[str]:
    """
    Segments between --boundary delimiters, without the preamble,
    the closing --boundary-- and empty segments.
    """
    segments = body.split(f"--{boundary}")
    parts: List[str] = []
    for segment in segments[1:]:
        trimmed = segment.strip()
        if not trimmed or trimmed.startswith("--"):
            continue
        parts.append(trimmed)
    return parts


def parse_part(
    segment: str,
    lookup: Optional[AttachmentPathLookup] = None,
) -> MimeParts:
    """One multipart segment (headers + content) -> partial result."""
    split = split_header_body(segment)
    if split is None:
        return MimeParts()
    header_block, content = split

    headers = parse_headers(header_block)
    content_type = headers.get("content-type", DEFAULT_CONTENT_TYPE)
    disposition = headers.get("content-disposition", "")
    decoded, size = decode_content(content, headers.get("content-transfer-encoding"))
    mime = primary_type(content_type)

    if is_attachment(content_type, disposition):
        filename = (
            extract_filename(disposition)
            or extract_filename(content_type)
            or DEFAULT_ATTACHMENT_NAME
        )
        return MimeParts(attachments=(
            Attachment(
                filename=filename,
                mime_type=mime,
                size=size,
                path=lookup(filename) if lookup else None,
            ),
        ))

    if mime.startswith("multipart/"):
        boundary = extract_boundary(content_type)
        if boundary:
            return parse_multipart(decoded, boundary, lookup)
        return MimeParts()

    if mime == "text/plain":
        return MimeParts(plain=decoded)
    if mime == "text/html":
        return MimeParts(html=decoded)
    return MimeParts()


def parse_multipart(
    body: str,
    boundary: str,
    lookup: Optional[AttachmentPathLookup] = None,
) -> MimeParts:
    """Every segment parsed and folded together, first body wins."""
    result = MimeParts()
    for segment in split_multipart(body, boundary):
        result = merge_parts(result, parse_part(segment, lookup))
    return result
