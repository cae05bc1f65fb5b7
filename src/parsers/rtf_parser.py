# ============================================================================
# MailLens -- RTF / RTFD Parser (src/parsers/rtf_parser.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   Reads Rich Text Format attachments and extracts the plain text.
#   RTF looks like gibberish in a text editor:
#     {\rtf1\ansi\deff0{\fonttbl{\f0 Helvetica;}}
#     \pard Hello World\par}
#   The striprtf library strips the control words and leaves
#   "Hello World".
#
# RTFD:
#   macOS also has RTFD, "RTF with attachments". It is not a file but a
#   bundle (folder) holding TXT.rtf plus any images. When Mail sends
#   one it arrives zipped. Either way the text lives in TXT.rtf, so we
#   find that member and run it through striprtf.
#
# FALLBACK ORDER:
#   RtfParser tries plain RTF first; if that fails (or the path is a
#   bundle) it tries RTFD before giving up.
#
# DEPENDENCIES:
#   pip install striprtf  (BSD-3 license, pure Python)
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from striprtf.striprtf import rtf_to_text

RTFD_TEXT_MEMBER = "TXT.rtf"


def _rtf_source_to_text(raw: str) -> str:
    if not raw.lstrip().startswith("{\\rtf"):
        raise ValueError("missing {\\rtf header")
    return (rtf_to_text(raw) or "").strip()


def _read_rtfd_member(path: Path) -> Optional[str]:
    """TXT.rtf from a bundle directory or a zipped bundle; None if absent."""
    if path.is_dir():
        member = path / RTFD_TEXT_MEMBER
        if member.is_file():
            return member.read_text(encoding="utf-8", errors="ignore")
        return None

    if zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as zf:
            for name in zf.namelist():
                if name == RTFD_TEXT_MEMBER or name.endswith("/" + RTFD_TEXT_MEMBER):
                    return zf.read(name).decode("utf-8", errors="ignore")
    return None


class RtfdParser:
    """Text of an RTFD bundle (directory or zip)."""

    def parse(self, file_path: str) -> str:
        text, _ = self.parse_with_details(file_path)
        return text

    def parse_with_details(self, file_path: str) -> Tuple[str, Dict[str, Any]]:
        path = Path(file_path)
        details: Dict[str, Any] = {"file": str(path), "parser": "RtfdParser"}

        try:
            raw = _read_rtfd_member(path)
            if raw is None:
                details["error"] = f"no {RTFD_TEXT_MEMBER} in bundle"
                return "", details
            text = _rtf_source_to_text(raw)
            details["total_len"] = len(text)
            return text, details
        except (OSError, ValueError, zipfile.BadZipFile) as e:
            details["error"] = f"{type(e).__name__}: {e}"
            return "", details


class RtfParser:
    """
    Extract plain text from RTF documents using striprtf, falling back
    to RTFD.
    """

    def parse(self, file_path: str) -> str:
        text, _ = self.parse_with_details(file_path)
        return text

    def parse_with_details(self, file_path: str) -> Tuple[str, Dict[str, Any]]:
        path = Path(file_path)
        details: Dict[str, Any] = {"file": str(path), "parser": "RtfParser"}

        if not path.is_dir():
            try:
                raw = path.read_text(encoding="utf-8", errors="ignore")
                text = _rtf_source_to_text(raw)
                details["total_len"] = len(text)
                return text, details
            except (OSError, ValueError) as e:
                details["rtf_error"] = f"{type(e).__name__}: {e}"

        text, rtfd_details = RtfdParser().parse_with_details(file_path)
        details["rtfd"] = rtfd_details
        if "error" in rtfd_details:
            details["error"] = details.get("rtf_error") or rtfd_details["error"]
        else:
            details["total_len"] = len(text)
        return text, details
