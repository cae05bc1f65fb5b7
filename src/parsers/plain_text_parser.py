# ============================================================================
# MailLens -- Plain Text Parser (src/parsers/plain_text_parser.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   Reads attachments that are already text: .txt, .csv, .json, .log,
#   .md. No conversion, just decode the bytes.
#
# WHY STRICT UTF-8?
#   The same reader is used as a check on unknown types ("is this
#   secretly text?"). With errors="ignore" a JPEG would "succeed" and
#   return a page of noise. Strict decoding fails on binary instead,
#   and the caller reports "cannot extract".
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

from pathlib import Path
from typing import Tuple, Dict, Any


class PlainTextParser:
    def parse(self, file_path: str) -> str:
        text, _ = self.parse_with_details(file_path)
        return text

    def parse_with_details(self, file_path: str) -> Tuple[str, Dict[str, Any]]:
        path = Path(file_path)
        details: Dict[str, Any] = {"file": str(path), "parser": "PlainTextParser"}

        try:
            data = path.read_text(encoding="utf-8")
            details["total_len"] = len(data)
            return data, details
        except (OSError, UnicodeDecodeError) as e:
            details["error"] = f"{type(e).__name__}: {e}"
            return "", details
