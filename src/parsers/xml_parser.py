# ============================================================================
# MailLens -- XML Parser (src/parsers/xml_parser.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Text of an XML attachment: every tag replaced by a space, then runs
#   of whitespace squeezed to one. Element names and attributes vanish;
#   element content stays. No schema knowledge, no entity expansion
#   beyond what is literally in the file.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, Tuple

_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


def strip_xml(xml: str) -> str:
    return _SPACE_RE.sub(" ", _TAG_RE.sub(" ", xml)).strip()


class XmlParser:
    def parse(self, file_path: str) -> str:
        text, _ = self.parse_with_details(file_path)
        return text

    def parse_with_details(self, file_path: str) -> Tuple[str, Dict[str, Any]]:
        path = Path(file_path)
        details: Dict[str, Any] = {"file": str(path), "parser": "XmlParser"}

        try:
            raw = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            details["error"] = f"{type(e).__name__}: {e}"
            return "", details

        text = strip_xml(raw)
        details["total_len"] = len(text)
        return text, details
