# ============================================================================
# MailLens -- PDF Parser (src/parsers/pdf_parser.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Extracts the text layer of a PDF attachment with pypdf. Pages are
#   read one at a time so a single broken page doesn't lose the rest,
#   then joined with blank lines.
#
#   Scanned (image-only) PDFs have no text layer and come back empty.
#   OCR is out of scope for a mail reader.
#
# ENCRYPTED PDFs:
#   Many "encrypted" PDFs use an empty user password and only restrict
#   printing/editing. We try decrypt("") before giving up.
#
# DEPENDENCIES:
#   - pypdf (pure Python)
#
# INTERNET ACCESS: NONE
# ============================================================================

import os
from typing import Any, Dict, List, Tuple


class PDFParser:
    """
    Usage:
        parser = PDFParser()
        text = parser.parse("invoice.pdf")
        text, details = parser.parse_with_details("invoice.pdf")
    """

    def parse(self, file_path: str) -> str:
        text, _ = self.parse_with_details(file_path)
        return text

    def parse_with_details(self, file_path: str) -> Tuple[str, Dict[str, Any]]:
        """
        Returns (text, details). On failure text is "" and
        details["error"] says why.
        """
        details: Dict[str, Any] = {
            "parser": "PDFParser",
            "file_path": file_path,
            "file_size_bytes": None,
            "pdf_page_count": None,
            "pdf_encrypted": None,
            "page_errors": [],
        }

        try:
            details["file_size_bytes"] = os.path.getsize(file_path)
        except OSError:
            details["file_size_bytes"] = None

        try:
            from pypdf import PdfReader

            reader = PdfReader(file_path)
            details["pdf_encrypted"] = bool(getattr(reader, "is_encrypted", False))
            if details["pdf_encrypted"]:
                reader.decrypt("")

            details["pdf_page_count"] = len(reader.pages)

            extracted: List[str] = []
            for i, page in enumerate(reader.pages):
                try:
                    page_text = page.extract_text() or ""
                except Exception as e:
                    details["page_errors"].append(f"page_{i + 1}:{type(e).__name__}")
                    continue
                if page_text.strip():
                    extracted.append(page_text.strip())

            text = "\n\n".join(extracted)
            details["total_len"] = len(text)
            return text, details

        except Exception as e:
            details["error"] = f"{type(e).__name__}: {e}"
            return "", details
