# ============================================================================
# MailLens -- DOCX Parser (src/parsers/office_docx_parser.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   Reads Microsoft Word (.docx) attachments and extracts their text.
#   A .docx file is a ZIP archive of XML parts. The python-docx library
#   opens the package, resolves the main document part through its
#   relationships, and gives us paragraphs and tables regardless of
#   which XML namespace prefix the producing program chose.
#
# HOW IT WORKS:
#   1. Open the .docx with python-docx
#   2. Walk the document body in order: paragraphs and tables
#   3. Paragraph text comes from python-docx, which already turns
#      <w:br/> into "\n" and <w:tab/> into "\t"
#   4. A table row becomes its cell texts joined by tabs
#   5. Non-empty blocks are joined with newlines
#
# ERROR HANDLING:
#   Not a zip, not a Word package, or unreadable XML -> empty text with
#   details["error"] set. The extractor turns that into a
#   "Cannot extract text" message.
#
# INTERNET ACCESS: NONE
# ============================================================================

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Tuple


def _row_text(row) -> str:
    # Merged cells show up once per grid column; keep each cell once.
    cells: List[str] = []
    seen: List[Any] = []
    for cell in row.cells:
        if any(cell._tc is tc for tc in seen):
            continue
        seen.append(cell._tc)
        text = cell.text.strip()
        if text:
            cells.append(text)
    return "\t".join(cells)


class DocxParser:
    def parse(self, file_path: str) -> str:
        text, _ = self.parse_with_details(file_path)
        return text

    def parse_with_details(self, file_path: str) -> Tuple[str, Dict[str, Any]]:
        """
        Returns (text, details) where details has paragraph and table
        counts, or "error" when the package can't be read.
        """
        path = Path(file_path)
        details: Dict[str, Any] = {"file": str(path), "parser": "DocxParser"}

        try:
            from docx import Document
            from docx.table import Table
            from docx.text.paragraph import Paragraph

            doc = Document(str(path))
            blocks: List[str] = []
            paragraphs = tables = 0
            for child in doc.element.body.iterchildren():
                tag = child.tag if isinstance(child.tag, str) else ""
                if tag.endswith("}p"):
                    paragraphs += 1
                    text = Paragraph(child, doc).text.strip()
                    if text:
                        blocks.append(text)
                elif tag.endswith("}tbl"):
                    tables += 1
                    for row in Table(child, doc).rows:
                        text = _row_text(row)
                        if text:
                            blocks.append(text)
        except Exception as e:
            details["error"] = f"{type(e).__name__}: {e}"
            return "", details

        full = "\n".join(blocks)
        details["paragraphs"] = paragraphs
        details["tables"] = tables
        details["total_len"] = len(full)
        return full, details
