# ============================================================================
# test_attachment_extractor.py -- Tests for attachment text extraction
# ============================================================================
#
# COVERS:
#   TestClassify             -- MIME type -> ExtractionKind rules
#   TestAttachmentExtractor  -- every registered format, unknown types,
#                               parser failures, missing files
#
# Every file is built in tmp_path by the test itself (a tiny hand-made
# PDF, .docx packages, RTF and RTFD bundles), so no binary fixtures live
# in the repo.
#
# RUN:
#   python -m pytest tests/test_attachment_extractor.py -v
#
# INTERNET ACCESS: NONE
# ============================================================================

import zipfile

import pytest

from src.core.exceptions import AttachmentNotFoundError
from src.parsers.attachment_extractor import AttachmentExtractor
from src.parsers.registry import (
    DEFAULT_MIME_TYPE,
    REGISTRY,
    ExtractionKind,
    classify,
    mime_type_for_filename,
)


def write_minimal_pdf(path, text):
    """One page, one Helvetica text run; xref offsets computed for real."""
    stream = f"BT /F1 12 Tf 20 100 Td ({text}) Tj ET".encode("latin-1")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 300 200] "
        b"/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length " + str(len(stream)).encode() + b" >>\nstream\n"
        + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"
    xref_at = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_at}\n%%EOF\n"
    ).encode()
    path.write_bytes(bytes(out))
    return path


WORD_MAIN = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"

CONTENT_TYPES = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" '
    'ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Override PartName="/word/document.xml" ContentType="application/'
    'vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
    "</Types>"
)

PACKAGE_RELS = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" Type="http://schemas.openxmlformats.org/'
    'officeDocument/2006/relationships/officeDocument" Target="word/document.xml"/>'
    "</Relationships>"
)


def write_word_package(path, document_xml):
    """The three parts a Word reader needs, nothing else."""
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("[Content_Types].xml", CONTENT_TYPES)
        zf.writestr("_rels/.rels", PACKAGE_RELS)
        zf.writestr("word/document.xml", document_xml)
    return path


class TestClassify:

    @pytest.mark.parametrize("mime,kind", [
        ("application/pdf", ExtractionKind.PDF),
        ("text/plain; charset=utf-8", ExtractionKind.PLAIN),
        ("text/html", ExtractionKind.HTML),
        ("text/rtf", ExtractionKind.RTF),
        ("application/rtf", ExtractionKind.RTF),
        ("text/rtfd", ExtractionKind.RTFD),
        ("text/csv", ExtractionKind.PLAIN),
        ("application/json", ExtractionKind.PLAIN),
        ("application/msword", ExtractionKind.WORD),
        (
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            ExtractionKind.WORD,
        ),
        ("application/xml", ExtractionKind.XML),
        ("image/png", ExtractionKind.UNKNOWN),
        ("", ExtractionKind.UNKNOWN),
        (None, ExtractionKind.UNKNOWN),
    ])
    def test_rules(self, mime, kind):
        assert classify(mime) is kind

    def test_mime_from_extension(self):
        assert mime_type_for_filename("A.PDF") == "application/pdf"
        assert mime_type_for_filename("notes.rtfd") == "text/rtfd"
        assert mime_type_for_filename("mystery.xyz") == DEFAULT_MIME_TYPE
        assert mime_type_for_filename("no_extension") == DEFAULT_MIME_TYPE

    def test_every_kind_but_unknown_has_a_parser(self):
        for kind in ExtractionKind:
            info = REGISTRY.get(kind)
            if kind is ExtractionKind.UNKNOWN:
                assert info is None
            else:
                assert info is not None and info.parser_cls is not None


class TestAttachmentExtractor:

    @pytest.fixture(autouse=True)
    def setup_extractor(self):
        self.extractor = AttachmentExtractor()

    def test_plain_text(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("meeting at noon", encoding="utf-8")
        assert self.extractor.extract_text(path) == "meeting at noon"

    def test_pdf(self, tmp_path):
        path = write_minimal_pdf(tmp_path / "report.pdf", "Hello PDF")
        text, details = self.extractor.extract_with_details(path)
        assert "Hello PDF" in text
        assert details["kind"] == "pdf"
        assert details["pdf_page_count"] == 1

    def test_corrupt_pdf_reports_cannot_extract(self, tmp_path):
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"this is not a pdf at all")
        text = self.extractor.extract_text(path)
        assert text.startswith("Cannot extract text from broken.pdf: ")

    def test_html(self, tmp_path):
        path = tmp_path / "page.html"
        path.write_text(
            "<html><head><style>p{}</style></head><body><p>Dear team</p></body></html>",
            encoding="utf-8",
        )
        assert self.extractor.extract_text(path) == "Dear team"

    def test_html_latin1(self, tmp_path):
        path = tmp_path / "old.htm"
        path.write_bytes(b"<p>caf\xe9</p>")
        assert self.extractor.extract_text(path) == "café"

    def test_rtf(self, tmp_path):
        path = tmp_path / "memo.rtf"
        path.write_text(r"{\rtf1\ansi\deff0 {\fonttbl {\f0 Times;}} Hello RTF\par}", encoding="utf-8")
        assert "Hello RTF" in self.extractor.extract_text(path)

    def test_rtf_without_header_fails(self, tmp_path):
        path = tmp_path / "fake.rtf"
        path.write_text("plain words", encoding="utf-8")
        assert self.extractor.extract_text(path).startswith("Cannot extract text from fake.rtf")

    def test_rtfd_bundle_directory(self, tmp_path):
        bundle = tmp_path / "letter.rtfd"
        bundle.mkdir()
        (bundle / "TXT.rtf").write_text(r"{\rtf1\ansi Bundle text\par}", encoding="utf-8")
        assert "Bundle text" in self.extractor.extract_text(bundle)

    def test_rtfd_zipped_bundle(self, tmp_path):
        path = tmp_path / "letter.rtfd"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("letter.rtfd/TXT.rtf", r"{\rtf1\ansi Zipped text\par}")
        assert "Zipped text" in self.extractor.extract_text(path)

    def test_rtf_declared_but_bundle_on_disk(self, tmp_path):
        bundle = tmp_path / "letter"
        bundle.mkdir()
        (bundle / "TXT.rtf").write_text(r"{\rtf1\ansi Fallback text\par}", encoding="utf-8")
        assert "Fallback text" in self.extractor.extract_text(bundle, "text/rtf")

    def test_docx(self, tmp_path):
        from docx import Document

        doc = Document()
        doc.add_paragraph("Quarterly plan")
        para = doc.add_paragraph()
        para.add_run("R&D budget").add_break()
        para.add_run("line two")
        doc.add_paragraph("")
        table = doc.add_table(rows=1, cols=2)
        table.rows[0].cells[0].text = "Travel"
        table.rows[0].cells[1].text = "10%"
        path = tmp_path / "plan.docx"
        doc.save(str(path))

        text, details = self.extractor.extract_with_details(path)
        assert text == "Quarterly plan\nR&D budget\nline two\nTravel\t10%"
        assert details["kind"] == "word"
        assert details["tables"] == 1

    def test_docx_with_other_namespace_prefix(self, tmp_path):
        document_xml = (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            f'<ns0:document xmlns:ns0="{WORD_MAIN}"><ns0:body>'
            "<ns0:p><ns0:r><ns0:t>Quarterly</ns0:t></ns0:r>"
            '<ns0:r><ns0:t xml:space="preserve"> report</ns0:t></ns0:r></ns0:p>'
            "<ns0:p><ns0:r><ns0:t>Q3</ns0:t><ns0:tab/><ns0:t>final</ns0:t></ns0:r></ns0:p>"
            "</ns0:body></ns0:document>"
        )
        path = write_word_package(tmp_path / "report.docx", document_xml)
        assert self.extractor.extract_text(path) == "Quarterly report\nQ3\tfinal"

    def test_docx_without_document_part(self, tmp_path):
        path = tmp_path / "empty.docx"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("other.xml", "<x/>")
        text = self.extractor.extract_text(path)
        assert text.startswith("Cannot extract text from empty.docx: ")

    def test_docx_that_is_not_a_zip(self, tmp_path):
        path = tmp_path / "fake.docx"
        path.write_bytes(b"not a zip archive")
        assert self.extractor.extract_text(path).startswith("Cannot extract text from fake.docx: ")

    def test_xml(self, tmp_path):
        path = tmp_path / "data.xml"
        path.write_text("<root><a>one</a>\n<b>two</b></root>", encoding="utf-8")
        assert self.extractor.extract_text(path) == "one two"

    def test_csv_read_as_plain(self, tmp_path):
        path = tmp_path / "rows.csv"
        path.write_text("a,b\n1,2\n", encoding="utf-8")
        assert self.extractor.extract_text(path) == "a,b\n1,2\n"

    def test_declared_type_beats_extension(self, tmp_path):
        path = tmp_path / "blob.bin"
        path.write_text("<p>declared html</p>", encoding="utf-8")
        assert self.extractor.extract_text(path, "text/html") == "declared html"

    def test_unknown_type_that_is_utf8_text(self, tmp_path):
        path = tmp_path / "invite.ics"
        path.write_text("BEGIN:VCALENDAR", encoding="utf-8")
        assert self.extractor.extract_text(path) == "BEGIN:VCALENDAR"

    def test_unknown_binary(self, tmp_path):
        path = tmp_path / "photo.png"
        path.write_bytes(b"\x89PNG\r\n\x1a\n\xff\xfe\x00")
        text, details = self.extractor.extract_with_details(path)
        assert text == "Cannot extract text from this file type (image/png)"
        assert details["kind"] == "unknown"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(AttachmentNotFoundError) as exc_info:
            self.extractor.extract_text(tmp_path / "gone.pdf")
        assert exc_info.value.filename == "gone.pdf"
        assert exc_info.value.error_code == "ENT-002"
