"""
Tests for execution/patrasaar/text_extractor.py

Covers: file-type normalization, plain text, DOCX and PDF extraction,
        markdown stripping, and the degraded byte scan for damaged files.
"""

import io
from unittest.mock import patch

import pytest


class TestNormalizeFileType:

    @pytest.mark.parametrize("tag,expected", [
        ("pdf", "pdf"),
        (".PDF", "pdf"),
        ("application/pdf", "pdf"),
        ("docx", "docx"),
        ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", "docx"),
        ("TXT", "txt"),
        ("text/plain", "txt"),
    ])
    def test_known_tags(self, tag, expected):
        from execution.patrasaar.text_extractor import normalize_file_type
        assert normalize_file_type(tag) == expected

    @pytest.mark.parametrize("tag", ["exe", "doc", "", "image/png"])
    def test_unknown_tags(self, tag):
        from execution.patrasaar.errors import UnsupportedFormatError
        from execution.patrasaar.text_extractor import normalize_file_type
        with pytest.raises(UnsupportedFormatError):
            normalize_file_type(tag)


class TestPlainText:

    def test_utf8_with_bom(self):
        from execution.patrasaar.text_extractor import TextExtractor
        data = "\ufeffSection 1. Rent is due.".encode("utf-8")
        result = TextExtractor().extract(data, "txt", "lease.txt")
        assert result.text == "Section 1. Rent is due."
        assert result.page_count == 1
        assert result.metadata == {"title": "lease.txt"}
        assert result.degraded is False

    def test_invalid_bytes_replaced(self):
        from execution.patrasaar.text_extractor import TextExtractor
        result = TextExtractor().extract(b"rent \xff due", "text/plain")
        assert result.text.startswith("rent ")
        assert result.text.endswith(" due")

    def test_unsupported_type_raises(self):
        from execution.patrasaar.errors import UnsupportedFormatError
        from execution.patrasaar.text_extractor import TextExtractor
        with pytest.raises(UnsupportedFormatError):
            TextExtractor().extract(b"data", "xlsx")


class TestDocx:

    def _make_docx(self, paragraphs, title=None):
        import docx
        document = docx.Document()
        for paragraph in paragraphs:
            document.add_paragraph(paragraph)
        document.core_properties.title = title or ""
        buffer = io.BytesIO()
        document.save(buffer)
        return buffer.getvalue()

    def test_paragraphs_and_title(self):
        from execution.patrasaar.text_extractor import TextExtractor
        data = self._make_docx(["Section 1. Rent", "The tenant pays monthly."], title="Lease Deed")
        result = TextExtractor().extract(data, "docx", "lease.docx")
        assert "Section 1. Rent\nThe tenant pays monthly." in result.text
        assert result.metadata["title"] == "Lease Deed"
        assert result.degraded is False

    def test_filename_used_when_no_title(self):
        from execution.patrasaar.text_extractor import TextExtractor
        data = self._make_docx(["Clause 1 applies."])
        result = TextExtractor().extract(data, "docx", "deed.docx")
        assert result.metadata["title"] == "deed.docx"

    def test_corrupt_docx_without_text_raises(self):
        from execution.patrasaar.errors import ExtractionError
        from execution.patrasaar.text_extractor import TextExtractor
        with pytest.raises(ExtractionError):
            TextExtractor().extract(b"not a zip", "docx", "broken.docx")


class TestPdf:

    def test_extracts_page_text(self):
        import fitz
        from execution.patrasaar.text_extractor import TextExtractor

        doc = fitz.open()
        page = doc.new_page()
        page.insert_text((72, 72), "Section 1. Payment is due monthly.")
        doc.new_page()
        data = doc.tobytes()
        doc.close()

        result = TextExtractor().extract(data, "application/pdf", "notice.pdf")
        assert "Payment is due monthly" in result.text
        assert result.page_count == 2
        assert result.degraded is False

    def test_degraded_scan_recovers_pdf_literals(self):
        from execution.patrasaar.text_extractor import TextExtractor

        data = (
            b"%PDF-1.4\n1 0 obj << >> stream\n"
            b"BT (The lessee shall pay the rent on the first day) Tj "
            b"(of every calendar month without demand) Tj ET\nendstream"
        )
        with patch.object(TextExtractor, "_extract_pdf", side_effect=RuntimeError("broken xref")):
            result = TextExtractor().extract(data, "pdf", "scan.pdf")

        assert result.degraded is True
        assert "The lessee shall pay the rent" in result.text
        assert "without demand" in result.text

    def test_degraded_scan_failure_chains_parser_error(self):
        from execution.patrasaar.errors import ExtractionError
        from execution.patrasaar.text_extractor import TextExtractor

        with patch.object(TextExtractor, "_extract_pdf", side_effect=RuntimeError("broken xref")):
            with pytest.raises(ExtractionError) as exc_info:
                TextExtractor().extract(b"\x00\x01\x02", "pdf")
        assert isinstance(exc_info.value.__cause__, RuntimeError)


class TestMarkdownToText:

    def test_strips_formatting(self):
        from execution.patrasaar.text_extractor import TextExtractor
        markdown = "## Section 1\n**Rent** is *due* per [clause](http://x) `2` &amp; ![img](a.png)"
        text = TextExtractor()._markdown_to_text(markdown)
        assert text == "Section 1\nRent is due per clause 2 &"
