"""Tests for document text extraction."""
import io
from unittest.mock import MagicMock

import docx
import pytest
from pypdf import PdfWriter

from study_assistant.rag import extractor
from study_assistant.rag.extractor import (
    DOCX,
    MARKDOWN,
    PDF,
    PLAIN_TEXT,
    PPTX,
    ExtractionError,
    UnsupportedFormatError,
    extract_text,
)


def _docx_bytes(*paragraphs):
    document = docx.Document()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _blank_pdf_bytes():
    writer = PdfWriter()
    writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def test_plain_text_is_decoded():
    assert extract_text("Café notes.".encode("utf-8"), PLAIN_TEXT) == "Café notes."


def test_markdown_is_read_as_text():
    assert extract_text(b"# Heading\n\nBody.", MARKDOWN) == "# Heading\n\nBody."


def test_mime_parameters_and_case_are_ignored():
    """Test that 'Text/Plain; charset=utf-8' counts as plain text."""
    assert extract_text(b"hello", "Text/Plain; charset=utf-8") == "hello"


def test_invalid_utf8_is_replaced_not_rejected():
    text = extract_text(b"ok \xff bytes", PLAIN_TEXT)

    assert text.startswith("ok ")
    assert "�" in text


def test_docx_paragraphs_are_extracted():
    data = _docx_bytes("First paragraph.", "Second paragraph.")

    assert extract_text(data, DOCX) == "First paragraph.\nSecond paragraph."


def test_pdf_pages_are_joined(monkeypatch):
    """Test that the text of every PDF page is kept, in order."""
    pages = [MagicMock(), MagicMock()]
    pages[0].extract_text.return_value = "Page one."
    pages[1].extract_text.return_value = "Page two."
    monkeypatch.setattr(extractor, "PdfReader", lambda stream: MagicMock(pages=pages))

    assert extract_text(b"%PDF-fake", PDF) == "Page one.\n\nPage two."


def test_pptx_is_rejected():
    """Test that presentations are refused instead of indexed as placeholders."""
    with pytest.raises(UnsupportedFormatError) as excinfo:
        extract_text(b"PK\x03\x04", PPTX)

    assert excinfo.value.mime_type == PPTX


@pytest.mark.parametrize("mime_type", ["image/png", "application/zip", "", None])
def test_unknown_types_are_rejected(mime_type):
    with pytest.raises(UnsupportedFormatError):
        extract_text(b"data", mime_type)


def test_unsupported_format_is_a_value_error():
    assert issubclass(UnsupportedFormatError, ValueError)


def test_corrupt_pdf_raises_extraction_error():
    with pytest.raises(ExtractionError):
        extract_text(b"this is not a pdf", PDF)


def test_corrupt_docx_raises_extraction_error():
    with pytest.raises(ExtractionError):
        extract_text(b"this is not a docx", DOCX)


def test_pdf_without_text_is_rejected():
    """Test that a scanned or blank PDF is not stored as an empty document."""
    with pytest.raises(ExtractionError, match="no extractable text"):
        extract_text(_blank_pdf_bytes(), PDF)


@pytest.mark.parametrize("data", [b"", b"   \n\t  "])
def test_blank_text_is_rejected(data):
    with pytest.raises(ExtractionError):
        extract_text(data, PLAIN_TEXT)
