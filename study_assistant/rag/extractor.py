"""Plain-text extraction from uploaded documents.

Supported: PDF, DOCX, plain text and markdown. PowerPoint files are
recognised but rejected, so no placeholder text ever reaches the index.
"""
import io

import structlog
from docx import Document as DocxDocument
from pypdf import PdfReader

logger = structlog.get_logger()

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PPTX = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
PLAIN_TEXT = "text/plain"
MARKDOWN = "text/markdown"

SUPPORTED_TYPES = (PDF, DOCX, PLAIN_TEXT, MARKDOWN)


class UnsupportedFormatError(ValueError):
    """The file type cannot be turned into text."""

    def __init__(self, mime_type: str):
        self.mime_type = mime_type
        super().__init__(f"Unsupported file type: {mime_type or 'unknown'}")


class ExtractionError(RuntimeError):
    """A supported file could not be read or held no text."""


def _extract_pdf(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    return "\n\n".join(page.extract_text() or "" for page in reader.pages)


def _extract_docx(data: bytes) -> str:
    document = DocxDocument(io.BytesIO(data))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def _extract_text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


_EXTRACTORS = {
    PDF: _extract_pdf,
    DOCX: _extract_docx,
    PLAIN_TEXT: _extract_text,
    MARKDOWN: _extract_text,
}


def extract_text(data: bytes, mime_type: str) -> str:
    """Extract plain text from an uploaded file.

    Args:
        data: Raw file bytes
        mime_type: MIME type reported for the upload (parameters such as
            ``; charset=utf-8`` are ignored)

    Returns:
        Extracted text

    Raises:
        UnsupportedFormatError: For PPTX and any type not listed above
        ExtractionError: If parsing fails or the file contains no text
    """
    base_type = (mime_type or "").split(";")[0].strip().lower()

    if base_type == PPTX:
        logger.warning("pptx_not_supported")
        raise UnsupportedFormatError(base_type)

    extractor = _EXTRACTORS.get(base_type)
    if extractor is None:
        logger.warning("unsupported_file_type", mime_type=mime_type)
        raise UnsupportedFormatError(base_type)

    try:
        text = extractor(data)
    except Exception as e:
        logger.error(
            "document_extraction_failed",
            mime_type=base_type,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise ExtractionError(f"Failed to process document: {e}") from e

    if not text.strip():
        logger.warning("document_has_no_text", mime_type=base_type, size=len(data))
        raise ExtractionError("Document contains no extractable text")

    logger.info("document_extracted", mime_type=base_type, text_length=len(text))
    return text
