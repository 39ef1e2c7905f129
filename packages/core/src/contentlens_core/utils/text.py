"""Text extraction from uploaded documents."""

from __future__ import annotations

import io
import logging
import re

from contentlens_core.errors import ContentResolutionError, UnsupportedContentError

logger = logging.getLogger(__name__)

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
LEGACY_DOC = "application/msword"
PLAIN_TEXT = "text/plain"

SUPPORTED_TYPES = (PDF, DOCX, PLAIN_TEXT)


def extract_text(data: bytes, mime_type: str | None, filename: str = "unknown") -> str:
    """Extract and clean the text of a document.

    Raises UnsupportedContentError for types that can never be read and
    ContentResolutionError when a supported document yields no text or cannot
    be decoded.
    """
    logger.debug("Extracting text from %s (%s, %d bytes)", filename, mime_type, len(data))

    if mime_type == LEGACY_DOC:
        raise UnsupportedContentError("Legacy .doc format is not supported. Please use .docx format.")
    if mime_type not in SUPPORTED_TYPES:
        raise UnsupportedContentError(f"Unsupported file type: {mime_type}")

    try:
        if mime_type == PDF:
            raw = _extract_pdf(data)
        elif mime_type == DOCX:
            raw = _extract_docx(data)
        else:
            raw = data.decode("utf-8")
    except Exception as e:
        logger.error("Text extraction failed for %s: %s", filename, e)
        raise ContentResolutionError(f"Failed to extract text: {e}") from e

    text = clean_text(raw)
    if not text:
        raise ContentResolutionError("Failed to extract text: No text content could be extracted from the file")

    logger.info("Extracted %d characters (%d words) from %s", len(text), count_words(text), filename)
    return text


def _extract_pdf(data: bytes) -> str:
    from pypdf import PdfReader

    reader = PdfReader(io.BytesIO(data))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def _extract_docx(data: bytes) -> str:
    import mammoth

    result = mammoth.extract_raw_text(io.BytesIO(data))
    if result.messages:
        logger.warning("DOCX extraction warnings: %s", [m.message for m in result.messages])
    return result.value


def clean_text(text: str | None) -> str:
    """Normalise line endings and collapse runs of blank lines and spaces."""
    if not text:
        return ""
    text = text.replace("\r\n", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    return text.strip()


def count_words(text: str | None) -> int:
    if not text:
        return 0
    return len(text.split())


def get_preview(text: str | None, max_length: int = 500) -> str:
    if not text or len(text) <= max_length:
        return text or ""
    return text[:max_length] + "..."
