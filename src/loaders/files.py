from __future__ import annotations

"""Dispatch uploaded files to the matching text extractor."""

from pathlib import Path

from src.loaders.pdf import load_pdf_bytes
from src.loaders.text import LoadedDocument, load_text_bytes

TEXT_CONTENT_TYPES = {"text/plain", "text/markdown", "application/json"}
TEXT_SUFFIXES = {".txt", ".md", ".json"}


class DocumentTooLargeError(ValueError):
    """Raised when an upload exceeds the configured size limit."""
    pass


class UnsupportedDocumentError(ValueError):
    """Raised for file types the loaders cannot extract text from."""
    pass


def load_document_bytes(
    data: bytes,
    filename: str,
    content_type: str | None = None,
    max_bytes: int | None = None,
) -> LoadedDocument:
    """Extract raw text from an uploaded PDF or text file."""
    if max_bytes and len(data) > max_bytes:
        size_mb = len(data) / (1024 * 1024)
        limit_mb = max_bytes / (1024 * 1024)
        raise DocumentTooLargeError(
            f"File size ({size_mb:.2f}MB) exceeds maximum allowed ({limit_mb:.0f}MB)"
        )
    suffix = Path(filename).suffix.lower()
    normalized_type = (content_type or "").split(";", 1)[0].strip().lower()
    if normalized_type == "application/pdf" or suffix == ".pdf":
        return load_pdf_bytes(data, source=filename)
    if normalized_type in TEXT_CONTENT_TYPES or suffix in TEXT_SUFFIXES:
        return load_text_bytes(data)
    raise UnsupportedDocumentError(f"Unsupported file type: {content_type or suffix or 'unknown'}")
