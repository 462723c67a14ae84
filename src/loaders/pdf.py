from __future__ import annotations

"""PDF text extraction."""

import re

import fitz

from src.loaders.text import LoadedDocument


class PDFLoaderError(RuntimeError):
    """Raised when PDF loading fails."""
    pass


_HYPHEN_BREAK_RE = re.compile(r"(\w)-\n(\w)")


def _clean_pdf_text(text: str) -> str:
    """Rejoin words hyphenated across line breaks."""
    return _HYPHEN_BREAK_RE.sub(r"\1\2", text.replace("\r\n", "\n"))


def load_pdf_bytes(data: bytes, source: str) -> LoadedDocument:
    """Extract text from every page of a PDF held in memory."""
    try:
        reader = fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as exc:
        raise PDFLoaderError(f'Failed to parse PDF "{source}": {exc}') from exc
    with reader:
        text_parts = [page.get_text() or "" for page in reader]
        page_count = reader.page_count
    text = _clean_pdf_text("\n".join(text_parts))
    if not text.strip():
        raise PDFLoaderError(
            f'Failed to parse PDF "{source}": no text content found. '
            "The file may be scanned or image-based."
        )
    return LoadedDocument(text=text, page_count=page_count)
