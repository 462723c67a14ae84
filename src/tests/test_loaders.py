from __future__ import annotations

import fitz
import pytest

from src.loaders.files import DocumentTooLargeError, UnsupportedDocumentError, load_document_bytes
from src.loaders.pdf import PDFLoaderError, load_pdf_bytes
from src.loaders.text import load_text_bytes, load_text_file


def _pdf_bytes(text: str | None) -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    if text:
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def test_text_bytes_ignore_invalid_utf8() -> None:
    loaded = load_text_bytes(b"caf\xc3\xa9 \xff ok")
    assert loaded.text == "café  ok"
    assert loaded.page_count == 1


def test_text_file(tmp_path) -> None:
    path = tmp_path / "notes.md"
    path.write_text("# Title\nBody", encoding="utf-8")
    assert load_text_file(path).text == "# Title\nBody"


def test_dispatch_by_suffix_and_content_type() -> None:
    assert load_document_bytes(b"{}", "data.json").text == "{}"
    assert load_document_bytes(b"plain", "upload", content_type="text/plain; charset=utf-8").text == "plain"
    with pytest.raises(UnsupportedDocumentError):
        load_document_bytes(b"x", "sheet.xlsx")


def test_size_limit() -> None:
    with pytest.raises(DocumentTooLargeError, match="exceeds maximum allowed"):
        load_document_bytes(b"x" * 11, "a.txt", max_bytes=10)


def test_pdf_text_is_extracted() -> None:
    loaded = load_document_bytes(_pdf_bytes("Invoice total is 42 dollars"), "invoice.pdf")
    assert "Invoice total is 42 dollars" in loaded.text
    assert loaded.page_count == 1


def test_pdf_without_text_is_rejected() -> None:
    with pytest.raises(PDFLoaderError, match="no text content found"):
        load_pdf_bytes(_pdf_bytes(None), "scan.pdf")


def test_corrupt_pdf_is_rejected() -> None:
    with pytest.raises(PDFLoaderError):
        load_pdf_bytes(b"not a pdf at all", "broken.pdf")
