from __future__ import annotations

"""Plain text loader for ingestion."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class LoadedDocument:
    """Raw text extracted from an uploaded file."""
    text: str
    page_count: int | None = None


def load_text_file(path: Path) -> LoadedDocument:
    """Load a UTF-8 text file from disk."""
    return LoadedDocument(text=path.read_text(encoding="utf-8"), page_count=1)


def load_text_bytes(data: bytes) -> LoadedDocument:
    """Decode plain text bytes, dropping undecodable sequences."""
    return LoadedDocument(text=data.decode("utf-8", errors="ignore"), page_count=1)
