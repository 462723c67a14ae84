from __future__ import annotations

import pytest

from src.loaders.chunking import chunk_text, latin_sentence_boundary, normalize_text
from src.rag.types import RAGConfig


def _sample_text(sentences: int = 60) -> str:
    return " ".join(
        f"Sentence number {index} talks about quarterly revenue.\n  Details follow here."
        for index in range(sentences)
    )


def test_normalize_text_collapses_whitespace() -> None:
    assert normalize_text("  alpha\n\n beta\tgamma  ") == "alpha beta gamma"


def test_chunks_cover_normalized_text_in_order() -> None:
    text = _sample_text()
    chunks = chunk_text(text, "doc", "report.txt", RAGConfig(chunk_size=200, chunk_overlap=40))
    normalized = normalize_text(text)

    assert len(chunks) > 1
    assert chunks[0].metadata.start_char == 0
    assert chunks[-1].metadata.end_char == len(normalized)
    for index, chunk in enumerate(chunks):
        assert chunk.id == f"doc-chunk-{index}"
        assert chunk.metadata.chunk_index == index
        assert chunk.metadata.document_name == "report.txt"
        assert chunk.metadata.end_char - chunk.metadata.start_char <= 200
        assert chunk.content == normalized[chunk.metadata.start_char : chunk.metadata.end_char].strip()
    for previous, current in zip(chunks, chunks[1:]):
        assert current.metadata.start_char > previous.metadata.start_char
        # consecutive windows leave no gap
        assert current.metadata.start_char <= previous.metadata.end_char


def test_chunking_is_deterministic() -> None:
    text = _sample_text(20)
    config = RAGConfig(chunk_size=150, chunk_overlap=30)
    assert chunk_text(text, "doc", "a", config) == chunk_text(text, "doc", "a", config)


def test_short_text_yields_single_chunk() -> None:
    chunks = chunk_text("Hello   world.", "doc", "a.txt")
    assert len(chunks) == 1
    assert chunks[0].content == "Hello world."
    assert (chunks[0].metadata.start_char, chunks[0].metadata.end_char) == (0, 12)


def test_blank_text_yields_no_chunks() -> None:
    assert chunk_text(" \n\t ", "doc", "a.txt") == []


def test_overlap_not_smaller_than_chunk_size_terminates() -> None:
    text = "word " * 200
    chunks = chunk_text(text, "doc", "a.txt", RAGConfig(chunk_size=50, chunk_overlap=80))
    assert chunks
    assert chunks[-1].metadata.end_char == len(normalize_text(text))


def test_text_without_spaces_is_hard_cut() -> None:
    text = "x" * 1050
    chunks = chunk_text(text, "doc", "a.txt", RAGConfig(chunk_size=500, chunk_overlap=100))
    assert [len(chunk.content) for chunk in chunks] == [500, 500, 250]


def test_breaks_at_sentence_boundary_in_lookback_window() -> None:
    first = "A" * 90 + ". "
    text = first + "Next sentence continues for a while " * 5
    chunks = chunk_text(text, "doc", "a.txt", RAGConfig(chunk_size=100, chunk_overlap=0))
    assert chunks[0].content.endswith(".")
    assert chunks[1].content.startswith("Next")


def test_custom_boundary_detector_is_used() -> None:
    calls: list[str] = []

    def never(window: str) -> int | None:
        calls.append(window)
        return None

    chunk_text(_sample_text(10), "doc", "a.txt", RAGConfig(chunk_size=100, chunk_overlap=10), boundary=never)
    assert calls


def test_latin_sentence_boundary_offset() -> None:
    assert latin_sentence_boundary("end. Next") == 5
    assert latin_sentence_boundary("no boundary here") is None


@pytest.mark.parametrize("size,overlap", [(0, 0), (-5, 0), (100, -1)])
def test_invalid_config_rejected(size: int, overlap: int) -> None:
    with pytest.raises(ValueError):
        chunk_text("some text", "doc", "a.txt", RAGConfig(chunk_size=size, chunk_overlap=overlap))
