from __future__ import annotations

from src.rag.citations import (
    build_snippet,
    extract_citation_ids,
    filter_citations,
    format_context_for_prompt,
    format_context_with_citations,
    has_citations,
    normalize_citation_markers,
    parse_answer_with_citations,
    sanitize_citation_markers,
)
from src.rag.types import Chunk, ChunkMetadata, RetrievalResult, ScoredChunk


def scored(name: str, index: int, content: str, score: float) -> ScoredChunk:
    chunk = Chunk(
        id=f"{name}-chunk-{index}",
        document_id=name,
        content=content,
        metadata=ChunkMetadata(document_name=name, chunk_index=index, start_char=0, end_char=len(content)),
    )
    return ScoredChunk(chunk=chunk, score=score)


def sample_result() -> RetrievalResult:
    return RetrievalResult(
        chunks=[
            scored("report.pdf", 3, "Revenue grew 12% in Q4.", 0.87),
            scored("notes.md", 0, "The team shipped two releases.", 0.42),
        ],
        is_empty=False,
    )


def test_citations_follow_rank_order() -> None:
    context = format_context_with_citations(sample_result())

    assert [citation.id for citation in context.citations] == ["c1", "c2"]
    first = context.citations[0]
    assert first.content == "Revenue grew 12% in Q4."
    assert first.metadata.source == "report.pdf"
    assert first.metadata.chunk_index == 3
    assert context.context_string == (
        "[Citation ID: c1 | Source: report.pdf | Relevance: 87%]\nRevenue grew 12% in Q4."
        "\n\n---\n\n"
        "[Citation ID: c2 | Source: notes.md | Relevance: 42%]\nThe team shipped two releases."
    )


def test_empty_result_has_no_citations() -> None:
    context = format_context_with_citations(RetrievalResult.empty())
    assert context.context_string == ""
    assert context.citations == []


def test_plain_context_uses_source_numbers() -> None:
    text = format_context_for_prompt(sample_result())
    assert text.startswith("[Source 1: report.pdf, relevance: 87%]\nRevenue grew")


def test_snippet_short_content_unchanged() -> None:
    assert build_snippet("  Short text.  ") == "Short text."


def test_snippet_prefers_late_sentence_end() -> None:
    content = "A" * 150 + ". " + "b " * 100
    snippet = build_snippet(content)
    assert snippet == "A" * 150 + "...."
    assert len(snippet) <= 204


def test_snippet_falls_back_to_word_boundary() -> None:
    content = "Early end. " + "word " * 100
    snippet = build_snippet(content)
    assert snippet.endswith("word...")
    assert len(snippet) <= 203


def test_snippet_hard_cut_without_spaces() -> None:
    assert build_snippet("x" * 300) == "x" * 200 + "..."


def test_normalize_expands_grouped_and_spaced_markers() -> None:
    assert normalize_citation_markers("A{{cite:c3, c5}} B{{ cite : c1 }}") == (
        "A{{cite:c3}}{{cite:c5}} B{{cite:c1}}"
    )


def test_sanitize_drops_unknown_ids() -> None:
    assert sanitize_citation_markers("x{{cite:c1}}y{{cite:c9}}", ["c1", "c2"]) == "x{{cite:c1}}y"


def test_extract_ids_unique_in_first_appearance_order() -> None:
    text = "a{{cite:c2}} b{{cite:c1}} c{{cite:c2}}"
    assert extract_citation_ids(text) == ["c2", "c1"]
    assert has_citations(text)
    assert not has_citations("no markers")


def test_filter_citations_keeps_allocation_order() -> None:
    citations = format_context_with_citations(sample_result()).citations
    assert [citation.id for citation in filter_citations(citations, ["c2", "c1"])] == ["c1", "c2"]
    assert filter_citations(citations, []) == []


def test_parse_answer_into_parts() -> None:
    parts = parse_answer_with_citations("Revenue grew{{cite:c1, c2}}. Done")
    assert [(part.kind, part.value) for part in parts] == [
        ("text", "Revenue grew"),
        ("citation", "c1"),
        ("citation", "c2"),
        ("text", ". Done"),
    ]
