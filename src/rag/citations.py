from __future__ import annotations

"""Citation allocation, prompt context formatting and inline marker handling."""

import re
from dataclasses import dataclass
from typing import Iterable, Literal

from src.rag.types import CitationContext, CitationData, CitationMetadata, RetrievalResult

CONTEXT_SEPARATOR = "\n\n---\n\n"
SNIPPET_MAX_CHARS = 200

# {{cite:c1}} is canonical; the loose form also accepts stray spaces and id lists.
CITATION_MARKER_RE = re.compile(r"\{\{cite:(c\d+)\}\}")
_LOOSE_MARKER_RE = re.compile(r"\{\{\s*cite\s*:\s*(c\d+(?:\s*,\s*c\d+)*)\s*,?\s*\}\}")
_ID_SPLIT_RE = re.compile(r"\s*,\s*")
_SENTENCE_END_RE = re.compile(r"[.!?](?=\s|$)")


def citation_id(position: int) -> str:
    """Citation token for a 0-based rank position."""
    return f"c{position + 1}"


def build_snippet(content: str, max_chars: int = SNIPPET_MAX_CHARS) -> str:
    """Preview text cut at a sentence end past 60% of the limit, else a word boundary."""
    text = content.strip()
    if len(text) <= max_chars:
        return text
    window = text[:max_chars]
    sentence_ends = [match.end() for match in _SENTENCE_END_RE.finditer(window)]
    if sentence_ends and sentence_ends[-1] >= int(max_chars * 0.6):
        return window[: sentence_ends[-1]] + "..."
    last_space = window.rfind(" ")
    if last_space > 0:
        return window[:last_space].rstrip() + "..."
    return window + "..."


def _relevance(score: float) -> int:
    return round(score * 100)


def format_context_with_citations(result: RetrievalResult) -> CitationContext:
    """Allocate c1..cN in ranked order and build the prompt context block."""
    if result.is_empty or not result.chunks:
        return CitationContext(context_string="", citations=[])

    blocks: list[str] = []
    citations: list[CitationData] = []
    for position, scored in enumerate(result.chunks):
        chunk = scored.chunk
        cid = citation_id(position)
        citations.append(
            CitationData(
                id=cid,
                snippet=build_snippet(chunk.content),
                content=chunk.content,
                metadata=CitationMetadata(
                    source=chunk.metadata.document_name,
                    chunk_index=chunk.metadata.chunk_index,
                ),
            )
        )
        blocks.append(
            f"[Citation ID: {cid} | Source: {chunk.metadata.document_name} | "
            f"Relevance: {_relevance(scored.score)}%]\n{chunk.content}"
        )
    return CitationContext(context_string=CONTEXT_SEPARATOR.join(blocks), citations=citations)


def format_context_for_prompt(result: RetrievalResult) -> str:
    """Context block without citation IDs, for prompts that do not request markers."""
    if result.is_empty or not result.chunks:
        return ""
    return CONTEXT_SEPARATOR.join(
        f"[Source {position}: {scored.chunk.metadata.document_name}, "
        f"relevance: {_relevance(scored.score)}%]\n{scored.chunk.content}"
        for position, scored in enumerate(result.chunks, start=1)
    )


def normalize_citation_markers(text: str) -> str:
    """Rewrite grouped or spaced markers into canonical single-id markers.

    ``{{cite:c3, c5}}`` becomes ``{{cite:c3}}{{cite:c5}}``.
    """
    def _expand(match: re.Match[str]) -> str:
        ids = [value for value in _ID_SPLIT_RE.split(match.group(1).strip()) if value]
        return "".join(f"{{{{cite:{value}}}}}" for value in ids)

    return _LOOSE_MARKER_RE.sub(_expand, text)


def sanitize_citation_markers(text: str, valid_ids: Iterable[str]) -> str:
    """Remove markers whose id was not allocated for this request."""
    allowed = set(valid_ids)
    return CITATION_MARKER_RE.sub(
        lambda match: match.group(0) if match.group(1) in allowed else "",
        text,
    )


def extract_citation_ids(text: str) -> list[str]:
    """Unique citation ids in order of first appearance."""
    seen: dict[str, None] = {}
    for match in CITATION_MARKER_RE.finditer(text):
        seen.setdefault(match.group(1), None)
    return list(seen)


def has_citations(text: str) -> bool:
    return CITATION_MARKER_RE.search(text) is not None


def filter_citations(citations: list[CitationData], used_ids: Iterable[str]) -> list[CitationData]:
    """Keep only citations referenced by the answer, in allocation order."""
    used = set(used_ids)
    return [citation for citation in citations if citation.id in used]


@dataclass(frozen=True)
class ContentPart:
    """Answer segment for renderers: plain text or a citation reference."""
    kind: Literal["text", "citation"]
    value: str


def parse_answer_with_citations(answer: str) -> list[ContentPart]:
    """Split an answer into alternating text and citation parts."""
    normalized = normalize_citation_markers(answer)
    parts: list[ContentPart] = []
    last = 0
    for match in CITATION_MARKER_RE.finditer(normalized):
        if match.start() > last:
            parts.append(ContentPart(kind="text", value=normalized[last : match.start()]))
        parts.append(ContentPart(kind="citation", value=match.group(1)))
        last = match.end()
    if last < len(normalized):
        parts.append(ContentPart(kind="text", value=normalized[last:]))
    return parts
