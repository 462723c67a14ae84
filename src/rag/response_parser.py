from __future__ import annotations

"""Parse structured model output into an answer with validated citations.

The model is asked for ``{"answer": "...{{cite:c1}}...", "citations": []}``
but may wrap it in a code fence, surround it with prose, group markers or
skip JSON entirely. Parsing never raises: the caller always gets a usable
answer, tagged with how it was obtained.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from src.rag.citations import (
    extract_citation_ids,
    filter_citations,
    normalize_citation_markers,
    sanitize_citation_markers,
)
from src.rag.types import CitationData

logger = logging.getLogger(__name__)

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_DECODER = json.JSONDecoder(strict=False)


class ParseOutcome(str, Enum):
    PARSED = "parsed"
    FALLBACK = "fallback"
    UNPARSEABLE = "unparseable"


@dataclass(frozen=True)
class ParsedResponse:
    """Answer text, the citations it actually uses, and the parse outcome."""
    answer: str
    citations: list[CitationData] = field(default_factory=list)
    outcome: ParseOutcome = ParseOutcome.PARSED
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.outcome is ParseOutcome.PARSED


def _decode_objects(text: str) -> list[dict[str, Any]]:
    """Decode every top-level JSON object embedded in text, left to right."""
    objects: list[dict[str, Any]] = []
    position = text.find("{")
    while position != -1:
        try:
            value, end = _DECODER.raw_decode(text, position)
        except json.JSONDecodeError:
            position = text.find("{", position + 1)
            continue
        if isinstance(value, dict):
            objects.append(value)
        position = text.find("{", end)
    return objects


def _walk_objects(values: list[Any]) -> list[dict[str, Any]]:
    """Every object in the decoded values, outer objects before the ones nested in them."""
    found: list[dict[str, Any]] = []
    stack = list(reversed(values))
    while stack:
        value = stack.pop()
        if isinstance(value, dict):
            found.append(value)
            stack.extend(reversed(list(value.values())))
        elif isinstance(value, list):
            stack.extend(reversed(value))
    return found


def _has_answer_shape(candidate: dict[str, Any]) -> bool:
    return isinstance(candidate.get("answer"), str) and isinstance(candidate.get("citations"), list)


def extract_json_candidates(raw: str) -> list[Any]:
    """Candidate JSON values in priority order.

    Fenced block, then an ``{"answer", "citations"}`` shaped object, then the
    last object keyed by ``answer``, then the first object of any shape, then
    the raw text itself. The shaped and keyed passes also look inside nested
    objects and arrays.
    """
    candidates: list[Any] = []
    fenced = _FENCED_BLOCK_RE.search(raw)
    if fenced:
        candidates.extend(_decode_objects(fenced.group(1)))

    objects = _decode_objects(raw)
    nested = _walk_objects(objects)
    candidates.extend(obj for obj in nested if _has_answer_shape(obj))
    candidates.extend(reversed([obj for obj in nested if "answer" in obj]))
    candidates.extend(objects[:1])

    try:
        candidates.append(_DECODER.decode(raw.strip()))
    except json.JSONDecodeError:
        pass
    return candidates


def _resolve(
    text: str,
    context_citations: list[CitationData],
    valid_citation_ids: Iterable[str],
) -> tuple[str, list[CitationData]]:
    """Normalize markers, drop unknown ids, and keep the citations still referenced."""
    sanitized = sanitize_citation_markers(normalize_citation_markers(text), valid_citation_ids)
    used_ids = extract_citation_ids(sanitized)
    return sanitized, filter_citations(context_citations, used_ids)


def parse_structured_response(
    raw_response: str,
    context_citations: list[CitationData],
    valid_citation_ids: list[str],
) -> ParsedResponse:
    """Parse a model completion, degrading to plain text when JSON is unusable."""
    candidates = extract_json_candidates(raw_response)
    for candidate in candidates:
        if isinstance(candidate, dict) and isinstance(candidate.get("answer"), str):
            answer, citations = _resolve(candidate["answer"], context_citations, valid_citation_ids)
            return ParsedResponse(answer=answer, citations=citations, outcome=ParseOutcome.PARSED)

    if candidates:
        error = 'Missing or invalid "answer" field in response'
    else:
        error = "Response is not valid JSON"
    logger.warning("response_parse_fallback", extra={"reason": error, "raw_chars": len(raw_response)})

    normalized_raw = normalize_citation_markers(raw_response)
    if extract_citation_ids(normalized_raw):
        answer, citations = _resolve(normalized_raw, context_citations, valid_citation_ids)
        logger.info("response_parse_markers_recovered", extra={"citations": len(citations)})
        return ParsedResponse(
            answer=answer,
            citations=citations,
            outcome=ParseOutcome.FALLBACK,
            error=f"{error}; citations extracted from plain text",
        )
    return ParsedResponse(
        answer=raw_response,
        citations=[],
        outcome=ParseOutcome.UNPARSEABLE,
        error=error,
    )


def parse_response_with_fallback(
    raw_response: str,
    context_citations: list[CitationData],
    valid_citation_ids: list[str],
) -> tuple[str, list[CitationData]]:
    """Answer and citations only, for callers that do not care how parsing went."""
    result = parse_structured_response(raw_response, context_citations, valid_citation_ids)
    return result.answer, result.citations
