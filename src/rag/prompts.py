from __future__ import annotations

"""Prompt construction for the three retrieval states."""

from dataclasses import dataclass, field

from src.rag.citations import format_context_for_prompt, format_context_with_citations
from src.rag.types import CitationData, RetrievalResult

_JSON_FORMAT = (
    "You MUST respond with a JSON object in this exact format:\n"
    "{\n"
    '  "answer": "Your response text here",\n'
    '  "citations": []\n'
    "}"
)

_NO_DOCUMENTS_PROMPT = (
    "You are a helpful document assistant. Currently, no documents have been uploaded.\n\n"
    "Your only task is to inform the user that they need to upload documents "
    "before you can answer questions about them."
)

_NO_MATCH_PROMPT = (
    "You are a helpful document assistant. The user has uploaded documents, "
    "but no relevant information was found for their query.\n\n"
    "IMPORTANT RULES:\n"
    "1. Do NOT make up or invent any information\n"
    "2. Do NOT answer based on general knowledge\n"
    "3. Politely inform the user that their question could not be answered "
    "based on the uploaded documents\n"
    "4. Suggest they try rephrasing their question or check if the relevant "
    "document was uploaded"
)

_PLAIN_ANSWER_PROMPT = (
    "You are a helpful document assistant. Answer the user's question using ONLY "
    "the information from the provided context.\n\n"
    "IMPORTANT RULES:\n"
    "1. Use ONLY information from the provided context - extract specific names, "
    "values, and details\n"
    "2. If the context doesn't contain enough information to fully answer, say so\n"
    "3. Do NOT make up or invent information beyond what's in the context\n"
    '4. Do NOT cite source numbers (no "[Source 1]" references)\n'
    "5. FORMATTING: Use plain text only. No asterisks, no bullet points, no markdown. "
    "For lists, use numbered lists (1. 2. 3.) or separate items with commas."
)


@dataclass(frozen=True)
class PromptPair:
    system: str
    user: str


@dataclass(frozen=True)
class PromptWithCitations:
    """Prompts plus the citations allocated for this request."""
    system: str
    user: str
    citations: list[CitationData] = field(default_factory=list)
    valid_citation_ids: list[str] = field(default_factory=list)


def _user_prompt(context: str, query: str) -> str:
    return f"Context from uploaded documents:\n\n{context}\n\n---\n\nUser question: {query}"


def _has_matches(result: RetrievalResult) -> bool:
    return not result.is_empty and bool(result.chunks)


def build_prompt_with_citations(
    query: str,
    retrieval_result: RetrievalResult,
    has_documents: bool,
) -> PromptWithCitations:
    """Build prompts asking for a JSON answer with inline ``{{cite:cX}}`` markers."""
    if not has_documents:
        return PromptWithCitations(
            system=f"{_NO_DOCUMENTS_PROMPT}\n\n{_JSON_FORMAT}\n\nBe polite and helpful in your response.",
            user=query,
        )
    if not _has_matches(retrieval_result):
        return PromptWithCitations(
            system=f"{_NO_MATCH_PROMPT}\n\n{_JSON_FORMAT}\n\nBe concise and helpful.",
            user=query,
        )

    context = format_context_with_citations(retrieval_result)
    valid_ids = [citation.id for citation in context.citations]
    id_list = ", ".join(valid_ids)
    system = (
        "You are a helpful document assistant. Answer the user's question using ONLY "
        "the information from the provided context.\n\n"
        "CRITICAL: YOUR ENTIRE RESPONSE MUST BE A SINGLE JSON OBJECT. "
        "DO NOT OUTPUT ANYTHING BEFORE OR AFTER THE JSON.\n\n"
        "CITATION INSTRUCTIONS:\n"
        f"- Each source in the context has a Citation ID ({id_list})\n"
        "- You MUST add {{cite:cX}} markers inline with your answer text\n"
        "- Place citation markers immediately after each claim from that source\n"
        '- Example: "The event occurred in 1872{{cite:c1}} and involved soldiers{{cite:c2}}."\n\n'
        "RESPONSE FORMAT - RETURN ONLY THIS JSON:\n"
        "{\n"
        '  "answer": "Your answer with {{cite:c1}} markers inline.",\n'
        '  "citations": []\n'
        "}\n\n"
        "RULES:\n"
        "1. Use ONLY information from the provided context\n"
        "2. Add {{cite:cX}} after EVERY claim that comes from a source\n"
        "3. Use plain text only, no markdown\n"
        '4. The "citations" array should be empty - the system fills it\n\n'
        "EXAMPLE RESPONSE:\n"
        '{"answer": "The capital of France is Paris{{cite:c1}}. '
        'It has a population of 2 million{{cite:c1}}.", "citations": []}'
    )
    return PromptWithCitations(
        system=system,
        user=_user_prompt(context.context_string, query),
        citations=context.citations,
        valid_citation_ids=valid_ids,
    )


def build_prompt(query: str, retrieval_result: RetrievalResult, has_documents: bool) -> PromptPair:
    """Build plain-text prompts without citation markers."""
    if not has_documents:
        return PromptPair(
            system=f"{_NO_DOCUMENTS_PROMPT}\n\nBe polite and helpful in your response.",
            user=query,
        )
    if not _has_matches(retrieval_result):
        return PromptPair(system=f"{_NO_MATCH_PROMPT}\n\nBe concise and helpful.", user=query)
    return PromptPair(
        system=_PLAIN_ANSWER_PROMPT,
        user=_user_prompt(format_context_for_prompt(retrieval_result), query),
    )
