from __future__ import annotations

"""CLI utility to ingest a directory of markdown/text docs as one document."""

import argparse
import asyncio
from pathlib import Path

from src.app.dependencies import get_document_registry, get_pipeline
from src.app.settings import settings
from src.loaders.text import load_text_file

DOCS_DOCUMENT_ID = "project-documentation"
DOC_SUFFIXES = {".md", ".txt"}


def read_docs(directory: Path) -> list[tuple[str, str]]:
    """Return (filename, text) pairs for every doc file, sorted by name."""
    files = sorted(
        path for path in directory.iterdir() if path.is_file() and path.suffix.lower() in DOC_SUFFIXES
    )
    return [(path.name, load_text_file(path).text) for path in files]


def combine_docs(docs: list[tuple[str, str]]) -> str:
    """Join docs into one text, each preceded by a file marker line."""
    return "\n\n".join(f"--- {name} ---\n{text}" for name, text in docs)


async def ingest_docs(directory: Path, document_id: str, tenant_id: str) -> int:
    docs = read_docs(directory)
    if not docs:
        raise SystemExit(f"No markdown or text files found in {directory}")
    print(f"Found {len(docs)} files in {directory}")
    combined = combine_docs(docs)
    result = await get_pipeline().ingest_document(
        combined, document_id, document_id, tenant_id=tenant_id
    )
    registry = get_document_registry()
    if registry is not None and result.chunk_count:
        registry.replace(
            tenant_id,
            document_id,
            len(combined.encode("utf-8")),
            document_id,
            page_count=len(docs),
            chunk_count=result.chunk_count,
        )
    return result.chunk_count


def main() -> None:
    """Ingest project documentation into the configured vector store."""
    parser = argparse.ArgumentParser(description="Ingest documentation files for retrieval.")
    parser.add_argument("directory", nargs="?", default="content/docs", help="Docs directory.")
    parser.add_argument("--document-id", default=DOCS_DOCUMENT_ID, help="Document ID to replace.")
    parser.add_argument("--tenant", default=settings.default_tenant_id, help="Tenant to ingest into.")
    args = parser.parse_args()

    directory = Path(args.directory)
    if not directory.is_dir():
        raise SystemExit(f"Docs directory not found: {directory}")
    if settings.vectorstore_backend.lower().strip() == "memory":
        print("Warning: RAG_VECTORSTORE=memory, chunks will not outlive this process")
    chunk_count = asyncio.run(ingest_docs(directory, args.document_id, args.tenant))
    print(f"Ingested {args.document_id}: {chunk_count} chunks")


if __name__ == "__main__":
    main()
