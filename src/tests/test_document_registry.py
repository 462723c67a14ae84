from __future__ import annotations

import sqlite3

import pytest

from src.metadata.store import DocumentRegistry, DocumentRegistryError


def test_registry_lifecycle(tmp_path) -> None:
    db_path = tmp_path / "documents.db"
    registry = DocumentRegistry(f"sqlite:///{db_path}")

    record = registry.create("acme", "report.pdf", 2048, page_count=3)
    assert record.chunk_count == 0
    record = registry.replace("acme", "report.pdf", 2048, record.id, page_count=3, chunk_count=7)

    stored = registry.get(record.id)
    assert stored is not None
    assert stored.name == "report.pdf"
    assert stored.chunk_count == 7
    assert stored.page_count == 3
    assert stored.created_at.tzinfo is not None

    conn = sqlite3.connect(db_path)
    try:
        row = conn.execute(
            "SELECT tenant_id, size_bytes, chunk_count FROM documents WHERE id = ?", (record.id,)
        ).fetchone()
    finally:
        conn.close()
    assert row == ("acme", 2048, 7)

    assert registry.delete(record.id) is True
    assert registry.delete(record.id) is False
    assert registry.get(record.id) is None


def test_list_is_newest_first_per_tenant(tmp_path) -> None:
    registry = DocumentRegistry(f"sqlite:///{tmp_path / 'documents.db'}")
    registry.create("acme", "old.txt", 1)
    registry.create("globex", "theirs.txt", 1)
    registry.create("acme", "new.txt", 1)

    assert [record.name for record in registry.list("acme")] == ["new.txt", "old.txt"]
    assert registry.count("acme") == 2
    assert registry.count("nobody") == 0


def test_duplicate_id_raises(tmp_path) -> None:
    registry = DocumentRegistry(f"sqlite:///{tmp_path / 'documents.db'}")
    registry.create("acme", "a.txt", 1, document_id="fixed")
    with pytest.raises(DocumentRegistryError):
        registry.create("acme", "b.txt", 1, document_id="fixed")


def test_replace_swaps_existing_record(tmp_path) -> None:
    registry = DocumentRegistry(f"sqlite:///{tmp_path / 'documents.db'}")
    registry.replace("acme", "v1.txt", 10, "fixed", chunk_count=2)
    registry.replace("acme", "v2.txt", 20, "fixed", chunk_count=5)

    stored = registry.get("fixed")
    assert stored is not None
    assert (stored.name, stored.size_bytes, stored.chunk_count) == ("v2.txt", 20, 5)
    assert registry.count("acme") == 1


def test_document_id_column_holds_64_characters(tmp_path) -> None:
    registry = DocumentRegistry(f"sqlite:///{tmp_path / 'documents.db'}")
    document_id = "d" * 64
    registry.create("acme", "long.txt", 1, document_id=document_id)
    assert registry.get(document_id) is not None
