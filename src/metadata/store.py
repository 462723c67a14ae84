from __future__ import annotations

"""Document registry persisted with SQLAlchemy."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, create_engine, func, select
from sqlalchemy.exc import SQLAlchemyError


class DocumentRegistryError(RuntimeError):
    """Raised when document registry persistence fails."""
    pass


@dataclass(frozen=True)
class DocumentRecord:
    """Uploaded document tracked alongside its indexed chunks."""
    id: str
    tenant_id: str
    name: str
    size_bytes: int
    page_count: int | None
    chunk_count: int
    created_at: datetime


class DocumentRegistry:
    """Store uploaded document records in a SQL database."""
    def __init__(self, connection_uri: str) -> None:
        """Initialize the registry and ensure the table exists."""
        self._engine = create_engine(connection_uri)
        self._metadata = MetaData()
        self._table = Table(
            "documents",
            self._metadata,
            Column("id", String(64), primary_key=True),
            Column("tenant_id", String(255), nullable=False, index=True),
            Column("name", String(1024), nullable=False),
            Column("size_bytes", Integer, nullable=False),
            Column("page_count", Integer, nullable=True),
            Column("chunk_count", Integer, nullable=False, default=0),
            Column("created_at", DateTime(timezone=True), nullable=False),
        )
        self._metadata.create_all(self._engine)

    def create(
        self,
        tenant_id: str,
        name: str,
        size_bytes: int,
        page_count: int | None = None,
        document_id: str | None = None,
    ) -> DocumentRecord:
        """Insert a document record; the id is generated unless supplied."""
        record = DocumentRecord(
            id=document_id or str(uuid.uuid4()),
            tenant_id=tenant_id,
            name=name,
            size_bytes=size_bytes,
            page_count=page_count,
            chunk_count=0,
            created_at=datetime.now(timezone.utc),
        )
        try:
            with self._engine.begin() as conn:
                conn.execute(self._table.insert().values(**record.__dict__))
        except SQLAlchemyError as exc:
            raise DocumentRegistryError(f"Failed to create document record: {exc}") from exc
        return record

    def replace(
        self,
        tenant_id: str,
        name: str,
        size_bytes: int,
        document_id: str,
        page_count: int | None = None,
        chunk_count: int = 0,
    ) -> DocumentRecord:
        """Swap any existing record for ``document_id`` in a single transaction."""
        record = DocumentRecord(
            id=document_id,
            tenant_id=tenant_id,
            name=name,
            size_bytes=size_bytes,
            page_count=page_count,
            chunk_count=chunk_count,
            created_at=datetime.now(timezone.utc),
        )
        try:
            with self._engine.begin() as conn:
                conn.execute(self._table.delete().where(self._table.c.id == document_id))
                conn.execute(self._table.insert().values(**record.__dict__))
        except SQLAlchemyError as exc:
            raise DocumentRegistryError(f"Failed to replace document record: {exc}") from exc
        return record

    def get(self, document_id: str) -> DocumentRecord | None:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(self._table).where(self._table.c.id == document_id)
            ).mappings().first()
        return self._to_record(row) if row else None

    def list(self, tenant_id: str) -> list[DocumentRecord]:
        """Documents for a tenant, newest first."""
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(self._table)
                .where(self._table.c.tenant_id == tenant_id)
                .order_by(self._table.c.created_at.desc())
            ).mappings().all()
        return [self._to_record(row) for row in rows]

    def count(self, tenant_id: str) -> int:
        with self._engine.connect() as conn:
            return int(
                conn.execute(
                    select(func.count()).select_from(self._table).where(
                        self._table.c.tenant_id == tenant_id
                    )
                ).scalar_one()
            )

    def delete(self, document_id: str) -> bool:
        """Delete a record; returns False when it did not exist."""
        with self._engine.begin() as conn:
            result = conn.execute(self._table.delete().where(self._table.c.id == document_id))
        return bool(result.rowcount)

    @staticmethod
    def _to_record(row: Any) -> DocumentRecord:
        created_at = row["created_at"]
        if created_at.tzinfo is None:
            # sqlite drops the offset on round-trip
            created_at = created_at.replace(tzinfo=timezone.utc)
        return DocumentRecord(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            size_bytes=row["size_bytes"],
            page_count=row["page_count"],
            chunk_count=row["chunk_count"],
            created_at=created_at,
        )
