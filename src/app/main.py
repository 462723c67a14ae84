from __future__ import annotations

"""FastAPI application entrypoint for the cited document Q&A service."""

import asyncio
import logging
import uuid

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile

from src.app.dependencies import (
    get_document_registry,
    get_embedding_config_report,
    get_pipeline,
    resolve_tenant_id,
)
from src.app.metrics import metrics_middleware, metrics_response, record_answer
from src.app.schemas import (
    ChatRequest,
    ChatResponse,
    DeleteResponse,
    DocumentCreateRequest,
    DocumentListResponse,
    DocumentResponse,
    EmbeddingHealthResponse,
    StatsResponse,
)
from src.app.settings import settings
from src.loaders.files import DocumentTooLargeError, UnsupportedDocumentError, load_document_bytes
from src.loaders.pdf import PDFLoaderError
from src.metadata.store import DocumentRegistry, DocumentRegistryError
from src.rag.embeddings import EmbeddingConfigError, EmbeddingError
from src.rag.llm import LLMConfigError, LLMError
from src.rag.pipeline import DocumentOwnershipError, RAGPipeline

logger = logging.getLogger(__name__)

app = FastAPI(title="Cited Document Q&A", version="0.1.0")


def _configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


_configure_logging()


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _service_error(exc: Exception, request_id: str) -> HTTPException:
    """Map pipeline failures onto HTTP errors."""
    if isinstance(exc, (EmbeddingConfigError, LLMConfigError)):
        status_code = 503
    elif isinstance(exc, (EmbeddingError, LLMError)):
        status_code = 502
    else:
        status_code = 500
    logger.error(
        "request_failed",
        extra={"request_id": request_id, "error": type(exc).__name__, "status": status_code},
    )
    return HTTPException(status_code=status_code, detail=str(exc))


async def _read_upload_bytes(upload: UploadFile, max_bytes: int | None) -> bytes:
    """Stream upload bytes with a hard size limit."""
    if not max_bytes or max_bytes <= 0:
        return await upload.read()
    buffer = bytearray()
    while True:
        chunk = await upload.read(65536)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File exceeds maximum size of {max_bytes} bytes",
            )
    return bytes(buffer)


def _conflict(document_id: str, tenant_id: str, request_id: str) -> HTTPException:
    logger.warning(
        "document_owner_conflict",
        extra={"request_id": request_id, "tenant_id": tenant_id, "document_id": document_id},
    )
    return HTTPException(status_code=409, detail=f"Document id {document_id} is already in use")


async def _ingest(
    pipeline: RAGPipeline,
    registry: DocumentRegistry | None,
    *,
    text: str,
    name: str,
    tenant_id: str,
    request_id: str,
    document_id: str | None = None,
    size_bytes: int | None = None,
    page_count: int | None = None,
) -> DocumentResponse:
    """Chunk, embed and index one document, then record it in the registry.

    The registry is written only after the index holds the new chunks, so a
    failed re-ingest leaves the previous version listed and searchable.
    """
    document_id = document_id or str(uuid.uuid4())
    size = len(text.encode("utf-8")) if size_bytes is None else size_bytes
    if registry is not None:
        try:
            existing = registry.get(document_id)
        except DocumentRegistryError as exc:
            raise _service_error(exc, request_id) from exc
        if existing is not None and existing.tenant_id != tenant_id:
            raise _conflict(document_id, tenant_id, request_id)
    try:
        result = await pipeline.ingest_document(text, document_id, name, tenant_id=tenant_id)
    except DocumentOwnershipError as exc:
        raise _conflict(document_id, tenant_id, request_id) from exc
    except (EmbeddingError, EmbeddingConfigError) as exc:
        raise _service_error(exc, request_id) from exc
    if result.chunk_count == 0:
        raise HTTPException(status_code=400, detail="Document contains no text content")
    record = None
    if registry is not None:
        try:
            record = registry.replace(
                tenant_id,
                name,
                size,
                document_id,
                page_count=page_count,
                chunk_count=result.chunk_count,
            )
        except DocumentRegistryError as exc:
            raise _service_error(exc, request_id) from exc
    logger.info(
        "document_ingested",
        extra={
            "request_id": request_id,
            "tenant_id": tenant_id,
            "document_id": document_id,
            "chunks": result.chunk_count,
        },
    )
    return DocumentResponse(
        id=document_id,
        name=name,
        chunk_count=result.chunk_count,
        size_bytes=size,
        page_count=page_count,
        created_at=record.created_at if record else None,
    )


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    """Capture request metrics before returning the response."""
    return await metrics_middleware(request, call_next)


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/health")
async def health() -> dict[str, str]:
    """Simple health probe for uptime checks."""
    return {"status": "ok"}


@app.get("/stats", response_model=StatsResponse)
async def stats(
    http_request: Request,
    pipeline: RAGPipeline = Depends(get_pipeline),
    registry: DocumentRegistry | None = Depends(get_document_registry),
) -> StatsResponse:
    """Return index stats scoped to the caller's tenant."""
    tenant_id = resolve_tenant_id(http_request)
    index_stats = await asyncio.to_thread(pipeline.index.stats)
    chunk_count = await asyncio.to_thread(pipeline.index.count, tenant_id)
    return StatsResponse(
        backend=str(index_stats["backend"]),
        tenant_id=tenant_id,
        chunk_count=chunk_count,
        embedding_dimension=int(index_stats.get("embedding_dimension", 0)),
        document_count=registry.count(tenant_id) if registry is not None else None,
        collection=index_stats.get("collection"),
    )


@app.get("/stats/embedding", response_model=EmbeddingHealthResponse)
async def embedding_health() -> EmbeddingHealthResponse:
    """Return embedding configuration health checks."""
    report = get_embedding_config_report()
    return EmbeddingHealthResponse(**report.__dict__)


@app.post("/documents", response_model=DocumentResponse)
async def create_document(
    request: DocumentCreateRequest,
    http_request: Request,
    pipeline: RAGPipeline = Depends(get_pipeline),
    registry: DocumentRegistry | None = Depends(get_document_registry),
) -> DocumentResponse:
    """Ingest a raw text document."""
    return await _ingest(
        pipeline,
        registry,
        text=request.content,
        name=request.name,
        tenant_id=resolve_tenant_id(http_request),
        request_id=_request_id(http_request),
        document_id=request.document_id,
        page_count=1,
    )


@app.post("/documents/files", response_model=DocumentResponse)
async def upload_document(
    http_request: Request,
    file: UploadFile = File(...),
    pipeline: RAGPipeline = Depends(get_pipeline),
    registry: DocumentRegistry | None = Depends(get_document_registry),
) -> DocumentResponse:
    """Ingest an uploaded PDF, text, markdown or JSON file."""
    request_id = _request_id(http_request)
    filename = file.filename or "upload"
    data = await _read_upload_bytes(file, settings.max_file_bytes)
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    try:
        loaded = load_document_bytes(
            data, filename, content_type=file.content_type, max_bytes=settings.max_file_bytes
        )
    except DocumentTooLargeError as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except (UnsupportedDocumentError, PDFLoaderError) as exc:
        logger.warning(
            "file_load_failed",
            extra={"request_id": request_id, "source_name": filename, "error": type(exc).__name__},
        )
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return await _ingest(
        pipeline,
        registry,
        text=loaded.text,
        name=filename,
        tenant_id=resolve_tenant_id(http_request),
        request_id=request_id,
        size_bytes=len(data),
        page_count=loaded.page_count,
    )


@app.get("/documents", response_model=DocumentListResponse)
async def list_documents(
    http_request: Request,
    registry: DocumentRegistry | None = Depends(get_document_registry),
) -> DocumentListResponse:
    """List the caller's documents, newest first."""
    if registry is None:
        raise HTTPException(status_code=503, detail="Document registry is not configured")
    records = registry.list(resolve_tenant_id(http_request))
    return DocumentListResponse(
        documents=[
            DocumentResponse(
                id=record.id,
                name=record.name,
                chunk_count=record.chunk_count,
                size_bytes=record.size_bytes,
                page_count=record.page_count,
                created_at=record.created_at,
            )
            for record in records
        ]
    )


@app.delete("/documents/{document_id}", response_model=DeleteResponse)
async def delete_document(
    document_id: str,
    http_request: Request,
    pipeline: RAGPipeline = Depends(get_pipeline),
    registry: DocumentRegistry | None = Depends(get_document_registry),
) -> DeleteResponse:
    """Remove a document and its chunks; deleting an unknown id is a no-op."""
    tenant_id = resolve_tenant_id(http_request)
    if registry is not None:
        record = registry.get(document_id)
        if record is not None and record.tenant_id != tenant_id:
            raise HTTPException(status_code=404, detail="Document not found")
    try:
        removed = await pipeline.remove_document(document_id, tenant_id=tenant_id)
    except DocumentOwnershipError as exc:
        raise HTTPException(status_code=404, detail="Document not found") from exc
    if registry is not None:
        registry.delete(document_id)
    logger.info(
        "document_deleted",
        extra={
            "request_id": _request_id(http_request),
            "tenant_id": tenant_id,
            "document_id": document_id,
            "chunks": removed,
        },
    )
    return DeleteResponse(document_id=document_id, deleted_chunks=removed)


@app.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    http_request: Request,
    pipeline: RAGPipeline = Depends(get_pipeline),
) -> ChatResponse:
    """Answer a question grounded in the caller's documents, with citations."""
    request_id = _request_id(http_request)
    tenant_id = resolve_tenant_id(http_request)
    try:
        result = await pipeline.answer(
            request.query,
            top_k=request.top_k,
            score_threshold=request.score_threshold,
            document_ids=request.document_ids,
            tenant_id=tenant_id,
        )
    except (EmbeddingError, EmbeddingConfigError, LLMError) as exc:
        raise _service_error(exc, request_id) from exc
    record_answer(result.outcome.value, result.retrieved)
    logger.info(
        "chat_complete",
        extra={
            "request_id": request_id,
            "tenant_id": tenant_id,
            "retrieved": result.retrieved,
            "citations": len(result.citations),
            "outcome": result.outcome.value,
        },
    )
    return ChatResponse(
        response=result.answer,
        citations=[citation.to_dict() for citation in result.citations],
        is_valid=result.is_valid,
    )
