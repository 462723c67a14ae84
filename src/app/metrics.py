from __future__ import annotations

import time

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

from src.app.settings import settings

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
RESPONSE_PARSE_COUNT = Counter(
    "rag_response_parse_total",
    "Model responses by parse outcome",
    ["outcome"],
)
RETRIEVAL_EMPTY_COUNT = Counter(
    "rag_retrieval_empty_total",
    "Questions answered with no retrieved context",
)


def record_answer(outcome: str, retrieved: int) -> None:
    if not settings.metrics_enabled:
        return
    RESPONSE_PARSE_COUNT.labels(outcome).inc()
    if retrieved == 0:
        RETRIEVAL_EMPTY_COUNT.inc()


async def metrics_middleware(request: Request, call_next):
    if not settings.metrics_enabled:
        return await call_next(request)
    path = request.url.path
    if path == "/metrics":
        return await call_next(request)
    start = time.monotonic()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        return response
    finally:
        duration = time.monotonic() - start
        REQUEST_COUNT.labels(request.method, path, str(status)).inc()
        REQUEST_LATENCY.labels(request.method, path).observe(duration)


def metrics_response() -> Response:
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
