"""HTTP surface of the publish endpoint (FastAPI).

Read surface (consumers)::

    GET  /manifest/latest?min_sequence=N   -> {content_hash, sequence_number, ...}
    GET  /manifest/{content_hash}          -> raw bytes, immutable cache headers

Write surface (publish automation)::

    POST /manifest?author=<id>             body = manifest bytes
                                           -> 201 {content_hash, sequence_number}

Extras: ``GET /manifest/history`` and ``GET /health``.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from manifestsync import __version__
from manifestsync.config import SyncSettings
from manifestsync.core.hasher import normalize_digest
from manifestsync.core.production_guard import enforce_production_constraints
from manifestsync.core.publisher import PublishEndpoint
from manifestsync.errors import (
    ManifestSyncError,
    ManifestTooLargeError,
    TransientError,
)
from manifestsync.models.revision import (
    LatestPointerView,
    PublishReceipt,
    RevisionSummary,
)

logger = logging.getLogger(__name__)

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


async def read_limited_body(request: Request, limit: int) -> bytes:
    """Read the request body, refusing it as soon as it exceeds *limit* bytes.

    A declared Content-Length over the limit is refused before any of the
    body is read; chunked bodies are counted as they stream in.
    """
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > limit:
        raise ManifestTooLargeError(
            f"manifest is {declared} bytes, limit is {limit}"
        )

    chunks: list[bytes] = []
    total = 0
    async for chunk in request.stream():
        total += len(chunk)
        if total > limit:
            raise ManifestTooLargeError(
                f"manifest exceeds the {limit} byte limit"
            )
        chunks.append(chunk)
    return b"".join(chunks)


def create_app(
    endpoint: PublishEndpoint | None = None,
    settings: SyncSettings | None = None,
) -> FastAPI:
    """Create the manifest service application.

    Args:
        endpoint: Publish endpoint to serve. Built from *settings* if omitted.
        settings: Configuration; the module-level defaults are used if omitted.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        from manifestsync.config import config as settings

    enforce_production_constraints(settings)
    endpoint = endpoint or PublishEndpoint.from_settings(settings)

    app = FastAPI(
        title="manifestsync",
        description="Canonical manifest distribution service",
        version=__version__,
    )
    app.state.endpoint = endpoint
    app.state.settings = settings

    @app.exception_handler(ManifestSyncError)
    async def manifest_error_handler(
        request: Request, exc: ManifestSyncError
    ) -> JSONResponse:
        headers = {"Retry-After": "1"} if isinstance(exc, TransientError) else None
        if exc.http_status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=exc.http_status,
            content={"error": exc.kind, "detail": str(exc)},
            headers=headers,
        )

    # ==================== Health ====================

    @app.get("/health")
    def health() -> dict:
        return {
            "status": "ok",
            "version": __version__,
            "head": endpoint.head(),
        }

    # ==================== Read surface ====================

    @app.get("/manifest/latest", response_model=LatestPointerView)
    def latest(min_sequence: int = Query(0, ge=0)) -> JSONResponse:
        revision = endpoint.resolve_latest(min_sequence)
        ttl = int(endpoint.cache_ttl_seconds)
        return JSONResponse(
            content=revision.pointer().model_dump(mode="json"),
            headers={"Cache-Control": f"max-age={ttl}"},
        )

    @app.get("/manifest/history", response_model=list[RevisionSummary])
    def history(
        limit: int = Query(20, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ) -> list[RevisionSummary]:
        return [
            RevisionSummary(
                sequence_number=rev.sequence_number,
                content_hash=rev.content_hash,
                author=rev.author,
                created_at=rev.created_at,
                size_bytes=rev.size_bytes,
                revision_hash=rev.revision_hash,
            )
            for rev in endpoint.history(limit=limit, offset=offset)
        ]

    @app.get("/manifest/{content_hash}")
    def content(content_hash: str, request: Request) -> Response:
        data = endpoint.get_content(content_hash)
        digest = normalize_digest(content_hash)
        etag = f'"{digest}"'
        headers = {
            "Cache-Control": IMMUTABLE_CACHE_CONTROL,
            "ETag": etag,
            "X-Content-SHA256": digest,
        }
        if request.headers.get("if-none-match") == etag:
            return Response(status_code=304, headers=headers)
        return Response(
            content=data,
            media_type="application/octet-stream",
            headers=headers,
        )

    # ==================== Write surface ====================

    @app.post("/manifest", status_code=201, response_model=PublishReceipt)
    async def publish(
        request: Request,
        author: str = Query(..., min_length=1),
    ) -> PublishReceipt:
        body = await read_limited_body(request, endpoint.max_manifest_bytes)
        revision = await run_in_threadpool(endpoint.publish, body, author)
        return PublishReceipt(
            content_hash=revision.content_hash,
            sequence_number=revision.sequence_number,
        )

    return app
