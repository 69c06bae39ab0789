"""Endpoint de indexación del corpus."""

from __future__ import annotations

from fastapi import APIRouter, Request

from sdkdocs.api.schemas import IndexRequest, IndexResponse
from sdkdocs.indexer.pipeline import IndexOptions

router = APIRouter()


@router.post("/index", response_model=IndexResponse)
async def index(body: IndexRequest, request: Request) -> IndexResponse:
    """Indexa un corpus (ruta local, file:// o repo git) y publica el nuevo snapshot."""
    pipeline = request.app.state.pipeline

    result = await pipeline.index_corpus(
        body.path,
        IndexOptions(
            strategy=body.strategy,
            max_chunk_size=body.max_chunk_size,
            overlap_size=body.overlap_size,
            force_reindex=body.force_reindex,
            branch=body.branch,
        ),
    )

    return IndexResponse(
        documents_indexed=result.documents_indexed,
        files_processed=result.files_processed,
        chunks_created=result.chunks_created,
        chunks_embedded=result.chunks_embedded,
        chunks_skipped=result.chunks_skipped,
        processing_time_ms=result.processing_time_ms,
        errors=result.errors,
        warnings=result.warnings,
    )
