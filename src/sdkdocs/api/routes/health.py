"""Endpoints de health check y estadísticas del índice."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request

from sdkdocs import __version__
from sdkdocs.api.schemas import HealthResponse, StatsResponse

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Estado del servicio: camino vectorial, conexión a Postgres (si se usa) y tamaño del índice."""
    pipeline = request.app.state.pipeline
    pool = getattr(request.app.state, "pool", None)
    db_ok: bool | None = None

    if pool is not None:
        try:
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            db_ok = True
        except Exception as exc:
            logger.warning("health_db_failed", error=str(exc))
            db_ok = False

    vector_ok = pipeline.vector.is_available()
    return HealthResponse(
        status="ok" if vector_ok and db_ok is not False else "degraded",
        vector_available=vector_ok,
        db_connected=db_ok,
        chunks=len(pipeline.snapshot.store),
        version=__version__,
    )


@router.get("/stats", response_model=StatsResponse)
async def stats(request: Request) -> StatsResponse:
    s = request.app.state.pipeline.get_statistics()
    return StatsResponse(
        total_chunks=s.total_chunks,
        total_documents=s.total_documents,
        by_namespace=s.by_namespace,
        by_type=s.by_type,
        vector_available=s.vector_available,
        average_chunk_size=s.chunk_statistics.average_size,
        size_distribution=s.chunk_statistics.size_distribution,
    )
