"""Adaptador del índice vectorial sobre los colaboradores de embeddings y vector store."""

from __future__ import annotations

import asyncio
import datetime

import structlog

from sdkdocs.embeddings import EmbeddingProvider, embed_with_retry
from sdkdocs.models import DocumentChunk, VectorIndexReport, VectorRecord, VectorResult
from sdkdocs.search.lexical import validate_filters
from sdkdocs.vectorstore import VectorPoint, VectorStore

logger = structlog.get_logger(__name__)


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class VectorIndexAdapter:
    """Envuelve embeddings + vector store detrás de ``is_available``.

    Ninguna falla del camino vectorial sale de acá durante una búsqueda:
    se registra y el resultado es vacío. Durante la indexación, los chunks
    que agotan reintentos quedan en ``errors`` y el resto sigue.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider | None,
        store: VectorStore | None,
        *,
        batch_size: int = 100,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._embedder = embedder
        self._store = store
        cap = getattr(embedder, "max_batch_size", batch_size) if embedder else batch_size
        self.batch_size = max(1, min(batch_size, cap))
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.timeout_seconds = timeout_seconds
        self._available = False
        self._records: dict[str, VectorRecord] = {}

    @property
    def model_name(self) -> str | None:
        return self._embedder.model_name if self._embedder else None

    async def initialize(self) -> bool:
        """Verifica el camino vectorial con un embedding de prueba. Nunca lanza."""
        if self._embedder is None or self._store is None:
            self._available = False
            logger.info("vector_path_disabled", reason="sin proveedor o store")
            return False
        try:
            await asyncio.wait_for(self._embedder.embed(["ping"]), self.timeout_seconds)
            self._available = True
        except Exception as exc:
            self._available = False
            logger.warning("vector_path_unavailable", error=str(exc) or type(exc).__name__)
        return self._available

    def is_available(self) -> bool:
        return self._available

    # ---------- registros ----------

    @property
    def records(self) -> dict[str, VectorRecord]:
        return dict(self._records)

    async def restore(
        self, records: dict[str, VectorRecord], facets: dict[str, dict] | None = None
    ) -> None:
        """Rehidrata registros (y vectores en el store) desde el estado persistido.

        ``facets`` mapea ID de chunk → facetas, para que los filtros sigan funcionando.
        """
        facets = facets or {}
        self._records = dict(records)
        if not self._available or not records:
            return
        points = [
            VectorPoint(r.chunk_id, r.embedding, facets.get(r.chunk_id, {}))
            for r in records.values()
            if r.embedding
        ]
        try:
            for start in range(0, len(points), self.batch_size):
                await asyncio.wait_for(
                    self._store.upsert(points[start : start + self.batch_size]), self.timeout_seconds
                )
        except Exception as exc:
            logger.warning("vector_restore_failed", error=str(exc) or type(exc).__name__)
            self._records = {}

    def needs_embedding(self, chunk: DocumentChunk) -> bool:
        record = self._records.get(chunk.id)
        return (
            record is None
            or record.content_hash != chunk.content_hash
            or record.embedding_model != self.model_name
        )

    # ---------- indexación ----------

    async def index_documents(
        self, chunks: list[DocumentChunk], force: bool = False
    ) -> VectorIndexReport:
        """Embebe solo chunks nuevos o cambiados (todos con ``force``)."""
        report = VectorIndexReport(available=self._available)
        if not self._available:
            report.skipped = len(chunks)
            return report

        current = {c.id for c in chunks}
        stale = [cid for cid in self._records if cid not in current]
        if stale:
            try:
                await asyncio.wait_for(self._store.delete(stale), self.timeout_seconds)
            except Exception as exc:
                report.errors.append(f"vector_delete: {exc!r}")
            for cid in stale:
                self._records.pop(cid, None)
            report.removed = len(stale)

        pending = [c for c in chunks if force or self.needs_embedding(c)]
        report.skipped = len(chunks) - len(pending)

        for start in range(0, len(pending), self.batch_size):
            batch = pending[start : start + self.batch_size]
            vectors = await self._embed_batch(batch, report)
            done = [(c, v) for c, v in zip(batch, vectors) if v is not None]
            if not done:
                continue
            points = [VectorPoint(c.id, v, c.metadata.facets()) for c, v in done]
            try:
                await asyncio.wait_for(self._store.upsert(points), self.timeout_seconds)
            except Exception as exc:
                logger.warning("vector_upsert_failed", count=len(points), error=str(exc) or type(exc).__name__)
                report.errors.extend(f"upsert:{c.id}: {exc!r}" for c, _ in done)
                continue
            indexed_at = _now()
            for chunk, vector in done:
                self._records[chunk.id] = VectorRecord(
                    chunk_id=chunk.id,
                    content_hash=chunk.content_hash,
                    embedding_model=self.model_name or "",
                    indexed_at=indexed_at,
                    embedding=list(vector),
                )
            report.embedded += len(done)

        logger.info(
            "vector_index_complete",
            embedded=report.embedded,
            skipped=report.skipped,
            removed=report.removed,
            errors=len(report.errors),
        )
        return report

    async def _embed_batch(
        self, batch: list[DocumentChunk], report: VectorIndexReport
    ) -> list[list[float] | None]:
        """Lote completo con reintentos; si falla, chunk por chunk para aislar al culpable."""
        texts = [c.content for c in batch]
        try:
            return await embed_with_retry(
                self._embedder,
                texts,
                max_retries=self.max_retries,
                base_delay=self.retry_base_delay,
                timeout=self.timeout_seconds,
            )
        except Exception as exc:
            if len(batch) == 1:
                report.errors.append(f"embed:{batch[0].id}: {exc}")
                return [None]
            logger.warning("embeddings_batch_failed", size=len(batch), error=str(exc))

        vectors: list[list[float] | None] = []
        for chunk in batch:
            try:
                result = await embed_with_retry(
                    self._embedder,
                    [chunk.content],
                    max_retries=self.max_retries,
                    base_delay=self.retry_base_delay,
                    timeout=self.timeout_seconds,
                )
                vectors.append(result[0])
            except Exception as exc:
                report.errors.append(f"embed:{chunk.id}: {exc}")
                vectors.append(None)
        return vectors

    # ---------- búsqueda ----------

    async def semantic_search(
        self, query: str, filters: dict | None = None, limit: int = 10
    ) -> list[VectorResult]:
        """Similitud en [0, 1]. Cualquier falla o timeout devuelve lista vacía."""
        active = validate_filters(filters)
        if not self._available or not query.strip():
            return []
        try:
            vectors = await asyncio.wait_for(self._embedder.embed([query]), self.timeout_seconds)
            hits = await asyncio.wait_for(
                self._store.query(vectors[0], limit, active or None), self.timeout_seconds
            )
        except Exception as exc:
            logger.warning(
                "semantic_search_failed",
                error=str(exc) or type(exc).__name__,
                query=query[:80],
            )
            return []
        return [VectorResult(chunk_id=h.id, score=min(1.0, max(0.0, h.score))) for h in hits]
