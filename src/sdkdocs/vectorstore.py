"""Vector stores: protocolo ``upsert/query/delete``, store en memoria y store pgvector."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import asyncpg
import numpy as np
import structlog
from pgvector.asyncpg import register_vector

logger = structlog.get_logger(__name__)

_EPSILON = 1e-5


@dataclass
class VectorPoint:
    id: str
    vector: list[float]
    metadata: dict = field(default_factory=dict)


@dataclass
class VectorHit:
    id: str
    score: float


class VectorStore(Protocol):
    """Colaborador externo: clave-valor sobre vectores, eventualmente consistente."""

    async def upsert(self, points: list[VectorPoint]) -> None:
        ...

    async def query(
        self, vector: list[float], top_k: int, filter: dict | None = None
    ) -> list[VectorHit]:
        ...

    async def delete(self, ids: list[str]) -> None:
        ...


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom < _EPSILON:
        return 0.0
    return float(np.dot(a, b) / denom)


class InMemoryVectorStore:
    """Store en memoria con similitud coseno sobre numpy.

    Pensado para despliegues offline: los vectores se rehidratan desde
    ``embeddings.json`` al arrancar.
    """

    def __init__(self) -> None:
        self._vectors: dict[str, np.ndarray] = {}
        self._metadata: dict[str, dict] = {}

    def __len__(self) -> int:
        return len(self._vectors)

    async def upsert(self, points: list[VectorPoint]) -> None:
        for p in points:
            vec = np.asarray(p.vector, dtype=np.float32)
            norm = float(np.linalg.norm(vec))
            self._vectors[p.id] = vec / norm if norm > _EPSILON else vec
            self._metadata[p.id] = dict(p.metadata)

    async def query(
        self, vector: list[float], top_k: int, filter: dict | None = None
    ) -> list[VectorHit]:
        ids = [
            i
            for i in self._vectors
            if not filter or all(self._metadata[i].get(k) == v for k, v in filter.items())
        ]
        if not ids or top_k <= 0:
            return []
        q = np.asarray(vector, dtype=np.float32)
        q_norm = float(np.linalg.norm(q))
        if q_norm < _EPSILON:
            return []
        matrix = np.stack([self._vectors[i] for i in ids])
        sims = matrix @ (q / q_norm)
        order = np.argsort(-sims)[:top_k]
        return [VectorHit(id=ids[j], score=float(sims[j])) for j in order]

    async def delete(self, ids: list[str]) -> None:
        for i in ids:
            self._vectors.pop(i, None)
            self._metadata.pop(i, None)


class PgVectorStore:
    """Store sobre Postgres + pgvector (tabla ``chunk_embeddings``)."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def upsert(self, points: list[VectorPoint]) -> None:
        async with self._pool.acquire() as conn:
            await register_vector(conn)
            await conn.executemany(
                """
                INSERT INTO chunk_embeddings (id, namespace, doc_type, language, embedding, updated_at)
                VALUES ($1, $2, $3, $4, $5, now())
                ON CONFLICT (id) DO UPDATE
                SET namespace = EXCLUDED.namespace,
                    doc_type = EXCLUDED.doc_type,
                    language = EXCLUDED.language,
                    embedding = EXCLUDED.embedding,
                    updated_at = now()
                """,
                [
                    (
                        p.id,
                        p.metadata.get("namespace"),
                        p.metadata.get("type"),
                        p.metadata.get("language"),
                        np.asarray(p.vector, dtype=np.float32),
                    )
                    for p in points
                ],
            )

    async def query(
        self, vector: list[float], top_k: int, filter: dict | None = None
    ) -> list[VectorHit]:
        filter = filter or {}
        async with self._pool.acquire() as conn:
            await register_vector(conn)
            rows = await conn.fetch(
                """
                SELECT id, 1 - (embedding <=> $1) AS similarity
                FROM chunk_embeddings
                WHERE ($2::text IS NULL OR namespace = $2)
                  AND ($3::text IS NULL OR doc_type = $3)
                  AND ($4::text IS NULL OR language = $4)
                ORDER BY embedding <=> $1
                LIMIT $5
                """,
                np.asarray(vector, dtype=np.float32),
                filter.get("namespace"),
                filter.get("type"),
                filter.get("language"),
                top_k,
            )
        return [VectorHit(id=r["id"], score=float(r["similarity"])) for r in rows]

    async def delete(self, ids: list[str]) -> None:
        if not ids:
            return
        async with self._pool.acquire() as conn:
            await conn.execute("DELETE FROM chunk_embeddings WHERE id = ANY($1::text[])", ids)
