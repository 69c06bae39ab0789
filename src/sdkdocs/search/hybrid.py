"""Ranking híbrido: normaliza puntajes léxicos y los mezcla con similitud vectorial."""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass

import structlog

from sdkdocs.errors import InvalidWeightError
from sdkdocs.indexer.store import ChunkStore
from sdkdocs.models import IMPORTANCE_RANK, LexicalResult, SearchResult, VectorResult
from sdkdocs.search.lexical import LexicalIndex, validate_filters
from sdkdocs.search.vector import VectorIndexAdapter

logger = structlog.get_logger(__name__)


def normalize_weights(lexical_weight: float, semantic_weight: float) -> tuple[float, float]:
    """Recorta cada peso a [0, 1] y re-normaliza para que sumen 1.

    Ambos en 0 → 0.5 / 0.5. Valores no numéricos o NaN fallan de inmediato.
    """
    weights: list[float] = []
    for label, value in (("lexical_weight", lexical_weight), ("semantic_weight", semantic_weight)):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            raise InvalidWeightError(f"{label} inválido: {value!r}")
        weights.append(min(1.0, max(0.0, float(value))))
    total = weights[0] + weights[1]
    if total == 0:
        return 0.5, 0.5
    return weights[0] / total, weights[1] / total


def normalize_lexical(results: list[LexicalResult]) -> dict[str, float]:
    """Divide por el máximo del conjunto; conjunto vacío o máximo 0 → todo 0."""
    if not results:
        return {}
    top = max(r.score for r in results)
    if top <= 0:
        return {r.chunk_id: 0.0 for r in results}
    return {r.chunk_id: r.score / top for r in results}


@dataclass
class _Candidate:
    lexical: float = 0.0
    semantic: float = 0.0
    in_lexical: bool = False
    in_semantic: bool = False


class HybridRanker:
    """Combina índice léxico y adaptador vectorial de un mismo snapshot.

    Args:
        lexical_weight / semantic_weight: Pesos externos, se normalizan al construir.
        candidate_multiplier: Cuántos candidatos pide a cada camino respecto a ``limit``.
    """

    def __init__(
        self,
        lexical: LexicalIndex,
        vector: VectorIndexAdapter | None,
        store: ChunkStore,
        *,
        lexical_weight: float = 0.5,
        semantic_weight: float = 0.5,
        candidate_multiplier: int = 2,
    ) -> None:
        self._lexical = lexical
        self._vector = vector
        self._store = store
        self.lexical_weight, self.semantic_weight = normalize_weights(lexical_weight, semantic_weight)
        self.candidate_multiplier = max(1, candidate_multiplier)

    async def _lexical_search(self, query: str, filters: dict, limit: int) -> list[LexicalResult]:
        return self._lexical.search(query, filters, limit)

    async def _semantic_search(self, query: str, filters: dict, limit: int) -> list[VectorResult]:
        if self._vector is None or not self._vector.is_available():
            return []
        try:
            return await self._vector.semantic_search(query, filters, limit)
        except Exception as exc:
            # el adaptador ya degrada, pero una implementación ajena podría lanzar
            logger.warning("semantic_path_error", error=str(exc) or type(exc).__name__)
            return []

    async def search(
        self, query: str, filters: dict | None = None, limit: int = 10
    ) -> list[SearchResult]:
        active = validate_filters(filters)
        if not query.strip() or limit <= 0 or len(self._store) == 0:
            return []
        candidates_limit = limit * self.candidate_multiplier

        lexical_results, semantic_results = await asyncio.gather(
            self._lexical_search(query, active, candidates_limit),
            self._semantic_search(query, active, candidates_limit),
        )

        merged: dict[str, _Candidate] = {}
        for chunk_id, score in normalize_lexical(lexical_results).items():
            merged.setdefault(chunk_id, _Candidate()).lexical = score
            merged[chunk_id].in_lexical = True
        for result in semantic_results:
            if self._store.get(result.chunk_id) is None:
                # vector store eventualmente consistente: IDs de un snapshot previo
                continue
            merged.setdefault(result.chunk_id, _Candidate()).semantic = result.score
            merged[result.chunk_id].in_semantic = True

        results: list[SearchResult] = []
        for chunk_id, cand in merged.items():
            chunk = self._store.get(chunk_id)
            if chunk is None:
                continue
            score = cand.lexical * self.lexical_weight + cand.semantic * self.semantic_weight
            if cand.in_lexical and cand.in_semantic:
                match_type = "hybrid"
            else:
                match_type = "lexical" if cand.in_lexical else "semantic"
            results.append(
                SearchResult(
                    id=chunk.id,
                    title=chunk.metadata.title,
                    content=chunk.content,
                    metadata=chunk.metadata,
                    score=score,
                    lexical_score=cand.lexical,
                    semantic_score=cand.semantic,
                    match_type=match_type,
                )
            )

        if not results:
            results = self._substring_floor(query, active, limit)

        results.sort(
            key=lambda r: (
                -r.score,
                -IMPORTANCE_RANK.get(r.metadata.importance, 0),
                len(r.content),
                r.id,
            )
        )
        logger.debug(
            "hybrid_search",
            query=query[:80],
            lexical=len(lexical_results),
            semantic=len(semantic_results),
            returned=min(limit, len(results)),
        )
        return results[:limit]

    def _substring_floor(self, query: str, filters: dict, limit: int) -> list[SearchResult]:
        results: list[SearchResult] = []
        for hit in self._store.substring_search(query, filters, limit):
            chunk = self._store.get(hit.chunk_id)
            results.append(
                SearchResult(
                    id=chunk.id,
                    title=chunk.metadata.title,
                    content=chunk.content,
                    metadata=chunk.metadata,
                    score=hit.score,
                    match_type="substring",
                )
            )
        if results:
            logger.info("substring_floor_used", query=query[:80], results=len(results))
        return results
