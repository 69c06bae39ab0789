"""Segunda pasada: re-divide chunks excedidos y fusiona chunks chicos del mismo padre."""

from __future__ import annotations

import dataclasses

import structlog

from sdkdocs.chunking.base import make_chunk_id, slice_text
from sdkdocs.models import DocumentChunk

logger = structlog.get_logger(__name__)


def _header_of(content: str) -> tuple[str, str]:
    """Separa la primera línea si es un heading markdown."""
    first, sep, rest = content.partition("\n")
    if first.startswith("#") and sep:
        return first, rest.strip()
    return "", content


def _derived_id(chunk: DocumentChunk, locator: str) -> str:
    md = chunk.metadata
    return make_chunk_id(md.source_file, f"{md.source_path}:{md.parent_id}", md.strategy, locator)


class ChunkOptimizer:
    """Mantiene el tamaño de los chunks dentro del máximo tras el enriquecimiento.

    Args:
        min_chunk_size: Umbral bajo el cual un chunk se considera chico.
            Por defecto, un quinto del máximo.
    """

    def __init__(self, min_chunk_size: int | None = None) -> None:
        self.min_chunk_size = min_chunk_size

    def optimize(
        self, chunks: list[DocumentChunk], max_chunk_size: int, overlap_size: int
    ) -> list[DocumentChunk]:
        resplit: list[DocumentChunk] = []
        for chunk in chunks:
            if len(chunk.content) > max_chunk_size:
                resplit.extend(self._resplit(chunk, max_chunk_size, overlap_size))
            else:
                resplit.append(chunk)

        min_size = self.min_chunk_size if self.min_chunk_size is not None else max_chunk_size // 5
        merged = self._merge_small(resplit, max_chunk_size, min_size)
        logger.debug(
            "chunks_optimized",
            before=len(chunks),
            after_split=len(resplit),
            after_merge=len(merged),
        )
        return renumber(merged)

    def _resplit(
        self, chunk: DocumentChunk, max_chunk_size: int, overlap_size: int
    ) -> list[DocumentChunk]:
        header, body = _header_of(chunk.content)
        budget = max_chunk_size - len(header) - 2 if header else max_chunk_size
        if budget < max_chunk_size // 2:
            header, body, budget = "", chunk.content, max_chunk_size

        slices = slice_text(body, budget, overlap_size)
        if len(slices) <= 1:
            oversized = len(chunk.content) > max_chunk_size
            return [dataclasses.replace(chunk, metadata=dataclasses.replace(chunk.metadata, oversized=oversized))]

        parts: list[DocumentChunk] = []
        for i, piece in enumerate(slices):
            text = f"{header}\n\n{piece.text}" if header else piece.text
            locator = f"{chunk.locator}.{i}"
            metadata = dataclasses.replace(
                chunk.metadata,
                tags=list(chunk.metadata.tags),
                overlap_with_previous=chunk.metadata.overlap_with_previous if i == 0 else piece.overlap_with_previous,
                oversized=piece.oversized or len(text) > max_chunk_size,
            )
            parts.append(DocumentChunk(id=_derived_id(chunk, locator), content=text, metadata=metadata, locator=locator))
        return parts

    def _merge_small(
        self, chunks: list[DocumentChunk], max_chunk_size: int, min_size: int
    ) -> list[DocumentChunk]:
        result: list[DocumentChunk] = []
        for chunk in chunks:
            if result and self._can_merge(result[-1], chunk, max_chunk_size, min_size):
                result[-1] = self._merge(result[-1], chunk)
            else:
                result.append(chunk)
        return result

    @staticmethod
    def _can_merge(a: DocumentChunk, b: DocumentChunk, max_chunk_size: int, min_size: int) -> bool:
        if a.metadata.parent_id != b.metadata.parent_id:
            return False
        if a.metadata.oversized or b.metadata.oversized or b.metadata.overlap_with_previous:
            return False
        if len(a.content) >= min_size and len(b.content) >= min_size:
            return False
        return len(a.content) + 2 + len(b.content) <= max_chunk_size

    @staticmethod
    def _merge(a: DocumentChunk, b: DocumentChunk) -> DocumentChunk:
        header_a, _ = _header_of(a.content)
        header_b, body_b = _header_of(b.content)
        tail = body_b if header_b and header_b == header_a else b.content
        locator = f"{a.locator}+{b.locator}"
        metadata = dataclasses.replace(
            a.metadata,
            tags=sorted(set(a.metadata.tags) | set(b.metadata.tags)),
            grouped=[*a.metadata.grouped, *b.metadata.grouped],
        )
        return DocumentChunk(
            id=_derived_id(a, locator),
            content=f"{a.content}\n\n{tail}",
            metadata=metadata,
            locator=locator,
        )


def renumber(chunks: list[DocumentChunk]) -> list[DocumentChunk]:
    """Reasigna ``position`` por padre preservando el orden de la fuente."""
    counters: dict[str, int] = {}
    result: list[DocumentChunk] = []
    for chunk in chunks:
        pos = counters.get(chunk.metadata.parent_id, 0)
        counters[chunk.metadata.parent_id] = pos + 1
        if chunk.metadata.position != pos:
            chunk = dataclasses.replace(chunk, metadata=dataclasses.replace(chunk.metadata, position=pos))
        result.append(chunk)
    return result
