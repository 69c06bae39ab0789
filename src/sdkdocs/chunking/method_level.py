"""Estrategia method-level: un chunk por método/función."""

from __future__ import annotations

from sdkdocs.chunking.base import DEFAULT_MAX_CHUNK_SIZE, ChunkingStrategy, render_item
from sdkdocs.models import DocumentChunk, ParsedContent


class MethodLevelStrategy(ChunkingStrategy):
    """Un chunk por ítem; solo divide cuando el cuerpo supera el máximo.

    Al dividir corta por párrafos y arrastra ``overlap_size`` caracteres del
    trozo anterior al siguiente.
    """

    name = "method-level"

    def should_split(self, content: ParsedContent, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE) -> bool:
        header, body = render_item(content)
        return len(header) + 2 + len(body) > max_chunk_size

    def split(
        self, content: ParsedContent, max_chunk_size: int, overlap_size: int
    ) -> list[DocumentChunk]:
        header, body = render_item(content)
        return self.slice_item(content, header, body, max_chunk_size, overlap_size)
