"""Estrategia hybrid (por defecto): hierarchical para documentos, method-level para la API."""

from __future__ import annotations

from sdkdocs.chunking.base import DEFAULT_MAX_CHUNK_SIZE, ChunkingStrategy
from sdkdocs.chunking.hierarchical import HierarchicalStrategy, has_headings
from sdkdocs.chunking.method_level import MethodLevelStrategy
from sdkdocs.models import API_TYPES, DocumentChunk, ParsedContent


class HybridStrategy(ChunkingStrategy):
    """Aplica hierarchical primero y method-level dentro de secciones sobredimensionadas.

    Los ítems de API (clases, métodos, funciones) traen headings generados
    (``## Examples``) que no son estructura real: van directo a method-level.
    """

    name = "hybrid"

    def __init__(self, label: str | None = None) -> None:
        super().__init__(label)
        self._hierarchical = HierarchicalStrategy(label=self.label)
        self._method_level = MethodLevelStrategy(label=self.label)

    def _select(self, content: ParsedContent) -> ChunkingStrategy:
        if content.metadata.type in API_TYPES or not has_headings(content):
            return self._method_level
        return self._hierarchical

    def should_split(self, content: ParsedContent, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE) -> bool:
        return self._select(content).should_split(content, max_chunk_size)

    def split(
        self, content: ParsedContent, max_chunk_size: int, overlap_size: int
    ) -> list[DocumentChunk]:
        chunks = self._select(content).split(content, max_chunk_size, overlap_size)
        for chunk in chunks:
            if "hybrid-chunked" not in chunk.metadata.tags:
                chunk.metadata.tags = sorted([*chunk.metadata.tags, "hybrid-chunked"])
        return chunks
