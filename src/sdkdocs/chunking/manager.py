"""Orquestador de chunking: estrategia, enriquecimiento, optimización y validación."""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass

import structlog

from sdkdocs.chunking.base import (
    DEFAULT_MAX_CHUNK_SIZE,
    DEFAULT_OVERLAP_SIZE,
    OVERSIZE_TOLERANCE,
    ChunkingStrategy,
)
from sdkdocs.chunking.context_aware import ContextAwareStrategy
from sdkdocs.chunking.enhancer import ChunkEnhancer
from sdkdocs.chunking.hierarchical import HierarchicalStrategy
from sdkdocs.chunking.hybrid import HybridStrategy
from sdkdocs.chunking.method_level import MethodLevelStrategy
from sdkdocs.chunking.optimizer import ChunkOptimizer, renumber
from sdkdocs.errors import DuplicateChunkIdError, InvalidChunkingOptionsError, UnknownStrategyError
from sdkdocs.models import (
    ChunkingResult,
    ChunkingRunMetadata,
    ChunkStatistics,
    DocumentChunk,
    ParsedContent,
    ValidationReport,
)

logger = structlog.get_logger(__name__)

MIN_CONTENT_WARNING = 50
MAX_CONTENT_WARNING = 5000

SIZE_BUCKETS = (("0-500", 500), ("501-1000", 1000), ("1001-1500", 1500), ("1501-2000", 2000))


@dataclass
class ChunkingOptions:
    strategy: str = "hybrid"
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE
    overlap_size: int = DEFAULT_OVERLAP_SIZE
    enhance_content: bool = True
    optimize_chunks: bool = True
    validate_output: bool = True
    oversize_tolerance: int = OVERSIZE_TOLERANCE

    def __post_init__(self) -> None:
        if self.max_chunk_size <= 0:
            raise InvalidChunkingOptionsError("max_chunk_size debe ser positivo")
        if self.overlap_size < 0 or self.overlap_size >= self.max_chunk_size:
            raise InvalidChunkingOptionsError(
                f"overlap_size ({self.overlap_size}) debe estar entre 0 y max_chunk_size ({self.max_chunk_size})"
            )
        if self.oversize_tolerance < 0:
            raise InvalidChunkingOptionsError("oversize_tolerance no puede ser negativo")


def default_strategies() -> dict[str, ChunkingStrategy]:
    strategies: list[ChunkingStrategy] = [
        MethodLevelStrategy(),
        ContextAwareStrategy(),
        HierarchicalStrategy(),
        HybridStrategy(),
    ]
    return {s.name: s for s in strategies}


def _size_bucket(size: int) -> str:
    for label, upper in SIZE_BUCKETS:
        if size <= upper:
            return label
    return "2000+"


def get_chunk_statistics(chunks: list[DocumentChunk]) -> ChunkStatistics:
    """Agregación pura sobre un conjunto de chunks."""
    if not chunks:
        return ChunkStatistics(size_distribution={label: 0 for label, _ in SIZE_BUCKETS} | {"2000+": 0})
    sizes = Counter(_size_bucket(len(c.content)) for c in chunks)
    return ChunkStatistics(
        total_chunks=len(chunks),
        average_size=round(sum(len(c.content) for c in chunks) / len(chunks), 1),
        size_distribution={label: sizes.get(label, 0) for label, _ in SIZE_BUCKETS} | {"2000+": sizes.get("2000+", 0)},
        type_distribution=dict(Counter(c.metadata.type for c in chunks)),
        namespace_distribution=dict(Counter(c.metadata.namespace for c in chunks)),
    )


def ensure_unique_ids(chunks: list[DocumentChunk]) -> None:
    """Un ID repetido en la misma corrida es un bug del chunking: falla de inmediato."""
    seen: set[str] = set()
    for chunk in chunks:
        if chunk.id in seen:
            raise DuplicateChunkIdError(chunk.id)
        seen.add(chunk.id)


def validate_chunks(
    chunks: list[DocumentChunk],
    max_chunk_size: int,
    tolerance: int = OVERSIZE_TOLERANCE,
) -> ValidationReport:
    """Chequea invariantes globales; reporta en vez de lanzar (salvo IDs duplicados)."""
    ensure_unique_ids(chunks)
    report = ValidationReport()
    by_content: dict[str, str] = {}
    last_position: dict[str, int] = {}

    for chunk in chunks:
        size = len(chunk.content)
        if not chunk.content.strip():
            report.errors.append(f"{chunk.id}: contenido vacío")
            continue
        if size > max_chunk_size:
            if chunk.metadata.oversized:
                report.warnings.append(f"{chunk.id}: bloque atómico sobredimensionado ({size} caracteres)")
            elif size > max_chunk_size + tolerance:
                report.errors.append(f"{chunk.id}: excede el máximo ({size} > {max_chunk_size})")
            else:
                report.warnings.append(f"{chunk.id}: excede el máximo dentro de la tolerancia ({size})")
        if size < MIN_CONTENT_WARNING:
            report.warnings.append(f"{chunk.id}: contenido muy corto ({size} caracteres)")
        if size > MAX_CONTENT_WARNING and not chunk.metadata.oversized:
            report.warnings.append(f"{chunk.id}: contenido muy largo ({size} caracteres)")

        digest = chunk.content_hash
        if digest in by_content:
            report.warnings.append(f"{chunk.id}: contenido duplicado de {by_content[digest]}")
        else:
            by_content[digest] = chunk.id

        parent = chunk.metadata.parent_id
        if parent in last_position and chunk.metadata.position <= last_position[parent]:
            report.errors.append(f"{chunk.id}: posición fuera de orden en {parent}")
        last_position[parent] = chunk.metadata.position

    report.is_valid = not report.errors
    return report


class ChunkingManager:
    """Registro de estrategias + pipeline de chunking de una corrida.

    Las estrategias se eligen por nombre; un nombre desconocido falla con
    ``UnknownStrategyError`` en lugar de caer en un default.
    """

    def __init__(
        self,
        strategies: dict[str, ChunkingStrategy] | None = None,
        enhancer: ChunkEnhancer | None = None,
        optimizer: ChunkOptimizer | None = None,
    ) -> None:
        self._strategies = dict(strategies) if strategies is not None else default_strategies()
        self._enhancer = enhancer or ChunkEnhancer()
        self._optimizer = optimizer or ChunkOptimizer()

    def register_strategy(self, name: str, strategy: ChunkingStrategy) -> None:
        self._strategies[name] = strategy
        logger.info("strategy_registered", strategy=name)

    def available_strategies(self) -> list[str]:
        return sorted(self._strategies)

    def get_strategy(self, name: str) -> ChunkingStrategy:
        try:
            return self._strategies[name]
        except KeyError:
            raise UnknownStrategyError(name, self.available_strategies()) from None

    def process_content(
        self, items: list[ParsedContent], options: ChunkingOptions | None = None
    ) -> ChunkingResult:
        """Convierte ítems normalizados en chunks acotados, con IDs deterministas."""
        options = options or ChunkingOptions()
        strategy = self.get_strategy(options.strategy)
        t0 = time.time()

        chunks = strategy.chunk_items(items, options.max_chunk_size, options.overlap_size)

        if options.enhance_content:
            by_parent = {item.parent_id: item for item in items}
            chunks = [self._enhancer.enhance(c, by_parent.get(c.metadata.parent_id)) for c in chunks]

        if options.optimize_chunks:
            chunks = self._optimizer.optimize(chunks, options.max_chunk_size, options.overlap_size)
        else:
            chunks = renumber(chunks)

        if options.validate_output:
            validation = validate_chunks(chunks, options.max_chunk_size, options.oversize_tolerance)
        else:
            ensure_unique_ids(chunks)
            validation = ValidationReport()

        elapsed_ms = round((time.time() - t0) * 1000, 1)
        metadata = ChunkingRunMetadata(
            strategy=options.strategy,
            total_input_items=len(items),
            total_output_chunks=len(chunks),
            average_chunk_size=round(sum(len(c.content) for c in chunks) / len(chunks), 1) if chunks else 0.0,
            processing_time_ms=elapsed_ms,
        )
        logger.info(
            "chunking_complete",
            strategy=options.strategy,
            items=len(items),
            chunks=len(chunks),
            errors=len(validation.errors),
            warnings=len(validation.warnings),
            duration_ms=elapsed_ms,
        )
        return ChunkingResult(chunks=chunks, metadata=metadata, validation=validation)

    def get_chunk_statistics(self, chunks: list[DocumentChunk]) -> ChunkStatistics:
        return get_chunk_statistics(chunks)
