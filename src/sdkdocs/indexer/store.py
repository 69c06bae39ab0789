"""Chunk store autoritativo y archivos de estado persistido.

Archivos en ``data_dir``:

- ``processed_chunks.json``: chunks por ID con contenido y metadata.
- ``indexing_summary.json``: metadata de la corrida, estadísticas, validación y grafo de relaciones.
- ``embeddings.json``: ID de chunk → vector + modelo + timestamp.
"""

from __future__ import annotations

import dataclasses
import json
import pathlib
from dataclasses import dataclass, field

import structlog

from sdkdocs.models import (
    IMPORTANCE_RANK,
    ChunkMetadata,
    DocumentChunk,
    ErrorPattern,
    LexicalResult,
    MethodInfo,
    RelationshipGraph,
    VectorRecord,
    WorkflowStep,
)
from sdkdocs.search.lexical import matches_filters, validate_filters

logger = structlog.get_logger(__name__)

CHUNKS_FILE = "processed_chunks.json"
SUMMARY_FILE = "indexing_summary.json"
EMBEDDINGS_FILE = "embeddings.json"


class ChunkStore:
    """Única copia autoritativa de los chunks de un snapshot del índice."""

    def __init__(self, chunks: list[DocumentChunk] | None = None) -> None:
        self._chunks: dict[str, DocumentChunk] = {c.id: c for c in chunks or []}

    def get(self, chunk_id: str) -> DocumentChunk | None:
        return self._chunks.get(chunk_id)

    def all(self) -> list[DocumentChunk]:
        return list(self._chunks.values())

    def ids(self) -> set[str]:
        return set(self._chunks)

    def __len__(self) -> int:
        return len(self._chunks)

    def __iter__(self):
        return iter(self._chunks.values())

    def substring_search(
        self, query: str, filters: dict | None = None, limit: int | None = None
    ) -> list[LexicalResult]:
        """Búsqueda de último recurso por substring, sin umbral de largo de términos.

        Frase completa → 1.0; si no, fracción de palabras encontradas × 0.5.
        """
        active = validate_filters(filters)
        phrase = " ".join(query.lower().split())
        if not phrase:
            return []
        words = [w for w in phrase.split() if len(w) >= 2] or phrase.split()

        hits: list[tuple[float, DocumentChunk]] = []
        for chunk in self._chunks.values():
            if active and not matches_filters(chunk.metadata.facets(), active):
                continue
            text = chunk.content.lower()
            if phrase in text:
                hits.append((1.0, chunk))
                continue
            found = sum(1 for w in words if w in text)
            if found:
                hits.append((0.5 * found / len(words), chunk))

        hits.sort(
            key=lambda pair: (
                -pair[0],
                -IMPORTANCE_RANK.get(pair[1].metadata.importance, 0),
                len(pair[1].content),
                pair[1].id,
            )
        )
        if limit is not None:
            hits = hits[:limit]
        return [LexicalResult(chunk_id=c.id, score=score) for score, c in hits]


# ---------- (de)serialización ----------

def chunk_to_dict(chunk: DocumentChunk) -> dict:
    return dataclasses.asdict(chunk)


def chunk_from_dict(data: dict) -> DocumentChunk:
    return DocumentChunk(
        id=data["id"],
        content=data["content"],
        metadata=ChunkMetadata(**data["metadata"]),
        locator=data.get("locator", "0"),
    )


def graph_from_dict(data: dict) -> RelationshipGraph:
    return RelationshipGraph(
        prerequisites={k: list(v) for k, v in (data.get("prerequisites") or {}).items()},
        common_patterns={
            k: [WorkflowStep(**step) for step in v] for k, v in (data.get("common_patterns") or {}).items()
        },
        usage_frequency={k: int(v) for k, v in (data.get("usage_frequency") or {}).items()},
        error_patterns={
            k: [ErrorPattern(**p) for p in v] for k, v in (data.get("error_patterns") or {}).items()
        },
        methods={k: MethodInfo(**v) for k, v in (data.get("methods") or {}).items()},
    )


@dataclass
class PersistedState:
    chunks: list[DocumentChunk] = field(default_factory=list)
    summary: dict = field(default_factory=dict)
    records: dict[str, VectorRecord] = field(default_factory=dict)


def _write_json(path: pathlib.Path, payload: object) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
    tmp.replace(path)


def save_state(
    data_dir: pathlib.Path,
    chunks: list[DocumentChunk],
    summary: dict,
    records: dict[str, VectorRecord],
) -> None:
    """Escribe los tres archivos (cada uno reemplazado de forma atómica)."""
    data_dir.mkdir(parents=True, exist_ok=True)
    _write_json(data_dir / CHUNKS_FILE, {c.id: chunk_to_dict(c) for c in chunks})
    _write_json(data_dir / SUMMARY_FILE, summary)
    _write_json(data_dir / EMBEDDINGS_FILE, {cid: dataclasses.asdict(r) for cid, r in records.items()})
    logger.info("state_saved", dir=str(data_dir), chunks=len(chunks), embeddings=len(records))


def load_state(data_dir: pathlib.Path) -> PersistedState | None:
    """Carga el estado persistido; ``None`` si no hay un índice previo."""
    chunks_path = data_dir / CHUNKS_FILE
    if not chunks_path.exists():
        return None

    raw_chunks = json.loads(chunks_path.read_text(encoding="utf-8"))
    chunks = [chunk_from_dict(d) for d in raw_chunks.values()]

    summary: dict = {}
    summary_path = data_dir / SUMMARY_FILE
    if summary_path.exists():
        summary = json.loads(summary_path.read_text(encoding="utf-8"))

    records: dict[str, VectorRecord] = {}
    emb_path = data_dir / EMBEDDINGS_FILE
    if emb_path.exists():
        raw_records = json.loads(emb_path.read_text(encoding="utf-8"))
        records = {cid: VectorRecord(**r) for cid, r in raw_records.items()}

    logger.info("state_loaded", dir=str(data_dir), chunks=len(chunks), embeddings=len(records))
    return PersistedState(chunks=chunks, summary=summary, records=records)
