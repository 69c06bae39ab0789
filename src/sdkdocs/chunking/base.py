"""Piezas comunes de las estrategias de chunking.

- ``slice_text``: corta texto en trozos <= ``max_size`` por párrafos, con overlap,
  sin partir nunca un bloque de código cercado.
- ``make_chunk_id``: ID determinista a partir de (archivo, nombre, estrategia, posición).
- ``ChunkingStrategy``: contrato ``should_split`` / ``split`` de cada estrategia.
"""

from __future__ import annotations

import hashlib
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

from sdkdocs.models import API_TYPES, ChunkMetadata, DocumentChunk, ParsedContent, slugify

DEFAULT_MAX_CHUNK_SIZE = 1500
DEFAULT_OVERLAP_SIZE = 200
OVERSIZE_TOLERANCE = 500

_FENCE_RE = re.compile(r"^\s*(```|~~~)")


@dataclass
class TextSlice:
    text: str
    overlap_with_previous: bool = False
    oversized: bool = False


def make_chunk_id(source_file: str, name: str, strategy: str, locator: str) -> str:
    """Mismo input, mismo ID: requisito de la re-indexación incremental."""
    raw = "\x1f".join([source_file, name, strategy, locator])
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]
    return f"{slugify(name)[:48]}-{digest}"


def _is_fence_close(line: str, fence: str) -> bool:
    stripped = line.strip()
    return stripped.startswith(fence) and not stripped.strip(fence[0])


def split_blocks(text: str) -> list[tuple[str, bool]]:
    """Divide en bloques (párrafos y bloques de código). Devuelve (texto, es_código)."""
    blocks: list[tuple[str, bool]] = []
    current: list[str] = []
    in_fence = False
    fence = ""

    def flush() -> None:
        if current:
            block = "\n".join(current).strip("\n")
            if block.strip():
                blocks.append((block, False))
            current.clear()

    for line in text.split("\n"):
        if in_fence:
            current.append(line)
            if _is_fence_close(line, fence):
                blocks.append(("\n".join(current), True))
                current.clear()
                in_fence = False
            continue
        m = _FENCE_RE.match(line)
        if m:
            flush()
            current.append(line)
            in_fence, fence = True, m.group(1)
            continue
        if not line.strip():
            flush()
            continue
        current.append(line)

    if in_fence and current:
        # bloque sin cerrar: se conserva entero
        blocks.append(("\n".join(current), True))
    else:
        flush()
    return blocks


def _hard_wrap(text: str, limit: int) -> list[str]:
    pieces: list[str] = []
    while len(text) > limit:
        cut = text.rfind(" ", 0, limit)
        if cut <= limit // 2:
            cut = limit
        pieces.append(text[:cut].rstrip())
        text = text[cut:].lstrip()
    if text:
        pieces.append(text)
    return pieces


def _split_prose(block: str, limit: int) -> list[str]:
    """Párrafo más grande que el límite: por líneas y, si hace falta, por palabras."""
    pieces: list[str] = []
    current = ""
    for line in block.split("\n"):
        for part in _hard_wrap(line, limit) if len(line) > limit else [line]:
            candidate = f"{current}\n{part}" if current else part
            if len(candidate) > limit and current:
                pieces.append(current)
                current = part
            else:
                current = candidate
    if current:
        pieces.append(current)
    return pieces


def overlap_tail(text: str, overlap: int) -> str:
    """Últimos ``overlap`` caracteres, empezando en un límite de palabra."""
    if overlap <= 0 or not text:
        return ""
    tail = text[-overlap:]
    if len(text) > overlap:
        space = tail.find(" ")
        if 0 <= space < len(tail) - 1:
            tail = tail[space + 1 :]
    if "```" in tail or "~~~" in tail:
        return ""
    return tail.strip()


def slice_text(text: str, max_size: int, overlap: int = 0) -> list[TextSlice]:
    """Agrupa bloques en trozos <= ``max_size``, arrastrando ``overlap`` caracteres.

    Un bloque de código que por sí solo supera ``max_size`` se emite entero
    y marcado ``oversized``.
    """
    units: list[tuple[str, bool]] = []
    for block, is_code in split_blocks(text):
        if len(block) <= max_size or is_code:
            units.append((block, is_code))
        else:
            units.extend((piece, False) for piece in _split_prose(block, max_size))

    slices: list[TextSlice] = []
    current: list[str] = []
    size = 0
    carried = False

    for unit, _ in units:
        joined = size + len(unit) + (2 if current else 0)
        if current and joined > max_size:
            slices.append(TextSlice("\n\n".join(current), carried))
            tail = overlap_tail(slices[-1].text, overlap)
            if tail and len(tail) + 2 + len(unit) <= max_size:
                current, size, carried = [tail], len(tail), True
            else:
                current, size, carried = [], 0, False
            joined = size + len(unit) + (2 if current else 0)
        if not current and len(unit) > max_size:
            slices.append(TextSlice(unit, False, True))
            continue
        current.append(unit)
        size = joined

    if current:
        slices.append(TextSlice("\n\n".join(current), carried))
    return slices


def render_example(index: int, example) -> str:
    lines = [f"### Example {index}: {example.title or 'Usage'}"]
    if example.explanation:
        lines.append(example.explanation)
    lines.append(f"```{example.language}\n{example.code}\n```")
    return "\n\n".join(lines)


def render_item(item: ParsedContent) -> tuple[str, str]:
    """Devuelve (header, body) del texto base de un ítem.

    Los ítems de API agregan descripción y ejemplos; los documentos ya los
    traen en el cuerpo.
    """
    header = f"# {item.qualified_name}"
    parts: list[str] = []
    if item.metadata.type in API_TYPES:
        if item.description:
            parts.append(item.description)
        if item.content:
            parts.append(item.content)
        if item.examples:
            parts.append("## Examples")
            parts.extend(render_example(i, ex) for i, ex in enumerate(item.examples, 1))
    else:
        body = item.content.strip()
        first, _, rest = body.partition("\n")
        if first.strip().lstrip("#").strip() == item.name and first.startswith("# "):
            body = rest.strip()
        parts.append(body)
    return header, "\n\n".join(p for p in parts if p.strip())


class ChunkingStrategy(ABC):
    """Contrato de una estrategia: ``should_split`` + ``split``.

    ``label`` es el nombre con el que se derivan IDs y metadata; una
    estrategia compuesta puede delegar en otras pasándoles su propio label.
    """

    name: str = ""

    def __init__(self, label: str | None = None) -> None:
        self.label = label or self.name

    @abstractmethod
    def should_split(self, content: ParsedContent, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE) -> bool:
        ...

    @abstractmethod
    def split(
        self, content: ParsedContent, max_chunk_size: int, overlap_size: int
    ) -> list[DocumentChunk]:
        ...

    def single(self, content: ParsedContent) -> DocumentChunk:
        header, body = render_item(content)
        return self.make_chunk(content, f"{header}\n\n{body}".strip(), "0", 0)

    def chunk_items(
        self, items: list[ParsedContent], max_chunk_size: int, overlap_size: int
    ) -> list[DocumentChunk]:
        chunks: list[DocumentChunk] = []
        for item in items:
            if self.should_split(item, max_chunk_size):
                chunks.extend(self.split(item, max_chunk_size, overlap_size))
            else:
                chunks.append(self.single(item))
        return chunks

    def make_chunk(
        self,
        item: ParsedContent,
        text: str,
        locator: str,
        position: int,
        *,
        title: str | None = None,
        overlap: bool = False,
        oversized: bool = False,
        extra_tags: tuple[str, ...] | list[str] = (),
        grouped: list[str] | None = None,
    ) -> DocumentChunk:
        md = item.metadata
        tags = sorted(set(md.tags) | set(extra_tags))
        return DocumentChunk(
            id=make_chunk_id(md.source_file, f"{md.source_path}:{item.parent_id}", self.label, locator),
            content=text,
            locator=locator,
            metadata=ChunkMetadata(
                type=md.type,
                namespace=md.namespace,
                class_name=md.class_name,
                method_name=md.method_name,
                importance=md.importance,
                tags=tags,
                source_file=md.source_file,
                source_path=md.source_path,
                language=md.language,
                category=md.category,
                skill_level=md.skill_level,
                name=item.name,
                title=title or item.qualified_name,
                parent_id=item.parent_id,
                position=position,
                overlap_with_previous=overlap,
                oversized=oversized,
                strategy=self.label,
                grouped=list(grouped or []),
            ),
        )

    def slice_item(
        self,
        item: ParsedContent,
        header: str,
        body: str,
        max_chunk_size: int,
        overlap_size: int,
        *,
        locator_prefix: str = "",
        start_position: int = 0,
        title: str | None = None,
        extra_tags: tuple[str, ...] = (),
    ) -> list[DocumentChunk]:
        """Corta ``body`` por párrafos, repitiendo ``header`` al inicio de cada trozo."""
        budget = max_chunk_size - len(header) - 2
        if budget < max_chunk_size // 2:
            header, budget = "", max_chunk_size
        chunks: list[DocumentChunk] = []
        for i, piece in enumerate(slice_text(body, budget, overlap_size)):
            text = f"{header}\n\n{piece.text}" if header else piece.text
            chunks.append(
                self.make_chunk(
                    item,
                    text,
                    f"{locator_prefix}{i}",
                    start_position + i,
                    title=title,
                    overlap=piece.overlap_with_previous,
                    oversized=piece.oversized or len(text) > max_chunk_size,
                    extra_tags=extra_tags,
                )
            )
        return chunks
