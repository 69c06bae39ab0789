"""Estrategia hierarchical: respeta la estructura de headings H1/H2/H3."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from sdkdocs.chunking.base import DEFAULT_MAX_CHUNK_SIZE, ChunkingStrategy, render_item
from sdkdocs.models import DocumentChunk, ParsedContent

_HEADING_RE = re.compile(r"^(#{1,3})\s+(.+?)\s*#*\s*$")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


@dataclass
class Section:
    level: int
    title: str
    path: list[str] = field(default_factory=list)
    lines: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.lines).strip()

    @property
    def breadcrumb(self) -> str:
        return " > ".join(self.path)

    def header(self) -> str:
        return f"{'#' * max(self.level, 1)} {self.title}"


def parse_sections(item: ParsedContent) -> list[Section]:
    """Divide el cuerpo en secciones por headings, ignorando ``#`` dentro de código.

    El texto previo al primer heading queda en una sección de nivel 0 con el
    nombre del ítem.
    """
    _, body = render_item(item)
    root = Section(level=0, title=item.name, path=[item.name])
    sections = [root]
    stack: list[Section] = [root]
    in_fence = False
    fence = ""

    for line in body.split("\n"):
        m = _FENCE_RE.match(line)
        if in_fence:
            if m and line.strip().startswith(fence) and not line.strip().strip(fence[0]):
                in_fence = False
            stack[-1].lines.append(line)
            continue
        if m:
            in_fence, fence = True, m.group(1)
            stack[-1].lines.append(line)
            continue
        h = _HEADING_RE.match(line)
        if h:
            level = len(h.group(1))
            title = h.group(2).strip()
            while len(stack) > 1 and stack[-1].level >= level:
                stack.pop()
            parent_path = stack[-1].path if stack[-1].level > 0 else [item.name]
            section = Section(level=level, title=title, path=[*parent_path, title])
            sections.append(section)
            stack.append(section)
            continue
        stack[-1].lines.append(line)

    return sections


def has_headings(item: ParsedContent) -> bool:
    return len(parse_sections(item)) > 1


class HierarchicalStrategy(ChunkingStrategy):
    """Un chunk por sección; solo corta dentro de una sección que excede el máximo."""

    name = "hierarchical"

    def should_split(self, content: ParsedContent, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE) -> bool:
        header, body = render_item(content)
        return has_headings(content) or len(header) + 2 + len(body) > max_chunk_size

    def section_header(self, section: Section) -> str:
        if section.level <= 1:
            return section.header() if section.level else f"# {section.title}"
        return f"Navigation: {section.breadcrumb}\n\n{section.header()}"

    def split(
        self, content: ParsedContent, max_chunk_size: int, overlap_size: int
    ) -> list[DocumentChunk]:
        chunks: list[DocumentChunk] = []
        for idx, section in enumerate(parse_sections(content)):
            body = section.text
            if not body:
                continue
            header = self.section_header(section)
            tags = (f"level-{section.level}",)
            text = f"{header}\n\n{body}"
            if len(text) <= max_chunk_size:
                chunks.append(
                    self.make_chunk(
                        content,
                        text,
                        f"s{idx}",
                        len(chunks),
                        title=section.breadcrumb,
                        extra_tags=tags,
                    )
                )
                continue
            chunks.extend(
                self.slice_item(
                    content,
                    header,
                    body,
                    max_chunk_size,
                    overlap_size,
                    locator_prefix=f"s{idx}.",
                    start_position=len(chunks),
                    title=section.breadcrumb,
                    extra_tags=tags,
                )
            )
        if not chunks:
            chunks.append(self.single(content))
        return chunks
