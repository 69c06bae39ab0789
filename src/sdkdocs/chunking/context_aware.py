"""Estrategia context-aware: agrupa una clase con sus métodos más relevantes."""

from __future__ import annotations

from sdkdocs.chunking.base import DEFAULT_MAX_CHUNK_SIZE, ChunkingStrategy, render_item
from sdkdocs.chunking.hierarchical import Section, parse_sections
from sdkdocs.chunking.method_level import MethodLevelStrategy
from sdkdocs.models import IMPORTANCE_RANK, DocumentChunk, ParsedContent

_GROUP_KEYWORDS = {
    "CRUD Operations": ("create", "get", "list", "update", "delete"),
    "Communication": ("send", "message", "publish", "subscribe", "event"),
    "Authentication": ("auth", "login", "connect", "session", "token"),
    "Configuration": ("setup", "init", "config", "option"),
}


def operation_group(name: str) -> str:
    lower = name.lower()
    for group, keywords in _GROUP_KEYWORDS.items():
        if any(k in lower for k in keywords):
            return group
    return "Utilities"


def _member_summary(item: ParsedContent) -> str:
    lines = [f"### {item.name}"]
    if item.description:
        lines.append(item.description)
    if item.signature:
        lines.append(f"```{item.metadata.language or ''}\n{item.signature}\n```")
    return "\n\n".join(lines)


class ContextAwareStrategy(ChunkingStrategy):
    """Agrupa ítems relacionados en un chunk compartido mientras quepan en el máximo.

    Una clase se combina con sus métodos más importantes; los que no caben
    siguen por method-level. En documentos, las secciones H3 viajan con su
    H2 padre mientras el grupo no exceda el máximo.
    """

    name = "context-aware"

    def __init__(self, label: str | None = None) -> None:
        super().__init__(label)
        self._method_level = MethodLevelStrategy(label=self.label)

    def should_split(self, content: ParsedContent, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE) -> bool:
        if content.metadata.type in ("guide", "tutorial"):
            return len(parse_sections(content)) > 1 or self._method_level.should_split(content, max_chunk_size)
        return self._method_level.should_split(content, max_chunk_size)

    def split(
        self, content: ParsedContent, max_chunk_size: int, overlap_size: int
    ) -> list[DocumentChunk]:
        if content.metadata.type in ("guide", "tutorial"):
            return self._split_document(content, max_chunk_size, overlap_size)
        return self._method_level.split(content, max_chunk_size, overlap_size)

    def _split_document(
        self, content: ParsedContent, max_chunk_size: int, overlap_size: int
    ) -> list[DocumentChunk]:
        groups: list[list[Section]] = []
        for section in parse_sections(content):
            if not section.text and section.level == 0:
                continue
            if not groups or section.level <= 2:
                groups.append([section])
            else:
                groups[-1].append(section)

        chunks: list[DocumentChunk] = []
        for g, group in enumerate(groups):
            text = "\n\n".join(f"{s.header()}\n\n{s.text}".strip() for s in group).strip()
            if not text:
                continue
            title = group[0].breadcrumb
            if len(text) <= max_chunk_size:
                chunks.append(self.make_chunk(content, text, f"g{g}", len(chunks), title=title))
                continue
            # el grupo no cabe: cada sección por separado
            for s_idx, section in enumerate(group):
                header = section.header()
                if not section.text:
                    continue
                chunks.extend(
                    self.slice_item(
                        content,
                        header,
                        section.text,
                        max_chunk_size,
                        overlap_size,
                        locator_prefix=f"g{g}.{s_idx}.",
                        start_position=len(chunks),
                        title=section.breadcrumb,
                    )
                )
        return chunks or [self.single(content)]

    def chunk_items(
        self, items: list[ParsedContent], max_chunk_size: int, overlap_size: int
    ) -> list[DocumentChunk]:
        members: dict[tuple[str, str, str], list[ParsedContent]] = {}
        for item in items:
            md = item.metadata
            if md.type == "method" and md.class_name:
                members.setdefault((md.source_file, md.namespace, md.class_name), []).append(item)

        grouped: dict[int, DocumentChunk] = {}
        absorbed: set[int] = set()
        for item in items:
            md = item.metadata
            if md.type != "class":
                continue
            key = (md.source_file, md.namespace, item.name)
            group_chunk, taken = self._group_class(item, members.get(key, []), max_chunk_size)
            if group_chunk is not None:
                grouped[id(item)] = group_chunk
                absorbed.update(id(m) for m in taken)

        chunks: list[DocumentChunk] = []
        for item in items:
            if id(item) in absorbed:
                continue
            if id(item) in grouped:
                chunks.append(grouped[id(item)])
                continue
            chunks.extend(super().chunk_items([item], max_chunk_size, overlap_size))
        return chunks

    def _group_class(
        self, cls: ParsedContent, methods: list[ParsedContent], max_chunk_size: int
    ) -> tuple[DocumentChunk | None, list[ParsedContent]]:
        header, body = render_item(cls)
        text = f"{header}\n\n{body}".strip()
        if not methods or len(text) > max_chunk_size:
            return None, []

        ranked = sorted(
            enumerate(methods),
            key=lambda pair: (-IMPORTANCE_RANK.get(pair[1].metadata.importance, 0), pair[0]),
        )
        taken: list[ParsedContent] = []
        for _, method in ranked:
            summary = _member_summary(method)
            if len(text) + 2 + len(summary) > max_chunk_size:
                continue
            text = f"{text}\n\n{summary}"
            taken.append(method)
        if not taken:
            return None, []

        tags = {operation_group(m.name).lower().replace(" ", "-") for m in taken}
        chunk = self.make_chunk(
            cls,
            text,
            "group",
            0,
            title=f"{cls.name} (grouped)",
            extra_tags=sorted(tags | {"grouped"}),
            grouped=[m.name for m in taken],
        )
        return chunk, taken
