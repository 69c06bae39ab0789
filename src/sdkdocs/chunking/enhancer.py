"""Enriquecimiento aditivo de chunks: línea de contexto y tablas de parámetros."""

from __future__ import annotations

import dataclasses

from sdkdocs.indexer.normalizer import name_tokens
from sdkdocs.models import DocumentChunk, ParsedContent


def _cell(text: str) -> str:
    return " ".join(text.replace("|", "\\|").split())


def parameters_table(item: ParsedContent) -> str:
    lines = ["## Parameters", "", "| Name | Type | Description |", "|---|---|---|"]
    for p in item.parameters:
        type_name = f"{p.type}?" if p.optional else p.type
        lines.append(f"| `{_cell(p.name)}` | `{_cell(type_name)}` | {_cell(p.description)} |")
    return "\n".join(lines)


def returns_table(item: ParsedContent) -> str:
    lines = ["## Returns", "", "| Type | Description |", "|---|---|"]
    for r in item.returns:
        lines.append(f"| `{_cell(r.type)}` | {_cell(r.description)} |")
    return "\n".join(lines)


def context_line(chunk: DocumentChunk) -> str:
    md = chunk.metadata
    parts = [f"**Namespace:** {md.namespace}", f"**Type:** {md.type}"]
    if md.class_name and md.type != "class":
        parts.append(f"**Class:** {md.class_name}")
    if md.language:
        parts.append(f"**Language:** {md.language}")
    parts.append(f"**Importance:** {md.importance}")
    return " | ".join(parts)


class ChunkEnhancer:
    """Agrega markup estructural sin reescribir el texto existente.

    Las tablas de parámetros y retorno solo van en el primer chunk de cada ítem.
    """

    def enhance(self, chunk: DocumentChunk, item: ParsedContent | None) -> DocumentChunk:
        additions = [context_line(chunk)]
        tags = set(chunk.metadata.tags)
        if item is not None:
            tags.update(name_tokens(item.name))
            if chunk.metadata.position == 0 and not chunk.metadata.grouped:
                if item.parameters:
                    additions.append(parameters_table(item))
                if item.returns:
                    additions.append(returns_table(item))
        tags.add(chunk.metadata.namespace.lower())

        metadata = dataclasses.replace(chunk.metadata, tags=sorted(tags), enhanced=True)
        content = "\n\n".join([chunk.content, *additions])
        return dataclasses.replace(chunk, content=content, metadata=metadata)
