"""Tools LangChain que exponen la búsqueda y la guía de workflows a un asistente."""

from __future__ import annotations

from typing import Annotated

import structlog
from langchain_core.tools import tool

from sdkdocs.indexer.pipeline import DocsPipeline
from sdkdocs.models import SearchContext

logger = structlog.get_logger(__name__)

_pipeline: DocsPipeline | None = None


def configure_tools(pipeline: DocsPipeline) -> None:
    """Inyecta el pipeline que usan todas las tools."""
    global _pipeline
    _pipeline = pipeline


def _require_pipeline() -> DocsPipeline:
    if _pipeline is None:
        raise RuntimeError("Tools no configuradas. Llama a configure_tools() primero.")
    return _pipeline


@tool
async def search_documentation(
    query: Annotated[str, "Pregunta o términos de búsqueda en lenguaje natural"],
    namespace: Annotated[str | None, "Filtrar por namespace del SDK (ej: Core, Threads). None para todos"] = None,
    language: Annotated[str | None, "Filtrar por lenguaje (ej: javascript, java, csharp). None para todos"] = None,
    limit: Annotated[int, "Cantidad de resultados a retornar (1-20)"] = 6,
) -> str:
    """Busca en la documentación del SDK (referencia de API y tutoriales).

    Usa esta tool para preguntas sobre qué hace un método, su firma,
    parámetros o ejemplos. Retorna los fragmentos más relevantes.
    """
    pipeline = _require_pipeline()
    filters = {k: v for k, v in (("namespace", namespace), ("language", language)) if v}
    results = await pipeline.search(query, filters or None, max(1, min(limit, 20)))

    if not results:
        return "No se encontraron resultados relevantes en la documentación."

    parts: list[str] = []
    for i, r in enumerate(results, 1):
        md = r.metadata
        parts.append(
            f"[{i}] {r.title} ({md.namespace}, {md.type}) (score: {r.score:.2f}, {r.match_type})\n"
            f"{r.content[:800]}"
        )
    return "\n\n".join(parts)


@tool
async def search_api_with_context(
    query: Annotated[str, "Qué quiere lograr el usuario con el SDK"],
    language: Annotated[str | None, "Lenguaje del proyecto del usuario"] = None,
    framework: Annotated[str | None, "Framework del proyecto (ej: react, spring)"] = None,
    skill_level: Annotated[str | None, "beginner, intermediate o advanced"] = None,
) -> str:
    """Busca APIs y agrega prerequisitos, APIs relacionadas y errores comunes.

    Usa esta tool cuando el usuario necesite saber cómo encadenar llamadas
    o qué debe hacer antes de usar un método.
    """
    pipeline = _require_pipeline()
    context = SearchContext(language=language, framework=framework, skill_level=skill_level)
    results = await pipeline.search_with_context(query, context, 5)

    if not results:
        return "No se encontraron APIs relacionadas con la consulta."

    lines: list[str] = []
    for r in results:
        lines.append(f"## {r.title}")
        lines.append(f"**Relevancia:** {r.score:.2f} | **Contexto:** {r.context_score:.2f} | **Completitud:** {r.completeness:.2f}")
        if r.prerequisites:
            lines.append(f"**Prerequisitos:** {', '.join(r.prerequisites)}")
        if r.related_apis:
            lines.append(f"**APIs relacionadas:** {', '.join(r.related_apis)}")
        for p in r.error_patterns:
            lines.append(f"- `{p.error_type}`: {p.handler}")
        lines.append(r.content[:600])
        lines.append("")
    return "\n".join(lines)


@tool
async def get_method_prerequisites(
    method: Annotated[str, "Nombre del método, Clase.metodo o clave completa (ej: createThread)"],
    language: Annotated[str | None, "Lenguaje, para desambiguar entre SDKs"] = None,
) -> str:
    """Lista los métodos que deben llamarse antes del indicado y los errores que puede lanzar."""
    pipeline = _require_pipeline()
    prerequisites = pipeline.get_prerequisites(method, language)
    errors = pipeline.get_error_patterns(method, language)

    if not prerequisites and not errors:
        return f"No se conocen prerequisitos ni errores para '{method}'."

    lines = [f"## {method}"]
    if prerequisites:
        lines.append("**Llamar antes:**")
        lines.extend(f"- {p}" for p in prerequisites)
    if errors:
        lines.append("**Errores posibles:**")
        lines.extend(f"- `{e.error_type}`: {e.handler}" for e in errors)
    return "\n".join(lines)


@tool
async def suggest_next_steps(
    code: Annotated[str, "Código actual del usuario que usa el SDK"],
    language: Annotated[str | None, "Lenguaje del código"] = None,
) -> str:
    """Revisa el código del usuario y sugiere prerequisitos faltantes y pasos siguientes."""
    pipeline = _require_pipeline()
    suggestions = pipeline.suggest_next_steps(code, language)
    logger.debug("next_steps_tool", suggestions=len(suggestions))
    return "\n".join(f"- [{s.priority}] {s.action}: {s.reason}" for s in suggestions)


ALL_TOOLS = [search_documentation, search_api_with_context, get_method_prerequisites, suggest_next_steps]
