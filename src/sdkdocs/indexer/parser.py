"""Parseo del corpus: specs JSON de la API y documentos Markdown con frontmatter YAML."""

from __future__ import annotations

import dataclasses
import json
import pathlib

import frontmatter
import structlog

from sdkdocs.errors import SourceParseError
from sdkdocs.models import ParsedDoc, RawSource, content_hash

logger = structlog.get_logger(__name__)

SPEC_SUFFIXES = {".json"}
DOC_SUFFIXES = {".md", ".mdx", ".markdown"}


class SpecCache:
    """Cache de archivos parseados, propia de una instancia del pipeline.

    La clave es (ruta relativa, hash del contenido): un archivo modificado
    nunca devuelve fuentes viejas.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], list[RawSource]] = {}

    def get(self, rel_path: str, digest: str) -> list[RawSource] | None:
        return self._entries.get((rel_path, digest))

    def put(self, rel_path: str, digest: str, sources: list[RawSource]) -> None:
        # una sola versión por archivo
        for key in [k for k in self._entries if k[0] == rel_path]:
            del self._entries[key]
        self._entries[(rel_path, digest)] = sources

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def discover_files(root: pathlib.Path) -> list[pathlib.Path]:
    """Lista specs .json y documentos .md/.mdx excluyendo carpetas ocultas."""
    results: list[pathlib.Path] = []
    for p in root.rglob("*"):
        if not p.is_file():
            continue
        parts = p.relative_to(root).parts
        if any(part.startswith(".") or part == "node_modules" for part in parts):
            continue
        if p.suffix.lower() in SPEC_SUFFIXES | DOC_SUFFIXES:
            results.append(p)
    return sorted(results)


def _infer_doc_type(fm: dict, rel_path: str) -> str:
    """Determina el tipo de documento desde frontmatter o por convención del path."""
    declared = str(fm.get("type") or fm.get("category") or "").lower()
    if fm.get("workflow") or "tutorial" in declared:
        return "tutorial"
    lower = rel_path.lower()
    if "tutorial" in lower or "walkthrough" in lower:
        return "tutorial"
    return "guide"


def _infer_title(fm: dict, rel_path: str, body: str) -> str:
    """Obtiene título del frontmatter, del primer heading, o del nombre de archivo."""
    if "title" in fm and fm["title"]:
        return str(fm["title"])
    for line in body.splitlines():
        stripped = line.strip()
        if stripped.startswith("# "):
            return stripped.lstrip("# ").strip()
    return pathlib.PurePosixPath(rel_path).stem.replace("-", " ").replace("_", " ").title()


def parse_markdown(raw: str, rel_path: str) -> ParsedDoc:
    """Parsea un documento markdown extrayendo frontmatter, body y hash."""
    try:
        post = frontmatter.loads(raw)
    except Exception as exc:
        raise SourceParseError(rel_path, f"frontmatter inválido: {exc}") from exc
    fm: dict = dict(post.metadata)
    body: str = post.content

    return ParsedDoc(
        path=rel_path,
        title=_infer_title(fm, rel_path, body),
        doc_type=_infer_doc_type(fm, rel_path),
        frontmatter=fm,
        body=body,
        content_hash=content_hash(raw),
    )


def _api_sources(
    entry: dict,
    *,
    rel_path: str,
    path: str,
    namespace: str,
    language: str | None,
) -> list[RawSource]:
    """Expande una entrada de clase/tipo/función en fuentes crudas."""
    if not isinstance(entry, dict):
        # se deja pasar para que el normalizador la reporte con su path
        return [RawSource("unknown", {"value": entry}, rel_path, path, namespace, language)]

    kind = str(entry.get("type") or entry.get("kind") or "class").lower()
    if kind in ("method", "function"):
        return [RawSource("function", entry, rel_path, path, namespace, language)]

    class_kind = "type" if kind in ("type", "interface") else "class"
    sources = [RawSource(class_kind, entry, rel_path, path, namespace, language)]
    class_name = entry.get("name") if isinstance(entry.get("name"), str) else None
    for group in ("constructors", "methods", "staticMethods"):
        for i, method in enumerate(entry.get(group) or []):
            data = dict(method) if isinstance(method, dict) else {"value": method}
            if group == "constructors":
                data.setdefault("methodType", "constructor")
            sources.append(
                RawSource(
                    "method",
                    data,
                    rel_path,
                    f"{path}.{group}[{i}]",
                    namespace,
                    language,
                    class_name,
                )
            )
    return sources


def parse_api_spec(raw: str, rel_path: str) -> list[RawSource]:
    """Convierte un spec JSON en fuentes crudas.

    Acepta dos formas:

    - ``{"_meta": {"lang": ...}, "Core": [{"title", "content": [...]}]}``
    - ``{"namespaces": [{"name", "language", "classes": [...], "functions": [...]}]}``
    """
    try:
        spec = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SourceParseError(rel_path, f"JSON inválido: {exc}") from exc
    if not isinstance(spec, dict):
        raise SourceParseError(rel_path, "el spec debe ser un objeto JSON")

    meta = spec.get("_meta") if isinstance(spec.get("_meta"), dict) else {}
    default_language = meta.get("lang") or meta.get("language")
    sources: list[RawSource] = []

    if "namespaces" in spec:
        namespaces = spec["namespaces"]
        if isinstance(namespaces, dict):
            namespaces = [{"name": k, **v} for k, v in namespaces.items() if isinstance(v, dict)]
        if not isinstance(namespaces, list):
            raise SourceParseError(rel_path, "'namespaces' debe ser una lista u objeto")
        for n, ns in enumerate(namespaces):
            if not isinstance(ns, dict) or not ns.get("name"):
                raise SourceParseError(rel_path, f"namespaces[{n}] sin 'name'")
            name = str(ns["name"])
            language = ns.get("language") or default_language
            for c, cls in enumerate(ns.get("classes") or []):
                sources.extend(
                    _api_sources(
                        cls,
                        rel_path=rel_path,
                        path=f"namespaces[{n}].classes[{c}]",
                        namespace=name,
                        language=language,
                    )
                )
            for f, fn in enumerate(ns.get("functions") or []):
                data = dict(fn) if isinstance(fn, dict) else {"value": fn}
                sources.append(
                    RawSource(
                        "function", data, rel_path, f"namespaces[{n}].functions[{f}]", name, language
                    )
                )
        return sources

    for ns_name, sections in spec.items():
        if ns_name.startswith("_"):
            continue
        if not isinstance(sections, list):
            logger.warning("spec_namespace_skipped", file=rel_path, namespace=ns_name)
            continue
        for s, section in enumerate(sections):
            if not isinstance(section, dict):
                continue
            namespace = str(section.get("namespace") or ns_name)
            for i, entry in enumerate(section.get("content") or []):
                sources.extend(
                    _api_sources(
                        entry,
                        rel_path=rel_path,
                        path=f"{ns_name}[{s}].content[{i}]",
                        namespace=namespace,
                        language=default_language,
                    )
                )
    return sources


def load_file(
    file_path: pathlib.Path,
    rel_path: str,
    cache: SpecCache | None = None,
) -> list[RawSource]:
    """Lee un archivo del corpus y lo convierte en fuentes crudas, usando la cache.

    Args:
        file_path: Ruta absoluta al archivo.
        rel_path: Ruta relativa dentro del corpus (identidad estable de los chunks).
    """
    try:
        raw = file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceParseError(rel_path, f"no se pudo leer: {exc}") from exc

    digest = content_hash(raw)
    if cache is not None:
        cached = cache.get(rel_path, digest)
        if cached is not None:
            return cached

    if file_path.suffix.lower() in SPEC_SUFFIXES:
        sources = parse_api_spec(raw, rel_path)
    else:
        doc = parse_markdown(raw, rel_path)
        fm = doc.frontmatter
        sources = [
            RawSource(
                "document",
                dataclasses.asdict(doc),
                rel_path,
                "",
                fm.get("namespace"),
                fm.get("language"),
            )
        ]

    if cache is not None:
        cache.put(rel_path, digest, sources)
    return sources
