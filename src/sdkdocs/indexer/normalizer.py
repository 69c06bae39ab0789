"""Normalización de fuentes crudas a ``ParsedContent``.

Funciones puras: no hacen I/O y solo fallan ante entradas estructuralmente
inválidas, con un ``NormalizationError`` que nombra archivo y path.
"""

from __future__ import annotations

import re

from sdkdocs.errors import NormalizationError
from sdkdocs.models import (
    IMPORTANCE_LEVELS,
    CodeExample,
    ContentMetadata,
    ErrorPattern,
    Parameter,
    ParsedContent,
    RawSource,
    ReturnValue,
)

_CAMEL_RE = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")
_FENCE_OPEN_RE = re.compile(r"^\s*(```|~~~)\s*([\w+#.-]*)")
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")

_CRITICAL_NAMES = {"setup", "init", "initialize", "connect", "constructor", "configure"}
_CRITICAL_PREFIXES = ("connect", "initialize", "setup")
_HIGH_PREFIXES = ("create", "send", "update", "delete", "open", "close", "login", "publish", "subscribe")
_MEDIUM_PREFIXES = ("get", "list", "find", "fetch", "read", "is", "has", "search", "count")
_LOW_MARKERS = ("deprecated", "internal use", "@internal", "for internal")


def name_tokens(name: str) -> list[str]:
    """Divide ``createThreadApi`` / ``create_thread`` en tokens en minúsculas."""
    tokens: list[str] = []
    for part in re.split(r"[\s_\-.:/]+", name):
        tokens.extend(t.lower() for t in _CAMEL_RE.findall(part))
    return [t for t in tokens if t]


def determine_importance(
    name: str,
    kind: str,
    description: str = "",
    *,
    namespace: str = "",
    method_type: str = "",
    deprecated: bool = False,
) -> str:
    """Heurística fija de importancia usada por el ranking.

    deprecated/interno → low; constructores, setup/connect → critical;
    mutaciones (create/send/...) → high; getters/listers → medium.
    """
    lower_name = name.lower()
    lower_desc = description.lower()
    if deprecated or name.startswith("_") or any(m in lower_desc for m in _LOW_MARKERS):
        return "low"

    if kind in ("class", "type"):
        if lower_name in ("endpoint", "connection", "client") or namespace.lower() == "core":
            return "high" if kind == "type" else "critical"
        return "medium" if kind == "type" else "high"

    if method_type.lower() in ("constructor", "static-constructor") or lower_name in _CRITICAL_NAMES:
        return "critical"
    if lower_name.startswith(_CRITICAL_PREFIXES):
        return "critical"
    if lower_name.startswith("create") and lower_name.endswith("api"):
        return "critical"
    if lower_name.startswith(_HIGH_PREFIXES):
        return "high"
    if lower_name.startswith(_MEDIUM_PREFIXES):
        return "medium"
    return "medium"


def _require_str(raw: RawSource, key: str, *, allow_empty: bool = False) -> str:
    value = raw.data.get(key)
    if not isinstance(value, str) or (not allow_empty and not value.strip()):
        raise NormalizationError(raw.source_file, raw.path, f"falta el campo requerido '{key}'")
    return value.strip()


def _optional_str(raw: RawSource, key: str) -> str:
    value = raw.data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise NormalizationError(raw.source_file, raw.path, f"'{key}' debe ser texto")
    return value.strip()


def _type_name(value: object) -> tuple[str, bool]:
    """Acepta ``"Connection"`` o ``{"name": "Connection", "optional": true}``."""
    if isinstance(value, dict):
        return str(value.get("name") or "any"), bool(value.get("optional", False))
    if value is None:
        return "any", False
    return str(value), False


def _parameters(raw: RawSource) -> list[Parameter]:
    items = raw.data.get("parameters", raw.data.get("params")) or []
    if not isinstance(items, list):
        raise NormalizationError(raw.source_file, raw.path, "'parameters' debe ser una lista")
    params: list[Parameter] = []
    for i, item in enumerate(items):
        if not isinstance(item, dict) or not item.get("name"):
            raise NormalizationError(
                raw.source_file, f"{raw.path}.parameters[{i}]", "parámetro sin 'name'"
            )
        type_name, optional = _type_name(item.get("type"))
        params.append(
            Parameter(
                name=str(item["name"]),
                description=str(item.get("description") or ""),
                type=type_name,
                optional=optional or bool(item.get("optional", False)),
            )
        )
    return params


def _returns(raw: RawSource) -> list[ReturnValue]:
    items = raw.data.get("returns")
    if items is None:
        return []
    if isinstance(items, (dict, str)):
        items = [items]
    if not isinstance(items, list):
        raise NormalizationError(raw.source_file, raw.path, "'returns' inválido")
    returns: list[ReturnValue] = []
    for item in items:
        if isinstance(item, str):
            returns.append(ReturnValue(type=item))
            continue
        if not isinstance(item, dict):
            raise NormalizationError(raw.source_file, raw.path, "'returns' inválido")
        type_name, _ = _type_name(item.get("type"))
        returns.append(
            ReturnValue(
                type=type_name,
                description=str(item.get("description") or ""),
                name=str(item.get("name") or ""),
            )
        )
    return returns


def _examples(raw: RawSource, default_language: str) -> list[CodeExample]:
    items = raw.data.get("examples") or []
    if isinstance(items, (str, dict)):
        items = [items]
    examples: list[CodeExample] = []
    for i, item in enumerate(items):
        if isinstance(item, str):
            examples.append(CodeExample(title=f"Example {i + 1}", code=item, language=default_language))
        elif isinstance(item, dict) and item.get("code"):
            examples.append(
                CodeExample(
                    title=str(item.get("title") or f"Example {i + 1}"),
                    explanation=str(item.get("explanation") or item.get("description") or ""),
                    code=str(item["code"]),
                    language=str(item.get("language") or default_language),
                )
            )
    return examples


def _declared_errors(raw: RawSource) -> list[ErrorPattern]:
    items = raw.data.get("throws") or raw.data.get("errors") or []
    if isinstance(items, (str, dict)):
        items = [items]
    patterns: list[ErrorPattern] = []
    for item in items:
        if isinstance(item, str):
            patterns.append(ErrorPattern(error_type=item, handler=f"Capturar {item} y reportarlo al usuario"))
        elif isinstance(item, dict) and (item.get("type") or item.get("name")):
            error_type = str(item.get("type") or item.get("name"))
            patterns.append(
                ErrorPattern(
                    error_type=error_type,
                    handler=str(item.get("description") or item.get("handler") or f"Capturar {error_type}"),
                )
            )
    return patterns


def _string_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value if str(v).strip()]
    return []


def _tags(*parts: str | None, extra: list[str] | None = None) -> list[str]:
    tags: set[str] = set()
    for part in parts:
        if part:
            tags.add(part.lower())
            tags.update(name_tokens(part))
    for tag in extra or []:
        tags.add(tag.lower())
    return sorted(t for t in tags if t)


def _namespace(raw: RawSource) -> str:
    if not raw.namespace:
        raise NormalizationError(raw.source_file, raw.path, "ítem sin namespace")
    return raw.namespace


def _normalize_method(raw: RawSource) -> ParsedContent:
    name = _require_str(raw, "name")
    namespace = _namespace(raw)
    description = _optional_str(raw, "description")
    params = _parameters(raw)
    returns = _returns(raw)
    language = raw.language or ""
    signature = _optional_str(raw, "signature") or _optional_str(raw, "snippet")
    if not signature:
        signature = f"{name}({', '.join(p.name for p in params)})"
    method_type = str(raw.data.get("methodType") or raw.data.get("method_type") or "")
    kind = "method" if raw.class_name else "function"

    body = [f"```{language}\n{signature}\n```"]
    notes = _optional_str(raw, "content") or _optional_str(raw, "notes")
    if notes:
        body.append(notes)

    return ParsedContent(
        name=name,
        description=description,
        content="\n\n".join(body),
        metadata=ContentMetadata(
            type=kind,
            namespace=namespace,
            class_name=raw.class_name,
            method_name=name,
            importance=determine_importance(
                name,
                kind,
                description,
                namespace=namespace,
                method_type=method_type,
                deprecated=bool(raw.data.get("deprecated")),
            ),
            tags=_tags(name, namespace, raw.class_name, kind, extra=_string_list(raw.data.get("tags"))),
            source_file=raw.source_file,
            source_path=raw.path,
            language=raw.language,
        ),
        examples=_examples(raw, language),
        parameters=params,
        returns=returns,
        signature=signature,
        declared_prerequisites=_string_list(raw.data.get("prerequisites")),
        declared_errors=_declared_errors(raw),
    )


def _normalize_class(raw: RawSource) -> ParsedContent:
    name = _require_str(raw, "name")
    namespace = _namespace(raw)
    description = _optional_str(raw, "description")
    language = raw.language or ""

    body: list[str] = []
    snippet = _optional_str(raw, "snippet") or _optional_str(raw, "signature")
    if snippet:
        body.append(f"```{language}\n{snippet}\n```")
    fields = raw.data.get("fields") or []
    if isinstance(fields, list) and fields:
        lines = ["## Fields", ""]
        for f in fields:
            if isinstance(f, dict) and f.get("name"):
                type_name, optional = _type_name(f.get("type"))
                opt = "?" if optional else ""
                lines.append(f"- **{f['name']}** ({type_name}{opt}): {f.get('description') or ''}".rstrip())
        body.append("\n".join(lines))
    members = [
        m.get("name")
        for group in ("constructors", "methods", "staticMethods")
        for m in (raw.data.get(group) or [])
        if isinstance(m, dict) and m.get("name")
    ]
    if members:
        body.append("## Methods\n\n" + "\n".join(f"- `{m}()`" for m in members))
    notes = _optional_str(raw, "content")
    if notes:
        body.append(notes)

    kind = "type" if raw.kind == "type" else "class"
    return ParsedContent(
        name=name,
        description=description,
        content="\n\n".join(body),
        metadata=ContentMetadata(
            type="class",
            namespace=namespace,
            class_name=name,
            importance=determine_importance(
                name, kind, description, namespace=namespace, deprecated=bool(raw.data.get("deprecated"))
            ),
            tags=_tags(name, namespace, "class", kind, extra=_string_list(raw.data.get("tags"))),
            source_file=raw.source_file,
            source_path=raw.path,
            language=raw.language,
        ),
        examples=_examples(raw, language),
        declared_prerequisites=_string_list(raw.data.get("prerequisites")),
    )


def extract_code_blocks(body: str) -> list[CodeExample]:
    """Extrae los bloques de código cercados, titulados por el heading más cercano."""
    examples: list[CodeExample] = []
    heading = ""
    in_fence = False
    fence = ""
    lang = ""
    buf: list[str] = []
    for line in body.splitlines():
        if in_fence:
            if line.strip().startswith(fence) and not line.strip().strip(fence[0]):
                examples.append(CodeExample(title=heading, code="\n".join(buf), language=lang))
                in_fence = False
                buf = []
            else:
                buf.append(line)
            continue
        m = _FENCE_OPEN_RE.match(line)
        if m:
            in_fence, fence, lang = True, m.group(1), m.group(2)
            continue
        h = _HEADING_RE.match(line)
        if h:
            heading = h.group(2)
    return examples


def _first_paragraph(body: str) -> str:
    for block in body.split("\n\n"):
        text = block.strip()
        if text and not text.startswith(("#", "```", "~~~", "|", "-", "*", ">")):
            return text[:300]
    return ""


def _normalize_document(raw: RawSource) -> ParsedContent:
    title = _require_str(raw, "title")
    body = _require_str(raw, "body")
    fm: dict = raw.data.get("frontmatter") or {}
    doc_type = raw.data.get("doc_type") or "guide"
    namespace = str(fm.get("namespace") or fm.get("category") or "general")
    language = fm.get("language")
    language = str(language) if language else None

    importance = str(fm.get("importance") or "").lower()
    if importance not in IMPORTANCE_LEVELS:
        importance = "high" if doc_type == "tutorial" else "medium"

    skill = fm.get("skillLevel") or fm.get("skill_level")
    return ParsedContent(
        name=title,
        description=str(fm.get("description") or _first_paragraph(body)),
        content=body,
        metadata=ContentMetadata(
            type=doc_type,
            namespace=namespace,
            importance=importance,
            tags=_tags(title, namespace, doc_type, language, extra=_string_list(fm.get("tags"))),
            source_file=raw.source_file,
            source_path=raw.path,
            language=language,
            category=str(fm["category"]) if fm.get("category") else None,
            skill_level=str(skill) if skill else None,
        ),
        examples=extract_code_blocks(body),
        declared_prerequisites=_string_list(fm.get("prerequisites")),
    )


def normalize(raw: RawSource) -> ParsedContent:
    """Convierte una fuente cruda en ``ParsedContent`` con metadata uniforme."""
    if raw.kind in ("method", "function"):
        return _normalize_method(raw)
    if raw.kind in ("class", "type"):
        return _normalize_class(raw)
    if raw.kind == "document":
        return _normalize_document(raw)
    raise NormalizationError(raw.source_file, raw.path, f"tipo de fuente no soportado '{raw.kind}'")
