"""Grafo de relaciones entre métodos de la API: prerequisitos, patrones y errores.

Es heurístico: produce sugerencias razonables, no verdad absoluta. Las
fuentes de un prerequisito, en orden de confianza:

1. ``prerequisites`` declarados en el spec o en el frontmatter.
2. Referencias ``metodo()`` / `metodo` junto a palabras de orden ("after", "requires", ...).
3. Tipos de parámetros (o ``threadId``) que otro método produce.
4. Frases de requisito en la descripción ("requires an active connection").
5. Inicializadores globales (``setup``/``init``, "before any other operation").
"""

from __future__ import annotations

import re
from collections import Counter, defaultdict
from dataclasses import dataclass, field

import structlog

from sdkdocs.models import (
    API_TYPES,
    ErrorPattern,
    MethodInfo,
    ParsedContent,
    RelationshipGraph,
    WorkflowStep,
    slugify,
)

logger = structlog.get_logger(__name__)

_PRIMITIVES = {
    "any", "array", "bool", "boolean", "buffer", "byte", "bytes", "char", "dict", "double",
    "float", "int", "integer", "list", "long", "map", "null", "number", "object", "optional",
    "promise", "record", "set", "str", "string", "uint8array", "undefined", "unknown", "void",
    "future", "task", "callable", "function", "none", "self", "type", "date", "datetime",
}
_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_REQUIREMENT_RE = re.compile(
    r"\b(?:requires?|needs?|must have|within|inside)\s+"
    r"(?:an?\s+|the\s+)?(?:active\s+|valid\s+|open\s+|existing\s+|established\s+|authenticated\s+)?"
    r"([a-z][a-z_]+)",
    re.IGNORECASE,
)
_ORDERING_WORDS = ("after", "before", "requires", "require", "first", "must", "prerequisite", "once")
_REFERENCE_RE = re.compile(r"`([A-Za-z_][\w.]*)(?:\(\))?`|\b([A-Za-z_][\w.]*)\(\)")
_INITIALIZER_NAMES = {"setup", "init", "initialize", "initialise", "configure"}
_INITIALIZER_TEXT_RE = re.compile(
    r"before any other|must be called first|call (?:this )?first|initiali[sz]es the (?:library|sdk|client)",
    re.IGNORECASE,
)
_THROWS_RE = re.compile(r"\b(?:[Tt]hrows|[Rr]aises)\s+(?:an?\s+)?`?([A-Z]\w*(?:Error|Exception))`?")
_VERB_NOUNS = {
    "connect": "connection",
    "login": "session",
    "signin": "session",
    "authenticate": "session",
    "opensession": "session",
}
_PRODUCER_PREFIXES = ("create", "open", "new", "connect", "init", "start", "register")
_MAX_PATTERN_STEPS = 6


def _type_terms(type_name: str) -> set[str]:
    return {t.lower() for t in _IDENT_RE.findall(type_name) if t.lower() not in _PRIMITIVES}


def _param_name_term(name: str) -> str | None:
    """``threadId`` → ``thread``; ``connection`` → ``connection``."""
    m = re.match(r"^([a-z][a-zA-Z0-9]*?)(?:Id|_id|ID)$", name)
    if m:
        return m.group(1).lower()
    return None


def _singular(word: str) -> str:
    word = word.lower()
    if word.endswith("ies"):
        return word[:-3] + "y"
    if word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def _verb_rest(name: str, verb: str) -> str | None:
    """Resto del nombre si empieza con ``verb`` como palabra: ``createThread`` → ``Thread``.

    ``connectionStatus`` no empieza con el verbo ``connect``.
    """
    if name[: len(verb)].lower() != verb:
        return None
    rest = name[len(verb):]
    if rest and not (rest[0].isupper() or rest[0] in "_-"):
        return None
    return rest.lstrip("_-")


def _starts_with_any(name: str, verbs: tuple[str, ...]) -> bool:
    return any(_verb_rest(name, v) is not None for v in verbs)


@dataclass
class _MethodFacts:
    key: str
    name: str
    namespace: str
    class_name: str | None
    language: str | None
    description: str
    importance: str
    requirements: set[str] = field(default_factory=set)
    produces: set[str] = field(default_factory=set)
    references: list[str] = field(default_factory=list)
    declared: list[str] = field(default_factory=list)
    errors: list[ErrorPattern] = field(default_factory=list)
    initializer: bool = False


def method_key(namespace: str, name: str, class_name: str | None = None, language: str | None = None) -> str:
    dotted = ".".join(p for p in (namespace, class_name, name) if p)
    return f"{language}:{dotted}" if language else dotted


@dataclass
class NamespaceSpec:
    """Ítems normalizados de un namespace, entrada de ``analyze``."""

    name: str
    items: list[ParsedContent] = field(default_factory=list)


def group_by_namespace(items: list[ParsedContent]) -> list[NamespaceSpec]:
    groups: dict[str, NamespaceSpec] = {}
    for item in items:
        groups.setdefault(item.metadata.namespace, NamespaceSpec(item.metadata.namespace)).items.append(item)
    return list(groups.values())


class RelationshipAnalyzer:
    """Acumula hechos por namespace y resuelve el grafo de forma perezosa.

    La resolución es global: un inicializador de ``Core`` aplica a los
    métodos de ``Threads`` aunque se analicen en otro orden.
    """

    def __init__(self) -> None:
        self._facts: dict[str, _MethodFacts] = {}
        self._by_name: dict[str, list[str]] = defaultdict(list)
        self._snippets: list[str] = []
        self._graph: RelationshipGraph | None = None
        self._loaded = False

    @classmethod
    def from_graph(cls, graph: RelationshipGraph) -> RelationshipAnalyzer:
        """Reconstruye un analizador de solo lectura desde un grafo persistido.

        Los candidatos por nombre se registran en el orden en que se
        analizaron, así un nombre ambiguo resuelve igual que en vivo.
        """
        analyzer = cls()
        analyzer._graph = graph
        analyzer._loaded = True
        keys = [*graph.methods, *graph.prerequisites, *graph.usage_frequency, *graph.error_patterns]
        for key in dict.fromkeys(keys):
            info = graph.methods.get(key)
            name = info.name if info else key.rsplit(".", 1)[-1]
            analyzer._register(key, name, info.class_name if info else None)
        return analyzer

    def _register(self, key: str, name: str, class_name: str | None) -> None:
        self._by_name[name.lower()].append(key)
        if class_name:
            self._by_name[f"{class_name}.{name}".lower()].append(key)

    # ---------- construcción ----------

    def analyze(self, namespace: NamespaceSpec, language: str | None = None) -> None:
        """Registra métodos y ejemplos de un namespace."""
        for item in namespace.items:
            lang = language or item.metadata.language
            for example in item.examples:
                if example.code.strip():
                    self._snippets.append(example.code)
            if item.metadata.type not in API_TYPES:
                continue
            if item.metadata.type == "class":
                continue
            facts = self._extract(item, namespace.name, lang)
            if facts.key not in self._facts:
                self._register(facts.key, facts.name, facts.class_name)
            self._facts[facts.key] = facts
        self._graph = None
        logger.debug("namespace_analyzed", namespace=namespace.name, methods=len(self._facts))

    def add_snippets(self, snippets: list[str]) -> None:
        self._snippets.extend(s for s in snippets if s.strip())
        self._graph = None

    def _extract(self, item: ParsedContent, namespace: str, language: str | None) -> _MethodFacts:
        md = item.metadata
        key = method_key(namespace, item.name, md.class_name, language)
        text = f"{item.description}\n{item.content}"
        facts = _MethodFacts(
            key=key,
            name=item.name,
            namespace=namespace,
            class_name=md.class_name,
            language=language,
            description=item.description or item.content[:200],
            importance=md.importance,
            declared=list(item.declared_prerequisites),
            errors=list(item.declared_errors),
        )

        for param in item.parameters:
            facts.requirements |= _type_terms(param.type)
            term = _param_name_term(param.name)
            if term:
                facts.requirements.add(term)
        for match in _REQUIREMENT_RE.finditer(text):
            facts.requirements.add(_singular(match.group(1)))

        for ret in item.returns:
            facts.produces |= _type_terms(ret.type)
        lower = item.name.lower()
        for verb, noun in _VERB_NOUNS.items():
            if _verb_rest(item.name, verb) is not None:
                facts.produces.add(noun)
        for prefix in _PRODUCER_PREFIXES:
            rest = _verb_rest(item.name, prefix)
            if rest:
                facts.produces.add(_singular(rest))
        facts.requirements -= facts.produces

        for sentence in re.split(r"(?<=[.!?])\s+", item.description):
            if any(w in sentence.lower() for w in _ORDERING_WORDS):
                for m in _REFERENCE_RE.finditer(sentence):
                    ref = m.group(1) or m.group(2)
                    if ref and ref.lower() != lower:
                        facts.references.append(ref)

        facts.initializer = lower in _INITIALIZER_NAMES or bool(_INITIALIZER_TEXT_RE.search(text))

        for m in _THROWS_RE.finditer(text):
            if all(e.error_type != m.group(1) for e in facts.errors):
                facts.errors.append(ErrorPattern(m.group(1), f"Capturar {m.group(1)} y reintentar o informar"))
        if _starts_with_any(item.name, ("connect", "login", "open")):
            facts.errors.append(
                ErrorPattern("CONNECTION_FAILED", "Verificar endpoint y credenciales; reintentar con backoff")
            )
        elif _starts_with_any(item.name, ("create",)):
            facts.errors.append(
                ErrorPattern("CREATION_FAILED", "Validar parámetros y permisos antes de reintentar la creación")
            )
        elif _starts_with_any(item.name, ("get", "fetch", "find")):
            facts.errors.append(
                ErrorPattern("NOT_FOUND", "Manejar el recurso inexistente antes de usar el resultado")
            )
        return facts

    # ---------- consultas ----------

    def resolve_key(self, name: str, language: str | None = None) -> str | None:
        """Acepta la clave completa, ``Clase.metodo`` o el nombre del método."""
        if name in self._facts or (self._loaded and name in self._all_keys()):
            return name
        candidates = self._by_name.get(name.lower(), [])
        if not candidates and "." in name:
            candidates = self._by_name.get(name.rsplit(".", 1)[-1].lower(), [])
        if language:
            preferred = [c for c in candidates if c.startswith(f"{language}:")]
            candidates = preferred or candidates
        return candidates[0] if candidates else None

    def _all_keys(self) -> set[str]:
        graph = self.get_relationship_graph()
        return set(graph.prerequisites) | set(graph.usage_frequency) | set(graph.error_patterns)

    def get_prerequisites(self, key: str) -> list[str]:
        resolved = self.resolve_key(key)
        if resolved is None:
            return []
        return list(self.get_relationship_graph().prerequisites.get(resolved, []))

    def get_error_patterns(self, key: str) -> list[ErrorPattern]:
        resolved = self.resolve_key(key)
        if resolved is None:
            return []
        return list(self.get_relationship_graph().error_patterns.get(resolved, []))

    def get_common_patterns(self, key: str) -> list[WorkflowStep]:
        resolved = self.resolve_key(key)
        if resolved is None:
            return []
        return list(self.get_relationship_graph().common_patterns.get(resolved, []))

    def get_usage_frequency(self, key: str) -> int:
        resolved = self.resolve_key(key)
        return self.get_relationship_graph().usage_frequency.get(resolved, 0) if resolved else 0

    def get_relationship_graph(self) -> RelationshipGraph:
        if self._graph is None:
            self._graph = self._resolve()
        return self._graph

    def describe(self, key: str) -> str:
        facts = self._facts.get(key)
        if facts:
            return facts.description
        info = self.get_relationship_graph().methods.get(key)
        return info.description if info else ""

    def known_methods(self) -> list[str]:
        return sorted(self._all_keys()) if self._loaded else sorted(self._facts)

    def get_stats(self) -> dict[str, int]:
        graph = self.get_relationship_graph()
        return {
            "methods": len(self.known_methods()),
            "with_prerequisites": sum(1 for v in graph.prerequisites.values() if v),
            "with_patterns": len(graph.common_patterns),
            "snippets": len(self._snippets),
        }

    # ---------- resolución ----------

    def _same_language(self, a: _MethodFacts, b: _MethodFacts) -> bool:
        return a.language is None or b.language is None or a.language == b.language

    def _lookup(self, ref: str, origin: _MethodFacts) -> str | None:
        candidates = self._by_name.get(ref.lower()) or self._by_name.get(ref.rsplit(".", 1)[-1].lower(), [])
        candidates = [c for c in candidates if self._same_language(self._facts[c], origin)]
        return candidates[0] if candidates else None

    def _resolve(self) -> RelationshipGraph:
        producers: dict[str, list[_MethodFacts]] = defaultdict(list)
        initializers: list[_MethodFacts] = []
        for facts in self._facts.values():
            for term in facts.produces:
                producers[term].append(facts)
            if facts.initializer:
                initializers.append(facts)

        prerequisites: dict[str, list[str]] = {}
        for facts in self._facts.values():
            found: list[str] = []
            for ref in [*facts.declared, *facts.references]:
                key = self._lookup(ref, facts)
                found.append(key or ref)
            for term in sorted(facts.requirements):
                options = [
                    p for p in producers.get(term, [])
                    if p.key != facts.key and self._same_language(p, facts)
                ]
                options.sort(key=lambda p: (p.namespace != facts.namespace, p.name.lower()))
                found.extend(p.key for p in options[:2])
            if not facts.initializer:
                found.extend(
                    i.key for i in initializers if i.key != facts.key and self._same_language(i, facts)
                )
            prerequisites[facts.key] = list(dict.fromkeys(k for k in found if k != facts.key))

        usage, patterns = self._co_occurrence(prerequisites)
        error_patterns = {k: f.errors for k, f in self._facts.items() if f.errors}

        logger.info(
            "relationship_graph_built",
            methods=len(self._facts),
            snippets=len(self._snippets),
            patterns=len(patterns),
        )
        return RelationshipGraph(
            prerequisites=prerequisites,
            common_patterns=patterns,
            usage_frequency=usage,
            error_patterns=error_patterns,
            methods={k: MethodInfo(f.name, f.class_name, f.description) for k, f in self._facts.items()},
        )

    def _co_occurrence(
        self, prerequisites: dict[str, list[str]]
    ) -> tuple[dict[str, int], dict[str, list[WorkflowStep]]]:
        usage: dict[str, int] = {k: 0 for k in self._facts}
        together: dict[str, Counter] = defaultdict(Counter)
        before: dict[str, Counter] = defaultdict(Counter)
        call_patterns = {
            name: re.compile(rf"\b{re.escape(name)}\s*\(", re.IGNORECASE)
            for name in self._by_name
            if "." not in name
        }

        for snippet in self._snippets:
            hits: list[tuple[int, str]] = []
            for name, pattern in call_patterns.items():
                m = pattern.search(snippet)
                if m:
                    hits.append((m.start(), self._by_name[name][0]))
            hits.sort()
            sequence = list(dict.fromkeys(key for _, key in hits))
            for i, key in enumerate(sequence):
                usage[key] = usage.get(key, 0) + 1
                for j, other in enumerate(sequence):
                    if other == key:
                        continue
                    together[key][other] += 1
                    if j < i:
                        before[key][other] += 1

        patterns: dict[str, list[WorkflowStep]] = {}
        for key, counts in together.items():
            ranked = [k for k, _ in counts.most_common(_MAX_PATTERN_STEPS - 1)]
            earlier = [k for k in ranked if before[key][k] * 2 > counts[k]]
            later = [k for k in ranked if k not in earlier]
            patterns[key] = [self._step(k, prerequisites) for k in [*earlier, key, *later]]
        return usage, patterns

    def _step(self, key: str, prerequisites: dict[str, list[str]]) -> WorkflowStep:
        facts = self._facts.get(key)
        name = facts.name if facts else key.rsplit(".", 1)[-1]
        return WorkflowStep(
            id=slugify(key),
            name=name,
            api_method=key,
            description=(facts.description if facts else "")[:160],
            prerequisites=list(prerequisites.get(key, [])),
        )
