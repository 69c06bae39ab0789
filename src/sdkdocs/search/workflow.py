"""Enriquecimiento de resultados con el grafo de relaciones: contexto, workflows y próximos pasos."""

from __future__ import annotations

import dataclasses
import re

import structlog

from sdkdocs.indexer.relationships import RelationshipAnalyzer
from sdkdocs.models import (
    API_TYPES,
    EnhancedSearchResult,
    NextStepSuggestion,
    SearchContext,
    SearchResult,
    WorkflowStep,
    WorkflowSuggestion,
    slugify,
)

logger = structlog.get_logger(__name__)

_COMPATIBLE_LANGUAGES = {
    "javascript": {"javascript", "typescript", "js", "ts"},
    "typescript": {"javascript", "typescript", "js", "ts"},
    "js": {"javascript", "typescript", "js", "ts"},
    "ts": {"javascript", "typescript", "js", "ts"},
    "java": {"java", "kotlin"},
    "kotlin": {"java", "kotlin"},
    "csharp": {"csharp", "c#", "dotnet"},
    "c#": {"csharp", "c#", "dotnet"},
    "dotnet": {"csharp", "c#", "dotnet"},
    "python": {"python", "py"},
    "py": {"python", "py"},
}
_SKILL_MAX_COMPLEXITY = {"beginner": 0.4, "intermediate": 0.7, "advanced": 1.0}
_CALL_RE = re.compile(r"\b([A-Za-z_][A-Za-z0-9_]*)\s*\(")
_MAX_WORKFLOW_STEPS = 8


def languages_compatible(wanted: str, actual: str | None) -> bool:
    if actual is None:
        return False
    wanted, actual = wanted.lower(), actual.lower()
    return wanted == actual or actual in _COMPATIBLE_LANGUAGES.get(wanted, set())


def completeness(result: SearchResult) -> float:
    """0.5 base; +0.2 si es extenso, +0.2 si trae código, +0.1 si es un método."""
    score = 0.5
    if len(result.content) > 200:
        score += 0.2
    lower = result.content.lower()
    if "```" in result.content or "example" in lower:
        score += 0.2
    if result.metadata.type == "method":
        score += 0.1
    return round(min(score, 1.0), 2)


class WorkflowAdvisor:
    """Lee el grafo de un snapshot; no lo modifica."""

    def __init__(self, analyzer: RelationshipAnalyzer) -> None:
        self._analyzer = analyzer

    def method_key_for(self, result: SearchResult) -> str | None:
        md = result.metadata
        if md.type not in API_TYPES or md.type == "class":
            return None
        name = md.method_name or md.name
        qualified = f"{md.class_name}.{name}" if md.class_name else name
        return self._analyzer.resolve_key(qualified, md.language) or self._analyzer.resolve_key(name, md.language)

    def complexity_score(self, result: SearchResult, prerequisites: list[str]) -> float:
        md = result.metadata
        params = result.content.count("\n| `") if md.enhanced else 0
        score = 0.15 * len(prerequisites) + 0.05 * params + min(len(result.content) / 4000, 0.3)
        if md.type == "tutorial":
            score += 0.2
        return round(min(score, 1.0), 2)

    def context_score(self, result: SearchResult, context: SearchContext, complexity: float) -> float:
        """Lenguaje +0.4, namespace +0.2, framework mencionado +0.2, nivel adecuado +0.2."""
        md = result.metadata
        score = 0.0
        if context.language and languages_compatible(context.language, md.language):
            score += 0.4
        if context.namespace and md.namespace.lower() == context.namespace.lower():
            score += 0.2
        if context.framework:
            haystack = f"{result.content} {' '.join(md.tags)}".lower()
            if context.framework.lower() in haystack:
                score += 0.2
        if context.skill_level:
            limit = _SKILL_MAX_COMPLEXITY.get(context.skill_level.lower(), 1.0)
            declared = (md.skill_level or "").lower()
            if complexity <= limit or declared == context.skill_level.lower():
                score += 0.2
        return round(score, 2)

    def enhance(self, result: SearchResult, context: SearchContext | None = None) -> EnhancedSearchResult:
        context = context or SearchContext()
        key = self.method_key_for(result)
        prerequisites = self._analyzer.get_prerequisites(key) if key else []
        patterns = self._analyzer.get_common_patterns(key) if key else []
        related = [s.api_method for s in patterns if s.api_method != key]
        complexity = self.complexity_score(result, prerequisites)

        base = {f.name: getattr(result, f.name) for f in dataclasses.fields(SearchResult)}
        return EnhancedSearchResult(
            **base,
            related_apis=related,
            prerequisites=prerequisites,
            complexity_score=complexity,
            context_score=self.context_score(result, context, complexity),
            completeness=completeness(result),
            error_patterns=self._analyzer.get_error_patterns(key) if key else [],
            usage_patterns=patterns,
        )

    def enhance_all(
        self, results: list[SearchResult], context: SearchContext | None = None
    ) -> list[EnhancedSearchResult]:
        enhanced = [self.enhance(r, context) for r in results]
        # orden estable: a igual contexto se mantiene el orden del ranking híbrido
        enhanced.sort(key=lambda r: -r.context_score)
        return enhanced

    # ---------- workflows ----------

    def _prerequisite_closure(self, key: str, seen: set[str] | None = None) -> list[str]:
        """Prerequisitos transitivos en orden topológico (primero lo que va primero)."""
        seen = seen if seen is not None else set()
        ordered: list[str] = []
        for prereq in self._analyzer.get_prerequisites(key):
            if prereq in seen:
                continue
            seen.add(prereq)
            ordered.extend(self._prerequisite_closure(prereq, seen))
            ordered.append(prereq)
        return ordered

    def _step(self, key: str) -> WorkflowStep:
        return WorkflowStep(
            id=slugify(key),
            name=key.rsplit(".", 1)[-1].split(":")[-1],
            api_method=key,
            description=self._analyzer.describe(key)[:160],
            prerequisites=self._analyzer.get_prerequisites(key),
        )

    def build_workflow(self, key: str, goal: str = "") -> WorkflowSuggestion:
        sequence = self._prerequisite_closure(key, {key})
        sequence.append(key)
        for step in self._analyzer.get_common_patterns(key):
            if step.api_method not in sequence:
                sequence.append(step.api_method)
        sequence = sequence[:_MAX_WORKFLOW_STEPS]

        steps = [self._step(k) for k in sequence]
        difficulty = "beginner" if len(steps) <= 2 else "intermediate" if len(steps) <= 5 else "advanced"
        name = key.rsplit(".", 1)[-1].split(":")[-1]
        return WorkflowSuggestion(
            id=f"workflow-{slugify(key)}",
            name=f"Workflow: {name}",
            description=goal or f"Pasos para usar {name}",
            steps=steps,
            difficulty=difficulty,
            tags=sorted({t for k in sequence for t in slugify(k).split("-") if len(t) > 2}),
        )

    def find_workflows_for_goal(
        self, goal: str, results: list[SearchResult], limit: int = 3
    ) -> list[WorkflowSuggestion]:
        workflows: list[WorkflowSuggestion] = []
        seen: set[str] = set()
        for result in results:
            key = self.method_key_for(result)
            if key is None or key in seen:
                continue
            seen.add(key)
            workflows.append(self.build_workflow(key, goal))
            if len(workflows) >= limit:
                break
        logger.debug("workflows_found", goal=goal[:80], count=len(workflows))
        return workflows

    # ---------- próximos pasos ----------

    def suggest_next_steps(self, code: str, language: str | None = None) -> list[NextStepSuggestion]:
        """Prerequisitos ausentes en el código → high; continuaciones habituales → medium."""
        called: list[str] = []
        for name in dict.fromkeys(_CALL_RE.findall(code)):
            key = self._analyzer.resolve_key(name, language)
            if key and key not in called:
                called.append(key)

        present = set(called)
        suggestions: list[NextStepSuggestion] = []
        suggested: set[str] = set()
        for key in called:
            for prereq in self._analyzer.get_prerequisites(key):
                if prereq in present or prereq in suggested:
                    continue
                suggested.add(prereq)
                short = prereq.rsplit(".", 1)[-1].split(":")[-1]
                suggestions.append(
                    NextStepSuggestion(
                        action=f"Llamar a {short}() antes de {key.rsplit('.', 1)[-1]}()",
                        reason=f"{key} depende de {prereq}",
                        priority="high",
                        api_method=prereq,
                    )
                )
        for key in called:
            steps = self._analyzer.get_common_patterns(key)
            keys = [s.api_method for s in steps]
            if key not in keys:
                continue
            for follow in keys[keys.index(key) + 1 :]:
                if follow in present or follow in suggested:
                    continue
                suggested.add(follow)
                short = follow.rsplit(".", 1)[-1].split(":")[-1]
                suggestions.append(
                    NextStepSuggestion(
                        action=f"Continuar con {short}()",
                        reason=f"Suele usarse después de {key.rsplit('.', 1)[-1]}() en los ejemplos",
                        priority="medium",
                        api_method=follow,
                    )
                )
        if not called:
            suggestions.append(
                NextStepSuggestion(
                    action="Buscar el método de inicialización del SDK",
                    reason="No se reconoció ninguna llamada a la API en el código",
                    priority="low",
                )
            )
        return suggestions
