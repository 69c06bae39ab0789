"""Endpoints de búsqueda híbrida y de guía (contexto, workflows, próximos pasos)."""

from __future__ import annotations

import dataclasses

from fastapi import APIRouter, Request

from sdkdocs.api.schemas import (
    ContextSearchRequest,
    ContextSearchResponse,
    EnhancedResultItem,
    ErrorPatternItem,
    NextStepItem,
    NextStepsRequest,
    NextStepsResponse,
    PrerequisitesResponse,
    SearchRequest,
    SearchResponse,
    SearchResultItem,
    WorkflowItem,
    WorkflowRequest,
    WorkflowResponse,
    WorkflowStepItem,
)
from sdkdocs.models import EnhancedSearchResult, SearchContext, SearchResult

router = APIRouter()


def _result_fields(r: SearchResult) -> dict:
    return {
        "id": r.id,
        "title": r.title,
        "namespace": r.metadata.namespace,
        "type": r.metadata.type,
        "language": r.metadata.language,
        "score": round(r.score, 4),
        "lexical_score": round(r.lexical_score, 4),
        "semantic_score": round(r.semantic_score, 4),
        "match_type": r.match_type,
        "snippet": r.content[:500],
    }


def _enhanced_item(r: EnhancedSearchResult) -> EnhancedResultItem:
    return EnhancedResultItem(
        **_result_fields(r),
        related_apis=r.related_apis,
        prerequisites=r.prerequisites,
        complexity_score=r.complexity_score,
        context_score=r.context_score,
        completeness=r.completeness,
        error_patterns=[ErrorPatternItem(**dataclasses.asdict(p)) for p in r.error_patterns],
        usage_patterns=[WorkflowStepItem(**dataclasses.asdict(s)) for s in r.usage_patterns],
    )


@router.post("/search", response_model=SearchResponse)
async def search(body: SearchRequest, request: Request) -> SearchResponse:
    """Búsqueda híbrida: ranking léxico + similitud vectorial."""
    pipeline = request.app.state.pipeline
    filters = body.filters.model_dump(exclude_none=True) if body.filters else None

    results = await pipeline.search(body.query, filters, body.limit)

    items = [SearchResultItem(**_result_fields(r)) for r in results]
    return SearchResponse(results=items, total=len(items))


@router.post("/search/context", response_model=ContextSearchResponse)
async def search_with_context(body: ContextSearchRequest, request: Request) -> ContextSearchResponse:
    """Búsqueda enriquecida con prerequisitos, APIs relacionadas y puntaje de contexto."""
    pipeline = request.app.state.pipeline
    filters = body.filters.model_dump(exclude_none=True) if body.filters else None
    context = SearchContext(**body.context.model_dump()) if body.context else None

    results = await pipeline.search_with_context(body.query, context, body.limit, filters)

    items = [_enhanced_item(r) for r in results]
    return ContextSearchResponse(results=items, total=len(items))


@router.post("/workflows", response_model=WorkflowResponse)
async def workflows(body: WorkflowRequest, request: Request) -> WorkflowResponse:
    """Secuencias de pasos sugeridas para un objetivo en lenguaje natural."""
    pipeline = request.app.state.pipeline
    found = await pipeline.find_workflows(body.goal, body.language, body.limit)
    return WorkflowResponse(
        workflows=[
            WorkflowItem(
                id=w.id,
                name=w.name,
                description=w.description,
                steps=[WorkflowStepItem(**dataclasses.asdict(s)) for s in w.steps],
                difficulty=w.difficulty,
                tags=w.tags,
            )
            for w in found
        ]
    )


@router.post("/next-steps", response_model=NextStepsResponse)
async def next_steps(body: NextStepsRequest, request: Request) -> NextStepsResponse:
    pipeline = request.app.state.pipeline
    suggestions = pipeline.suggest_next_steps(body.code, body.language)
    return NextStepsResponse(suggestions=[NextStepItem(**dataclasses.asdict(s)) for s in suggestions])


@router.get("/prerequisites/{method_key}", response_model=PrerequisitesResponse)
async def prerequisites(method_key: str, request: Request, language: str | None = None) -> PrerequisitesResponse:
    pipeline = request.app.state.pipeline
    return PrerequisitesResponse(
        method=method_key,
        prerequisites=pipeline.get_prerequisites(method_key, language),
        error_patterns=[
            ErrorPatternItem(**dataclasses.asdict(p)) for p in pipeline.get_error_patterns(method_key, language)
        ],
    )
