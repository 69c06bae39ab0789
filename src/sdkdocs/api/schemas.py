"""Modelos Pydantic v2 para request/response de la API."""

from __future__ import annotations

from pydantic import BaseModel, Field


# ---------- Filtros comunes ----------

class SearchFilters(BaseModel):
    namespace: str | None = None
    type: str | None = None
    language: str | None = None


# ---------- /search ----------

class SearchRequest(BaseModel):
    query: str
    filters: SearchFilters | None = None
    limit: int = Field(default=10, ge=1, le=50)


class SearchResultItem(BaseModel):
    id: str
    title: str
    namespace: str
    type: str
    language: str | None
    score: float
    lexical_score: float
    semantic_score: float
    match_type: str
    snippet: str


class SearchResponse(BaseModel):
    results: list[SearchResultItem]
    total: int


# ---------- /search/context ----------

class SearchContextModel(BaseModel):
    language: str | None = None
    framework: str | None = None
    skill_level: str | None = None
    namespace: str | None = None


class ContextSearchRequest(BaseModel):
    query: str
    context: SearchContextModel | None = None
    filters: SearchFilters | None = None
    limit: int = Field(default=10, ge=1, le=50)


class ErrorPatternItem(BaseModel):
    error_type: str
    handler: str


class WorkflowStepItem(BaseModel):
    id: str
    name: str
    api_method: str
    description: str = ""
    prerequisites: list[str] = []


class EnhancedResultItem(SearchResultItem):
    related_apis: list[str]
    prerequisites: list[str]
    complexity_score: float
    context_score: float
    completeness: float
    error_patterns: list[ErrorPatternItem]
    usage_patterns: list[WorkflowStepItem]


class ContextSearchResponse(BaseModel):
    results: list[EnhancedResultItem]
    total: int


# ---------- /workflows, /next-steps, /prerequisites ----------

class WorkflowRequest(BaseModel):
    goal: str = Field(min_length=3)
    language: str | None = None
    limit: int = Field(default=3, ge=1, le=10)


class WorkflowItem(BaseModel):
    id: str
    name: str
    description: str
    steps: list[WorkflowStepItem]
    difficulty: str
    tags: list[str]


class WorkflowResponse(BaseModel):
    workflows: list[WorkflowItem]


class NextStepsRequest(BaseModel):
    code: str
    language: str | None = None


class NextStepItem(BaseModel):
    action: str
    reason: str
    priority: str
    api_method: str | None = None


class NextStepsResponse(BaseModel):
    suggestions: list[NextStepItem]


class PrerequisitesResponse(BaseModel):
    method: str
    prerequisites: list[str]
    error_patterns: list[ErrorPatternItem]


# ---------- /index ----------

class IndexRequest(BaseModel):
    path: str
    strategy: str | None = None
    max_chunk_size: int | None = Field(default=None, gt=0)
    overlap_size: int | None = Field(default=None, ge=0)
    force_reindex: bool = False
    branch: str = "main"


class IndexResponse(BaseModel):
    documents_indexed: int
    files_processed: int
    chunks_created: int
    chunks_embedded: int
    chunks_skipped: int
    processing_time_ms: float
    errors: list[str]
    warnings: list[str]


# ---------- /health, /stats ----------

class HealthResponse(BaseModel):
    status: str
    vector_available: bool
    db_connected: bool | None
    chunks: int
    version: str


class StatsResponse(BaseModel):
    total_chunks: int
    total_documents: int
    by_namespace: dict[str, int]
    by_type: dict[str, int]
    vector_available: bool
    average_chunk_size: float
    size_distribution: dict[str, int]


# ---------- /tools ----------

class ToolInfo(BaseModel):
    name: str
    description: str
    args: dict


class ToolsResponse(BaseModel):
    tools: list[ToolInfo]


class ToolCallRequest(BaseModel):
    arguments: dict = Field(default_factory=dict)


class ToolCallResponse(BaseModel):
    tool: str
    output: str
