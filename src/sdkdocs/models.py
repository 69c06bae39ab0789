"""DTOs (Data Transfer Objects) compartidos entre ingesta, chunking y búsqueda."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field

CONTENT_TYPES = ("class", "method", "function", "guide", "tutorial")
API_TYPES = ("class", "method", "function")
IMPORTANCE_LEVELS = ("critical", "high", "medium", "low")
IMPORTANCE_RANK = {"critical": 3, "high": 2, "medium": 1, "low": 0}

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    return _SLUG_RE.sub("-", text.lower()).strip("-") or "item"


def content_hash(text: str) -> str:
    """SHA-256 del texto, usado como huella para re-indexación incremental."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


# ---------- Fuente cruda ----------

@dataclass
class ParsedDoc:
    """Resultado de parsear un archivo markdown."""

    path: str
    title: str
    doc_type: str
    frontmatter: dict
    body: str
    content_hash: str

@dataclass
class RawSource:
    """Unidad cruda extraída de un archivo del corpus, antes de normalizar.

    ``path`` ubica el ítem dentro del archivo (p. ej. ``Core[0].content[2].methods[1]``)
    y forma parte de la identidad estable de sus chunks.
    """

    kind: str
    data: dict
    source_file: str
    path: str = ""
    namespace: str | None = None
    language: str | None = None
    class_name: str | None = None


# ---------- Contenido normalizado ----------

@dataclass
class CodeExample:
    title: str = ""
    explanation: str = ""
    code: str = ""
    language: str = ""


@dataclass
class Parameter:
    name: str
    description: str = ""
    type: str = "any"
    optional: bool = False


@dataclass
class ReturnValue:
    type: str
    description: str = ""
    name: str = ""


@dataclass
class ErrorPattern:
    error_type: str
    handler: str


@dataclass
class ContentMetadata:
    """Metadata uniforme de un ítem; ``type`` y ``namespace`` siempre presentes."""

    type: str
    namespace: str
    class_name: str | None = None
    method_name: str | None = None
    importance: str = "medium"
    tags: list[str] = field(default_factory=list)
    source_file: str = ""
    source_path: str = ""
    language: str | None = None
    category: str | None = None
    skill_level: str | None = None


@dataclass
class ParsedContent:
    """Unidad canónica previa al chunking. No se modifica tras crearse."""

    name: str
    description: str
    content: str
    metadata: ContentMetadata
    examples: list[CodeExample] = field(default_factory=list)
    parameters: list[Parameter] = field(default_factory=list)
    returns: list[ReturnValue] = field(default_factory=list)
    signature: str = ""
    declared_prerequisites: list[str] = field(default_factory=list)
    declared_errors: list[ErrorPattern] = field(default_factory=list)

    @property
    def qualified_name(self) -> str:
        if self.metadata.class_name and self.metadata.class_name != self.name:
            return f"{self.metadata.class_name}.{self.name}"
        return self.name

    @property
    def parent_id(self) -> str:
        """Identidad estable del ítem fuente, compartida por todos sus chunks."""
        md = self.metadata
        raw = "\x1f".join(
            [md.source_file, md.source_path, md.namespace, md.type, self.qualified_name]
        )
        digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()[:10]
        return f"{slugify(md.namespace)}.{slugify(self.qualified_name)}-{digest}"


# ---------- Chunks ----------

@dataclass
class ChunkMetadata(ContentMetadata):
    """Metadata del ítem padre más los campos propios del chunk."""

    name: str = ""
    title: str = ""
    parent_id: str = ""
    position: int = 0
    overlap_with_previous: bool = False
    oversized: bool = False
    strategy: str = ""
    grouped: list[str] = field(default_factory=list)
    enhanced: bool = False

    def facets(self) -> dict[str, str | None]:
        return {"namespace": self.namespace, "type": self.type, "language": self.language}


@dataclass
class DocumentChunk:
    """Unidad de recuperación. ``locator`` es la posición usada para derivar el ID."""

    id: str
    content: str
    metadata: ChunkMetadata
    locator: str = "0"

    @property
    def content_hash(self) -> str:
        return content_hash(self.content)


@dataclass
class ValidationReport:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ChunkingRunMetadata:
    strategy: str
    total_input_items: int = 0
    total_output_chunks: int = 0
    average_chunk_size: float = 0.0
    processing_time_ms: float = 0.0


@dataclass
class ChunkingResult:
    chunks: list[DocumentChunk]
    metadata: ChunkingRunMetadata
    validation: ValidationReport


@dataclass
class ChunkStatistics:
    total_chunks: int = 0
    average_size: float = 0.0
    size_distribution: dict[str, int] = field(default_factory=dict)
    type_distribution: dict[str, int] = field(default_factory=dict)
    namespace_distribution: dict[str, int] = field(default_factory=dict)


# ---------- Índices ----------

@dataclass
class IndexEntry:
    """Entrada del índice léxico derivada de un chunk."""

    chunk_id: str
    term_frequencies: dict[str, int]
    facets: dict[str, str | None]
    title: str
    text: str


@dataclass
class VectorRecord:
    """Registro de lo ya embebido: decide si un chunk necesita re-embedding."""

    chunk_id: str
    content_hash: str
    embedding_model: str
    indexed_at: str
    embedding: list[float] = field(default_factory=list)


@dataclass
class LexicalResult:
    chunk_id: str
    score: float


@dataclass
class VectorResult:
    chunk_id: str
    score: float


@dataclass
class SearchResult:
    id: str
    title: str
    content: str
    metadata: ChunkMetadata
    score: float
    lexical_score: float = 0.0
    semantic_score: float = 0.0
    match_type: str = "hybrid"


@dataclass
class WorkflowStep:
    id: str
    name: str
    api_method: str
    description: str = ""
    prerequisites: list[str] = field(default_factory=list)


@dataclass
class EnhancedSearchResult(SearchResult):
    related_apis: list[str] = field(default_factory=list)
    prerequisites: list[str] = field(default_factory=list)
    complexity_score: float = 0.0
    context_score: float = 0.0
    completeness: float = 0.0
    error_patterns: list[ErrorPattern] = field(default_factory=list)
    usage_patterns: list[WorkflowStep] = field(default_factory=list)


@dataclass
class SearchContext:
    """Contexto del desarrollador para ``search_with_context``."""

    language: str | None = None
    framework: str | None = None
    skill_level: str | None = None
    namespace: str | None = None


# ---------- Relaciones y workflows ----------

@dataclass
class MethodInfo:
    """Lo mínimo de un método que sobrevive a la persistencia del grafo."""

    name: str
    class_name: str | None = None
    description: str = ""


@dataclass
class RelationshipGraph:
    prerequisites: dict[str, list[str]] = field(default_factory=dict)
    common_patterns: dict[str, list[WorkflowStep]] = field(default_factory=dict)
    usage_frequency: dict[str, int] = field(default_factory=dict)
    error_patterns: dict[str, list[ErrorPattern]] = field(default_factory=dict)
    methods: dict[str, MethodInfo] = field(default_factory=dict)


@dataclass
class WorkflowSuggestion:
    id: str
    name: str
    description: str
    steps: list[WorkflowStep] = field(default_factory=list)
    difficulty: str = "beginner"
    tags: list[str] = field(default_factory=list)


@dataclass
class NextStepSuggestion:
    action: str
    reason: str
    priority: str
    api_method: str | None = None


# ---------- Resultados de operaciones ----------

@dataclass
class VectorIndexReport:
    embedded: int = 0
    skipped: int = 0
    removed: int = 0
    available: bool = True
    errors: list[str] = field(default_factory=list)


@dataclass
class IndexResult:
    """Resultado de una corrida de ``index_corpus``: éxito parcial + errores."""

    documents_indexed: int = 0
    files_processed: int = 0
    chunks_created: int = 0
    chunks_embedded: int = 0
    chunks_skipped: int = 0
    processing_time_ms: float = 0.0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class IndexStatistics:
    total_chunks: int = 0
    total_documents: int = 0
    by_namespace: dict[str, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)
    vector_available: bool = False
    chunk_statistics: ChunkStatistics = field(default_factory=ChunkStatistics)
