"""Orquestador: corpus → normalización → chunking → índices → snapshot consultable.

Cada reconstrucción arma un ``IndexSnapshot`` nuevo y recién al final
reemplaza el puntero que usan las búsquedas. Las consultas capturan el
snapshot una vez, así nunca ven un índice a medio construir.
"""

from __future__ import annotations

import asyncio
import dataclasses
import datetime
import pathlib
import shutil
import tempfile
import time
from collections import Counter
from dataclasses import dataclass, field

import structlog

from sdkdocs.chunking.manager import ChunkingManager, ChunkingOptions, get_chunk_statistics
from sdkdocs.config import Settings
from sdkdocs.embeddings import EmbeddingProvider, OpenAIEmbeddingProvider
from sdkdocs.errors import ConfigurationError, NormalizationError, SourceParseError
from sdkdocs.indexer.normalizer import normalize
from sdkdocs.indexer.parser import SpecCache, discover_files, load_file
from sdkdocs.indexer.relationships import RelationshipAnalyzer, group_by_namespace
from sdkdocs.indexer.store import ChunkStore, graph_from_dict, load_state, save_state
from sdkdocs.models import (
    DocumentChunk,
    EnhancedSearchResult,
    ErrorPattern,
    IndexResult,
    IndexStatistics,
    NextStepSuggestion,
    ParsedContent,
    SearchContext,
    SearchResult,
    WorkflowSuggestion,
)
from sdkdocs.search.hybrid import HybridRanker
from sdkdocs.search.lexical import LexicalIndex
from sdkdocs.search.vector import VectorIndexAdapter
from sdkdocs.search.workflow import WorkflowAdvisor
from sdkdocs.vectorstore import InMemoryVectorStore, PgVectorStore, VectorStore

logger = structlog.get_logger(__name__)

_GIT_PREFIXES = ("git@", "https://", "http://", "ssh://", "git://")


@dataclass
class IndexOptions:
    """Opciones de una corrida; ``None`` toma el valor de ``Settings``."""

    strategy: str | None = None
    max_chunk_size: int | None = None
    overlap_size: int | None = None
    force_reindex: bool = False
    enhance_content: bool = True
    optimize_chunks: bool = True
    validate_output: bool = True
    branch: str = "main"


@dataclass
class IndexSnapshot:
    """Todo lo que una consulta necesita, inmutable una vez publicado."""

    store: ChunkStore
    lexical: LexicalIndex
    analyzer: RelationshipAnalyzer
    ranker: HybridRanker
    advisor: WorkflowAdvisor
    documents: int = 0
    built_at: str = ""
    summary: dict = field(default_factory=dict)


def _resolve_corpus(path: str | pathlib.Path, branch: str) -> tuple[pathlib.Path, bool]:
    """Devuelve (raíz local, es_temporal). Soporta file:// y URLs git (clon superficial)."""
    text = str(path)
    if text.startswith("file://"):
        return pathlib.Path(text.removeprefix("file://")), False
    if text.startswith(_GIT_PREFIXES) or text.endswith(".git"):
        from git import Repo

        dest = pathlib.Path(tempfile.mkdtemp(prefix="sdkdocs-corpus-"))
        logger.info("git_clone", url=text, branch=branch, dest=str(dest))
        Repo.clone_from(text, str(dest), branch=branch, depth=1)
        return dest, True
    return pathlib.Path(text), False


class DocsPipeline:
    """Punto de entrada del núcleo: indexación, búsqueda, enriquecimiento y estadísticas.

    Args:
        settings: Configuración (pesos, tamaños, ``data_dir``).
        embedder / vector_store: Colaboradores del camino vectorial; sin ellos
            el pipeline funciona en modo solo léxico.
        cache: Cache de specs parseadas, propia de esta instancia.
        vector_adapter: Adaptador ya armado (tiene prioridad sobre embedder/store).
    """

    def __init__(
        self,
        settings: Settings,
        *,
        embedder: EmbeddingProvider | None = None,
        vector_store: VectorStore | None = None,
        cache: SpecCache | None = None,
        vector_adapter: VectorIndexAdapter | None = None,
        manager: ChunkingManager | None = None,
    ) -> None:
        self.settings = settings
        self.cache = cache if cache is not None else SpecCache()
        self.manager = manager or ChunkingManager()
        self.vector = vector_adapter or VectorIndexAdapter(
            embedder,
            vector_store,
            batch_size=settings.embedding_batch_size,
            max_retries=settings.embedding_max_retries,
            retry_base_delay=settings.embedding_retry_base_delay,
            timeout_seconds=settings.vector_timeout_seconds,
        )
        self._data_dir = pathlib.Path(settings.data_dir) if settings.data_dir else None
        self._inflight: asyncio.Task[IndexResult] | None = None
        # valida los pesos al construir: un peso inválido es error de configuración
        self._snapshot = self._make_snapshot([], RelationshipAnalyzer())

    # ---------- ciclo de vida ----------

    async def initialize(self) -> bool:
        """Verifica el camino vectorial y rehidrata el estado persistido, si existe."""
        await self.vector.initialize()
        return await self.load()

    @property
    def snapshot(self) -> IndexSnapshot:
        return self._snapshot

    def is_rebuilding(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def clear(self) -> None:
        """Descarta el snapshot y la cache de specs (no toca el estado en disco)."""
        self.cache.clear()
        self._snapshot = self._make_snapshot([], RelationshipAnalyzer())
        logger.info("pipeline_cleared")

    def _make_snapshot(
        self,
        chunks: list[DocumentChunk],
        analyzer: RelationshipAnalyzer,
        *,
        documents: int = 0,
        summary: dict | None = None,
    ) -> IndexSnapshot:
        store = ChunkStore(chunks)
        lexical = LexicalIndex()
        lexical.index(chunks)
        ranker = HybridRanker(
            lexical,
            self.vector,
            store,
            lexical_weight=self.settings.lexical_weight,
            semantic_weight=self.settings.semantic_weight,
            candidate_multiplier=self.settings.candidate_multiplier,
        )
        return IndexSnapshot(
            store=store,
            lexical=lexical,
            analyzer=analyzer,
            ranker=ranker,
            advisor=WorkflowAdvisor(analyzer),
            documents=documents,
            built_at=datetime.datetime.now(datetime.timezone.utc).isoformat(),
            summary=summary or {},
        )

    def _chunking_options(self, options: IndexOptions) -> ChunkingOptions:
        """Arma y valida las opciones antes de tocar el corpus."""
        chunking = ChunkingOptions(
            strategy=options.strategy or self.settings.chunk_strategy,
            max_chunk_size=options.max_chunk_size or self.settings.max_chunk_size,
            overlap_size=(
                options.overlap_size if options.overlap_size is not None else self.settings.chunk_overlap
            ),
            enhance_content=options.enhance_content,
            optimize_chunks=options.optimize_chunks,
            validate_output=options.validate_output,
            oversize_tolerance=self.settings.oversize_tolerance,
        )
        self.manager.get_strategy(chunking.strategy)
        return chunking

    # ---------- indexación ----------

    async def _single_flight(self, factory) -> IndexResult:
        """Una sola reconstrucción a la vez: quien llega durante una, espera su resultado."""
        if self.is_rebuilding():
            logger.info("rebuild_joined")
            return await asyncio.shield(self._inflight)
        self._inflight = asyncio.ensure_future(factory())
        return await asyncio.shield(self._inflight)

    async def index_corpus(
        self, path: str | pathlib.Path, options: IndexOptions | None = None
    ) -> IndexResult:
        """Indexa un directorio local, una URL ``file://`` o un repo git."""
        options = options or IndexOptions()
        chunking = self._chunking_options(options)
        return await self._single_flight(lambda: self._index_path(path, options, chunking))

    async def index_contents(
        self, items: list[ParsedContent], options: IndexOptions | None = None
    ) -> IndexResult:
        """Indexa ítems ya normalizados (sin pasar por archivos)."""
        options = options or IndexOptions()
        chunking = self._chunking_options(options)

        async def run() -> IndexResult:
            return await self._build(list(items), chunking, options.force_reindex, IndexResult(), time.time())

        return await self._single_flight(run)

    async def _index_path(
        self, path: str | pathlib.Path, options: IndexOptions, chunking: ChunkingOptions
    ) -> IndexResult:
        t0 = time.time()
        result = IndexResult()

        try:
            root, is_temp = await asyncio.to_thread(_resolve_corpus, path, options.branch)
        except Exception as exc:
            logger.warning("corpus_unavailable", path=str(path), error=str(exc))
            result.errors.append(f"corpus:{path}: {exc}")
            return result

        try:
            if root.is_file():
                files, base = [root], root.parent
            elif root.is_dir():
                files, base = discover_files(root), root
            else:
                result.errors.append(f"corpus:{path}: la ruta no existe")
                logger.warning("corpus_missing", path=str(path))
                return result

            logger.info("index_started", root=str(root), files=len(files))
            items = await self._load_items(files, base, result)
        finally:
            if is_temp and root.exists():
                shutil.rmtree(root, ignore_errors=True)

        return await self._build(items, chunking, options.force_reindex, result, t0)

    async def _load_items(
        self, files: list[pathlib.Path], base: pathlib.Path, result: IndexResult
    ) -> list[ParsedContent]:
        items: list[ParsedContent] = []
        for file_path in files:
            rel_path = file_path.relative_to(base).as_posix()
            try:
                sources = await asyncio.to_thread(load_file, file_path, rel_path, self.cache)
            except SourceParseError as exc:
                logger.warning("parse_error", path=rel_path, error=exc.reason)
                result.errors.append(f"parse:{rel_path}: {exc.reason}")
                continue
            result.files_processed += 1

            for raw in sources:
                try:
                    items.append(normalize(raw))
                except NormalizationError as exc:
                    logger.warning("normalize_error", path=rel_path, item=exc.path, error=exc.reason)
                    result.errors.append(f"normalize:{rel_path}: {exc}")
        return items

    async def _build(
        self,
        items: list[ParsedContent],
        chunking: ChunkingOptions,
        force: bool,
        result: IndexResult,
        t0: float,
    ) -> IndexResult:
        chunk_result = self.manager.process_content(items, chunking)
        chunks = chunk_result.chunks
        result.warnings.extend(chunk_result.validation.warnings)
        result.errors.extend(f"validation: {e}" for e in chunk_result.validation.errors)

        analyzer = RelationshipAnalyzer()
        for namespace in group_by_namespace(items):
            analyzer.analyze(namespace)
        graph = analyzer.get_relationship_graph()

        report = await self.vector.index_documents(chunks, force=force)
        result.errors.extend(report.errors)

        result.documents_indexed = len(items)
        result.chunks_created = len(chunks)
        result.chunks_embedded = report.embedded
        result.chunks_skipped = report.skipped
        result.processing_time_ms = round((time.time() - t0) * 1000, 1)

        summary = {
            "run": dataclasses.asdict(chunk_result.metadata),
            "statistics": dataclasses.asdict(get_chunk_statistics(chunks)),
            "validation": dataclasses.asdict(chunk_result.validation),
            "relationships": dataclasses.asdict(graph),
            "documents": len(items),
            "vector": {"available": report.available, "embedded": report.embedded, "skipped": report.skipped},
            "errors": list(result.errors),
        }
        snapshot = self._make_snapshot(chunks, analyzer, documents=len(items), summary=summary)

        if self._data_dir is not None:
            try:
                await asyncio.to_thread(save_state, self._data_dir, chunks, summary, self.vector.records)
            except OSError as exc:
                logger.warning("state_save_failed", dir=str(self._data_dir), error=str(exc))
                result.errors.append(f"persist:{self._data_dir}: {exc}")

        self._snapshot = snapshot
        logger.info(
            "index_complete",
            documents=result.documents_indexed,
            files=result.files_processed,
            chunks=result.chunks_created,
            embedded=result.chunks_embedded,
            skipped=result.chunks_skipped,
            errors=len(result.errors),
            warnings=len(result.warnings),
            duration_ms=result.processing_time_ms,
        )
        return result

    async def load(self) -> bool:
        """Publica el snapshot persistido en ``data_dir``. ``False`` si no hay nada."""
        if self._data_dir is None:
            return False
        state = await asyncio.to_thread(load_state, self._data_dir)
        if state is None:
            return False

        analyzer = RelationshipAnalyzer.from_graph(graph_from_dict(state.summary.get("relationships") or {}))
        facets = {c.id: c.metadata.facets() for c in state.chunks}
        live = {cid: r for cid, r in state.records.items() if cid in facets}
        await self.vector.restore(live, facets)

        self._snapshot = self._make_snapshot(
            state.chunks,
            analyzer,
            documents=int(state.summary.get("documents", 0)),
            summary=state.summary,
        )
        logger.info("snapshot_loaded", chunks=len(state.chunks), embeddings=len(live))
        return True

    # ---------- consultas ----------

    async def _search(
        self, snapshot: IndexSnapshot, query: str, filters: dict | None, limit: int | None
    ) -> list[SearchResult]:
        try:
            return await snapshot.ranker.search(
                query, filters, limit if limit is not None else self.settings.search_top_k
            )
        except ConfigurationError:
            raise
        except Exception:
            logger.exception("search_failed", query=query[:80])
            return []

    async def search(
        self, query: str, filters: dict | None = None, limit: int | None = None
    ) -> list[SearchResult]:
        """Búsqueda híbrida. Solo lanza ante filtros inválidos."""
        return await self._search(self._snapshot, query, filters, limit)

    async def search_with_context(
        self,
        query: str,
        context: SearchContext | None = None,
        limit: int | None = None,
        filters: dict | None = None,
    ) -> list[EnhancedSearchResult]:
        snapshot = self._snapshot
        results = await self._search(snapshot, query, filters, limit)
        return snapshot.advisor.enhance_all(results, context)

    async def find_workflows(
        self, goal: str, language: str | None = None, limit: int = 3
    ) -> list[WorkflowSuggestion]:
        snapshot = self._snapshot
        results = await self._search(snapshot, goal, None, None)
        ranked = snapshot.advisor.enhance_all(results, SearchContext(language=language))
        return snapshot.advisor.find_workflows_for_goal(goal, ranked, limit)

    def suggest_next_steps(self, code: str, language: str | None = None) -> list[NextStepSuggestion]:
        return self._snapshot.advisor.suggest_next_steps(code, language)

    def get_prerequisites(self, method: str, language: str | None = None) -> list[str]:
        analyzer = self._snapshot.analyzer
        key = analyzer.resolve_key(method, language)
        return analyzer.get_prerequisites(key) if key else []

    def get_error_patterns(self, method: str, language: str | None = None) -> list[ErrorPattern]:
        analyzer = self._snapshot.analyzer
        key = analyzer.resolve_key(method, language)
        return analyzer.get_error_patterns(key) if key else []

    def get_statistics(self) -> IndexStatistics:
        snapshot = self._snapshot
        chunks = snapshot.store.all()
        return IndexStatistics(
            total_chunks=len(chunks),
            total_documents=len({c.metadata.parent_id for c in chunks}),
            by_namespace=dict(Counter(c.metadata.namespace for c in chunks)),
            by_type=dict(Counter(c.metadata.type for c in chunks)),
            vector_available=self.vector.is_available(),
            chunk_statistics=get_chunk_statistics(chunks),
        )


def build_pipeline(settings: Settings, pool=None) -> DocsPipeline:
    """Arma el pipeline con OpenAI si hay API key y pgvector si hay pool."""
    embedder = OpenAIEmbeddingProvider(settings) if settings.openai_api_key else None
    store: VectorStore = PgVectorStore(pool) if pool is not None else InMemoryVectorStore()
    return DocsPipeline(settings, embedder=embedder, vector_store=store)
