"""Índice léxico: conteo de términos ponderado por campo, con facetas exactas."""

from __future__ import annotations

import re
from collections import Counter, defaultdict

import structlog

from sdkdocs.errors import InvalidFilterError
from sdkdocs.models import IMPORTANCE_RANK, DocumentChunk, IndexEntry, LexicalResult

logger = structlog.get_logger(__name__)

FILTER_FIELDS = ("namespace", "type", "language")
TITLE_WEIGHT = 3.0
BODY_WEIGHT = 1.0
MIN_TERM_LENGTH = 3

_TOKEN_RE = re.compile(r"[a-z0-9_+#]{3,}")
_STRIP_CHARS = ".,;:!?\"'()[]{}<>`"


def validate_filters(filters: dict | None) -> dict[str, str]:
    """Devuelve solo los filtros con valor; un nombre desconocido es error de configuración."""
    if not filters:
        return {}
    unknown = sorted(set(filters) - set(FILTER_FIELDS))
    if unknown:
        raise InvalidFilterError(
            f"Filtros no soportados: {', '.join(unknown)}. Válidos: {', '.join(FILTER_FIELDS)}"
        )
    return {k: str(v) for k, v in filters.items() if v is not None and v != ""}


def matches_filters(facets: dict[str, str | None], filters: dict[str, str]) -> bool:
    """Semántica AND sobre igualdad exacta de facetas."""
    return all(facets.get(k) == v for k, v in filters.items())


def query_terms(query: str) -> list[str]:
    terms: list[str] = []
    for raw in query.lower().split():
        term = raw.strip(_STRIP_CHARS)
        if len(term) >= MIN_TERM_LENGTH and term not in terms:
            terms.append(term)
    return terms


def count_occurrences(term: str, text: str, pattern: re.Pattern | None) -> int:
    if pattern is None:
        return text.count(term)
    return len(pattern.findall(text))


def _compile(term: str) -> re.Pattern | None:
    try:
        return re.compile(re.escape(term))
    except re.error:
        logger.warning("lexical_pattern_fallback", term=term)
        return None


class LexicalIndex:
    """Índice invertido en memoria; se reconstruye completo cada vez que cambia el conjunto de chunks.

    ``_postings`` mapea cada token (de título o cuerpo) a los chunks que lo
    contienen. Una consulta busca en el vocabulario los tokens que contienen
    el término, así "initialize" llega a los chunks con "initializes" sin
    recorrer todos los textos. Los términos con caracteres fuera de un token
    (``endpoint.connect``) se cuentan sobre el texto completo.

    Referencia los chunks solo por ID; el contenido autoritativo vive en el
    chunk store.
    """

    def __init__(self) -> None:
        self._entries: dict[str, IndexEntry] = {}
        self._rank: dict[str, tuple[int, int]] = {}
        self._postings: dict[str, set[str]] = {}

    def index(self, chunks: list[DocumentChunk]) -> None:
        entries: dict[str, IndexEntry] = {}
        rank: dict[str, tuple[int, int]] = {}
        postings: dict[str, set[str]] = defaultdict(set)
        for chunk in chunks:
            md = chunk.metadata
            title = " ".join(
                p for p in (md.title, md.name, md.class_name, md.method_name) if p
            ).lower()
            text = chunk.content.lower()
            entry = IndexEntry(
                chunk_id=chunk.id,
                term_frequencies=dict(Counter(_TOKEN_RE.findall(text))),
                facets=md.facets(),
                title=title,
                text=text,
            )
            entries[chunk.id] = entry
            for token in {*entry.term_frequencies, *_TOKEN_RE.findall(title)}:
                postings[token].add(chunk.id)
            rank[chunk.id] = (IMPORTANCE_RANK.get(md.importance, 0), len(chunk.content))
        self._entries = entries
        self._rank = rank
        self._postings = dict(postings)
        logger.debug("lexical_index_built", entries=len(entries), vocabulary=len(self._postings))

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, chunk_id: str) -> IndexEntry | None:
        return self._entries.get(chunk_id)

    def matching_tokens(self, term: str) -> list[str]:
        """Tokens del vocabulario que contienen ``term``."""
        return [token for token in self._postings if term in token]

    def document_frequency(self, term: str) -> int:
        """Cantidad de chunks donde aparece ``term``, también como parte de un token."""
        term = term.lower()
        if not _TOKEN_RE.fullmatch(term):
            return sum(1 for e in self._entries.values() if term in e.text or term in e.title)
        found: set[str] = set()
        for token in self.matching_tokens(term):
            found |= self._postings[token]
        return len(found)

    def _body_count(
        self, term: str, entry: IndexEntry, tokens: list[str] | None, pattern: re.Pattern | None
    ) -> int:
        if tokens is None:
            return count_occurrences(term, entry.text, pattern)
        tf = entry.term_frequencies
        return sum(tf[token] * token.count(term) for token in tokens if token in tf)

    def search(
        self,
        query: str,
        filters: dict | None = None,
        limit: int | None = None,
    ) -> list[LexicalResult]:
        """Puntaje crudo = Σ (coincidencias en título × 3 + coincidencias en cuerpo).

        Empates: mayor importancia y luego contenido más corto.
        """
        active = validate_filters(filters)
        terms = query_terms(query)
        if not terms:
            return []
        patterns = {t: _compile(t) for t in terms}

        # None: el término no es un token y hay que recorrer todo el texto
        tokens: dict[str, list[str] | None] = {}
        candidates: set[str] = set()
        for term in terms:
            if _TOKEN_RE.fullmatch(term):
                tokens[term] = self.matching_tokens(term)
                for token in tokens[term]:
                    candidates |= self._postings[token]
            else:
                tokens[term] = None
                candidates = set(self._entries)

        scored: list[tuple[float, str]] = []
        for chunk_id in candidates:
            entry = self._entries[chunk_id]
            if active and not matches_filters(entry.facets, active):
                continue
            score = 0.0
            for term in terms:
                pattern = patterns[term]
                score += TITLE_WEIGHT * count_occurrences(term, entry.title, pattern)
                score += BODY_WEIGHT * self._body_count(term, entry, tokens[term], pattern)
            if score > 0:
                scored.append((score, chunk_id))

        scored.sort(key=lambda pair: (-pair[0], -self._rank[pair[1]][0], self._rank[pair[1]][1], pair[1]))
        if limit is not None:
            scored = scored[:limit]
        return [LexicalResult(chunk_id=cid, score=score) for score, cid in scored]
