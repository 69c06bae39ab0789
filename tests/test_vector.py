"""Tests para el adaptador vectorial, el store en memoria y el helper de reintentos."""

from __future__ import annotations

import dataclasses

import pytest
from conftest import FailingEmbedder, FlakyEmbedder, HashingEmbedder, SlowEmbedder, make_item

from sdkdocs.chunking.manager import ChunkingManager, ChunkingOptions
from sdkdocs.embeddings import embed_with_retry
from sdkdocs.errors import EmbeddingError
from sdkdocs.search.vector import VectorIndexAdapter
from sdkdocs.vectorstore import InMemoryVectorStore, VectorPoint


def _chunks(items):
    return ChunkingManager().process_content(items, ChunkingOptions()).chunks


def _adapter(embedder, store=None, **kwargs) -> VectorIndexAdapter:
    kwargs.setdefault("retry_base_delay", 0.0)
    kwargs.setdefault("timeout_seconds", 1.0)
    return VectorIndexAdapter(embedder, store if store is not None else InMemoryVectorStore(), **kwargs)


async def test_initialize_never_raises():
    """Proveedor caído o ausente → no disponible, sin excepción."""
    assert await _adapter(FailingEmbedder()).initialize() is False
    assert await VectorIndexAdapter(None, None).initialize() is False
    assert await _adapter(HashingEmbedder()).initialize() is True


async def test_incremental_indexing(scenario_items):
    """Segunda corrida sin cambios no re-embebe; un chunk modificado sí."""
    embedder = HashingEmbedder()
    store = InMemoryVectorStore()
    adapter = _adapter(embedder, store)
    await adapter.initialize()
    chunks = _chunks(scenario_items)

    first = await adapter.index_documents(chunks)
    assert first.embedded == len(chunks)
    assert len(store) == len(chunks)

    second = await adapter.index_documents(chunks)
    assert second.embedded == 0
    assert second.skipped == len(chunks)

    changed = [dataclasses.replace(chunks[0], content=chunks[0].content + "\n\nUpdated."), *chunks[1:]]
    third = await adapter.index_documents(changed)
    assert third.embedded == 1

    forced = await adapter.index_documents(changed, force=True)
    assert forced.embedded == len(chunks)


async def test_stale_records_are_removed(scenario_items):
    store = InMemoryVectorStore()
    adapter = _adapter(HashingEmbedder(), store)
    await adapter.initialize()
    chunks = _chunks(scenario_items)
    await adapter.index_documents(chunks)

    report = await adapter.index_documents(chunks[:1])

    assert report.removed == len(chunks) - 1
    assert set(adapter.records) == {chunks[0].id}
    assert len(store) == 1


async def test_failed_chunk_is_recorded_and_rest_continue():
    """Un chunk que agota reintentos queda en errors; el resto se indexa."""
    items = [
        make_item("setup", "Core", "Initializes the library."),
        make_item("poisoned", "Core", "This text contains FORBIDDEN content."),
        make_item("createThread", "Threads", "Creates a secure thread."),
    ]
    chunks = _chunks(items)
    adapter = _adapter(FlakyEmbedder(poison="FORBIDDEN"), max_retries=2)
    await adapter.initialize()

    report = await adapter.index_documents(chunks)

    bad = next(c for c in chunks if c.metadata.name == "poisoned")
    assert report.embedded == 2
    assert len(report.errors) == 1
    assert report.errors[0].startswith(f"embed:{bad.id}:")
    assert bad.id not in adapter.records


async def test_transient_failures_are_retried(scenario_items):
    embedder = FlakyEmbedder(transient=2)
    adapter = _adapter(embedder, max_retries=3)
    await adapter.initialize()

    report = await adapter.index_documents(_chunks(scenario_items))

    assert report.errors == []
    assert report.embedded == 2


async def test_unavailable_adapter_skips_indexing(scenario_items):
    adapter = _adapter(FailingEmbedder())
    await adapter.initialize()

    report = await adapter.index_documents(_chunks(scenario_items))

    assert report.available is False
    assert report.embedded == 0
    assert report.skipped == 2


async def test_semantic_search_scores_in_unit_range(scenario_items):
    adapter = _adapter(HashingEmbedder())
    await adapter.initialize()
    chunks = _chunks(scenario_items)
    await adapter.index_documents(chunks)

    results = await adapter.semantic_search("creates a secure thread", limit=5)

    assert results
    assert all(0.0 <= r.score <= 1.0 for r in results)
    top = next(c for c in chunks if c.id == results[0].chunk_id)
    assert top.metadata.name == "createThread"


async def test_semantic_search_filters(scenario_items):
    adapter = _adapter(HashingEmbedder())
    await adapter.initialize()
    chunks = _chunks(scenario_items)
    await adapter.index_documents(chunks)

    results = await adapter.semantic_search("thread", {"namespace": "Core"}, limit=5)

    assert [r.chunk_id for r in results] == [c.id for c in chunks if c.metadata.namespace == "Core"]


async def test_semantic_search_timeout_returns_empty(scenario_items):
    """Un proveedor lento se trata igual que uno caído: lista vacía, sin excepción."""
    adapter = _adapter(SlowEmbedder(), timeout_seconds=0.05)
    assert await adapter.initialize() is True

    assert await adapter.semantic_search("thread") == []


async def test_restore_rehydrates_store(scenario_items):
    embedder = HashingEmbedder()
    source = _adapter(embedder)
    await source.initialize()
    chunks = _chunks(scenario_items)
    await source.index_documents(chunks)

    store = InMemoryVectorStore()
    restored = _adapter(embedder, store)
    await restored.initialize()
    await restored.restore(source.records, {c.id: c.metadata.facets() for c in chunks})

    assert len(store) == len(chunks)
    assert not any(restored.needs_embedding(c) for c in chunks)
    results = await restored.semantic_search("thread", {"namespace": "Threads"})
    assert len(results) == 1


async def test_model_change_forces_reembedding(scenario_items):
    embedder = HashingEmbedder()
    adapter = _adapter(embedder)
    await adapter.initialize()
    chunks = _chunks(scenario_items)
    await adapter.index_documents(chunks)

    embedder.model_name = "hashing-test-v2"
    assert all(adapter.needs_embedding(c) for c in chunks)


async def test_embed_with_retry_gives_up():
    with pytest.raises(EmbeddingError):
        await embed_with_retry(FailingEmbedder(), ["x"], max_retries=3, base_delay=0.0)


async def test_in_memory_store_ranks_by_cosine():
    store = InMemoryVectorStore()
    await store.upsert(
        [
            VectorPoint("a", [1.0, 0.0], {"namespace": "Core"}),
            VectorPoint("b", [0.6, 0.8], {"namespace": "Threads"}),
            VectorPoint("zero", [0.0, 0.0], {"namespace": "Core"}),
        ]
    )

    hits = await store.query([1.0, 0.1], 2)
    assert [h.id for h in hits] == ["a", "b"]

    filtered = await store.query([1.0, 0.1], 5, {"namespace": "Threads"})
    assert [h.id for h in filtered] == ["b"]

    await store.delete(["a"])
    assert len(store) == 2
