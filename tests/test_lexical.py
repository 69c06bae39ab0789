"""Tests para el índice léxico."""

from __future__ import annotations

import pytest
from conftest import make_item

from sdkdocs.chunking.manager import ChunkingManager, ChunkingOptions
from sdkdocs.errors import InvalidFilterError
from sdkdocs.search.lexical import LexicalIndex, query_terms, validate_filters


def _index(items) -> tuple[LexicalIndex, dict[str, str]]:
    result = ChunkingManager().process_content(items, ChunkingOptions(enhance_content=False))
    index = LexicalIndex()
    index.index(result.chunks)
    return index, {c.id: c.metadata.name for c in result.chunks}


def test_title_matches_outweigh_body(scenario_items):
    """'thread' aparece en el título de createThread: lo rankea primero."""
    index, names = _index(scenario_items)

    results = index.search("thread")
    assert names[results[0].chunk_id] == "createThread"
    assert all(names[r.chunk_id] != "setup" for r in results)


def test_special_characters_do_not_break_search():
    items = [
        make_item("nativeBridge", "Core", "Bridges to the C++ runtime of the SDK."),
        make_item("webBridge", "Core", "Bridges to the browser runtime."),
    ]
    index, names = _index(items)

    results = index.search("C++")
    assert [names[r.chunk_id] for r in results] == ["nativeBridge"]


def test_short_terms_are_ignored(scenario_items):
    index, _ = _index(scenario_items)

    assert query_terms("a to of createThread") == ["createthread"]
    assert index.search("an of") == []


def test_filters_use_and_semantics():
    items = [
        make_item("send", "Threads", "Sends a message.", language="javascript"),
        make_item("send", "Threads", "Sends a message.", language="java", source_file="java.json"),
        make_item("send", "Channels", "Sends a message.", language="java", source_file="java.json"),
    ]
    result = ChunkingManager().process_content(items, ChunkingOptions(enhance_content=False))
    index = LexicalIndex()
    index.index(result.chunks)
    by_id = {c.id: c for c in result.chunks}

    hits = index.search("message", {"namespace": "Threads", "language": "java"})
    assert len(hits) == 1
    md = by_id[hits[0].chunk_id].metadata
    assert (md.namespace, md.language) == ("Threads", "java")


def test_unknown_filter_is_configuration_error(scenario_items):
    index, _ = _index(scenario_items)

    with pytest.raises(InvalidFilterError):
        index.search("thread", {"owner": "team"})


def test_empty_filter_values_are_ignored():
    assert validate_filters({"namespace": None, "type": ""}) == {}


def test_ties_prefer_importance_then_shorter_content():
    items = [
        make_item("alpha", "Core", "Handles receipts for delivery tracking.", importance="medium"),
        make_item("beta", "Core", "Handles receipts.", importance="medium"),
        make_item("gamma", "Core", "Handles receipts for delivery tracking.", importance="critical"),
    ]
    index, names = _index(items)

    ranked = [names[r.chunk_id] for r in index.search("receipts")]
    assert ranked == ["gamma", "beta", "alpha"]


def test_inverted_index_matches_inside_tokens(scenario_items):
    """'initialize' llega a "Initializes" por el vocabulario, sin escanear textos."""
    index, names = _index(scenario_items)

    assert "initializes" in index.matching_tokens("initialize")
    assert index.document_frequency("initialize") == 1
    assert index.document_frequency("thread") == 1
    assert index.document_frequency("nothing") == 0

    (hit,) = index.search("initialize")
    assert names[hit.chunk_id] == "setup"


def test_body_score_comes_from_term_frequencies(scenario_items):
    index, _ = _index(scenario_items)
    (hit,) = index.search("initialize")

    index.entry(hit.chunk_id).term_frequencies.clear()

    assert index.search("initialize") == []


def test_terms_spanning_tokens_scan_the_text():
    items = [
        make_item("guide", "Core", "Call Endpoint.connect first, then open a thread."),
        make_item("other", "Core", "Connect the endpoint later."),
    ]
    index, names = _index(items)

    assert [names[r.chunk_id] for r in index.search("endpoint.connect")] == ["guide"]
