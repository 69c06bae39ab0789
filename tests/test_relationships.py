"""Tests para el analizador de relaciones entre métodos."""

from __future__ import annotations

import dataclasses
import json
import pathlib

import pytest
from conftest import make_item

from sdkdocs.indexer.normalizer import normalize
from sdkdocs.indexer.parser import load_file
from sdkdocs.indexer.relationships import (
    NamespaceSpec,
    RelationshipAnalyzer,
    group_by_namespace,
    method_key,
)
from sdkdocs.indexer.store import graph_from_dict
from sdkdocs.models import ParsedContent

CREATE = "javascript:Threads.createThread"
CONNECT = "javascript:Core.Endpoint.connect"
SETUP = "javascript:Core.setup"
SEND = "javascript:Threads.sendMessage"


@pytest.fixture
def spec_analyzer(sample_spec_file: pathlib.Path) -> RelationshipAnalyzer:
    items = [normalize(s) for s in load_file(sample_spec_file, "api/sdk.json")]
    analyzer = RelationshipAnalyzer()
    for namespace in group_by_namespace(items):
        analyzer.analyze(namespace)
    return analyzer


def test_method_key_shape():
    assert method_key("Core", "connect", "Endpoint", "javascript") == CONNECT
    assert method_key("Core", "setup") == "Core.setup"


def test_initializer_is_prerequisite_of_everything(scenario_items):
    """setup dice 'before any other operation': precede a createThread aunque esté en otro namespace."""
    analyzer = RelationshipAnalyzer()
    for namespace in group_by_namespace(scenario_items):
        analyzer.analyze(namespace)

    assert analyzer.get_prerequisites("createThread") == ["Core.setup"]
    assert analyzer.get_prerequisites("setup") == []


def test_analysis_order_does_not_matter(scenario_items):
    """Threads analizado antes que Core: el grafo resuelto es el mismo."""
    analyzer = RelationshipAnalyzer()
    for namespace in reversed(group_by_namespace(scenario_items)):
        analyzer.analyze(namespace)

    assert analyzer.get_prerequisites("createThread") == ["Core.setup"]


def test_producers_satisfy_parameter_types(spec_analyzer: RelationshipAnalyzer):
    """connect() devuelve Connection, que createThread recibe; createThread produce Thread."""
    assert spec_analyzer.get_prerequisites("createThread") == [CONNECT, SETUP]
    assert spec_analyzer.get_prerequisites("sendMessage") == [CREATE, SETUP]
    assert spec_analyzer.get_prerequisites("connect") == [SETUP]


def test_declared_prerequisites_come_first(scenario_items):
    setup, create = scenario_items
    create = dataclasses.replace(create, declared_prerequisites=["login", "setup"])
    analyzer = RelationshipAnalyzer()
    analyzer.analyze(NamespaceSpec("Core", [setup]))
    analyzer.analyze(NamespaceSpec("Threads", [create]))

    # una referencia que no resuelve se conserva tal cual
    assert analyzer.get_prerequisites("createThread") == ["login", "Core.setup"]


def test_other_languages_are_not_linked(scenario_items):
    setup, create = scenario_items
    analyzer = RelationshipAnalyzer()
    analyzer.analyze(NamespaceSpec("Core", [setup]), language="java")
    analyzer.analyze(NamespaceSpec("Threads", [create]), language="swift")

    assert analyzer.get_prerequisites("createThread") == []


def test_error_patterns(spec_analyzer: RelationshipAnalyzer):
    connect_errors = [p.error_type for p in spec_analyzer.get_error_patterns("connect")]
    assert connect_errors == ["NetworkError", "CONNECTION_FAILED"]

    create_errors = spec_analyzer.get_error_patterns("createThread")
    assert [p.error_type for p in create_errors] == ["CREATION_FAILED"]
    assert create_errors[0].handler

    assert [p.error_type for p in spec_analyzer.get_error_patterns("getStatus")] == ["NOT_FOUND"]


def test_common_patterns_from_examples(spec_analyzer: RelationshipAnalyzer):
    """El ejemplo de connect llama connect → createThread → sendMessage."""
    steps = spec_analyzer.get_common_patterns("createThread")

    assert [s.api_method for s in steps] == [CONNECT, CREATE, SEND]
    assert steps[1].prerequisites == [CONNECT, SETUP]
    assert spec_analyzer.get_usage_frequency("sendMessage") == 1
    assert spec_analyzer.get_usage_frequency("setup") == 0


def test_snippets_added_later_invalidate_graph(spec_analyzer: RelationshipAnalyzer):
    assert spec_analyzer.get_usage_frequency("setup") == 0

    spec_analyzer.add_snippets(["setup();\nconst status = endpoint.getStatus();"])

    assert spec_analyzer.get_usage_frequency("setup") == 1
    assert [s.name for s in spec_analyzer.get_common_patterns("getStatus")] == ["setup", "getStatus"]


def test_resolve_key_variants(spec_analyzer: RelationshipAnalyzer):
    assert spec_analyzer.resolve_key(CREATE) == CREATE
    assert spec_analyzer.resolve_key("createthread") == CREATE
    assert spec_analyzer.resolve_key("Endpoint.connect") == CONNECT
    assert spec_analyzer.resolve_key("Threads.createThread", "javascript") == CREATE
    assert spec_analyzer.resolve_key("doesNotExist") is None
    assert spec_analyzer.get_prerequisites("doesNotExist") == []


def test_from_graph_is_read_only_copy(spec_analyzer: RelationshipAnalyzer):
    graph = spec_analyzer.get_relationship_graph()
    restored = RelationshipAnalyzer.from_graph(graph_from_dict(dataclasses.asdict(graph)))

    assert restored.get_prerequisites("createThread") == [CONNECT, SETUP]
    assert restored.resolve_key(CREATE) == CREATE
    assert [p.error_type for p in restored.get_error_patterns("connect")] == ["NetworkError", "CONNECTION_FAILED"]
    assert set(restored.known_methods()) == set(spec_analyzer.known_methods())


def test_classes_and_documents_are_not_methods(spec_analyzer: RelationshipAnalyzer):
    keys = spec_analyzer.known_methods()

    assert "javascript:Core.Endpoint" not in keys
    assert "javascript:Core.Endpoint.Endpoint" in keys
    stats = spec_analyzer.get_stats()
    assert stats["methods"] == len(keys)
    assert stats["snippets"] == 1


def test_tutorial_snippets_feed_patterns(sample_tutorial_file: pathlib.Path, sample_spec_file: pathlib.Path):
    items: list[ParsedContent] = [normalize(s) for s in load_file(sample_spec_file, "api/sdk.json")]
    (raw,) = load_file(sample_tutorial_file, "tutorials/getting-started.md")
    items.append(normalize(raw))
    analyzer = RelationshipAnalyzer()
    for namespace in group_by_namespace(items):
        analyzer.analyze(namespace)

    assert analyzer.get_usage_frequency("setup") >= 1
    assert SETUP in [s.api_method for s in analyzer.get_common_patterns("connect")]


def test_restored_analyzer_resolves_ambiguous_names_like_live():
    """Un mismo nombre en cinco lenguajes: tras persistir, resuelve al mismo método."""
    analyzer = RelationshipAnalyzer()
    for lang in ("javascript", "java", "swift", "csharp", "kotlin"):
        item = make_item("connect", "Core", f"Opens a {lang} connection.", language=lang)
        analyzer.analyze(NamespaceSpec("Core", [item]), language=lang)
    graph = analyzer.get_relationship_graph()

    restored = RelationshipAnalyzer.from_graph(graph_from_dict(json.loads(json.dumps(dataclasses.asdict(graph)))))

    assert analyzer.resolve_key("connect") == "javascript:Core.connect"
    assert restored.resolve_key("connect") == "javascript:Core.connect"
    assert restored.resolve_key("connect", "kotlin") == "kotlin:Core.connect"
    assert restored.describe("swift:Core.connect") == "Opens a swift connection."


def test_restored_analyzer_keeps_class_aliases_and_descriptions(spec_analyzer: RelationshipAnalyzer):
    graph = spec_analyzer.get_relationship_graph()
    restored = RelationshipAnalyzer.from_graph(graph_from_dict(dataclasses.asdict(graph)))

    assert restored.resolve_key("Endpoint.connect") == CONNECT
    for key in spec_analyzer.known_methods():
        assert restored.describe(key) == spec_analyzer.describe(key)
    assert restored.describe(CREATE)


def test_verb_prefix_needs_word_boundary():
    """connectionStatus no produce una conexión ni hereda CONNECTION_FAILED."""
    analyzer = RelationshipAnalyzer()
    analyzer.analyze(
        NamespaceSpec(
            "Core",
            [
                make_item("connect", "Core", "Opens a connection to the endpoint."),
                make_item("connectionStatus", "Core", "Reports the state of the link."),
                make_item("sendMessage", "Core", "Sends a message. Requires an active connection."),
            ],
        )
    )

    assert analyzer.get_prerequisites("sendMessage") == ["Core.connect"]
    assert analyzer.get_error_patterns("connectionStatus") == []
    assert [p.error_type for p in analyzer.get_error_patterns("connect")] == ["CONNECTION_FAILED"]
