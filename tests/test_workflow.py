"""Tests para el enriquecimiento contextual, workflows y sugerencias de próximos pasos."""

from __future__ import annotations

import pathlib

import pytest

from sdkdocs.chunking.manager import ChunkingManager, ChunkingOptions
from sdkdocs.indexer.normalizer import normalize
from sdkdocs.indexer.parser import load_file
from sdkdocs.indexer.relationships import RelationshipAnalyzer, group_by_namespace
from sdkdocs.models import ChunkMetadata, DocumentChunk, SearchContext, SearchResult
from sdkdocs.search.workflow import WorkflowAdvisor, completeness, languages_compatible

CREATE = "javascript:Threads.createThread"
CONNECT = "javascript:Core.Endpoint.connect"
SETUP = "javascript:Core.setup"
SEND = "javascript:Threads.sendMessage"


def _result(chunk: DocumentChunk, score: float = 1.0) -> SearchResult:
    return SearchResult(
        id=chunk.id,
        title=chunk.metadata.title,
        content=chunk.content,
        metadata=chunk.metadata,
        score=score,
    )


@pytest.fixture
def spec_setup(sample_spec_file: pathlib.Path) -> tuple[WorkflowAdvisor, dict[str, SearchResult]]:
    items = [normalize(s) for s in load_file(sample_spec_file, "api/sdk.json")]
    analyzer = RelationshipAnalyzer()
    for namespace in group_by_namespace(items):
        analyzer.analyze(namespace)
    chunks = ChunkingManager().process_content(items, ChunkingOptions()).chunks
    results = {
        f"{c.metadata.type}:{c.metadata.name}": _result(c) for c in chunks
    }
    return WorkflowAdvisor(analyzer), results


@pytest.mark.parametrize(
    ("wanted", "actual", "expected"),
    [
        ("javascript", "javascript", True),
        ("typescript", "javascript", True),
        ("JavaScript", "js", True),
        ("java", "javascript", False),
        ("python", None, False),
    ],
)
def test_languages_compatible(wanted, actual, expected):
    assert languages_compatible(wanted, actual) is expected


def test_completeness_components():
    bare = SearchResult(
        id="a", title="a", content="short", score=0.0,
        metadata=ChunkMetadata(type="function", namespace="Core"),
    )
    full = SearchResult(
        id="b", title="b", content="x" * 250 + "\n```js\ncall();\n```", score=0.0,
        metadata=ChunkMetadata(type="method", namespace="Core"),
    )

    assert completeness(bare) == 0.5
    assert completeness(full) == 1.0


def test_method_key_for_results(spec_setup):
    advisor, results = spec_setup

    assert advisor.method_key_for(results["function:createThread"]) == CREATE
    assert advisor.method_key_for(results["method:connect"]) == CONNECT
    assert advisor.method_key_for(results["class:Endpoint"]) is None


def test_enhance_adds_graph_information(spec_setup):
    advisor, results = spec_setup

    enhanced = advisor.enhance(results["function:createThread"])

    assert enhanced.id == results["function:createThread"].id
    assert enhanced.prerequisites == [CONNECT, SETUP]
    assert enhanced.related_apis == [CONNECT, SEND]
    assert [p.error_type for p in enhanced.error_patterns] == ["CREATION_FAILED"]
    assert [s.api_method for s in enhanced.usage_patterns] == [CONNECT, CREATE, SEND]
    assert 0.0 < enhanced.complexity_score <= 1.0
    assert 0.7 <= enhanced.completeness <= 1.0
    assert enhanced.context_score == 0.0


def test_context_score_components(spec_setup):
    advisor, results = spec_setup
    create = results["function:createThread"]
    setup = results["function:setup"]

    assert advisor.context_score(create, SearchContext(language="typescript"), 0.5) == 0.4
    assert advisor.context_score(create, SearchContext(language="java"), 0.5) == 0.0
    assert advisor.context_score(create, SearchContext(namespace="threads"), 0.5) == 0.2
    assert advisor.context_score(create, SearchContext(framework="Promise"), 0.5) == 0.2
    assert advisor.context_score(setup, SearchContext(skill_level="beginner"), 0.1) == 0.2
    assert advisor.context_score(create, SearchContext(skill_level="beginner"), 0.9) == 0.0
    full = SearchContext(language="javascript", namespace="Threads", framework="promise", skill_level="advanced")
    assert advisor.context_score(create, full, 0.9) == 1.0


def test_enhance_all_reorders_by_context_keeping_rank_for_ties(spec_setup):
    advisor, results = spec_setup
    ordered = [results["method:getStatus"], results["function:setup"], results["function:createThread"]]

    enhanced = advisor.enhance_all(ordered, SearchContext(namespace="Threads"))

    assert [r.metadata.name for r in enhanced] == ["createThread", "getStatus", "setup"]


def test_build_workflow_orders_prerequisites_first(spec_setup):
    advisor, _ = spec_setup

    workflow = advisor.build_workflow(CREATE, "send a message in a new thread")

    assert [s.name for s in workflow.steps] == ["setup", "connect", "createThread", "sendMessage"]
    assert workflow.id == "workflow-javascript-threads-createthread"
    assert workflow.difficulty == "intermediate"
    assert workflow.description == "send a message in a new thread"
    assert workflow.steps[2].prerequisites == [CONNECT, SETUP]


def test_single_step_workflow_is_beginner(spec_setup):
    advisor, _ = spec_setup

    workflow = advisor.build_workflow(SETUP)

    assert [s.api_method for s in workflow.steps] == [SETUP]
    assert workflow.difficulty == "beginner"
    assert workflow.description.startswith("Pasos para usar setup")


def test_find_workflows_skips_non_api_results(spec_setup):
    advisor, results = spec_setup
    ranked = [results["class:Endpoint"], results["function:createThread"], results["function:sendMessage"]]

    workflows = advisor.find_workflows_for_goal("chat", ranked, limit=1)

    assert len(workflows) == 1
    assert workflows[0].steps[-2].api_method == CREATE


def test_next_steps_missing_prerequisites_are_high_priority(spec_setup):
    advisor, _ = spec_setup

    suggestions = advisor.suggest_next_steps("const thread = await createThread(conn, 'general');", "javascript")

    high = [s for s in suggestions if s.priority == "high"]
    assert [s.api_method for s in high] == [CONNECT, SETUP]
    assert high[0].action == "Llamar a connect() antes de createThread()"
    medium = [s for s in suggestions if s.priority == "medium"]
    assert [s.api_method for s in medium] == [SEND]


def test_next_steps_when_prerequisites_present(spec_setup):
    advisor, _ = spec_setup
    code = "setup();\nconst conn = await endpoint.connect();\nconst t = await createThread(conn, 'x');"

    suggestions = advisor.suggest_next_steps(code, "javascript")

    assert [(s.priority, s.api_method) for s in suggestions] == [("medium", SEND)]


def test_next_steps_without_known_calls(spec_setup):
    advisor, _ = spec_setup

    suggestions = advisor.suggest_next_steps("console.log('hi');", "javascript")

    assert len(suggestions) == 1
    assert suggestions[0].priority == "low"
    assert suggestions[0].api_method is None
