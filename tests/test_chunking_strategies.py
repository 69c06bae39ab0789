"""Tests para las estrategias de chunking."""

from __future__ import annotations

import pathlib

import pytest
from conftest import make_item

from sdkdocs.chunking.base import make_chunk_id, slice_text, split_blocks
from sdkdocs.chunking.context_aware import ContextAwareStrategy, operation_group
from sdkdocs.chunking.hierarchical import HierarchicalStrategy, parse_sections
from sdkdocs.chunking.hybrid import HybridStrategy
from sdkdocs.chunking.method_level import MethodLevelStrategy
from sdkdocs.indexer.normalizer import normalize
from sdkdocs.indexer.parser import load_file
from sdkdocs.models import ContentMetadata, ParsedContent


def _long_text(paragraphs: int = 40) -> str:
    return "\n\n".join(
        f"Paragraph {i} explains how the thread API handles retries and delivery receipts in detail."
        for i in range(paragraphs)
    )


@pytest.fixture
def spec_items(sample_spec_file: pathlib.Path) -> list[ParsedContent]:
    return [normalize(s) for s in load_file(sample_spec_file, "api/sdk.json")]


@pytest.fixture
def tutorial_item(sample_tutorial_file: pathlib.Path) -> ParsedContent:
    (raw,) = load_file(sample_tutorial_file, "tutorials/getting-started.md")
    return normalize(raw)


# ---------- piezas comunes ----------

def test_chunk_id_is_deterministic():
    """Mismos (archivo, nombre, estrategia, posición) → mismo ID; cambiar la posición lo cambia."""
    a = make_chunk_id("api/sdk.json", "Core.setup", "hybrid", "0")
    b = make_chunk_id("api/sdk.json", "Core.setup", "hybrid", "0")
    c = make_chunk_id("api/sdk.json", "Core.setup", "hybrid", "1")

    assert a == b
    assert a != c
    assert a.startswith("core-setup-")


def test_split_blocks_keeps_fences_whole():
    text = "Intro.\n\n```js\nconst a = 1;\n\nconst b = 2;\n```\n\nOutro."
    blocks = split_blocks(text)

    assert [is_code for _, is_code in blocks] == [False, True, False]
    assert "const b = 2;" in blocks[1][0]


def test_slice_text_respects_limit_and_overlap():
    slices = slice_text(_long_text(), 400, 80)

    assert len(slices) > 1
    assert all(len(s.text) <= 400 for s in slices)
    assert not slices[0].overlap_with_previous
    assert all(s.overlap_with_previous for s in slices[1:])


# ---------- method-level ----------

def test_method_level_single_chunk(scenario_items):
    strategy = MethodLevelStrategy()
    chunks = strategy.chunk_items(scenario_items, 1500, 200)

    assert len(chunks) == 2
    assert chunks[0].content.startswith("# setup\n\nInitializes the library.")
    assert chunks[0].metadata.strategy == "method-level"
    assert chunks[0].metadata.title == "setup"


def test_method_level_splits_large_item():
    """Un ítem grande se corta por párrafos, repitiendo el header y con overlap."""
    item = make_item("bigMethod", "Threads", _long_text())
    chunks = MethodLevelStrategy().chunk_items([item], 500, 100)

    assert len(chunks) > 1
    assert all(len(c.content) <= 500 for c in chunks)
    assert all(c.content.startswith("# bigMethod\n\n") for c in chunks)
    assert [c.metadata.position for c in chunks] == list(range(len(chunks)))
    assert chunks[1].metadata.overlap_with_previous
    assert len({c.id for c in chunks}) == len(chunks)
    assert {c.metadata.parent_id for c in chunks} == {item.parent_id}


def test_oversized_code_block_is_flagged():
    """Un bloque de código más grande que el máximo se emite entero y marcado."""
    code = "```js\n" + "\n".join(f"console.log('line {i}');" for i in range(40)) + "\n```"
    item = ParsedContent(
        name="dumpLogs",
        description="Intro.",
        content=code,
        metadata=ContentMetadata(type="function", namespace="Core", source_file="a.json", source_path="x"),
    )
    chunks = MethodLevelStrategy().chunk_items([item], 300, 50)

    flagged = [c for c in chunks if c.metadata.oversized]
    assert len(flagged) == 1
    assert flagged[0].content.count("```") == 2
    assert "line 39" in flagged[0].content
    assert all(c.content.count("```") % 2 == 0 for c in chunks)


# ---------- hierarchical ----------

def test_parse_sections_breadcrumbs(tutorial_item: ParsedContent):
    sections = parse_sections(tutorial_item)

    assert [(s.level, s.title) for s in sections] == [
        (0, "Getting Started"),
        (2, "Installation"),
        (2, "First message"),
        (3, "Handling errors"),
    ]
    assert sections[3].breadcrumb == "Getting Started > First message > Handling errors"


def test_hierarchical_navigation_header(tutorial_item: ParsedContent):
    """Las secciones bajo H1 llevan la línea de navegación y el tag de nivel."""
    chunks = HierarchicalStrategy().chunk_items([tutorial_item], 1500, 200)

    assert len(chunks) == 4
    deepest = chunks[-1]
    assert deepest.content.startswith(
        "Navigation: Getting Started > First message > Handling errors\n\n### Handling errors"
    )
    assert "level-3" in deepest.metadata.tags
    assert deepest.metadata.title == "Getting Started > First message > Handling errors"
    # un bloque de código no se confunde con un heading
    assert "# Getting Started" in chunks[0].content
    assert "npm install secure-sdk" in chunks[1].content


# ---------- hybrid ----------

def test_hybrid_routes_by_content_type(spec_items, tutorial_item):
    """API → method-level, documentos con headings → hierarchical; todo con label hybrid."""
    chunks = HybridStrategy().chunk_items([*spec_items, tutorial_item], 1500, 200)

    api_chunks = [c for c in chunks if c.metadata.type in ("class", "method", "function")]
    doc_chunks = [c for c in chunks if c.metadata.type == "tutorial"]

    assert len(api_chunks) == len(spec_items)
    assert len(doc_chunks) == 4
    assert {c.metadata.strategy for c in chunks} == {"hybrid"}
    assert all("hybrid-chunked" in c.metadata.tags for c in doc_chunks)


def test_strategy_ids_differ_between_strategies(scenario_items):
    a = MethodLevelStrategy().chunk_items(scenario_items, 1500, 200)
    b = HybridStrategy().chunk_items(scenario_items, 1500, 200)

    assert [c.content for c in a] == [c.content for c in b]
    assert {c.id for c in a}.isdisjoint({c.id for c in b})


# ---------- context-aware ----------

def test_context_aware_groups_class_members(spec_items):
    """La clase absorbe sus métodos en un chunk agrupado; las funciones siguen solas."""
    chunks = ContextAwareStrategy().chunk_items(spec_items, 1500, 200)

    group = next(c for c in chunks if c.metadata.grouped)
    assert group.metadata.title == "Endpoint (grouped)"
    assert group.metadata.grouped == ["Endpoint", "connect", "getStatus"]
    assert "### connect" in group.content
    assert "grouped" in group.metadata.tags

    standalone = [c.metadata.name for c in chunks if not c.metadata.grouped]
    assert standalone == ["setup", "createThread", "sendMessage"]


def test_context_aware_keeps_h3_with_parent(tutorial_item: ParsedContent):
    chunks = ContextAwareStrategy().chunk_items([tutorial_item], 1500, 200)

    with_child = next(c for c in chunks if "## First message" in c.content)
    assert "### Handling errors" in with_child.content
    assert len(chunks) == 3


@pytest.mark.parametrize(
    ("name", "group"),
    [("createThread", "CRUD Operations"), ("sendMessage", "Communication"), ("setup", "Configuration"), ("dispose", "Utilities")],
)
def test_operation_group(name, group):
    assert operation_group(name) == group
