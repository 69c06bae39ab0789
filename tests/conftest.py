"""Fixtures compartidas para tests."""

from __future__ import annotations

import asyncio
import hashlib
import json
import pathlib
import re
import textwrap

import numpy as np
import pytest

from sdkdocs.config import Settings
from sdkdocs.models import ContentMetadata, ParsedContent

_WORD_RE = re.compile(r"[a-z]+")


def make_settings(tmp_path: pathlib.Path | None = None, **overrides) -> Settings:
    """Crea settings de prueba sin requerir env vars reales."""
    defaults = {
        "openai_api_key": None,
        "database_url": None,
        "data_dir": tmp_path / "state" if tmp_path is not None else None,
        "embedding_retry_base_delay": 0.0,
        "vector_timeout_seconds": 2.0,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


def make_item(
    name: str,
    namespace: str,
    text: str,
    *,
    type: str = "function",
    importance: str = "medium",
    language: str | None = None,
    source_file: str = "inline.json",
    source_path: str | None = None,
) -> ParsedContent:
    """Ítem normalizado mínimo, como los del escenario setup / createThread."""
    return ParsedContent(
        name=name,
        description=text,
        content="",
        metadata=ContentMetadata(
            type=type,
            namespace=namespace,
            method_name=name if type in ("method", "function") else None,
            importance=importance,
            source_file=source_file,
            source_path=f"{namespace}.{name}" if source_path is None else source_path,
            language=language,
        ),
    )


# ---------- embedders falsos ----------

class HashingEmbedder:
    """Bolsa de palabras proyectada por hash: determinista y sin red."""

    model_name = "hashing-test"
    max_batch_size = 16

    def __init__(self, dims: int = 64) -> None:
        self.dims = dims
        self.calls = 0
        self.texts: list[str] = []

    def vector(self, text: str) -> list[float]:
        vec = np.zeros(self.dims, dtype=np.float32)
        for word in _WORD_RE.findall(text.lower()):
            idx = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % self.dims
            vec[idx] += 1.0
        return vec.tolist()

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        self.texts.extend(texts)
        return [self.vector(t) for t in texts]


class FailingEmbedder(HashingEmbedder):
    """Siempre falla: el camino vectorial queda no disponible."""

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        raise RuntimeError("servicio de embeddings caído")


class FlakyEmbedder(HashingEmbedder):
    """Falla con textos que contienen ``poison`` y las primeras ``transient`` llamadas tras el ping."""

    def __init__(self, poison: str | None = None, transient: int = 0) -> None:
        super().__init__()
        self.poison = poison
        self.transient = transient

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if texts == ["ping"]:
            return await super().embed(texts)
        self.calls += 1
        if self.transient > 0:
            self.transient -= 1
            raise RuntimeError("error transitorio")
        if self.poison and any(self.poison in t for t in texts):
            raise RuntimeError("texto rechazado por el proveedor")
        self.texts.extend(texts)
        return [self.vector(t) for t in texts]


class SlowEmbedder(HashingEmbedder):
    """Responde al ping, pero las consultas tardan más que cualquier timeout razonable."""

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if texts != ["ping"]:
            await asyncio.sleep(5)
        return await super().embed(texts)


# ---------- corpus de ejemplo ----------

SAMPLE_SPEC = {
    "namespaces": [
        {
            "name": "Core",
            "language": "javascript",
            "classes": [
                {
                    "name": "Endpoint",
                    "description": "Entry point of the SDK. Holds the connection to the server.",
                    "constructors": [
                        {
                            "name": "Endpoint",
                            "description": "Creates an endpoint for the given server URL.",
                            "signature": "new Endpoint(url: string)",
                            "parameters": [{"name": "url", "type": "string", "description": "Server URL"}],
                        }
                    ],
                    "methods": [
                        {
                            "name": "connect",
                            "description": "Opens a connection to the server. Throws `NetworkError` when unreachable.",
                            "signature": "connect(): Promise<Connection>",
                            "returns": {"type": "Promise<Connection>", "description": "Active connection"},
                            "examples": [
                                {
                                    "title": "Connect and create a thread",
                                    "code": "const conn = await endpoint.connect();\nconst thread = await createThread(conn, 'general');\nawait sendMessage(thread, 'hi');",
                                }
                            ],
                        },
                        {
                            "name": "getStatus",
                            "description": "Returns the current status of the endpoint.",
                            "signature": "getStatus(): Status",
                        },
                    ],
                }
            ],
            "functions": [
                {
                    "name": "setup",
                    "description": "Initializes the library. Call before any other operation.",
                    "signature": "setup(options?: Options): void",
                }
            ],
        },
        {
            "name": "Threads",
            "language": "javascript",
            "functions": [
                {
                    "name": "createThread",
                    "description": "Creates a secure thread. Requires an active connection.",
                    "signature": "createThread(connection: Connection, title: string): Promise<Thread>",
                    "parameters": [
                        {"name": "connection", "type": "Connection", "description": "Open connection"},
                        {"name": "title", "type": "string", "description": "Thread title"},
                    ],
                    "returns": {"type": "Promise<Thread>", "description": "The new thread"},
                },
                {
                    "name": "sendMessage",
                    "description": "Sends a message to a thread.",
                    "signature": "sendMessage(thread: Thread, text: string): Promise<void>",
                    "parameters": [
                        {"name": "thread", "type": "Thread"},
                        {"name": "text", "type": "string"},
                    ],
                },
            ],
        },
    ]
}

TUTORIAL_MD = textwrap.dedent("""\
    ---
    title: Getting Started
    language: javascript
    namespace: Core
    category: tutorial
    skillLevel: beginner
    tags:
      - quickstart
    ---

    # Getting Started

    This tutorial shows how to set up the SDK and send your first message.

    ## Installation

    Install the package with npm and import it in your project.

    ```bash
    npm install secure-sdk
    ```

    ## First message

    Call setup first, then connect and create a thread.

    ```javascript
    setup();
    const conn = await endpoint.connect();
    const thread = await createThread(conn, 'general');
    await sendMessage(thread, 'hello');
    ```

    ### Handling errors

    Wrap the calls in try/catch to handle C++ style native errors from the bridge.
""")


@pytest.fixture
def sample_spec_file(tmp_path: pathlib.Path) -> pathlib.Path:
    """Spec JSON con dos namespaces (Core, Threads)."""
    f = tmp_path / "corpus" / "api" / "sdk.json"
    f.parent.mkdir(parents=True)
    f.write_text(json.dumps(SAMPLE_SPEC, indent=2), encoding="utf-8")
    return f


@pytest.fixture
def sample_tutorial_file(tmp_path: pathlib.Path) -> pathlib.Path:
    """Tutorial markdown con frontmatter y bloques de código."""
    f = tmp_path / "corpus" / "tutorials" / "getting-started.md"
    f.parent.mkdir(parents=True, exist_ok=True)
    f.write_text(TUTORIAL_MD, encoding="utf-8")
    return f


@pytest.fixture
def corpus_dir(sample_spec_file: pathlib.Path, sample_tutorial_file: pathlib.Path) -> pathlib.Path:
    """Directorio con spec + tutorial + un archivo oculto que debe ignorarse."""
    root = sample_spec_file.parent.parent
    hidden = root / ".obsidian" / "ignored.md"
    hidden.parent.mkdir()
    hidden.write_text("# Ignored\n\nNo debe indexarse.", encoding="utf-8")
    return root


@pytest.fixture
def scenario_items() -> list[ParsedContent]:
    """Corpus de dos ítems: setup (Core) y createThread (Threads)."""
    return [
        make_item(
            "setup",
            "Core",
            "Initializes the library. Call before any other operation.",
            importance="critical",
        ),
        make_item(
            "createThread",
            "Threads",
            "Creates a secure thread. Requires an active connection.",
            importance="high",
        ),
    ]
