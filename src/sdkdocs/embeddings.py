"""Proveedores de embeddings y helper de reintento con backoff exponencial."""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog
import tiktoken
from openai import AsyncOpenAI

from sdkdocs.config import Settings
from sdkdocs.errors import EmbeddingError

logger = structlog.get_logger(__name__)

PROVIDER_BATCH_CAP = 2048

_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding("cl100k_base")
    return _encoder


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Recorta el texto al límite de tokens de entrada del modelo."""
    enc = _get_encoder()
    tokens = enc.encode(text)
    if len(tokens) <= max_tokens:
        return text
    return enc.decode(tokens[:max_tokens])


class EmbeddingProvider(Protocol):
    """Colaborador externo: ``embed(texts) -> vectores``."""

    model_name: str
    max_batch_size: int

    async def embed(self, texts: list[str]) -> list[list[float]]:
        ...


class OpenAIEmbeddingProvider:
    """Embeddings vía la API de OpenAI; el cliente se crea perezosamente."""

    max_batch_size = PROVIDER_BATCH_CAP

    def __init__(self, settings: Settings) -> None:
        if not settings.openai_api_key:
            raise EmbeddingError("No hay API key de OpenAI configurada")
        self.model_name = settings.embedding_model
        self._api_key = settings.openai_api_key
        self._max_input_tokens = settings.embedding_max_input_tokens
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def embed(self, texts: list[str]) -> list[list[float]]:
        inputs = [truncate_to_tokens(t, self._max_input_tokens) for t in texts]
        resp = await self._get_client().embeddings.create(input=inputs, model=self.model_name)
        return [d.embedding for d in resp.data]


async def embed_with_retry(
    provider: EmbeddingProvider,
    texts: list[str],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    timeout: float | None = None,
) -> list[list[float]]:
    """Llama al proveedor con reintentos y backoff exponencial.

    Cada intento está acotado por ``timeout``; un timeout cuenta como fallo.
    Tras agotar los reintentos lanza ``EmbeddingError``.
    """
    last_err: Exception | None = None
    for attempt in range(1, max_retries + 1):
        try:
            vectors = await asyncio.wait_for(provider.embed(texts), timeout)
            if len(vectors) != len(texts):
                raise EmbeddingError(
                    f"El proveedor devolvió {len(vectors)} vectores para {len(texts)} textos"
                )
            logger.debug("embeddings_batch_ok", count=len(texts), attempt=attempt)
            return vectors
        except Exception as exc:
            last_err = exc
            if attempt == max_retries:
                break
            wait = base_delay * 2 ** (attempt - 1)
            logger.warning(
                "embeddings_retry",
                attempt=attempt,
                wait=wait,
                error=str(exc) or type(exc).__name__,
            )
            await asyncio.sleep(wait)

    raise EmbeddingError(
        f"Fallo al generar embeddings tras {max_retries} intentos: {last_err!r}"
    ) from last_err
