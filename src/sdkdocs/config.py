"""Configuración centralizada de sdkdocs con pydantic-settings."""

import pathlib

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Todas las variables se leen desde env vars con prefijo SDKDOCS_."""

    # --- OpenAI ---
    openai_api_key: str | None = None
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_batch_size: int = 100
    embedding_max_retries: int = 3
    embedding_retry_base_delay: float = 1.0
    embedding_max_input_tokens: int = 8191
    vector_timeout_seconds: float = 30.0

    # --- pgvector (opcional) ---
    database_url: str | None = None

    # --- Chunking ---
    chunk_strategy: str = "hybrid"
    max_chunk_size: int = 1500
    chunk_overlap: int = 200
    oversize_tolerance: int = 500

    # --- Search ---
    lexical_weight: float = 0.5
    semantic_weight: float = 0.5
    candidate_multiplier: int = 2
    search_top_k: int = 10

    # --- Persistencia local ---
    data_dir: pathlib.Path | None = pathlib.Path(".sdkdocs")

    # --- API ---
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = {"env_prefix": "SDKDOCS_", "env_file": ".env"}


def get_settings() -> Settings:
    """Construye la configuración desde el entorno."""
    return Settings()
