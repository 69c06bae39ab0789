"""Pool de conexiones asyncpg hacia Postgres (store pgvector opcional)."""

from __future__ import annotations

import pathlib
import ssl as _ssl
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import asyncpg
import structlog

from sdkdocs.config import Settings

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = pathlib.Path(__file__).resolve().parent.parent.parent / "db" / "migrations"

_ASYNCPG_UNSUPPORTED_PARAMS = {"sslmode", "channel_binding"}


def _needs_ssl(dsn: str) -> bool:
    return "sslmode=require" in dsn or "sslmode=verify-full" in dsn


def _clean_dsn(dsn: str) -> str:
    """Elimina parámetros de query string que asyncpg no soporta.

    asyncpg maneja SSL con su argumento ``ssl``, no por el query string.
    """
    if dsn.startswith("postgresql+asyncpg://"):
        dsn = dsn.replace("postgresql+asyncpg://", "postgresql://", 1)

    parsed = urlparse(dsn)
    params = parse_qs(parsed.query)
    cleaned = {k: v for k, v in params.items() if k not in _ASYNCPG_UNSUPPORTED_PARAMS}
    return urlunparse(parsed._replace(query=urlencode(cleaned, doseq=True)))


async def create_pool(settings: Settings) -> asyncpg.Pool:
    """Crea el pool; quien lo crea es dueño de cerrarlo."""
    if not settings.database_url:
        raise RuntimeError("SDKDOCS_DATABASE_URL no está configurada.")

    raw_dsn = settings.database_url
    dsn = _clean_dsn(raw_dsn)
    ssl: _ssl.SSLContext | bool = _ssl.create_default_context() if _needs_ssl(raw_dsn) else False

    pool = await asyncpg.create_pool(dsn=dsn, min_size=1, max_size=10, ssl=ssl)
    logger.info("pool_created", dsn=dsn[:50] + "…")
    return pool


async def close_pool(pool: asyncpg.Pool) -> None:
    await pool.close()
    logger.info("pool_closed")


async def run_migrations(pool: asyncpg.Pool) -> None:
    """Ejecuta las migraciones SQL en orden."""
    migration_files = sorted(MIGRATIONS_DIR.glob("*.sql"))
    async with pool.acquire() as conn:
        for mig in migration_files:
            logger.info("migration_running", file=mig.name)
            await conn.execute(mig.read_text())
    logger.info("migrations_complete", count=len(migration_files))
