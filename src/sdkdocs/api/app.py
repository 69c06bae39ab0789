"""FastAPI app factory con lifespan: pipeline, estado persistido y pgvector opcional."""

from __future__ import annotations

import os
import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sdkdocs import __version__
from sdkdocs.agent.tools import configure_tools
from sdkdocs.config import get_settings
from sdkdocs.database import close_pool, create_pool, run_migrations
from sdkdocs.errors import ConfigurationError
from sdkdocs.indexer.pipeline import DocsPipeline, build_pipeline

logger = structlog.get_logger(__name__)


def create_app(pipeline: DocsPipeline | None = None) -> FastAPI:
    """Factory que crea la app FastAPI con todos los routers.

    Con ``pipeline`` dado (tests, embebido) no se abre pool ni se relee el entorno.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pool = None
        if pipeline is not None:
            app.state.pipeline = pipeline
        else:
            settings = get_settings()
            if settings.database_url:
                pool = await create_pool(settings)
                await run_migrations(pool)
            app.state.pipeline = build_pipeline(settings, pool)
        await app.state.pipeline.initialize()
        configure_tools(app.state.pipeline)
        app.state.pool = pool
        logger.info("app_started", version=__version__, vector=app.state.pipeline.vector.is_available())
        yield
        if pool is not None:
            await close_pool(pool)
        logger.info("app_stopped")

    app = FastAPI(
        title="SDK Docs",
        description="Búsqueda híbrida y guía de workflows sobre la documentación de un SDK",
        version=__version__,
        lifespan=lifespan,
    )

    # --- CORS ---
    allowed_origins = os.getenv("SDKDOCS_CORS_ORIGINS", "*").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Middleware: request_id + timing ---
    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        t0 = time.time()
        response: Response = await call_next(request)
        duration_ms = round((time.time() - t0) * 1000, 1)

        logger.info(
            "request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration_ms,
        )
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Duration-Ms"] = str(duration_ms)
        return response

    @app.exception_handler(ConfigurationError)
    async def configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.info("configuration_error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    # --- Routers ---
    from sdkdocs.api.routes.health import router as health_router
    from sdkdocs.api.routes.index import router as index_router
    from sdkdocs.api.routes.search import router as search_router
    from sdkdocs.api.routes.tools import router as tools_router

    app.include_router(health_router, tags=["health"])
    app.include_router(search_router, tags=["search"])
    app.include_router(index_router, tags=["indexer"])
    app.include_router(tools_router, tags=["tools"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": "sdkdocs", "version": __version__, "docs": "/docs"}

    return app
