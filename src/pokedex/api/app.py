"""FastAPI application factory.

The application owns one engine and one QueryExecutor for its lifetime.
Schema creation and sample data loading happen in the lifespan handler.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pokedex.aggregation import AggregationError, AggregationTimeout
from pokedex.config import AggregationSettings, PokedexSettings, load_settings
from pokedex.db.executor import QueryExecutor, SqlQueryExecutor, UnknownStatementError
from pokedex.db.seed import reset_db
from pokedex.db.session import drop_schema, get_engine

logger = logging.getLogger(__name__)


def get_executor(request: Request) -> QueryExecutor:
    """Dependency to get the application's query executor."""
    return request.app.state.executor


def get_aggregation_settings(request: Request) -> AggregationSettings:
    """Dependency to get the aggregation settings."""
    return request.app.state.settings.aggregation


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Reset the database on start-up and optionally drop it on shutdown."""
    settings: PokedexSettings = app.state.settings
    engine = app.state.engine

    if settings.bootstrap.reset_on_start:
        reset_db(engine, app.state.executor, settings.bootstrap)

    logger.info(f"Pokedex API is up, database {engine.url.render_as_string()}")
    yield

    if settings.bootstrap.drop_on_shutdown:
        drop_schema(engine)
    logger.info("Pokedex API is down.")


def create_app(settings: PokedexSettings | None = None) -> FastAPI:
    """Create FastAPI application.

    Args:
        settings: Optional settings. Loaded with load_settings() when omitted.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = load_settings()

    app = FastAPI(
        title="Pokedex API",
        description="Pokemons and their types",
        version="0.1.0",
        lifespan=lifespan,
    )

    engine = get_engine(settings.database.url)
    app.state.settings = settings
    app.state.engine = engine
    app.state.executor = SqlQueryExecutor(engine, settings.database.statements)

    # Aggregation failures must never look like a (truncated) success
    @app.exception_handler(AggregationTimeout)
    def aggregation_timeout(request: Request, exc: AggregationTimeout) -> JSONResponse:
        logger.error(f"{request.method} {request.url.path} timed out: {exc}")
        return JSONResponse(status_code=504, content={"detail": str(exc)})

    @app.exception_handler(AggregationError)
    def aggregation_failed(request: Request, exc: AggregationError) -> JSONResponse:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(UnknownStatementError)
    def unknown_statement(request: Request, exc: UnknownStatementError) -> JSONResponse:
        logger.error(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    # Include routes
    from pokedex.api.routes import pokemon, types

    prefix = settings.server.api_prefix
    app.include_router(pokemon.router, prefix=prefix)
    app.include_router(types.router, prefix=prefix)

    # Health check endpoint
    @app.get("/health")
    def health_check(request: Request):
        """Health check endpoint."""
        request.app.state.executor.run_query("ping")
        return {"status": "ok"}

    return app
