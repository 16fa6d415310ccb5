"""Application entry point for GrailSeeker."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from grailseeker import __version__
from grailseeker.core.config import Settings, get_settings, validate_catalog_credentials
from grailseeker.core.database import (
    create_database_engine,
    create_session_factory,
    init_database,
)
from grailseeker.core.logging import setup_logging
from grailseeker.core.metrics import setup_metrics
from grailseeker.core.middleware import TracingMiddleware
from grailseeker.core.routes import create_app_router
from grailseeker.core.scanner.catalog import CatalogClient
from grailseeker.core.scanner.service import build_scan_service

logger = structlog.get_logger("grailseeker.app")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager.

    A missing ComicVine API key stops startup with ConfigurationError.
    """
    settings: Settings = app.state.settings
    logger.info(
        "Starting GrailSeeker application",
        version=__version__,
        env=settings.env,
        host=settings.host_bind_address,
        port=settings.host_port,
    )

    api_key = validate_catalog_credentials(settings)

    engine = app.state.engine
    await init_database(engine)

    app.state.scan_service = build_scan_service(
        app.state.async_session_factory,
        settings=settings,
        client=app.state.catalog_client,
        api_key=api_key,
    )
    logger.info("Scanner ready")

    yield

    logger.info("Shutting down GrailSeeker application")
    if getattr(app.state, "engine", None) is not None:
        await app.state.engine.dispose()
        logger.info("Database engine disposed")


def create_app(
    settings: Settings | None = None,
    catalog_client: CatalogClient | None = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Settings to use (defaults to get_settings())
        catalog_client: Catalog client to use instead of the ComicVine client

    Returns:
        FastAPI application
    """
    if settings is None:
        settings = get_settings()

    # Tests log to stdout only
    logs_dir = None if settings.is_testing else settings.logs_dir
    setup_logging(debug=settings.is_debug, logs_dir=logs_dir, level=settings.log_level)

    app = FastAPI(
        title="GrailSeeker",
        description="Comic scan identification and confidence resolution",
        version=__version__,
        lifespan=lifespan,
    )

    engine = create_database_engine(settings.database_file, echo=False)
    app.state.settings = settings
    app.state.engine = engine
    app.state.async_session_factory = create_session_factory(engine)
    app.state.catalog_client = catalog_client
    logger.info("Database engine and session factory created")

    # Add tracing middleware (before other middleware to capture all requests)
    app.add_middleware(TracingMiddleware)

    setup_metrics(app, __version__)

    app.include_router(create_app_router())

    return app


def main() -> None:
    """Main entry point."""
    from grailseeker.core.config import reload_settings

    current_settings = reload_settings()
    app = create_app(current_settings)

    import uvicorn

    logger.info(
        "Starting uvicorn server",
        host=current_settings.host_bind_address,
        port=current_settings.host_port,
    )

    uvicorn.run(
        app,
        host=current_settings.host_bind_address,
        port=current_settings.host_port,
        log_config=None,  # We use structlog
        reload=False,
    )


if __name__ == "__main__":
    main()
