"""Application routes."""

from __future__ import annotations

import structlog
from fastapi import APIRouter

from grailseeker.routes import general
from grailseeker.routes.scanner import create_scanner_router

logger = structlog.get_logger("grailseeker.routes")


def create_app_router() -> APIRouter:
    """Create and configure main application router.

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter()

    router.include_router(general.router, tags=["general"])

    scanner_router = create_scanner_router()
    router.include_router(scanner_router)
    logger.debug("Included scanner router in app_router")

    return router
