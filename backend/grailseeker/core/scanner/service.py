"""Scan service - runs the engine and carries out the events it emits."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from grailseeker.core.comicvine.client import create_comicvine_client
from grailseeker.core.metrics import correction_writes_failed_total

from .catalog import CatalogClient, CatalogQueryAdapter
from .config import ScannerConfig, get_scanner_config
from .corrections import CorrectionStore
from .diagnostics import log_diagnostics
from .engine import ScanResolutionEngine
from .models import (
    Candidate,
    CorrectionRecord,
    EmitDiagnostics,
    RecordCorrection,
    ScanContext,
    ScanEvent,
    ScanResolution,
)

logger = structlog.get_logger("grailseeker.scanner.service")


class ScanService:
    """Entry point used by the HTTP routes."""

    def __init__(self, engine: ScanResolutionEngine, store: CorrectionStore):
        self.engine = engine
        self.store = store

    async def resolve(
        self,
        raw_input: str,
        publisher_hint: str | None = None,
        context: ScanContext | None = None,
        debug: bool = False,
        report_candidate_id: str | None = None,
    ) -> ScanResolution:
        resolution = await self.engine.resolve(
            raw_input,
            publisher_hint=publisher_hint,
            context=context,
            debug=debug,
            report_candidate_id=report_candidate_id,
        )
        await self.dispatch_events(resolution.events)
        return resolution

    async def confirm(
        self,
        raw_input: str,
        candidate: Candidate,
        original_confidence: float | None = None,
        reported_candidate_id: str | None = None,
        ocr_text: str | None = None,
        user_id: str | None = None,
        context: ScanContext | None = None,
    ) -> ScanResolution:
        """Confirm a human pick, then record it.

        The outcome is fixed before the write happens; a failed write is
        logged and does not change what is returned.
        """
        resolution = self.engine.confirm(
            raw_input,
            candidate,
            original_confidence=original_confidence,
            reported_candidate_id=reported_candidate_id,
            ocr_text=ocr_text,
            user_id=user_id,
            context=context,
        )
        await self.dispatch_events(resolution.events)
        return resolution

    async def dispatch_events(self, events: Sequence[ScanEvent]) -> None:
        """Execute side effects emitted by the engine. Never raises."""
        for event in events:
            try:
                if isinstance(event, RecordCorrection):
                    await self.store.record(event.correction)
                elif isinstance(event, EmitDiagnostics):
                    log_diagnostics(event.diagnostics)
            except Exception as e:
                if isinstance(event, RecordCorrection):
                    correction_writes_failed_total.labels(reason="unexpected").inc()
                logger.warning(
                    "Scan event failed",
                    event_kind=event.kind,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    async def get_correction(self, key: str) -> CorrectionRecord | None:
        """Latest correction for a normalized key.

        Raises:
            CorrectionStoreError: If the database cannot be read
        """
        return await self.store.latest(key)

    async def correction_count(self, key: str) -> int:
        return await self.store.count(key)


def build_scan_service(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Any | None = None,
    client: CatalogClient | None = None,
    config: ScannerConfig | None = None,
    api_key: str | None = None,
) -> ScanService:
    """Wire the engine, catalog adapter and correction store together.

    Args:
        session_factory: Session factory for the corrections database
        settings: Application settings (needed when client is None)
        client: Catalog client; built from settings when omitted
        config: Scanner configuration (if None, loads from settings file)
        api_key: Validated ComicVine API key

    Returns:
        ScanService instance
    """
    if config is None:
        config = get_scanner_config()
    if client is None:
        if settings is None:
            raise ValueError("settings are required to build a ComicVine client")
        client = create_comicvine_client(settings, api_key=api_key)

    store = CorrectionStore(session_factory)
    engine = ScanResolutionEngine(CatalogQueryAdapter(client, config), store, config)
    return ScanService(engine, store)
