"""Correction memory - human-confirmed answers keyed by normalized input.

Rows are append-only. A lookup returns the most recent correction for a key,
so a later reclassification overrides an earlier one without deleting it.
"""

from __future__ import annotations

from typing import Protocol

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from grailseeker.core.database import retry_db_operation
from grailseeker.core.errors import CorrectionStoreError
from grailseeker.core.metrics import correction_writes_failed_total
from grailseeker.db.models import ScanCorrection

from .models import CandidateRef, CorrectionRecord, SelectedFields

logger = structlog.get_logger("grailseeker.scanner.corrections")


class CorrectionLookup(Protocol):
    """What the resolution engine needs from correction memory."""

    async def lookup(self, key: str) -> CorrectionRecord | None: ...


def row_to_record(row: ScanCorrection) -> CorrectionRecord:
    """Convert a database row to a CorrectionRecord."""
    return CorrectionRecord(
        id=row.id,
        normalized_input_key=row.normalized_input,
        selected_candidate_ref=CandidateRef(
            source_id=row.selected_comicvine_id,
            resource_kind="volume" if row.selected_resource == "volume" else "issue",
        ),
        selected_fields=SelectedFields(
            series_name=row.selected_title,
            issue_number=row.selected_issue,
            year=row.selected_year,
            publisher=row.selected_publisher,
            cover_image_ref=row.selected_cover_url,
            volume_id=row.selected_volume_id,
        ),
        source_raw_input=row.input_text,
        original_confidence=row.original_confidence,
        created_at=row.created_at,
        ocr_text=row.ocr_text,
        request_id=row.request_id,
        user_id=row.user_id,
    )


def record_to_row(record: CorrectionRecord) -> ScanCorrection:
    """Convert a CorrectionRecord to a new database row."""
    fields = record.selected_fields
    row = ScanCorrection(
        normalized_input=record.normalized_input_key,
        input_text=record.source_raw_input,
        ocr_text=record.ocr_text,
        selected_comicvine_id=record.selected_candidate_ref.source_id,
        selected_resource=record.selected_candidate_ref.resource_kind,
        selected_volume_id=fields.volume_id,
        selected_title=fields.series_name,
        selected_issue=fields.issue_number,
        selected_year=fields.year,
        selected_publisher=fields.publisher,
        selected_cover_url=fields.cover_image_ref,
        original_confidence=record.original_confidence,
        request_id=record.request_id,
        user_id=record.user_id,
        created_at=record.created_at,
    )
    if record.id:
        row.id = record.id
    return row


class CorrectionStore:
    """SQLite-backed correction memory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def latest(self, key: str) -> CorrectionRecord | None:
        """Most recent correction for a key.

        Raises:
            CorrectionStoreError: If the database cannot be read
        """
        statement = (
            select(ScanCorrection)
            .where(ScanCorrection.normalized_input == key)
            .order_by(col(ScanCorrection.created_at).desc(), col(ScanCorrection.id).desc())
            .limit(1)
        )
        try:
            async with self.session_factory() as session:
                result = await retry_db_operation(
                    lambda: session.exec(statement),
                    operation_type="correction_lookup",
                )
                row = result.first()
        except SQLAlchemyError as e:
            raise CorrectionStoreError(f"Failed to read corrections: {e}") from e

        return row_to_record(row) if row is not None else None

    async def lookup(self, key: str) -> CorrectionRecord | None:
        """Most recent correction for a key; read failures count as a miss."""
        if not key:
            return None
        try:
            return await self.latest(key)
        except CorrectionStoreError as e:
            logger.warning("Correction lookup failed, treating as miss", key=key, error=str(e))
            return None

    async def record(self, correction: CorrectionRecord) -> bool:
        """Append a correction.

        Failures are logged and counted but never raised: a lost correction
        must not change the answer already given to the user.

        Returns:
            True if the row was written
        """
        row = record_to_row(correction)
        try:
            async with self.session_factory() as session:
                session.add(row)
                await retry_db_operation(
                    lambda: session.commit(),
                    session=session,
                    operation_type="correction_insert",
                )
        except IntegrityError as e:
            correction_writes_failed_total.labels(reason="conflict").inc()
            logger.warning(
                "Correction write conflicted, dropping",
                key=correction.normalized_input_key,
                correction_id=row.id,
                error=str(e.orig) if e.orig else str(e),
            )
            return False
        except SQLAlchemyError as e:
            correction_writes_failed_total.labels(reason="database").inc()
            logger.warning(
                "Correction write failed, dropping",
                key=correction.normalized_input_key,
                error=str(e),
            )
            return False

        logger.info(
            "Correction recorded",
            key=correction.normalized_input_key,
            selected_id=correction.selected_candidate_ref.source_id,
            request_id=correction.request_id,
        )
        return True

    async def count(self, key: str) -> int:
        """Number of corrections ever recorded for a key."""
        statement = select(func.count()).select_from(ScanCorrection).where(
            ScanCorrection.normalized_input == key
        )
        try:
            async with self.session_factory() as session:
                result = await session.exec(statement)
                return int(result.one())
        except SQLAlchemyError as e:
            raise CorrectionStoreError(f"Failed to count corrections: {e}") from e
