"""Scanner routes for resolving scan input and recording confirmations."""

from __future__ import annotations

from collections.abc import Callable

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from grailseeker.core.errors import CorrectionStoreError, ReportedCandidateError
from grailseeker.core.scanner.models import Candidate, CorrectionRecord, ScanContext, ScanResolution
from grailseeker.core.scanner.normalizer import normalize_input_key
from grailseeker.core.scanner.service import ScanService

logger = structlog.get_logger("grailseeker.routes.scanner")


class ResolveRequest(BaseModel):
    """Request body for resolving a scan."""

    input: str = Field(..., min_length=1, max_length=500, description="Raw scan text")
    publisher_hint: str | None = Field(default=None, max_length=100)
    context: ScanContext | None = None
    debug: bool = Field(default=False, description="Include diagnostics in the response")
    report_candidate_id: str | None = Field(
        default=None, description="Catalog id of a match the user reported as wrong"
    )


class ConfirmRequest(BaseModel):
    """Request body for confirming a candidate."""

    input: str = Field(..., min_length=1, max_length=500, description="Raw scan text")
    candidate: Candidate
    original_confidence: float | None = Field(default=None, ge=0, le=100)
    reported_candidate_id: str | None = None
    ocr_text: str | None = None
    user_id: str | None = None
    context: ScanContext | None = None


class CorrectionResponse(BaseModel):
    """Latest correction for a key plus how many were ever recorded."""

    correction: CorrectionRecord
    total_corrections: int


def get_scan_service(request: Request) -> ScanService:
    """FastAPI dependency returning the scan service built at startup."""
    service = getattr(request.app.state, "scan_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scanner is not initialized",
        )
    return service


def create_scanner_router(
    service_dependency: Callable[..., ScanService] = get_scan_service,
) -> APIRouter:
    """Create scanner router.

    Args:
        service_dependency: Dependency that provides the ScanService

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter(prefix="/api/scanner", tags=["scanner"])

    @router.post("/resolve", response_model=ScanResolution)
    async def resolve_scan(
        payload: ResolveRequest,
        service: ScanService = Depends(service_dependency),
    ) -> ScanResolution:
        """Resolve raw scan text to a match, a short list, or no match."""
        resolution = await service.resolve(
            payload.input,
            publisher_hint=payload.publisher_hint,
            context=payload.context,
            debug=payload.debug,
            report_candidate_id=payload.report_candidate_id,
        )
        logger.info(
            "Scan resolved",
            state=resolution.state.value,
            strategy=resolution.strategy,
            report_mode=payload.report_candidate_id is not None,
        )
        return resolution

    @router.post("/confirm", response_model=ScanResolution)
    async def confirm_scan(
        payload: ConfirmRequest,
        service: ScanService = Depends(service_dependency),
    ) -> ScanResolution:
        """Record the candidate a user picked as the answer for this input."""
        try:
            return await service.confirm(
                payload.input,
                payload.candidate,
                original_confidence=payload.original_confidence,
                reported_candidate_id=payload.reported_candidate_id,
                ocr_text=payload.ocr_text,
                user_id=payload.user_id,
                context=payload.context,
            )
        except ReportedCandidateError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    @router.get("/corrections/{normalized_key}", response_model=CorrectionResponse)
    async def get_correction(
        normalized_key: str,
        service: ScanService = Depends(service_dependency),
    ) -> CorrectionResponse:
        """Latest correction for an input key.

        The key is normalized again, so raw input works as well.
        """
        key = normalize_input_key(normalized_key)
        try:
            correction = await service.get_correction(key)
            if correction is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"No correction recorded for '{key}'",
                )
            total = await service.correction_count(key)
        except CorrectionStoreError as e:
            logger.error("Correction lookup failed", key=key, error=str(e))
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Correction memory is unavailable",
            ) from e

        return CorrectionResponse(correction=correction, total_corrections=total)

    return router
