"""Confidence classifier - decides how much to trust the ranked candidates.

The decision is made on the best score alone; the publisher bias only
changes the order in which confirmation candidates are presented.
"""

from __future__ import annotations

import structlog

from grailseeker.core.errors import ReportedCandidateError

from .bias import apply_bias
from .config import ScannerConfig, get_scanner_config
from .models import (
    AutoResolved,
    Candidate,
    CandidateSignals,
    CorrectionRecord,
    NeedsConfirmation,
    NoMatch,
    RecordCorrection,
    ResolutionOutcome,
    ScanContext,
    ScanQuery,
    ScanState,
)

logger = structlog.get_logger("grailseeker.scanner.classifier")

CORRECTION_CONFIDENCE = 100


def outcome_state(outcome: ResolutionOutcome) -> ScanState:
    """Map an outcome to its terminal state."""
    if isinstance(outcome, AutoResolved):
        return ScanState.AUTO_RESOLVED
    if isinstance(outcome, NeedsConfirmation):
        return ScanState.NEEDS_CONFIRMATION
    return ScanState.NO_MATCH


def candidate_signals(query: ScanQuery, candidate: Candidate) -> CandidateSignals:
    """Exact-issue and exact-year hints for the confirmation list."""
    return CandidateSignals(
        exact_issue=(
            query.issue_number is not None and candidate.issue_number == query.issue_number
        ),
        exact_year=query.year is not None and candidate.year == query.year,
    )


def to_confidence(score: float) -> int:
    """Convert a 0-1 score to a 0-100 confidence."""
    return max(0, min(100, round(score * 100)))


def resolve_from_correction(record: CorrectionRecord) -> AutoResolved:
    """Replay a stored correction as a fully trusted answer."""
    return AutoResolved(
        candidate=record.to_candidate(),
        confidence=CORRECTION_CONFIDENCE,
        source="correction",
    )


def classify(
    query: ScanQuery,
    ranked: list[Candidate],
    context: ScanContext | None = None,
    report_candidate_id: str | None = None,
    lookup_error: str | None = None,
    config: ScannerConfig | None = None,
) -> ResolutionOutcome:
    """Classify ranked candidates into a resolution outcome.

    Args:
        query: Parsed scan query
        ranked: Output of rank_candidates (accepted first, by score)
        context: Scan context used to order confirmation candidates
        report_candidate_id: Catalog id the user reported as a wrong match;
            forces the confirmation flow and is never offered again
        lookup_error: Set when the catalog could not be searched
        config: Scanner configuration (if None, loads from settings file)

    Returns:
        AutoResolved, NeedsConfirmation or NoMatch
    """
    if config is None:
        config = get_scanner_config()

    report_mode = report_candidate_id is not None
    accepted = [
        c
        for c in ranked
        if not c.rejected and not (report_mode and c.source_id == report_candidate_id)
    ]

    if not accepted:
        reason = "search_failed" if lookup_error else "no_candidates"
        logger.info("No usable candidates", reason=reason, report_mode=report_mode)
        return NoMatch(reason=reason)

    best = max(accepted, key=lambda c: c.score)

    if not report_mode and best.score >= config.auto_resolve_threshold:
        logger.info("Auto-resolved", source_id=best.source_id, score=best.score)
        return AutoResolved(candidate=best, confidence=to_confidence(best.score), source="score")

    if report_mode or best.score >= config.confirm_threshold:
        # Top candidates by score; bias only reorders within that short list
        top = sorted(accepted, key=lambda c: -c.score)[: config.max_confirmation_candidates]
        presented = apply_bias(top, context)
        candidates = [
            c.model_copy(update={"signals": candidate_signals(query, c)}) for c in presented
        ]
        logger.info(
            "Needs confirmation",
            best_score=best.score,
            candidates=len(candidates),
            report_mode=report_mode,
        )
        return NeedsConfirmation(
            candidates=candidates,
            report_mode=report_mode,
            excluded_candidate_id=report_candidate_id,
        )

    logger.info("Best score below confirmation threshold", best_score=best.score)
    return NoMatch(reason="low_confidence")


def confirm_selection(
    raw_input: str,
    candidate: Candidate,
    original_confidence: float | None = None,
    reported_candidate_id: str | None = None,
    ocr_text: str | None = None,
    request_id: str | None = None,
    user_id: str | None = None,
) -> tuple[AutoResolved, RecordCorrection]:
    """Accept a human's pick as the answer for this input.

    Args:
        raw_input: Raw input the user was resolving
        candidate: The candidate the user picked
        original_confidence: Confidence the engine had before the pick
        reported_candidate_id: Candidate the user reported as wrong, if any
        ocr_text: OCR text that produced the input, kept for provenance
        request_id: Trace id of the resolution being confirmed
        user_id: Confirming user

    Returns:
        Tuple of (terminal AutoResolved outcome, RecordCorrection event)

    Raises:
        ReportedCandidateError: If the pick is the candidate that was reported
    """
    if reported_candidate_id is not None and candidate.source_id == reported_candidate_id:
        raise ReportedCandidateError(candidate.source_id)

    record = CorrectionRecord.from_selection(
        raw_input,
        candidate,
        original_confidence=original_confidence,
        ocr_text=ocr_text,
        request_id=request_id,
        user_id=user_id,
    )
    outcome = AutoResolved(
        candidate=candidate, confidence=CORRECTION_CONFIDENCE, source="correction"
    )
    return outcome, RecordCorrection(correction=record)
