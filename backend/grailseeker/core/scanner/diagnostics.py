"""Diagnostics export for debugging scan resolutions."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from .classifier import candidate_signals
from .models import Candidate, ScanDiagnostics, ScanQuery, SearchStrategy

logger = structlog.get_logger("grailseeker.scanner.diagnostics")


def build_diagnostics(
    query: ScanQuery,
    strategy: SearchStrategy | None,
    candidates: Sequence[Candidate],
    lookup_error: str | None = None,
    timings: dict[str, float] | None = None,
) -> ScanDiagnostics:
    """Snapshot the ranked candidates of a resolution.

    Works on copies, so nothing here can feed back into classification.

    Args:
        query: Parsed scan query
        strategy: Search strategy used
        candidates: Ranked candidates, accepted and rejected
        lookup_error: Catalog error marker, if the search failed
        timings: Stage durations in milliseconds

    Returns:
        ScanDiagnostics with accepted and rejected candidates split out
    """
    accepted: list[Candidate] = []
    rejected: list[Candidate] = []
    for candidate in candidates:
        snapshot = candidate.model_copy(
            update={"signals": candidate_signals(query, candidate)}, deep=True
        )
        (rejected if candidate.rejected else accepted).append(snapshot)

    return ScanDiagnostics(
        query=query,
        strategy=strategy,
        accepted=accepted,
        rejected=rejected,
        lookup_error=lookup_error,
        timings={name: round(ms, 3) for name, ms in (timings or {}).items()},
    )


def log_diagnostics(diagnostics: ScanDiagnostics) -> None:
    """Write a diagnostics snapshot to the structured log."""
    logger.info(
        "Scan diagnostics",
        title=diagnostics.query.title,
        issue_number=diagnostics.query.issue_number,
        strategy=diagnostics.strategy,
        accepted=len(diagnostics.accepted),
        rejected=[
            {"id": c.source_id, "series": c.series_name, "reason": c.reject_reason}
            for c in diagnostics.rejected
        ],
        top=[
            {"id": c.source_id, "series": c.series_name, "score": c.score}
            for c in diagnostics.accepted[:5]
        ],
        lookup_error=diagnostics.lookup_error,
        timings=diagnostics.timings,
    )
