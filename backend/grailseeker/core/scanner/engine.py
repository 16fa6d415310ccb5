"""Scan resolution engine - runs the pipeline for one input.

Normalize -> correction lookup -> catalog search -> rank -> classify.

The engine performs no writes. Anything with a side effect (recording a
correction, logging diagnostics) is returned as an event on the resolution
and executed by the service layer.
"""

from __future__ import annotations

import time

import structlog

from grailseeker.core.metrics import (
    scan_correction_hits_total,
    scan_resolution_duration_seconds,
    scan_resolutions_total,
)
from grailseeker.core.tracing import generate_trace_id, get_trace_id

from .catalog import CatalogLookup, CatalogQueryAdapter
from .classifier import classify, confirm_selection, outcome_state, resolve_from_correction
from .config import ScannerConfig, get_scanner_config
from .corrections import CorrectionLookup
from .diagnostics import build_diagnostics
from .models import (
    Candidate,
    EmitDiagnostics,
    NoMatch,
    ScanContext,
    ScanEvent,
    ScanResolution,
    ScanState,
)
from .normalizer import normalize_input_key, parse_scan_input
from .scoring import rank_candidates

logger = structlog.get_logger("grailseeker.scanner.engine")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class ScanResolutionEngine:
    """Resolves raw scan input to a trusted answer, a short list, or nothing."""

    def __init__(
        self,
        catalog: CatalogQueryAdapter,
        corrections: CorrectionLookup,
        config: ScannerConfig | None = None,
    ):
        self.catalog = catalog
        self.corrections = corrections
        self.config = config or get_scanner_config()

    async def resolve(
        self,
        raw_input: str,
        publisher_hint: str | None = None,
        context: ScanContext | None = None,
        debug: bool = False,
        report_candidate_id: str | None = None,
        trace_id: str | None = None,
    ) -> ScanResolution:
        """Resolve one scan input.

        A stored correction for the input short-circuits the catalog
        entirely, except in report mode where the user has just told us the
        previous answer was wrong.

        Args:
            raw_input: Text typed by a user or produced by OCR
            publisher_hint: Optional free-text publisher
            context: Publisher preference and format
            debug: Attach a diagnostics snapshot to the resolution
            report_candidate_id: Candidate the user reported as a wrong match
            trace_id: Trace id to stamp on the resolution

        Returns:
            ScanResolution in a terminal state
        """
        started = time.perf_counter()
        context = context or ScanContext()
        trace_id = trace_id or get_trace_id() or generate_trace_id()
        timings: dict[str, float] = {}

        stage = time.perf_counter()
        query = parse_scan_input(raw_input, publisher_hint)
        key = normalize_input_key(raw_input)
        timings["parse_ms"] = _elapsed_ms(stage)

        log = logger.bind(title=query.title, issue_number=query.issue_number, key=key)
        log.debug("Resolving scan input", state=ScanState.SEARCHING.value)

        if report_candidate_id is None:
            stage = time.perf_counter()
            correction = await self.corrections.lookup(key)
            timings["correction_lookup_ms"] = _elapsed_ms(stage)
            if correction is not None:
                scan_correction_hits_total.inc()
                log.info("Resolved from correction memory", correction_id=correction.id)
                return self._finish(
                    ScanResolution(
                        state=ScanState.AUTO_RESOLVED,
                        outcome=resolve_from_correction(correction),
                        query=query,
                        strategy="correction",
                        context=context,
                        trace_id=trace_id,
                    ),
                    started,
                )

        if not query.title:
            lookup = CatalogLookup(strategy="volume_first")
        else:
            stage = time.perf_counter()
            lookup = await self.catalog.gather_candidates(query)
            timings["catalog_ms"] = _elapsed_ms(stage)

        stage = time.perf_counter()
        ranked = rank_candidates(query, lookup.candidates, config=self.config)
        timings["scoring_ms"] = _elapsed_ms(stage)
        log.debug("Candidates scored", state=ScanState.SCORED.value, count=len(ranked))

        outcome = classify(
            query,
            ranked,
            context=context,
            report_candidate_id=report_candidate_id,
            lookup_error=lookup.error,
            config=self.config,
        )
        timings["total_ms"] = _elapsed_ms(started)

        events: list[ScanEvent] = []
        diagnostics = None
        if debug:
            diagnostics = build_diagnostics(query, lookup.strategy, ranked, lookup.error, timings)
            events.append(EmitDiagnostics(diagnostics=diagnostics))

        return self._finish(
            ScanResolution(
                state=outcome_state(outcome),
                outcome=outcome,
                query=query,
                strategy=lookup.strategy,
                context=context,
                trace_id=trace_id,
                events=events,
                diagnostics=diagnostics,
            ),
            started,
        )

    def confirm(
        self,
        raw_input: str,
        candidate: Candidate,
        original_confidence: float | None = None,
        reported_candidate_id: str | None = None,
        ocr_text: str | None = None,
        user_id: str | None = None,
        context: ScanContext | None = None,
        trace_id: str | None = None,
    ) -> ScanResolution:
        """Turn a human pick into a terminal resolution plus a correction event.

        Raises:
            ReportedCandidateError: If the pick is the reported candidate
        """
        trace_id = trace_id or get_trace_id() or generate_trace_id()
        outcome, event = confirm_selection(
            raw_input,
            candidate,
            original_confidence=original_confidence,
            reported_candidate_id=reported_candidate_id,
            ocr_text=ocr_text,
            request_id=trace_id,
            user_id=user_id,
        )
        logger.info(
            "Selection confirmed",
            key=event.correction.normalized_input_key,
            source_id=candidate.source_id,
            original_confidence=original_confidence,
        )
        return ScanResolution(
            state=ScanState.AUTO_RESOLVED,
            outcome=outcome,
            query=parse_scan_input(raw_input),
            strategy="correction",
            context=context or ScanContext(),
            trace_id=trace_id,
            events=[event],
        )

    def _finish(self, resolution: ScanResolution, started: float) -> ScanResolution:
        scan_resolutions_total.labels(outcome=resolution.outcome.kind).inc()
        scan_resolution_duration_seconds.observe(time.perf_counter() - started)
        if isinstance(resolution.outcome, NoMatch):
            logger.info("Scan resolution found no match", reason=resolution.outcome.reason)
        return resolution
