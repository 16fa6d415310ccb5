"""Pydantic models for scan queries, candidates, corrections and outcomes."""

from __future__ import annotations

import time
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

ResourceKind = Literal["volume", "issue"]
PublisherFilter = Literal["marvel", "dc", "indie"]
ScanFormat = Literal["raw", "slab"]
ScoringMode = Literal["issue_first", "volume_only"]
SearchStrategy = Literal["issue_first", "volume_first", "correction"]
NoMatchReason = Literal["no_candidates", "low_confidence", "search_failed"]
RejectReason = Literal["reprint", "title_mismatch", "duplicate"]


class ScanState(str, Enum):
    """Lifecycle of a single scan resolution."""

    SEARCHING = "searching"
    SCORED = "scored"
    AUTO_RESOLVED = "auto_resolved"
    NEEDS_CONFIRMATION = "needs_confirmation"
    NO_MATCH = "no_match"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanState.AUTO_RESOLVED, ScanState.NEEDS_CONFIRMATION, ScanState.NO_MATCH)


class ScanQuery(BaseModel):
    """Structured reading of a raw scan input. Derived once, never mutated."""

    model_config = ConfigDict(frozen=True)

    raw_input: str = Field(..., description="Input exactly as received")
    title: str = Field(..., description="Series title portion of the input")
    issue_number: str | None = Field(default=None, description="Issue number as written")
    publisher_hint: str | None = Field(default=None, description="Free-text publisher hint")
    year: int | None = Field(
        default=None, description="Parenthesised cover year, used for signals only"
    )


class ScanContext(BaseModel):
    """Per-scan user preferences, passed explicitly through the pipeline."""

    model_config = ConfigDict(frozen=True)

    publisher_filter: PublisherFilter | None = Field(
        default=None, description="Publisher family to rank first"
    )
    format: ScanFormat = Field(default="raw", description="Raw book or graded slab")


class ScoreBreakdown(BaseModel):
    """Weighted components that add up to a candidate's score."""

    title: float = 0.0
    publisher: float = 0.0
    issue: float = 0.0
    title_ratio: float = Field(default=0.0, description="Matched title tokens / total tokens")
    bonus: float = 0.0
    mode: ScoringMode = "issue_first"


class CandidateSignals(BaseModel):
    """Explainability hints shown next to a confirmation candidate."""

    exact_issue: bool = False
    exact_year: bool = False


class Candidate(BaseModel):
    """A catalog item that might be the scanned comic."""

    source_id: str = Field(..., description="Catalog id of the volume or issue")
    resource_kind: ResourceKind
    series_name: str
    issue_number: str | None = None
    year: int | None = None
    publisher: str | None = None
    cover_image_ref: str | None = None
    volume_id: str | None = Field(default=None, description="Owning volume for issue candidates")

    score: float = Field(default=0.0, ge=0.0, le=1.0)
    score_breakdown: ScoreBreakdown | None = None
    rejected: bool = False
    reject_reason: RejectReason | None = None
    signals: CandidateSignals | None = None
    retrieval_index: int = Field(default=0, description="Arrival order, diagnostics only")


class CandidateRef(BaseModel):
    """Catalog reference to the item a human picked."""

    source_id: str
    resource_kind: ResourceKind = "issue"


class SelectedFields(BaseModel):
    """Display fields copied from the picked candidate."""

    series_name: str
    issue_number: str | None = None
    year: int | None = None
    publisher: str | None = None
    cover_image_ref: str | None = None
    volume_id: str | None = None


class CorrectionRecord(BaseModel):
    """A human-confirmed answer for a normalized input key.

    The key is always normalize_input_key(source_raw_input); build records
    with from_selection() to keep that true.
    """

    id: str | None = None
    normalized_input_key: str
    selected_candidate_ref: CandidateRef
    selected_fields: SelectedFields
    source_raw_input: str
    original_confidence: float | None = None
    created_at: float = Field(default_factory=time.time)
    ocr_text: str | None = None
    request_id: str | None = None
    user_id: str | None = None

    @classmethod
    def from_selection(
        cls,
        raw_input: str,
        candidate: Candidate,
        original_confidence: float | None = None,
        ocr_text: str | None = None,
        request_id: str | None = None,
        user_id: str | None = None,
    ) -> CorrectionRecord:
        """Build a correction from the raw input and the candidate a human chose."""
        from .normalizer import normalize_input_key

        return cls(
            normalized_input_key=normalize_input_key(raw_input),
            selected_candidate_ref=CandidateRef(
                source_id=candidate.source_id, resource_kind=candidate.resource_kind
            ),
            selected_fields=SelectedFields(
                series_name=candidate.series_name,
                issue_number=candidate.issue_number,
                year=candidate.year,
                publisher=candidate.publisher,
                cover_image_ref=candidate.cover_image_ref,
                volume_id=candidate.volume_id,
            ),
            source_raw_input=raw_input,
            original_confidence=original_confidence,
            ocr_text=ocr_text,
            request_id=request_id,
            user_id=user_id,
        )

    def to_candidate(self) -> Candidate:
        """Rebuild the stored selection as a candidate for replay."""
        fields = self.selected_fields
        return Candidate(
            source_id=self.selected_candidate_ref.source_id,
            resource_kind=self.selected_candidate_ref.resource_kind,
            series_name=fields.series_name,
            issue_number=fields.issue_number,
            year=fields.year,
            publisher=fields.publisher,
            cover_image_ref=fields.cover_image_ref,
            volume_id=fields.volume_id,
        )


class AutoResolved(BaseModel):
    """The engine (or a stored correction) is confident enough to answer."""

    kind: Literal["auto_resolved"] = "auto_resolved"
    candidate: Candidate
    confidence: int = Field(..., ge=0, le=100)
    source: Literal["score", "correction"] = "score"


class NeedsConfirmation(BaseModel):
    """A human must pick from a short, ordered list."""

    kind: Literal["needs_confirmation"] = "needs_confirmation"
    candidates: list[Candidate] = Field(default_factory=list)
    report_mode: bool = Field(default=False, description="User reported the previous answer")
    excluded_candidate_id: str | None = None


class NoMatch(BaseModel):
    """Nothing worth showing."""

    kind: Literal["no_match"] = "no_match"
    reason: NoMatchReason


ResolutionOutcome = Annotated[
    AutoResolved | NeedsConfirmation | NoMatch, Field(discriminator="kind")
]


class ScanDiagnostics(BaseModel):
    """Read-only debug snapshot of one resolution."""

    query: ScanQuery
    strategy: SearchStrategy | None = None
    accepted: list[Candidate] = Field(default_factory=list)
    rejected: list[Candidate] = Field(default_factory=list)
    lookup_error: str | None = None
    timings: dict[str, float] = Field(default_factory=dict, description="Stage durations in ms")


class RecordCorrection(BaseModel):
    """Side effect: persist a human-confirmed correction."""

    kind: Literal["record_correction"] = "record_correction"
    correction: CorrectionRecord


class EmitDiagnostics(BaseModel):
    """Side effect: log the diagnostics snapshot."""

    kind: Literal["emit_diagnostics"] = "emit_diagnostics"
    diagnostics: ScanDiagnostics


ScanEvent = Annotated[RecordCorrection | EmitDiagnostics, Field(discriminator="kind")]


class ScanResolution(BaseModel):
    """Result of resolving one scan input.

    events are executed by the service layer and are not part of the
    serialised response.
    """

    state: ScanState
    outcome: ResolutionOutcome
    query: ScanQuery
    strategy: SearchStrategy | None = None
    context: ScanContext = Field(default_factory=ScanContext)
    trace_id: str | None = None
    events: list[ScanEvent] = Field(default_factory=list, exclude=True)
    diagnostics: ScanDiagnostics | None = None
