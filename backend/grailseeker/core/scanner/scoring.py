"""Scoring engine - combines criteria into a bounded, explainable score.

Scores are pure functions of (query, candidate, publisher hint, config):
the same inputs always give the same score, and ranking uses the catalog id
as a secondary key so equal scores come out in the same order every time.
"""

from __future__ import annotations

import structlog

from .config import ScannerConfig, get_scanner_config
from .criteria import (
    find_reprint_keyword,
    match_issue_number,
    match_publisher,
    match_title,
    title_tokens,
)
from .models import Candidate, ScanQuery, ScoreBreakdown

logger = structlog.get_logger("grailseeker.scanner.scoring")

SCORE_PRECISION = 4


class ScoredResult:
    """Result of scoring one candidate.

    Attributes:
        score: Final score in [0, score_cap]
        breakdown: Weighted components of the score
        details: Human-readable reason for each component
    """

    def __init__(self, score: float, breakdown: ScoreBreakdown, details: list[str]):
        self.score = score
        self.breakdown = breakdown
        self.details = details

    def __repr__(self) -> str:
        return f"ScoredResult(score={self.score}, mode={self.breakdown.mode})"


def score_candidate(
    query: ScanQuery,
    candidate: Candidate,
    publisher_hint: str | None = None,
    config: ScannerConfig | None = None,
) -> ScoredResult:
    """Score a candidate against a query.

    Issue-first mode (query has an issue number) weights title, publisher
    and issue; volume-only mode weights title and publisher. In issue-first
    mode a candidate that matches on all three gets a tie-break bonus.

    Args:
        query: Parsed scan query
        candidate: Catalog candidate
        publisher_hint: Publisher hint (defaults to query.publisher_hint)
        config: Scanner configuration (if None, loads from settings file)

    Returns:
        ScoredResult with the capped, rounded score and its breakdown
    """
    if config is None:
        config = get_scanner_config()
    if publisher_hint is None:
        publisher_hint = query.publisher_hint

    details: list[str] = []

    if query.issue_number is not None:
        mode = "issue_first"
        title_weight = config.issue_first_title_weight
        publisher_weight = config.issue_first_publisher_weight
        issue_weight = config.issue_first_issue_weight
    else:
        mode = "volume_only"
        title_weight = config.volume_only_title_weight
        publisher_weight = config.volume_only_publisher_weight
        issue_weight = 0.0

    title_score, title_ratio, title_reason = match_title(
        query.title, candidate.series_name, title_weight, config
    )
    details.append(title_reason)

    publisher_score, publisher_reason = match_publisher(
        publisher_hint, candidate.publisher, publisher_weight
    )
    details.append(publisher_reason)

    issue_score = 0.0
    if mode == "issue_first":
        issue_score, issue_reason = match_issue_number(
            query.issue_number, candidate.issue_number, issue_weight
        )
        details.append(issue_reason)

    bonus = 0.0
    if (
        mode == "issue_first"
        and title_score >= config.bonus_min_title
        and publisher_score > 0
        and issue_score > 0
    ):
        bonus = config.bonus
        details.append(f"All criteria matched (+{bonus:.2f})")

    raw = title_score + publisher_score + issue_score + bonus
    score = round(min(config.score_cap, max(0.0, raw)), SCORE_PRECISION)

    breakdown = ScoreBreakdown(
        title=round(title_score, SCORE_PRECISION),
        publisher=round(publisher_score, SCORE_PRECISION),
        issue=round(issue_score, SCORE_PRECISION),
        title_ratio=round(title_ratio, SCORE_PRECISION),
        bonus=bonus,
        mode=mode,
    )
    return ScoredResult(score, breakdown, details)


def catalog_id_sort_key(source_id: str) -> tuple[int, int, str]:
    """Order catalog ids numerically when they are numbers, else as text."""
    text = source_id.strip()
    if text.isdigit():
        return (0, int(text), "")
    return (1, 0, text)


def rank_candidates(
    query: ScanQuery,
    candidates: list[Candidate],
    publisher_hint: str | None = None,
    config: ScannerConfig | None = None,
) -> list[Candidate]:
    """Score, flag and sort candidates.

    Accepted candidates come first by score descending, then rejected ones.
    Ties are broken by catalog id so arrival order never matters.

    Rejection rules:
    - reprint: the series name carries a collected-edition keyword the
      query does not mention
    - title_mismatch: none of the query's significant title tokens matched
    - duplicate: the same catalog item already appeared

    Args:
        query: Parsed scan query
        candidates: Unscored candidates in arrival order
        publisher_hint: Publisher hint (defaults to query.publisher_hint)
        config: Scanner configuration (if None, loads from settings file)

    Returns:
        New list of scored candidates; the input list is not modified
    """
    if config is None:
        config = get_scanner_config()

    has_title_tokens = bool(title_tokens(query.title, config))

    scored: list[Candidate] = []
    for candidate in candidates:
        result = score_candidate(query, candidate, publisher_hint, config)

        reject_reason = None
        if find_reprint_keyword(candidate.series_name, query.title):
            reject_reason = "reprint"
        elif has_title_tokens and result.breakdown.title == 0:
            reject_reason = "title_mismatch"

        scored.append(
            candidate.model_copy(
                update={
                    "score": result.score,
                    "score_breakdown": result.breakdown,
                    "rejected": reject_reason is not None,
                    "reject_reason": reject_reason,
                }
            )
        )

    scored.sort(
        key=lambda c: (-c.score, catalog_id_sort_key(c.source_id), c.resource_kind, c.retrieval_index)
    )

    seen: set[tuple[str, str]] = set()
    ranked: list[Candidate] = []
    for candidate in scored:
        identity = (candidate.resource_kind, candidate.source_id)
        if identity in seen:
            candidate = candidate.model_copy(
                update={"rejected": True, "reject_reason": candidate.reject_reason or "duplicate"}
            )
        else:
            seen.add(identity)
        ranked.append(candidate)

    ranked.sort(key=lambda c: c.rejected)  # stable: keeps score order within each group

    logger.debug(
        "Ranked candidates",
        total=len(ranked),
        rejected=sum(1 for c in ranked if c.rejected),
        top_score=ranked[0].score if ranked else None,
    )
    return ranked
