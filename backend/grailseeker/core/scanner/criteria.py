"""Individual match criteria evaluators.

Each function evaluates a single aspect of a match (title, publisher, issue
number) and returns a weighted score plus a reason, so every component of a
candidate's score can be tested and explained on its own.
"""

from __future__ import annotations

import re

from .config import ScannerConfig, get_scanner_config

# Collected editions and reprints that look like a hit on title alone
REPRINT_KEYWORDS: tuple[str, ...] = (
    "facsimile",
    "true believers",
    "marvel tales",
    "omnibus",
    "tpb",
    "trade paperback",
    "reprint",
    "galerie",
    "panini",
    "collected",
    "essential",
    "masterworks",
    "epic collection",
)

_TOKEN_PUNCTUATION = re.compile(r"[^\w-]")


def title_tokens(title: str, config: ScannerConfig | None = None) -> list[str]:
    """Split a title into lowercase tokens long enough to be significant.

    Punctuation other than hyphens is stripped, so "Batman:" becomes "batman".
    """
    if config is None:
        config = get_scanner_config()
    tokens = (_TOKEN_PUNCTUATION.sub("", t) for t in title.lower().split())
    return [t for t in tokens if len(t) > config.min_title_token_length]


def match_title(
    query_title: str,
    series_name: str,
    weight: float,
    config: ScannerConfig | None = None,
) -> tuple[float, float, str]:
    """Evaluate title overlap as a fraction of significant query tokens.

    A token counts when it appears anywhere in the series name, so
    "spider" matches "Spider-Man".

    Args:
        query_title: Title parsed from the scan input
        series_name: Candidate series name
        weight: Weight of the title component in the current mode
        config: Scanner configuration (if None, loads from settings file)

    Returns:
        Tuple of (weighted score, raw ratio, reason)
    """
    tokens = title_tokens(query_title, config)
    if not tokens:
        return 0.0, 0.0, "No significant title tokens"

    series_lower = series_name.lower()
    matched = [t for t in tokens if t in series_lower]
    ratio = len(matched) / len(tokens)
    return (
        ratio * weight,
        ratio,
        f"Title tokens matched {len(matched)}/{len(tokens)} (+{ratio * weight:.2f})",
    )


def match_publisher(
    publisher_hint: str | None,
    candidate_publisher: str | None,
    weight: float,
) -> tuple[float, str]:
    """Evaluate publisher match.

    Full weight when the hint appears, case-insensitively, inside the
    candidate's publisher name. No partial credit.

    Returns:
        Tuple of (score, reason)
    """
    if not publisher_hint:
        return 0.0, "No publisher hint"
    if not candidate_publisher:
        return 0.0, "No publisher on candidate"

    if publisher_hint.strip().lower() in candidate_publisher.lower():
        return weight, f"Publisher match: {candidate_publisher} (+{weight:.2f})"
    return 0.0, f"Publisher mismatch: {publisher_hint} vs {candidate_publisher}"


def match_issue_number(
    query_issue: str | None,
    candidate_issue: str | None,
    weight: float,
) -> tuple[float, str]:
    """Evaluate issue number match.

    Exact string equality only: "1" and "1.0" are different issues here.

    Returns:
        Tuple of (score, reason)
    """
    if query_issue is None:
        return 0.0, "No issue number in search"
    if candidate_issue is None:
        return 0.0, "No issue number in candidate"

    if query_issue == candidate_issue:
        return weight, f"Issue number match: {candidate_issue} (+{weight:.2f})"
    return 0.0, f"Issue number mismatch: {candidate_issue} vs {query_issue}"


def find_reprint_keyword(series_name: str, query_title: str) -> str | None:
    """Return the reprint keyword that marks this series, if any.

    Keywords the query itself mentions are ignored: someone scanning an
    Omnibus should still be offered the Omnibus.
    """
    series_lower = series_name.lower()
    query_lower = query_title.lower()
    for keyword in REPRINT_KEYWORDS:
        if keyword in series_lower and keyword not in query_lower:
            return keyword
    return None
