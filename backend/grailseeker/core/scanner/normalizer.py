"""Input normalization - parse raw scan text into a ScanQuery.

Parsing is deliberately simple: a fixed list of patterns is tried in order
and the first match wins, so every input has exactly one parse. The bare
trailing-number pattern means titles that end in a number ("Daredevil 2099")
are split as title + issue; callers see that as an ordinary parse.
"""

from __future__ import annotations

import re

from .models import ScanQuery

# Tried in order against the cleaned input; group 1 is the title, group 2 the issue
ISSUE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(.+?)\s*#\s*(\d+)$"),
    re.compile(r"^(.+?)\s+no\.?\s*(\d+)$", re.IGNORECASE),
    re.compile(r"^(.+?)\s+(\d+)$"),
)

_YEAR_PATTERN = re.compile(r"\(\s*((?:18|19|20)\d{2})\s*\)")
_UNICODE_DASHES = re.compile(r"[‐-―]")
_TRAILING_PUNCTUATION = re.compile(r"[.,;:!?]+$")
_WHITESPACE = re.compile(r"\s+")
_KEY_SEPARATORS = re.compile(r"[-_/\u2010-\u2015]")
_NON_KEY_CHARS = re.compile(r"[^a-z0-9\s]")
_DIGITS = re.compile(r"\d+")
_FUZZY_NON_WORD = re.compile(r"[^\w\s]|_")


def clean_search_text(text: str) -> str:
    """Trim, collapse whitespace, unify dashes and drop trailing punctuation."""
    cleaned = _UNICODE_DASHES.sub("-", text.strip())
    cleaned = _TRAILING_PUNCTUATION.sub("", cleaned)
    return _WHITESPACE.sub(" ", cleaned).strip()


def extract_year(text: str) -> tuple[str, int | None]:
    """Lift a parenthesised cover year like "(1990)" out of the text.

    Returns:
        Tuple of (text without the year, year or None)
    """
    match = _YEAR_PATTERN.search(text)
    if not match:
        return text, None
    remaining = f"{text[: match.start()]} {text[match.end() :]}"
    return _WHITESPACE.sub(" ", remaining).strip(), int(match.group(1))


def parse_scan_input(raw_input: str, publisher_hint: str | None = None) -> ScanQuery:
    """Parse raw scan text into a structured query.

    Args:
        raw_input: Text typed by a user or produced by OCR
        publisher_hint: Optional free-text publisher; blank is treated as None

    Returns:
        ScanQuery with title, issue_number, year and publisher_hint
    """
    text, year = extract_year(raw_input.strip())
    cleaned = clean_search_text(text)

    hint = publisher_hint.strip() if publisher_hint else None

    for pattern in ISSUE_PATTERNS:
        match = pattern.match(cleaned)
        if match:
            title = match.group(1).strip()
            if title:
                return ScanQuery(
                    raw_input=raw_input,
                    title=title,
                    issue_number=match.group(2),
                    publisher_hint=hint or None,
                    year=year,
                )

    return ScanQuery(
        raw_input=raw_input,
        title=cleaned,
        issue_number=None,
        publisher_hint=hint or None,
        year=year,
    )


def normalize_input_key(raw_input: str) -> str:
    """Reduce raw input to the key used for correction memory.

    Lowercases, turns hyphens, dashes, underscores and slashes into spaces
    ("Spider-Man" and "spider man" share a key), removes everything else
    except ASCII letters, digits and whitespace, then collapses whitespace.
    Applying it twice gives the same result as applying it once.
    """
    lowered = _KEY_SEPARATORS.sub(" ", raw_input.lower())
    stripped = _NON_KEY_CHARS.sub("", lowered)
    return _WHITESPACE.sub(" ", stripped).strip()


def build_query_variants(query: ScanQuery) -> list[str]:
    """Volume search queries to try in order until one returns results.

    1. series title
    2. full cleaned input
    3. series + issue number
    4. keywords only (digits and punctuation removed), for noisy OCR text

    With a publisher hint, each of those follows again with the hint
    appended. Duplicates and empty strings are dropped.
    """
    text, _ = extract_year(query.raw_input.strip())
    cleaned = clean_search_text(text)

    variants = [query.title, cleaned]
    if query.issue_number:
        variants.append(f"{query.title} {query.issue_number}")
    fuzzy = _FUZZY_NON_WORD.sub(" ", _DIGITS.sub(" ", cleaned))
    variants.append(_WHITESPACE.sub(" ", fuzzy).strip())

    if query.publisher_hint:
        variants += [f"{variant} {query.publisher_hint}" for variant in variants if variant]

    ordered: list[str] = []
    for variant in variants:
        if variant and variant not in ordered:
            ordered.append(variant)
    return ordered
