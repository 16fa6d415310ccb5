"""Publisher bias - move the user's preferred publisher family to the front.

Bias only reorders. It never drops a candidate and never changes a score.
"""

from __future__ import annotations

from collections.abc import Sequence

from .models import Candidate, PublisherFilter, ScanContext

PUBLISHER_KEYWORDS: dict[str, tuple[str, ...]] = {
    "marvel": ("marvel", "marvel comics", "timely", "atlas"),
    "dc": ("dc", "dc comics", "detective comics", "national"),
    "indie": (
        "image",
        "dark horse",
        "idw",
        "boom",
        "dynamite",
        "valiant",
        "aftershock",
        "oni",
        "fantagraphics",
        "archie",
    ),
}


def matches_publisher_filter(publisher: str | None, publisher_filter: str) -> bool:
    """Check whether a publisher name belongs to a publisher family."""
    if not publisher:
        return False
    name = publisher.lower()
    return any(keyword in name for keyword in PUBLISHER_KEYWORDS.get(publisher_filter, ()))


def apply_bias(
    candidates: Sequence[Candidate],
    publisher_filter: PublisherFilter | ScanContext | None,
) -> list[Candidate]:
    """Stable-partition candidates so the preferred publisher family comes first.

    Args:
        candidates: Candidates in their current order
        publisher_filter: Publisher family, or a ScanContext carrying one

    Returns:
        New list with the same candidates; relative order is preserved on
        both sides of the partition. Identity order when there is no filter.
    """
    if isinstance(publisher_filter, ScanContext):
        publisher_filter = publisher_filter.publisher_filter

    if not publisher_filter:
        return list(candidates)

    preferred = [c for c in candidates if matches_publisher_filter(c.publisher, publisher_filter)]
    others = [c for c in candidates if not matches_publisher_filter(c.publisher, publisher_filter)]
    return preferred + others
