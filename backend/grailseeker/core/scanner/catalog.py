"""Catalog query adapter - turns ComicVine lookups into scan candidates.

The adapter is the failure boundary for the catalog: any CatalogError from
the client is logged, counted and turned into an empty result here, so the
rest of the pipeline only ever sees lists of candidates.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from grailseeker.core.errors import CatalogError
from grailseeker.core.metrics import catalog_requests_failed_total

from .config import ScannerConfig, get_scanner_config
from .models import Candidate, ScanQuery, SearchStrategy
from .normalizer import build_query_variants

logger = structlog.get_logger("grailseeker.scanner.catalog")

CATALOG_UNAVAILABLE = "catalog_unavailable"

# Preferred cover sizes, largest first
COVER_IMAGE_KEYS: tuple[str, ...] = (
    "original_url",
    "super_url",
    "medium_url",
    "small_url",
    "thumb_url",
)


class CatalogClient(Protocol):
    """The two read-only catalog queries the adapter depends on."""

    async def search_volumes(self, query: str, limit: int = ...) -> list[dict[str, Any]]: ...

    async def search_issues(
        self, volume_id: str | int, issue_number: str, limit: int = ...
    ) -> list[dict[str, Any]]: ...


@dataclass
class CatalogLookup:
    """Candidates gathered for one query.

    error is set only when the volume search itself failed, which is what
    lets the classifier tell "catalog down" apart from "nothing found".
    """

    candidates: list[Candidate] = field(default_factory=list)
    strategy: SearchStrategy = "volume_first"
    error: str | None = None


def select_cover_image(image: Any) -> str | None:
    """Pick the largest available cover URL from a ComicVine image dict."""
    if isinstance(image, dict):
        for key in COVER_IMAGE_KEYS:
            url = image.get(key)
            if url:
                return str(url)
        return None
    if image:
        return str(image)
    return None


def extract_year(value: Any) -> int | None:
    """Extract a year from a start year or a "YYYY-MM-DD" cover date."""
    if value is None:
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    text = str(value).strip()
    if len(text) >= 4 and text[:4].isdigit():
        return int(text[:4])
    return None


def _publisher_name(pub_data: Any) -> str | None:
    if isinstance(pub_data, dict):
        return pub_data.get("name")
    if pub_data:
        return str(pub_data)
    return None


def volume_to_candidate(volume: dict[str, Any], retrieval_index: int = 0) -> Candidate | None:
    """Convert a ComicVine volume record to a volume candidate.

    Returns:
        Candidate, or None when the record has no id
    """
    volume_id = volume.get("id")
    if volume_id is None:
        return None
    return Candidate(
        source_id=str(volume_id),
        resource_kind="volume",
        series_name=str(volume.get("name") or ""),
        issue_number=None,
        year=extract_year(volume.get("start_year")),
        publisher=_publisher_name(volume.get("publisher")),
        cover_image_ref=select_cover_image(volume.get("image")),
        volume_id=str(volume_id),
        retrieval_index=retrieval_index,
    )


def issue_to_candidate(
    issue: dict[str, Any], volume: Candidate, retrieval_index: int = 0
) -> Candidate | None:
    """Convert a ComicVine issue record to an issue candidate.

    Publisher comes from the owning volume; the issue record does not carry one.
    """
    issue_id = issue.get("id")
    if issue_id is None:
        return None

    volume_data = issue.get("volume")
    series_name = volume.series_name
    if isinstance(volume_data, dict) and volume_data.get("name"):
        series_name = str(volume_data["name"])

    issue_number = issue.get("issue_number")
    return Candidate(
        source_id=str(issue_id),
        resource_kind="issue",
        series_name=series_name,
        issue_number=str(issue_number) if issue_number is not None else None,
        year=extract_year(issue.get("cover_date")) or volume.year,
        publisher=volume.publisher,
        cover_image_ref=select_cover_image(issue.get("image")),
        volume_id=volume.source_id,
        retrieval_index=retrieval_index,
    )


class CatalogQueryAdapter:
    """Runs the issue-first and volume-first search strategies."""

    def __init__(self, client: CatalogClient, config: ScannerConfig | None = None):
        self.client = client
        self.config = config or get_scanner_config()

    def _log_failure(self, operation: str, error: CatalogError, **context: Any) -> None:
        catalog_requests_failed_total.labels(operation=operation).inc()
        logger.warning(
            "Catalog lookup failed, continuing with no results",
            operation=operation,
            error=str(error),
            status_code=error.status_code,
            **context,
        )

    async def _fetch_volumes(self, query: ScanQuery) -> list[Candidate]:
        """Search volumes, raising CatalogError on failure.

        Query variants are tried in order until one returns results. Volumes
        keep the catalog's order; publisher preference is applied only after
        scoring, so it never decides which volumes are searched.
        """
        records: list[dict[str, Any]] = []
        for query_text in build_query_variants(query):
            records = await self.client.search_volumes(
                query_text, limit=self.config.volume_search_limit
            )
            if records:
                logger.debug("Volume search returned results", query=query_text, count=len(records))
                break

        candidates = []
        for index, record in enumerate(records):
            candidate = volume_to_candidate(record, retrieval_index=index)
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    async def search_volumes(
        self, title: str, publisher_hint: str | None = None
    ) -> list[Candidate]:
        """Search volumes by title.

        Args:
            title: Parsed title
            publisher_hint: Optional publisher, appended to fallback queries

        Returns:
            Volume candidates in catalog order (empty on catalog failure)
        """
        query = ScanQuery(raw_input=title, title=title, publisher_hint=publisher_hint)
        try:
            return await self._fetch_volumes(query)
        except CatalogError as e:
            self._log_failure("search_volumes", e, title=title)
            return []

    async def search_issues_in_volume(
        self, volume: Candidate, issue_number: str
    ) -> list[Candidate]:
        """Find a specific issue number within one volume.

        Returns:
            Issue candidates (empty on catalog failure)
        """
        try:
            records = await self.client.search_issues(
                volume.source_id, issue_number, limit=self.config.issue_search_limit
            )
        except CatalogError as e:
            self._log_failure(
                "search_issues", e, volume_id=volume.source_id, issue_number=issue_number
            )
            return []

        candidates = []
        for record in records:
            candidate = issue_to_candidate(record, volume)
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    async def _fan_out(self, volumes: list[Candidate], issue_number: str) -> list[Candidate]:
        """Search issues across volumes concurrently, bounded by a semaphore.

        Results are concatenated in volume order, not completion order, and
        renumbered so retrieval_index is stable.
        """
        semaphore = asyncio.Semaphore(max(1, self.config.fanout_concurrency))

        async def _search(volume: Candidate) -> list[Candidate]:
            async with semaphore:
                return await self.search_issues_in_volume(volume, issue_number)

        per_volume = await asyncio.gather(*(_search(volume) for volume in volumes))

        candidates: list[Candidate] = []
        for results in per_volume:
            for candidate in results:
                candidates.append(candidate.model_copy(update={"retrieval_index": len(candidates)}))
        return candidates

    async def gather_candidates(self, query: ScanQuery) -> CatalogLookup:
        """Collect candidates for a query using the strategy its shape implies.

        Issue-first when the query has an issue number: search volumes, then
        look up that issue in the first volumes the catalog returned.
        Volume-first otherwise: the volumes themselves are the candidates.

        Args:
            query: Parsed scan query

        Returns:
            CatalogLookup with unscored candidates
        """
        strategy: SearchStrategy = "issue_first" if query.issue_number else "volume_first"

        try:
            volumes = await self._fetch_volumes(query)
        except CatalogError as e:
            self._log_failure("search_volumes", e, title=query.title)
            return CatalogLookup(strategy=strategy, error=CATALOG_UNAVAILABLE)

        if query.issue_number is None:
            return CatalogLookup(
                candidates=volumes[: self.config.volume_result_limit], strategy=strategy
            )

        fanout = volumes[: self.config.volume_fanout_limit]
        candidates = await self._fan_out(fanout, query.issue_number)
        logger.debug(
            "Issue-first search complete",
            volumes_searched=len(fanout),
            candidates=len(candidates),
        )
        return CatalogLookup(candidates=candidates, strategy=strategy)
