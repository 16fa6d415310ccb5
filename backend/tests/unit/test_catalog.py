"""Tests for the catalog query adapter."""

from __future__ import annotations

import asyncio

import pytest
from conftest import FakeCatalogClient, issue_record, volume_record

from grailseeker.core.metrics import catalog_requests_failed_total
from grailseeker.core.scanner.catalog import (
    CATALOG_UNAVAILABLE,
    CatalogQueryAdapter,
    extract_year,
    issue_to_candidate,
    select_cover_image,
    volume_to_candidate,
)
from grailseeker.core.scanner.config import DEFAULT_CONFIG, ScannerConfig
from grailseeker.core.scanner.normalizer import parse_scan_input


def test_select_cover_image_prefers_largest() -> None:
    """Test cover size preference order."""
    assert select_cover_image({"thumb_url": "t", "super_url": "s"}) == "s"
    assert select_cover_image({"original_url": "o", "super_url": "s"}) == "o"
    assert select_cover_image({"small_url": "", "thumb_url": "t"}) == "t"
    assert select_cover_image({}) is None
    assert select_cover_image(None) is None
    assert select_cover_image("https://x/y.jpg") == "https://x/y.jpg"


@pytest.mark.parametrize(
    ("value", "expected"),
    [("1988-05-01", 1988), ("1963", 1963), (1992, 1992), (None, None), ("", None), ("n/a", None)],
)
def test_extract_year(value, expected) -> None:
    """Test year extraction from cover dates and start years."""
    assert extract_year(value) == expected


def test_volume_to_candidate() -> None:
    """Test conversion of a volume record."""
    candidate = volume_to_candidate(volume_record(2127, "The Amazing Spider-Man", "Marvel", "1963"))

    assert candidate is not None
    assert candidate.source_id == "2127"
    assert candidate.resource_kind == "volume"
    assert candidate.series_name == "The Amazing Spider-Man"
    assert candidate.publisher == "Marvel"
    assert candidate.year == 1963
    assert candidate.issue_number is None
    assert candidate.volume_id == "2127"


def test_volume_without_id_is_skipped() -> None:
    """Test that malformed records are dropped."""
    assert volume_to_candidate({"name": "No Id"}) is None


def test_issue_to_candidate_inherits_volume_publisher() -> None:
    """Test that issue candidates carry the owning volume's publisher."""
    volume = volume_to_candidate(volume_record(2127, "Amazing Spider-Man", "Marvel", "1963"))
    issue = issue_record(38000, "300", 2127, "The Amazing Spider-Man", "1988-05-01")

    candidate = issue_to_candidate(issue, volume)

    assert candidate.source_id == "38000"
    assert candidate.resource_kind == "issue"
    assert candidate.series_name == "The Amazing Spider-Man"
    assert candidate.issue_number == "300"
    assert candidate.year == 1988
    assert candidate.publisher == "Marvel"
    assert candidate.volume_id == "2127"
    assert candidate.cover_image_ref.endswith("/original/38000.jpg")


def test_issue_year_falls_back_to_volume() -> None:
    """Test the start-year fallback when the issue has no cover date."""
    volume = volume_to_candidate(volume_record(1, "Saga", "Image", "2012"))

    candidate = issue_to_candidate(issue_record(5, "1", 1, "Saga", None), volume)

    assert candidate.year == 2012


async def test_issue_first_strategy(spider_man_catalog: FakeCatalogClient) -> None:
    """Test that an issue number triggers the volume search and fan-out."""
    adapter = CatalogQueryAdapter(spider_man_catalog, DEFAULT_CONFIG)

    lookup = await adapter.gather_candidates(parse_scan_input("Spider-Man #300"))

    assert lookup.strategy == "issue_first"
    assert lookup.error is None
    assert spider_man_catalog.volume_calls == ["Spider-Man"]
    assert len(spider_man_catalog.issue_calls) == 4
    assert sorted(c.source_id for c in lookup.candidates) == ["38000", "51000", "60000"]
    assert all(c.resource_kind == "issue" for c in lookup.candidates)


async def test_volume_first_strategy(make_volume) -> None:
    """Test that no issue number returns volume candidates."""
    client = FakeCatalogClient(volumes=[make_volume(i, f"Spawn {i}", "Image") for i in range(20)])
    adapter = CatalogQueryAdapter(client, DEFAULT_CONFIG)

    lookup = await adapter.gather_candidates(parse_scan_input("Spawn"))

    assert lookup.strategy == "volume_first"
    assert len(lookup.candidates) == 15
    assert client.issue_calls == []
    assert all(c.issue_number is None for c in lookup.candidates)


async def test_fan_out_limited_to_top_volumes(make_volume) -> None:
    """Test that only the first ten volumes are searched for issues."""
    client = FakeCatalogClient(volumes=[make_volume(i, f"Batman {i}", "DC") for i in range(20)])
    adapter = CatalogQueryAdapter(client, DEFAULT_CONFIG)

    await adapter.gather_candidates(parse_scan_input("Batman #1"))

    assert [volume_id for volume_id, _ in client.issue_calls] == [str(i) for i in range(10)]


async def test_fan_out_keeps_catalog_order(make_volume) -> None:
    """Test that the searched volumes are the catalog's first ten, whatever the publisher."""
    volumes = [make_volume(i, f"Batman {i}", "DC Comics") for i in range(10)]
    volumes.append(make_volume(99, "Batman Adventures", "Image"))
    client = FakeCatalogClient(volumes=volumes)
    adapter = CatalogQueryAdapter(client, DEFAULT_CONFIG)

    await adapter.gather_candidates(parse_scan_input("Batman #1"))

    assert [volume_id for volume_id, _ in client.issue_calls] == [str(i) for i in range(10)]


async def test_volume_search_falls_through_to_keyword_query(make_volume, make_issue) -> None:
    """Test that noisy input reaches the keywords-only query when the others miss."""

    class KeywordOnlyClient(FakeCatalogClient):
        async def search_volumes(self, query, limit=20):
            self.volume_calls.append(query)
            return list(self.volumes) if query == "Spider Man" else []

    client = KeywordOnlyClient(
        volumes=[make_volume(2127, "The Amazing Spider-Man", "Marvel", "1963")],
        issues={"2127": [make_issue(38000, "300", 2127, "The Amazing Spider-Man")]},
    )
    adapter = CatalogQueryAdapter(client, DEFAULT_CONFIG)

    lookup = await adapter.gather_candidates(parse_scan_input("Spider-Man!! #300"))

    assert client.volume_calls == [
        "Spider-Man!!",
        "Spider-Man!! #300",
        "Spider-Man!! 300",
        "Spider Man",
    ]
    assert [c.source_id for c in lookup.candidates] == ["38000"]


async def test_fan_out_respects_concurrency_limit(make_volume) -> None:
    """Test that no more than fanout_concurrency issue searches run at once."""
    running = 0
    peak = 0

    class SlowClient(FakeCatalogClient):
        async def search_issues(self, volume_id, issue_number, limit=10):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return []

    client = SlowClient(volumes=[make_volume(i, f"Batman {i}", "DC") for i in range(10)])
    adapter = CatalogQueryAdapter(client, ScannerConfig(fanout_concurrency=3))

    await adapter.gather_candidates(parse_scan_input("Batman #1"))

    assert peak == 3


async def test_fan_out_result_order_is_volume_order(make_volume, make_issue) -> None:
    """Test that results are collected in volume order, not completion order."""

    class ReversedDelayClient(FakeCatalogClient):
        async def search_issues(self, volume_id, issue_number, limit=10):
            await asyncio.sleep(0.02 if str(volume_id) == "1" else 0)
            return await super().search_issues(volume_id, issue_number, limit)

    client = ReversedDelayClient(
        volumes=[make_volume(1, "Batman", "DC"), make_volume(2, "Batman", "DC")],
        issues={
            "1": [make_issue(10, "1", 1, "Batman")],
            "2": [make_issue(20, "1", 2, "Batman")],
        },
    )
    adapter = CatalogQueryAdapter(client, DEFAULT_CONFIG)

    lookup = await adapter.gather_candidates(parse_scan_input("Batman #1"))

    assert [c.source_id for c in lookup.candidates] == ["10", "20"]
    assert [c.retrieval_index for c in lookup.candidates] == [0, 1]


async def test_volume_search_failure_marks_lookup() -> None:
    """Test that a failed volume search degrades to an empty, flagged lookup."""
    client = FakeCatalogClient(fail_volumes=True)
    adapter = CatalogQueryAdapter(client, DEFAULT_CONFIG)
    before = catalog_requests_failed_total.labels(operation="search_volumes")._value.get()

    lookup = await adapter.gather_candidates(parse_scan_input("Spider-Man #300"))

    assert lookup.candidates == []
    assert lookup.error == CATALOG_UNAVAILABLE
    assert client.issue_calls == []
    after = catalog_requests_failed_total.labels(operation="search_volumes")._value.get()
    assert after == before + 1


async def test_issue_search_failure_drops_only_that_volume(
    spider_man_catalog: FakeCatalogClient,
) -> None:
    """Test that one failing volume does not affect the others."""
    spider_man_catalog.fail_issues = {"9001"}
    adapter = CatalogQueryAdapter(spider_man_catalog, DEFAULT_CONFIG)

    lookup = await adapter.gather_candidates(parse_scan_input("Spider-Man #300"))

    assert lookup.error is None
    assert sorted(c.source_id for c in lookup.candidates) == ["38000", "60000"]


async def test_search_volumes_public_method_degrades() -> None:
    """Test that search_volumes returns an empty list on failure."""
    adapter = CatalogQueryAdapter(FakeCatalogClient(fail_volumes=True), DEFAULT_CONFIG)

    assert await adapter.search_volumes("Spider-Man") == []


async def test_search_volumes_retries_with_publisher_hint(make_volume) -> None:
    """Test the "<title> <hint>" fallback query when the title finds nothing."""

    class HintOnlyClient(FakeCatalogClient):
        async def search_volumes(self, query, limit=20):
            self.volume_calls.append(query)
            return [make_volume(1, "Batman", "DC Comics")] if "DC" in query else []

    client = HintOnlyClient()
    adapter = CatalogQueryAdapter(client, DEFAULT_CONFIG)

    volumes = await adapter.search_volumes("Batman", publisher_hint="DC")

    assert client.volume_calls == ["Batman", "Batman DC"]
    assert [v.source_id for v in volumes] == ["1"]


async def test_search_issues_in_volume(spider_man_catalog: FakeCatalogClient) -> None:
    """Test searching one volume for an issue number."""
    adapter = CatalogQueryAdapter(spider_man_catalog, DEFAULT_CONFIG)
    volume = volume_to_candidate(volume_record(2127, "The Amazing Spider-Man", "Marvel", "1963"))

    issues = await adapter.search_issues_in_volume(volume, "300")

    assert [c.source_id for c in issues] == ["38000"]
    assert spider_man_catalog.issue_calls == [("2127", "300")]
