"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import pytest
from prometheus_client import REGISTRY
from sqlalchemy.ext.asyncio import AsyncEngine

from grailseeker.core import config as app_config
from grailseeker.core.database import (
    create_database_engine,
    create_session_factory,
    init_database,
)
from grailseeker.core.errors import CatalogError
from grailseeker.core.scanner import config as scanner_config
from grailseeker.core.scanner.models import CorrectionRecord


@pytest.fixture(autouse=True)
def reset_prometheus_registry():
    """Reset Prometheus registry before each test to avoid duplicate metric registration.

    setup_metrics() registers the instrumentator's metrics in the global
    Prometheus registry, and creating the app in several tests would
    otherwise fail with "Duplicated timeseries" errors.
    """
    collectors = list(REGISTRY._collector_to_names.keys())
    for collector in collectors:
        REGISTRY.unregister(collector)

    yield

    collectors = list(REGISTRY._collector_to_names.keys())
    for collector in collectors:
        REGISTRY.unregister(collector)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point settings at a temporary data directory for every test."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    monkeypatch.setenv("GRAILSEEKER_DATA_DIR", str(data_dir))
    monkeypatch.setenv("GRAILSEEKER_ENV", "testing")
    monkeypatch.setenv("GRAILSEEKER_COMICVINE_API_KEY", "test-api-key")

    settings = app_config.reload_settings()
    scanner_config.reload_scanner_config()

    yield settings

    app_config.get_settings.cache_clear()
    scanner_config._cached_config = None


@pytest.fixture
async def temp_db_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Create a temporary database engine with all tables."""
    db_file = tmp_path / "test.db"
    engine = create_database_engine(db_file, echo=False)
    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(temp_db_engine: AsyncEngine):
    """Session factory bound to the temporary database."""
    return create_session_factory(temp_db_engine)


def volume_record(
    volume_id: int,
    name: str,
    publisher: str | None = None,
    start_year: str | None = None,
) -> dict[str, Any]:
    """ComicVine volume search record."""
    return {
        "id": volume_id,
        "name": name,
        "publisher": {"id": 1, "name": publisher} if publisher else None,
        "start_year": start_year,
    }


def issue_record(
    issue_id: int,
    issue_number: str,
    volume_id: int,
    volume_name: str,
    cover_date: str | None = None,
) -> dict[str, Any]:
    """ComicVine issue record."""
    return {
        "id": issue_id,
        "name": None,
        "issue_number": issue_number,
        "volume": {"id": volume_id, "name": volume_name},
        "cover_date": cover_date,
        "image": {
            "original_url": f"https://comicvine.example/original/{issue_id}.jpg",
            "small_url": f"https://comicvine.example/small/{issue_id}.jpg",
        },
    }


class FakeCatalogClient:
    """In-memory stand-in for ComicVineClient.

    Issues are filtered by exact issue number, like the ComicVine filter.
    """

    def __init__(
        self,
        volumes: list[dict[str, Any]] | None = None,
        issues: dict[str, list[dict[str, Any]]] | None = None,
        fail_volumes: bool = False,
        fail_issues: bool | set[str] = False,
    ):
        self.volumes = volumes or []
        self.issues = issues or {}
        self.fail_volumes = fail_volumes
        self.fail_issues = fail_issues
        self.volume_calls: list[str] = []
        self.issue_calls: list[tuple[str, str]] = []

    async def search_volumes(self, query: str, limit: int = 20) -> list[dict[str, Any]]:
        self.volume_calls.append(query)
        if self.fail_volumes:
            raise CatalogError("ReadTimeout", operation="search_volumes")
        return list(self.volumes[:limit])

    async def search_issues(
        self, volume_id: str | int, issue_number: str, limit: int = 10
    ) -> list[dict[str, Any]]:
        self.issue_calls.append((str(volume_id), issue_number))
        failing = self.fail_issues
        if failing is True or (isinstance(failing, set) and str(volume_id) in failing):
            raise CatalogError("ReadTimeout", operation="search_issues")
        matches = [
            issue
            for issue in self.issues.get(str(volume_id), [])
            if issue.get("issue_number") == issue_number
        ]
        return matches[:limit]

    @property
    def call_count(self) -> int:
        return len(self.volume_calls) + len(self.issue_calls)


class FakeCorrections:
    """In-memory correction lookup keyed by normalized input."""

    def __init__(self, records: dict[str, CorrectionRecord] | None = None):
        self.records = records or {}
        self.lookups: list[str] = []

    async def lookup(self, key: str) -> CorrectionRecord | None:
        self.lookups.append(key)
        return self.records.get(key)


@pytest.fixture
def make_volume() -> Callable[..., dict[str, Any]]:
    return volume_record


@pytest.fixture
def make_issue() -> Callable[..., dict[str, Any]]:
    return issue_record


@pytest.fixture
def spider_man_catalog() -> FakeCatalogClient:
    """Catalog with Amazing Spider-Man #300 plus a reprint and an unrelated series."""
    return FakeCatalogClient(
        volumes=[
            volume_record(2127, "The Amazing Spider-Man", "Marvel", "1963"),
            volume_record(9001, "Marvel Tales Starring Spider-Man", "Marvel", "1966"),
            volume_record(4050, "Spider-Man 2099", "Marvel", "1992"),
            volume_record(7777, "Savage Dragon", "Image", "1993"),
        ],
        issues={
            "2127": [issue_record(38000, "300", 2127, "The Amazing Spider-Man", "1988-05-01")],
            "9001": [
                issue_record(
                    51000, "300", 9001, "Marvel Tales Starring Spider-Man", "1996-02-01"
                )
            ],
            "7777": [issue_record(60000, "300", 7777, "Savage Dragon", "2018-06-01")],
        },
    )
