"""Tests for middleware functionality."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from grailseeker.app import create_app


@pytest.fixture
def client() -> TestClient:
    """Create test client."""
    return TestClient(create_app())


def test_trace_id_header_added_to_response(client: TestClient) -> None:
    """Test that X-Trace-ID header is added to responses."""
    response = client.get("/api/")

    assert response.status_code == 200
    assert len(response.headers["X-Trace-ID"]) == 32


def test_trace_id_header_preserved(client: TestClient) -> None:
    """Test that an incoming X-Trace-ID header is reused."""
    trace_id = "scanner-app-trace-0001"

    response = client.get("/api/", headers={"X-Trace-ID": trace_id})

    assert response.headers["X-Trace-ID"] == trace_id
    assert response.json()["trace_id"] == trace_id


def test_trace_id_consistent_across_request(client: TestClient) -> None:
    """Test that the header and body carry the same trace id."""
    response = client.get("/api/")

    assert response.headers["X-Trace-ID"] == response.json()["trace_id"]


def test_trace_id_different_for_each_request(client: TestClient) -> None:
    """Test that each request gets a different trace ID."""
    first = client.get("/api/").headers["X-Trace-ID"]
    second = client.get("/api/").headers["X-Trace-ID"]

    assert first != second


def test_health_endpoint_has_trace_id(client: TestClient) -> None:
    """Test that health endpoint also includes trace ID."""
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["trace_id"] == response.headers["X-Trace-ID"]
