"""Tests for middleware.py and the request-scoped logging context."""

from __future__ import annotations

import logging
import uuid

import pytest
import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient

from match_report.logging import resolve_log_level
from match_report.middleware import REQUEST_ID_HEADER, RequestContextMiddleware, resolve_request_id


@pytest.fixture
def client() -> TestClient:
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)

    @app.get("/context")
    async def context() -> dict:
        return structlog.contextvars.get_contextvars()

    @app.get("/boom")
    async def boom() -> dict:
        raise RuntimeError("boom")

    return TestClient(app, raise_server_exceptions=False)


class TestRequestId:
    """Tests for X-Request-Id handling."""

    def test_minted_id_is_echoed_and_bound(self, client: TestClient) -> None:
        response = client.get("/context")

        request_id = response.headers[REQUEST_ID_HEADER]
        assert uuid.UUID(request_id)
        assert response.json()["request_id"] == request_id

    def test_inbound_id_is_kept(self, client: TestClient) -> None:
        response = client.get("/context", headers={REQUEST_ID_HEADER: "edge-7f3a.1"})

        assert response.headers[REQUEST_ID_HEADER] == "edge-7f3a.1"
        assert response.json()["request_id"] == "edge-7f3a.1"

    def test_each_request_gets_its_own_id(self, client: TestClient) -> None:
        first = client.get("/context").headers[REQUEST_ID_HEADER]
        second = client.get("/context").headers[REQUEST_ID_HEADER]

        assert first != second

    def test_failing_request_still_completes(self, client: TestClient) -> None:
        response = client.get("/boom")

        assert response.status_code == 500

    @pytest.mark.parametrize("inbound", [None, "", "has spaces", "line\nbreak", "x" * 129])
    def test_malformed_inbound_id_replaced(self, inbound: str | None) -> None:
        request_id = resolve_request_id(inbound)

        assert request_id != inbound
        assert uuid.UUID(request_id)


class TestResolveLogLevel:
    @pytest.mark.parametrize(
        "level,environment,expected",
        [
            ("warning", "development", logging.WARNING),
            (None, "production", logging.INFO),
            (None, "development", logging.DEBUG),
            ("chatty", "development", logging.INFO),
        ],
    )
    def test_resolution(self, level: str | None, environment: str, expected: int) -> None:
        assert resolve_log_level(level, environment) == expected
