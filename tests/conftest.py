"""Shared pytest fixtures and configuration."""

from __future__ import annotations

import os

import pytest

# Set required environment variables before any imports
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from fakes import FakeClock, FakeCompletionService, FakeDataSource, make_fixture  # noqa: E402

from match_report.session.store import SessionStore  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> SessionStore:
    return SessionStore(ttl_seconds=3600, clock=clock)


@pytest.fixture
def fixture_payload() -> dict:
    return make_fixture()


@pytest.fixture
def data_source(fixture_payload: dict) -> FakeDataSource:
    return FakeDataSource(fixture_payload)


@pytest.fixture
def completion() -> FakeCompletionService:
    return FakeCompletionService()
