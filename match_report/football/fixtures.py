"""Fixture listing for picking the match to report on.

API-Football only accepts ``from``/``to`` together with a league, team or
season, and free plans only see a narrow window of dates. Listing therefore
falls back to one ``date`` query per day, fanned out over a small worker
pool, and re-runs against whatever window or season a plan restriction
names.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Iterable, Mapping, Protocol

from ..errors import ExternalServiceError, PlanRestrictionError, ValidationError
from ..logging import logger
from ..utils.datetime_utils import now_utc, parse_iso_datetime

MAX_DATE_RANGE_DAYS = 30
FAN_OUT_WORKERS = 3
DEFAULT_WINDOW_DAYS = 1

_DAY_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")


class FixtureListSource(Protocol):
    async def get_fixtures(self, params: Mapping[str, Any]) -> list[dict[str, Any]]: ...


@dataclass(frozen=True)
class FixtureQuery:
    """Query-string filters accepted by ``GET /api/fixtures``."""

    date: str | None = None
    date_from: str | None = None
    date_to: str | None = None
    league: int | None = None
    season: int | None = None
    team: int | None = None

    @property
    def constraints(self) -> dict[str, int]:
        values = {"league": self.league, "season": self.season, "team": self.team}
        return {key: value for key, value in values.items() if value is not None}


def _parse_day(value: str) -> date:
    if not _DAY_PATTERN.fullmatch(value):
        raise ValidationError("Invalid date format. Expected YYYY-MM-DD.")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError("Invalid date value.") from exc


def build_date_list(start: str, end: str, max_days: int = MAX_DATE_RANGE_DAYS) -> list[str]:
    """Every ``YYYY-MM-DD`` from ``start`` to ``end`` inclusive."""
    first, last = _parse_day(start), _parse_day(end)
    if first > last:
        raise ValidationError('Invalid date range: "from" date must be before or equal to "to" date')
    span = (last - first).days + 1
    if span > max_days:
        raise ValidationError(f"Date range exceeds maximum of {max_days} days")
    return [(first + timedelta(days=offset)).isoformat() for offset in range(span)]


def sort_fixtures(fixtures: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Order by kickoff; fixtures without a parseable date go last."""

    def kickoff(fixture: dict[str, Any]) -> float:
        parsed = parse_iso_datetime((fixture.get("fixture") or {}).get("date"))
        return parsed.timestamp() if parsed else float("inf")

    return sorted(fixtures, key=kickoff)


def _is_range_rejected(exc: ExternalServiceError) -> bool:
    # API-Football: 'The "from" and "to" fields need another parameter'.
    return '"from"' in exc.message and '"to"' in exc.message and "need another parameter" in exc.message


def _clamped_season(exc: PlanRestrictionError, constraints: Mapping[str, int]) -> int | None:
    season = constraints.get("season")
    if season is None or exc.allowed_range is None:
        return None
    low, high = exc.allowed_range
    clamped = min(max(season, low), high)
    return clamped if clamped != season else None


async def fetch_fixtures_for_dates(
    source: FixtureListSource,
    dates: list[str],
    constraints: Mapping[str, int],
    workers: int = FAN_OUT_WORKERS,
) -> list[dict[str, Any]]:
    """One ``date`` query per day over a bounded worker pool, merged by fixture id."""
    queue: asyncio.Queue[str] = asyncio.Queue()
    for day in dates:
        queue.put_nowait(day)
    by_id: dict[int, dict[str, Any]] = {}

    async def worker() -> None:
        while True:
            try:
                day = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                for fixture in await source.get_fixtures({**constraints, "date": day}):
                    fixture_id = (fixture.get("fixture") or {}).get("id")
                    if fixture_id is not None:
                        by_id[fixture_id] = fixture
            finally:
                queue.task_done()

    pool_size = min(max(1, workers), len(dates))
    if pool_size == 0:
        return []
    results = await asyncio.gather(*(worker() for _ in range(pool_size)), return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return sort_fixtures(by_id.values())


async def _fan_out_within_plan(
    source: FixtureListSource,
    dates: list[str],
    constraints: Mapping[str, int],
) -> list[dict[str, Any]]:
    try:
        return await fetch_fixtures_for_dates(source, dates, constraints)
    except PlanRestrictionError as exc:
        if exc.allowed_dates is None:
            raise
        logger.info("fixtures_clamped_to_plan_window", requested=[dates[0], dates[-1]], allowed=list(exc.allowed_dates))
        return await fetch_fixtures_for_dates(source, build_date_list(*exc.allowed_dates), constraints)


async def _query_range(
    source: FixtureListSource,
    start: str,
    end: str,
    constraints: Mapping[str, int],
) -> list[dict[str, Any]]:
    try:
        return sort_fixtures(await source.get_fixtures({**constraints, "from": start, "to": end}))
    except PlanRestrictionError as exc:
        if exc.allowed_dates is not None:
            logger.info("fixtures_clamped_to_plan_window", requested=[start, end], allowed=list(exc.allowed_dates))
            return await fetch_fixtures_for_dates(source, build_date_list(*exc.allowed_dates), constraints)
        season = _clamped_season(exc, constraints)
        if season is None:
            raise
        logger.info("fixtures_clamped_to_plan_season", requested=constraints.get("season"), season=season)
        return await _query_range(source, start, end, {**constraints, "season": season})
    except ExternalServiceError as exc:
        if not _is_range_rejected(exc):
            raise
        return await _fan_out_within_plan(source, build_date_list(start, end), constraints)


async def _query_date(
    source: FixtureListSource,
    day: str,
    constraints: Mapping[str, int],
) -> list[dict[str, Any]]:
    try:
        return sort_fixtures(await source.get_fixtures({**constraints, "date": day}))
    except PlanRestrictionError as exc:
        season = _clamped_season(exc, constraints)
        if season is None:
            raise
        logger.info("fixtures_clamped_to_plan_season", requested=constraints.get("season"), season=season)
        return await _query_date(source, day, {**constraints, "season": season})


async def list_fixtures(
    source: FixtureListSource,
    query: FixtureQuery,
    *,
    today: date | None = None,
) -> list[dict[str, Any]]:
    """Resolve a fixture listing.

    ``from``/``to`` wins over ``date``. With neither, the window is
    yesterday to tomorrow, which free plans can always see. Without a
    league, team or season the range is fetched day by day.
    """
    constraints = query.constraints
    if bool(query.date_from) != bool(query.date_to):
        raise ValidationError('Both "from" and "to" are required for a date range')

    if query.date_from and query.date_to:
        dates = build_date_list(query.date_from, query.date_to)
        if not constraints:
            return await _fan_out_within_plan(source, dates, constraints)
        return await _query_range(source, query.date_from, query.date_to, constraints)

    if query.date:
        _parse_day(query.date)
        return await _query_date(source, query.date, constraints)

    today = today or now_utc().date()
    start = (today - timedelta(days=DEFAULT_WINDOW_DAYS)).isoformat()
    end = (today + timedelta(days=DEFAULT_WINDOW_DAYS)).isoformat()
    if constraints:
        return await _query_range(source, start, end, constraints)
    return await _fan_out_within_plan(source, build_date_list(start, end), constraints)
