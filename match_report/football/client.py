"""API-Football client for pulling fixture data.

Uses API-Football v3: https://www.api-football.com/documentation-v3

Every request goes cache → throttle → GET → classify. Transient failures
(429, 5xx, transport errors) are retried by tenacity with bounded backoff;
auth and plan restrictions fail immediately with typed errors so the caller
can decide whether to degrade or retry with an adjusted request.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_incrementing,
)

from ..config import FootballAPIConfig
from ..errors import (
    AuthenticationError,
    ExternalServiceError,
    PlanRestrictionError,
    RateLimitError,
    ServiceUnavailableError,
)
from ..logging import logger
from ..utils.cache import APICache
from .rate_limit import RequestThrottle

SERVICE_NAME = "api-football"

FIXTURES = "/fixtures"
STATISTICS = "/fixtures/statistics"
INJURIES = "/injuries"
LINEUPS = "/fixtures/lineups"
HEAD_TO_HEAD = "/fixtures/headtohead"
STANDINGS = "/standings"

RETRYABLE_ERRORS = (RateLimitError, ServiceUnavailableError)


def _int_header(headers: httpx.Headers, name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _body_errors(payload: Any) -> dict[str, Any]:
    """API-Football returns ``errors`` as ``[]`` when empty and a dict otherwise."""
    if not isinstance(payload, dict):
        return {}
    errors = payload.get("errors")
    if isinstance(errors, dict):
        return errors
    if isinstance(errors, list) and errors:
        return {str(index): value for index, value in enumerate(errors)}
    return {}


class FootballAPIClient:
    def __init__(
        self,
        config: FootballAPIConfig,
        api_key: str | None,
        *,
        cache: APICache,
        throttle: RequestThrottle,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not api_key:
            logger.warning("football_api_key_missing", detail="APIFOOTBALL_API_KEY not configured.")
        self.config = config
        self.cache = cache
        self.throttle = throttle
        self.max_retries = max(1, config.max_retries)
        self._sleep = sleep
        # 429 without Retry-After backs off exponentially; 5xx and transport
        # errors back off linearly. Both are capped.
        self._rate_limit_wait = wait_exponential(
            multiplier=config.retry_delay_seconds,
            max=config.max_backoff_seconds,
        )
        self._unavailable_wait = wait_incrementing(
            start=config.retry_delay_seconds,
            increment=config.retry_delay_seconds,
            max=config.max_backoff_seconds,
        )
        self.client = http_client or httpx.AsyncClient(
            base_url=config.base_url,
            headers={"x-apisports-key": api_key or ""},
            timeout=config.request_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    def _wait(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimitError):
            if exc.retry_after is not None:
                return exc.retry_after
            return self._rate_limit_wait(retry_state)
        return self._unavailable_wait(retry_state)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "football_retrying",
            endpoint=getattr(exc, "endpoint", None),
            status=getattr(exc, "status", None),
            attempt=retry_state.attempt_number,
            max_attempts=self.max_retries,
            retry_in=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(exc),
        )

    # -------------------------------------------------------------------------
    # Core request
    # -------------------------------------------------------------------------
    async def request(self, endpoint: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Fetch an endpoint and return the decoded API-Football envelope."""
        query = {key: value for key, value in (params or {}).items() if value is not None}

        cached = self.cache.get(endpoint, query)
        if cached is not None:
            logger.info("football_cache_hit", endpoint=endpoint, params=query)
            return cached

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=self._wait,
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                payload = await self._fetch(endpoint, query, attempt.retry_state.attempt_number)

        self.cache.set(endpoint, query, payload)
        logger.info("football_success", endpoint=endpoint, results=payload.get("results"))
        return payload

    async def _fetch(self, endpoint: str, query: dict[str, Any], attempt: int) -> dict[str, Any]:
        """One throttled GET. Raises a typed error for anything but a clean envelope."""
        await self.throttle.acquire()
        logger.info(
            "football_request",
            endpoint=endpoint,
            params=query,
            attempt=attempt,
            max_attempts=self.max_retries,
        )

        try:
            response = await self.client.get(endpoint, params=query)
        except httpx.HTTPError as exc:
            raise ServiceUnavailableError(
                f"API-Football request failed: {exc}",
                service=SERVICE_NAME,
                endpoint=endpoint,
            ) from exc

        remaining = _int_header(response.headers, "x-ratelimit-requests-remaining")
        limit = _int_header(response.headers, "x-ratelimit-requests-limit")
        if remaining is not None:
            logger.debug("football_quota", remaining=remaining, limit=limit)

        if response.status_code == 429:
            retry_after = _int_header(response.headers, "retry-after")
            raise RateLimitError(
                f"Rate limit exceeded. Requests remaining: {remaining or 0}/{limit or 'unknown'}",
                service=SERVICE_NAME,
                endpoint=endpoint,
                requests_remaining=remaining,
                requests_limit=limit,
                retry_after=float(retry_after) if retry_after is not None else None,
            )

        if response.status_code == 401:
            raise AuthenticationError(
                "Invalid API key. Please check APIFOOTBALL_API_KEY.",
                service=SERVICE_NAME,
                endpoint=endpoint,
                status=401,
            )

        if response.status_code >= 400:
            error_cls = ServiceUnavailableError if response.status_code >= 500 else ExternalServiceError
            raise error_cls(
                f"API-Football request failed: {response.status_code} {response.reason_phrase}",
                service=SERVICE_NAME,
                endpoint=endpoint,
                status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalServiceError(
                "API-Football returned a non-JSON body",
                service=SERVICE_NAME,
                endpoint=endpoint,
                status=response.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise ExternalServiceError(
                "API-Football returned an unexpected body shape",
                service=SERVICE_NAME,
                endpoint=endpoint,
                status=response.status_code,
            )

        errors = _body_errors(payload)
        if not errors:
            return payload

        if "rateLimit" in errors:
            raise RateLimitError(
                f"Rate limit exceeded: {errors['rateLimit']}",
                service=SERVICE_NAME,
                endpoint=endpoint,
                requests_remaining=remaining,
                requests_limit=limit,
                retry_after=self.config.rate_limit_body_wait_seconds,
            )
        if "token" in errors:
            raise AuthenticationError(
                f"API-Football rejected credentials: {errors['token']}",
                service=SERVICE_NAME,
                endpoint=endpoint,
                status=response.status_code,
            )
        if "plan" in errors:
            raise PlanRestrictionError(str(errors["plan"]), service=SERVICE_NAME, endpoint=endpoint)
        raise ExternalServiceError(
            f"API-Football returned errors: {errors}",
            service=SERVICE_NAME,
            endpoint=endpoint,
            status=response.status_code,
        )

    # -------------------------------------------------------------------------
    # Typed helpers
    # -------------------------------------------------------------------------
    async def get_fixtures(self, params: Mapping[str, Any]) -> list[dict[str, Any]]:
        """List fixtures for any ``/fixtures`` query (date, from/to, league, team, season)."""
        payload = await self.request(FIXTURES, params)
        return payload.get("response") or []

    async def get_fixture(self, fixture_id: int) -> dict[str, Any] | None:
        fixtures = await self.get_fixtures({"id": fixture_id})
        return fixtures[0] if fixtures else None

    async def get_statistics(self, fixture_id: int) -> list[dict[str, Any]]:
        payload = await self.request(STATISTICS, {"fixture": fixture_id})
        return payload.get("response") or []

    async def get_injuries(self, fixture_id: int) -> list[dict[str, Any]]:
        payload = await self.request(INJURIES, {"fixture": fixture_id})
        return payload.get("response") or []

    async def get_lineups(self, fixture_id: int) -> list[dict[str, Any]]:
        payload = await self.request(LINEUPS, {"fixture": fixture_id})
        return payload.get("response") or []

    async def get_head_to_head(self, home_team_id: int, away_team_id: int) -> list[dict[str, Any]]:
        payload = await self.request(HEAD_TO_HEAD, {"h2h": f"{home_team_id}-{away_team_id}"})
        return payload.get("response") or []

    async def get_standings(self, league_id: int, season: int) -> list[list[dict[str, Any]]]:
        payload = await self.request(STANDINGS, {"league": league_id, "season": season})
        leagues = payload.get("response") or []
        if not leagues:
            return []
        return (leagues[0].get("league") or {}).get("standings") or []
