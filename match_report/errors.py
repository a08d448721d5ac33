"""Exception hierarchy for report generation.

Every application error carries a machine-readable ``code`` and the HTTP
status the API layer should answer with. External-service errors also keep
the endpoint and upstream status so callers can decide whether to degrade
gracefully or abort.
"""

from __future__ import annotations

import re
from typing import Any


class ReportError(Exception):
    """Base class for application errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ReportError):
    """Malformed caller input. Never retried."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(ReportError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, message: str | None = None) -> None:
        super().__init__(message or f"{resource} not found", {"resource": resource})
        self.resource = resource


class SessionNotFoundError(NotFoundError):
    """Session expired, deleted, or never existed."""

    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str, message: str | None = None) -> None:
        super().__init__("Session", message or f"Session not found: {session_id}")
        self.session_id = session_id


class SessionStateError(ReportError):
    """Update or run attempted against a session in the wrong state."""

    code = "INVALID_SESSION_STATE"
    status_code = 409


class ExternalServiceError(ReportError):
    """Network, 5xx, or unexpected failure from an upstream service."""

    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        service: str,
        endpoint: str | None = None,
        status: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = {"service": service, "endpoint": endpoint, "status": status}
        merged.update(details or {})
        super().__init__(message, merged)
        self.service = service
        self.endpoint = endpoint
        self.status = status


class RateLimitError(ExternalServiceError):
    """Upstream rate limit still exceeded after all retries."""

    code = "RATE_LIMITED"
    status_code = 429

    def __init__(
        self,
        message: str,
        *,
        service: str,
        endpoint: str | None = None,
        requests_remaining: int | None = None,
        requests_limit: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(
            message,
            service=service,
            endpoint=endpoint,
            status=429,
            details={
                "requests_remaining": requests_remaining,
                "requests_limit": requests_limit,
            },
        )
        self.requests_remaining = requests_remaining
        self.requests_limit = requests_limit
        # Seconds the upstream asked us to wait, if it said.
        self.retry_after = retry_after


class ServiceUnavailableError(ExternalServiceError):
    """5xx or transport failure. Usually transient, so clients retry it."""

    code = "SERVICE_UNAVAILABLE"


class AuthenticationError(ExternalServiceError):
    """Credentials rejected upstream. A configuration fault, never retried."""

    code = "AUTH_FAILED"


_ALLOWED_RANGE_PATTERN = re.compile(r"from\s+(\d{4})\s+to\s+(\d{4})", re.IGNORECASE)
_ALLOWED_DATES_PATTERN = re.compile(r"from\s+(\d{4}-\d{2}-\d{2})\s+to\s+(\d{4}-\d{2}-\d{2})", re.IGNORECASE)


def parse_allowed_range(detail: str) -> tuple[int, int] | None:
    """Extract ``(start, end)`` from messages like 'try from 2021 to 2023'."""
    match = _ALLOWED_RANGE_PATTERN.search(detail)
    if not match:
        return None
    start, end = int(match.group(1)), int(match.group(2))
    return (min(start, end), max(start, end))


def parse_allowed_dates(detail: str) -> tuple[str, str] | None:
    """Extract ISO dates from messages like 'try from 2025-12-24 to 2025-12-26'."""
    match = _ALLOWED_DATES_PATTERN.search(detail)
    if not match:
        return None
    return (min(match.group(1), match.group(2)), max(match.group(1), match.group(2)))


class PlanRestrictionError(ExternalServiceError):
    """The request is outside the account's plan entitlement.

    The caller may retry with an adjusted request (for example an older
    season inside ``allowed_range``).
    """

    code = "PLAN_RESTRICTED"
    status_code = 403

    def __init__(self, detail: str, *, service: str, endpoint: str | None = None) -> None:
        super().__init__(
            f"Plan restriction: {detail}",
            service=service,
            endpoint=endpoint,
            details={"restriction": detail},
        )
        self.detail = detail
        self.allowed_range = parse_allowed_range(detail)
        self.allowed_dates = parse_allowed_dates(detail)


class CompletionError(ExternalServiceError):
    """The completion service failed or returned unusable output."""

    code = "COMPLETION_FAILED"

    def __init__(self, message: str, *, endpoint: str | None = None) -> None:
        super().__init__(message, service="openai", endpoint=endpoint)


class MalformedOutputError(CompletionError):
    """The model answered, but never with JSON matching the schema."""

    code = "COMPLETION_MALFORMED"


class PipelineError(ReportError):
    """Fatal stage failure; the session ends in ``error``."""

    code = "GENERATION_FAILED"

    def __init__(self, message: str, stage: str | None = None) -> None:
        super().__init__(message, {"stage": stage} if stage else None)
        self.stage = stage


class GenerationCancelledError(PipelineError):
    code = "GENERATION_CANCELLED"


def error_payload(exc: BaseException) -> dict[str, Any]:
    """Convert any exception into a JSON-safe error payload."""
    if isinstance(exc, ReportError):
        return {
            "message": exc.message,
            "code": exc.code,
            "status_code": exc.status_code,
            "details": exc.details,
        }
    return {
        "message": str(exc) or "An unknown error occurred",
        "code": "INTERNAL_ERROR",
        "status_code": 500,
        "details": {},
    }
