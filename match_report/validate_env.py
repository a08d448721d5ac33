"""Fail-fast environment validation for the report generator service."""

from __future__ import annotations

import os
from functools import lru_cache
from urllib.parse import urlparse

ALLOWED_ENVIRONMENTS = {"development", "staging", "production"}


def require_env(name: str) -> str:
    """Fetch an environment variable or raise RuntimeError if missing."""
    value = os.getenv(name)
    if value is None or not value.strip():
        raise RuntimeError(f"{name} is required and must be set before startup.")
    return value.strip()


def validate_environment_value(environment: str) -> None:
    """Ensure ENVIRONMENT is one of the allowed values."""
    if environment not in ALLOWED_ENVIRONMENTS:
        allowed = ", ".join(sorted(ALLOWED_ENVIRONMENTS))
        raise RuntimeError(f"ENVIRONMENT must be one of: {allowed}.")


def validate_https_url(name: str, value: str) -> None:
    """Ensure an upstream base URL is https and has a hostname."""
    parsed = urlparse(value)
    if not parsed.hostname:
        raise RuntimeError(f"{name} must be a valid URL (missing hostname).")
    if parsed.scheme != "https":
        raise RuntimeError(f"{name} must use https in production.")


@lru_cache(maxsize=1)
def validate_env() -> None:
    """Validate environment variables before the service starts.

    Development and staging run without credentials (requests will fail at
    call time with a clear error). Production demands both upstream keys.
    """
    environment = os.getenv("ENVIRONMENT", "development").strip() or "development"
    validate_environment_value(environment)

    if environment == "production":
        require_env("APIFOOTBALL_API_KEY")
        require_env("OPENAI_API_KEY")
        base_url = os.getenv("APIFOOTBALL_BASE_URL")
        if base_url:
            validate_https_url("APIFOOTBALL_BASE_URL", base_url)
