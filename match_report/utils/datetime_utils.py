"""Low-level timezone and timestamp utilities."""

from __future__ import annotations

from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return the current timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_iso_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed), or return None."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_match_date(value: str | None) -> str:
    """Render a fixture kickoff as ``YYYY-MM-DD`` for prompts; ``TBD`` if unknown."""
    parsed = parse_iso_datetime(value)
    return parsed.date().isoformat() if parsed else "TBD"
