"""API-Football access: throttled, cached, retrying client."""

from .client import FootballAPIClient
from .rate_limit import RequestThrottle

__all__ = ["FootballAPIClient", "RequestThrottle"]
