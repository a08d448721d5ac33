from .models import (
    CategoryReport,
    ChatMessage,
    PartialReport,
    ReportSection,
    Session,
    SessionStatus,
    SessionUpdate,
    partial_key,
)
from .store import SessionStore

__all__ = [
    "CategoryReport",
    "ChatMessage",
    "PartialReport",
    "ReportSection",
    "Session",
    "SessionStatus",
    "SessionStore",
    "SessionUpdate",
    "partial_key",
]
