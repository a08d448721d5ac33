"""Session data structures.

A session is the mutable state container for one report-generation run.
The store owns every instance; everyone else works with snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class SessionStatus(str, Enum):
    """Generation lifecycle.

    pending -> generating -> completed | error. ``error`` may also be reached
    straight from pending. Both completed and error are terminal.
    """

    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ERROR)

    def can_transition_to(self, target: "SessionStatus") -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.PENDING: frozenset({SessionStatus.GENERATING, SessionStatus.ERROR}),
    SessionStatus.GENERATING: frozenset({SessionStatus.COMPLETED, SessionStatus.ERROR}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.ERROR: frozenset(),
}


@dataclass(frozen=True)
class PartialReport:
    """Result of one signal analysis."""

    category_id: str
    signal_id: str
    title: str
    insights: list[str]
    narrative: str
    emoji: str
    confidence: float

    @property
    def key(self) -> str:
        return partial_key(self.category_id, self.signal_id)


@dataclass(frozen=True)
class ReportSection:
    title: str
    content: str
    emoji: str


@dataclass(frozen=True)
class CategoryReport:
    """Merged result for one blueprint category."""

    category_id: str
    title: str
    sections: list[ReportSection]
    talking_points: list[str]

    @property
    def is_complete(self) -> bool:
        return bool(self.sections) and self.talking_points is not None


@dataclass(frozen=True)
class ChatMessage:
    role: str  # "user" | "assistant"
    content: str
    timestamp: float


@dataclass
class Session:
    id: str
    subject_id: int
    created_at: float
    status: SessionStatus = SessionStatus.PENDING
    collected_data: dict[str, Any] = field(default_factory=dict)
    partial_results: dict[str, PartialReport] = field(default_factory=dict)
    category_results: dict[str, CategoryReport] = field(default_factory=dict)
    final_artifact: str | None = None
    error: str | None = None
    chat_history: list[ChatMessage] = field(default_factory=list)

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.created_at > ttl_seconds

    def snapshot(self) -> Session:
        """Copy with independent containers; entries themselves are immutable."""
        return replace(
            self,
            collected_data=dict(self.collected_data),
            partial_results=dict(self.partial_results),
            category_results=dict(self.category_results),
            chat_history=list(self.chat_history),
        )


@dataclass(frozen=True)
class SessionUpdate:
    """A partial update applied atomically by the store.

    Map-valued fields are merged by key into the stored session; they never
    replace the stored map.
    """

    status: SessionStatus | None = None
    error: str | None = None
    collected_data: dict[str, Any] | None = None
    partial_report: PartialReport | None = None
    category_report: CategoryReport | None = None
    final_artifact: str | None = None
    chat_message: ChatMessage | None = None

    @property
    def is_chat_only(self) -> bool:
        return (
            self.chat_message is not None
            and self.status is None
            and self.error is None
            and self.collected_data is None
            and self.partial_report is None
            and self.category_report is None
            and self.final_artifact is None
        )


def partial_key(category_id: str, signal_id: str) -> str:
    return f"{category_id}.{signal_id}"
