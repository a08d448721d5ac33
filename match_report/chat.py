"""Follow-up chat against a completed report."""

from __future__ import annotations

import time
from typing import Callable

from .config import LLMConfig
from .errors import SessionStateError, ValidationError
from .llm.client import CompletionService
from .llm.prompts import build_chat_prompt
from .logging import logger
from .report.blueprint import FIXTURE, H2H, INJURIES, LINEUPS, STANDINGS, STATISTICS
from .report.context import MatchContext
from .session.models import ChatMessage, Session, SessionStatus, SessionUpdate
from .session.store import SessionStore

REPORT_CONTEXT_CHARS = 2000
HISTORY_MESSAGES = 10


def _availability(session: Session) -> str:
    data = session.collected_data

    def count(name: str, noun: str) -> str:
        value = data.get(name)
        return f"{len(value)} {noun}" if value else "Not available"

    def present(name: str) -> str:
        return "Available" if data.get(name) else "Not available"

    return "\n".join([
        "Available Data:",
        f"- Statistics: {present(STATISTICS)}",
        f"- Injuries: {count(INJURIES, 'records')}",
        f"- Lineups: {present(LINEUPS)}",
        f"- H2H Matches: {count(H2H, 'matches')}",
        f"- Standings: {present(STANDINGS)}",
    ])


def build_chat_context(session: Session) -> str:
    fixture = session.collected_data.get(FIXTURE)
    if fixture:
        context = MatchContext.from_fixture(fixture)
        match = (
            f"Match: {context.home_team} vs {context.away_team}\n"
            f"League: {context.league}\n"
            f"Date: {context.date}\n"
            f"Venue: {context.venue or 'TBD'}"
        )
    else:
        match = "No fixture data available"

    report = (session.final_artifact or "Report not yet generated")[:REPORT_CONTEXT_CHARS]
    history = "\n".join(
        f"{'User' if message.role == 'user' else 'Assistant'}: {message.content}"
        for message in session.chat_history[-HISTORY_MESSAGES:]
    )
    return (
        f"Match Context:\n{match}\n\n{_availability(session)}\n\n"
        f"Report Summary:\n{report}\n\n"
        f"Recent Chat History:\n{history or 'No previous messages'}"
    )


class ChatService:
    """Answers questions about a completed session and records the exchange."""

    def __init__(
        self,
        store: SessionStore,
        completion: CompletionService,
        config: LLMConfig,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.completion = completion
        self.config = config
        self._clock = clock

    async def reply(self, session_id: str, message: str) -> str:
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("Invalid message")

        session = self.store.require(session_id)
        if session.status is not SessionStatus.COMPLETED:
            raise SessionStateError("Report generation not completed yet")

        session = self.store.update(
            session_id,
            SessionUpdate(chat_message=ChatMessage(role="user", content=message, timestamp=self._clock())),
        )
        prompt = build_chat_prompt(build_chat_context(session), message, self.config.chat_max_tokens)
        answer = await self.completion.complete_text(prompt)

        self.store.update(
            session_id,
            SessionUpdate(chat_message=ChatMessage(role="assistant", content=answer, timestamp=self._clock())),
        )
        logger.info("chat_reply_sent", session_id=session_id, history=len(session.chat_history) + 1)
        return answer
