"""Tests for chat.py module."""

from __future__ import annotations

import pytest

from fakes import FakeClock, FakeCompletionService, make_fixture
from match_report.chat import HISTORY_MESSAGES, ChatService, build_chat_context
from match_report.config import LLMConfig
from match_report.errors import SessionNotFoundError, SessionStateError, ValidationError
from match_report.session.models import ChatMessage, SessionStatus, SessionUpdate
from match_report.session.store import SessionStore


def completed_session(store: SessionStore, report: str = "# Liverpool vs Manchester City\n\nBig game.") -> str:
    session_id = store.create(12345)
    store.update(session_id, SessionUpdate(
        status=SessionStatus.GENERATING,
        collected_data={"fixture": make_fixture(), "h2h": [{}, {}, {}], "standings": [[{"rank": 1}]]},
    ))
    store.update(session_id, SessionUpdate(status=SessionStatus.COMPLETED, final_artifact=report))
    return session_id


class TestBuildChatContext:
    """Tests for build_chat_context."""

    def test_includes_match_and_availability(self, store: SessionStore) -> None:
        session = store.get(completed_session(store))

        context = build_chat_context(session)

        assert "Match: Liverpool vs Manchester City" in context
        assert "League: Premier League" in context
        assert "Venue: Anfield" in context
        assert "- H2H Matches: 3 matches" in context
        assert "- Standings: Available" in context
        assert "- Statistics: Not available" in context
        assert "Report Summary:\n# Liverpool vs Manchester City" in context
        assert "No previous messages" in context

    def test_report_is_truncated(self, store: SessionStore) -> None:
        session = store.get(completed_session(store, report="r" * 5000))

        context = build_chat_context(session)

        assert "r" * 2000 in context
        assert "r" * 2001 not in context

    def test_history_limited_to_recent_messages(self, store: SessionStore) -> None:
        session_id = completed_session(store)
        for index in range(HISTORY_MESSAGES + 4):
            store.update(session_id, SessionUpdate(chat_message=ChatMessage("user", f"question {index}", float(index))))

        context = build_chat_context(store.get(session_id))

        assert "User: question 13" in context
        assert "User: question 4" in context
        assert "User: question 3\n" not in context


class TestChatService:
    """Tests for ChatService.reply."""

    @pytest.mark.asyncio
    async def test_reply_records_exchange(self, store: SessionStore, clock: FakeClock) -> None:
        completion = FakeCompletionService(chat_reply="Salah has 18 goals.")
        chat = ChatService(store, completion, LLMConfig(), clock=clock)
        session_id = completed_session(store)

        answer = await chat.reply(session_id, "Who is the top scorer?")

        assert answer == "Salah has 18 goals."
        history = store.get(session_id).chat_history
        assert [(m.role, m.content) for m in history] == [
            ("user", "Who is the top scorer?"),
            ("assistant", "Salah has 18 goals."),
        ]
        assert history[0].timestamp == clock.now
        prompt = completion.prompts[0]
        assert prompt.name == "chat"
        assert prompt.max_tokens == LLMConfig().chat_max_tokens
        assert "Question: Who is the top scorer?" in prompt.user
        assert "User: Who is the top scorer?" in prompt.user

    @pytest.mark.asyncio
    async def test_requires_completed_session(self, store: SessionStore) -> None:
        completion = FakeCompletionService()
        chat = ChatService(store, completion, LLMConfig())
        session_id = store.create(12345)

        with pytest.raises(SessionStateError, match="Report generation not completed yet"):
            await chat.reply(session_id, "Hello?")

        assert completion.prompts == []
        assert store.get(session_id).chat_history == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["", "   "])
    async def test_rejects_empty_message(self, store: SessionStore, message: str) -> None:
        chat = ChatService(store, FakeCompletionService(), LLMConfig())

        with pytest.raises(ValidationError, match="Invalid message"):
            await chat.reply(completed_session(store), message)

    @pytest.mark.asyncio
    async def test_unknown_session(self, store: SessionStore) -> None:
        chat = ChatService(store, FakeCompletionService(), LLMConfig())

        with pytest.raises(SessionNotFoundError):
            await chat.reply("missing", "Hello?")
