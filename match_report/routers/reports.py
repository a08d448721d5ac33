"""Report endpoints: fixtures, sessions, generation stream and chat."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel, Field

from ..dependencies import Container, get_container
from ..football.fixtures import FixtureQuery, list_fixtures
from ..logging import bind_request_context
from ..streaming import stream_generation

router = APIRouter(prefix="/api", tags=["reports"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class CreateSessionRequest(BaseModel):
    fixture_id: Any = Field(None, alias="fixtureId")


class ChatRequest(BaseModel):
    session_id: str = Field(..., alias="sessionId", min_length=1)
    message: str = Field(..., min_length=1)


@router.post("/session", status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: CreateSessionRequest,
    container: Container = Depends(get_container),
) -> dict[str, str]:
    session_id = container.pipeline.create_session(payload.fixture_id)
    return {"sessionId": session_id}


@router.get("/session")
async def session_stats(container: Container = Depends(get_container)) -> dict[str, Any]:
    """Session counts by status (debugging aid)."""
    return container.store.stats()


@router.get("/fixtures")
async def fixtures(
    date: str | None = None,
    date_from: str | None = Query(None, alias="from"),
    date_to: str | None = Query(None, alias="to"),
    league: int | None = None,
    season: int | None = None,
    team: int | None = None,
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    """Fixtures by ``date``, by ``from``/``to``, or around today; optionally per league, season or team."""
    query = FixtureQuery(
        date=date,
        date_from=date_from,
        date_to=date_to,
        league=league,
        season=season,
        team=team,
    )
    found = await list_fixtures(container.data_source, query)
    return {"fixtures": found, "count": len(found)}


@router.get("/generate")
async def generate(
    session_id: str | None = Query(None, alias="sessionId"),
    container: Container = Depends(get_container),
) -> StreamingResponse:
    if session_id:
        bind_request_context(session_id=session_id)
    return StreamingResponse(
        stream_generation(
            container.pipeline,
            session_id,
            cancel_on_disconnect=container.settings.generation_config.cancel_on_disconnect,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/chat", response_class=PlainTextResponse)
async def chat(
    payload: ChatRequest,
    container: Container = Depends(get_container),
) -> PlainTextResponse:
    bind_request_context(session_id=payload.session_id)
    answer = await container.chat.reply(payload.session_id, payload.message)
    return PlainTextResponse(answer, headers={"X-Session-Id": payload.session_id})
