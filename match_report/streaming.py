"""Server-sent event adapter for report generation.

Bridges the pipeline's synchronous progress sink onto an ``asyncio.Queue`` and
renders the run as ``start`` / ``progress`` / ``complete`` | ``server_error``
/ ``done`` frames. Every stream carries exactly one of ``complete`` or
``server_error`` and always ends with ``done``.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator

from .errors import GenerationCancelledError, error_payload
from .logging import logger
from .orchestrator.generator import ReportPipeline
from .orchestrator.progress import ProgressUpdate
from .session.models import SessionStatus

START = "start"
PROGRESS = "progress"
COMPLETE = "complete"
SERVER_ERROR = "server_error"
DONE = "done"

COMPLETE_MESSAGE = "Report generation completed!"

# Runs that outlive their stream; held so they are not garbage collected.
_background_runs: set[asyncio.Task] = set()


@dataclass(frozen=True)
class ServerSentEvent:
    event: str
    data: dict[str, Any]

    def encode(self) -> str:
        return f"event: {self.event}\ndata: {json.dumps(self.data, ensure_ascii=False)}\n\n"


def _error(message: str, code: str | None = None) -> ServerSentEvent:
    data: dict[str, Any] = {"message": message}
    if code:
        data["code"] = code
    return ServerSentEvent(SERVER_ERROR, data)


def _done() -> ServerSentEvent:
    return ServerSentEvent(DONE, {"message": "Stream closed"})


async def generation_events(
    pipeline: ReportPipeline,
    session_id: str | None,
    *,
    cancel_on_disconnect: bool = False,
) -> AsyncIterator[ServerSentEvent]:
    """Run generation for ``session_id`` and yield its events in order.

    When the consumer stops iterating before the run finishes, the run keeps
    going in the background unless ``cancel_on_disconnect`` is set, in which
    case it is cancelled cooperatively.
    """
    if not session_id:
        yield _error("Missing sessionId parameter", "VALIDATION_ERROR")
        yield _done()
        return

    session = pipeline.store.get(session_id)
    if session is None:
        yield _error(
            "Session not found. It may have expired; please create a new session.",
            "SESSION_NOT_FOUND",
        )
        yield _done()
        return

    if session.status is SessionStatus.COMPLETED:
        yield ServerSentEvent(START, {"sessionId": session_id, "message": "Report already generated"})
        yield ServerSentEvent(COMPLETE, {"report": session.final_artifact, "message": COMPLETE_MESSAGE})
        yield _done()
        return
    if session.status is SessionStatus.GENERATING:
        yield _error("Report generation already in progress for this session", "GENERATION_IN_PROGRESS")
        yield _done()
        return
    if session.status is SessionStatus.ERROR:
        yield _error(session.error or "Report generation failed", "GENERATION_FAILED")
        yield _done()
        return

    queue: asyncio.Queue[ProgressUpdate | None] = asyncio.Queue()
    cancel_event = asyncio.Event()
    run = asyncio.create_task(
        pipeline.run(session_id, queue.put_nowait, cancel_event if cancel_on_disconnect else None)
    )
    _background_runs.add(run)
    run.add_done_callback(_background_runs.discard)
    run.add_done_callback(lambda _: queue.put_nowait(None))

    finished = False
    try:
        yield ServerSentEvent(START, {"sessionId": session_id, "message": "Starting report generation..."})
        while True:
            update = await queue.get()
            if update is None:
                break
            yield ServerSentEvent(PROGRESS, update.to_dict())

        finished = True
        exc = run.exception() if not run.cancelled() else GenerationCancelledError("Generation cancelled")
        if exc is not None:
            payload = error_payload(exc)
            yield _error(payload["message"], payload["code"])
        else:
            final = run.result()
            yield ServerSentEvent(COMPLETE, {"report": final.final_artifact, "message": COMPLETE_MESSAGE})
        yield _done()
    finally:
        if not finished and not run.done():
            if cancel_on_disconnect:
                logger.info("generation_cancel_requested", session_id=session_id)
                cancel_event.set()
            else:
                logger.info("stream_disconnected_generation_continues", session_id=session_id)


async def stream_generation(
    pipeline: ReportPipeline,
    session_id: str | None,
    *,
    cancel_on_disconnect: bool = False,
) -> AsyncIterator[str]:
    """Encoded SSE frames for ``StreamingResponse``."""
    events = generation_events(pipeline, session_id, cancel_on_disconnect=cancel_on_disconnect)
    async with aclosing(events):
        async for event in events:
            yield event.encode()
