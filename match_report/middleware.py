"""Request-id tagging and access logging."""

from __future__ import annotations

import re
import time
import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .logging import bind_request_context, clear_request_context, logger

REQUEST_ID_HEADER = "X-Request-Id"

# Inbound ids end up in log lines; anything else is replaced.
_VALID_REQUEST_ID = re.compile(r"[A-Za-z0-9._-]{1,128}")


def resolve_request_id(inbound: str | None) -> str:
    """Keep a well-formed inbound id so it survives a proxy hop; otherwise mint one."""
    if inbound and _VALID_REQUEST_ID.fullmatch(inbound):
        return inbound
    return str(uuid.uuid4())


class RequestContextMiddleware:
    """Tag each HTTP request with an id and log it once the response is sent.

    The id is bound into the structlog context for the whole request, which
    includes the body of a streamed response, and echoed as ``X-Request-Id``.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        request_id = resolve_request_id(headers.get(REQUEST_ID_HEADER))
        clear_request_context()
        bind_request_context(request_id=request_id)

        start = time.perf_counter()
        status_code = 500

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            client = scope.get("client")
            logger.info(
                "http_request",
                method=scope["method"],
                path=scope["path"],
                status_code=status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                client_ip=client[0] if client else None,
                user_agent=headers.get("user-agent"),
            )
            clear_request_context()
