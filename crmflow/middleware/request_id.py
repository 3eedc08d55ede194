"""Request id propagation.

A well-formed incoming id is reused, anything else is replaced with a
fresh uuid4 hex, so ids written to logs never carry client-controlled text.
"""

import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from crmflow.core.tenant_context import HEADER_ID_RE


def incoming_request_id(headers: Headers, header_name: str) -> str:
    candidate = headers.get(header_name, "").strip()
    if HEADER_ID_RE.fullmatch(candidate):
        return candidate
    return uuid.uuid4().hex


class RequestIDMiddleware:
    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID") -> None:
        self.app = app
        self.header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        request_id = incoming_request_id(Headers(scope=scope), self.header_name)
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_with_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[self.header_name] = request_id
            await send(message)

        await self.app(scope, receive, send_with_id)
