"""
CORS stage.

Starlette's CORSMiddleware answers preflight requests and echoes allowed
origins, but only decorates responses to requests carrying an Origin header.
With a wildcard origin list the gateway sends Access-Control-Allow-Origin on
every HTTP response.
"""

from __future__ import annotations

from typing import Sequence

from starlette.datastructures import MutableHeaders
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

ALLOW_ORIGIN = "access-control-allow-origin"


class CORSStage:
    def __init__(self, app: ASGIApp, *, origins: Sequence[str] = ("*",)):
        self.origins = list(origins)
        self.allow_all = "*" in self.origins
        self.app = CORSMiddleware(
            app,
            allow_origins=self.origins,
            allow_credentials=not self.allow_all,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.allow_all:
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                headers = MutableHeaders(scope=message)
                if ALLOW_ORIGIN not in headers:
                    headers[ALLOW_ORIGIN] = "*"
            await send(message)

        await self.app(scope, receive, send_wrapper)
