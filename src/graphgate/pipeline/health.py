"""Health-check stage: terminal for its path, bypasses every later stage."""

from __future__ import annotations

from starlette.responses import Response
from starlette.types import ASGIApp, Receive, Scope, Send


class HealthCheckStage:
    def __init__(self, app: ASGIApp, *, path: str = "/health"):
        self.app = app
        self.path = path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"] == self.path and scope["method"] in ("GET", "HEAD"):
            await Response(status_code=200)(scope, receive, send)
            return
        await self.app(scope, receive, send)
