"""
Static stage: terminal fallback for every path no earlier stage handled.

Serves files from the static directory and falls back to index.html so
client-side routes resolve to the single-page app.
"""

from __future__ import annotations

import logging
import os

from starlette.exceptions import HTTPException
from starlette.responses import FileResponse, PlainTextResponse, Response
from starlette.staticfiles import StaticFiles
from starlette.types import Receive, Scope, Send

logger = logging.getLogger(__name__)


class StaticFallbackStage:
    def __init__(self, directory: str, *, index: str = "index.html"):
        self.directory = directory
        self.index_path = os.path.join(directory, index)
        self.files = StaticFiles(directory=directory, check_dir=False)

        if not os.path.isdir(directory):
            logger.warning(f"Static directory '{directory}' not found, only API routes will be served")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "websocket":
            await send({"type": "websocket.close", "code": 1000})
            return
        if scope["type"] != "http":
            return

        response = await self._get_response(scope)
        await response(scope, receive, send)

    async def _get_response(self, scope: Scope) -> Response:
        if scope["method"] not in ("GET", "HEAD"):
            return PlainTextResponse("Not Found", status_code=404)

        try:
            return await self.files.get_response(self.files.get_path(scope), scope)
        except HTTPException as e:
            if e.status_code != 404:
                raise

        if os.path.isfile(self.index_path):
            return FileResponse(self.index_path)
        return PlainTextResponse("Not Found", status_code=404)
