"""
Authentication stage.

Present only when a security service is configured. Guards HTTP requests to
the GraphQL path so rejected requests never reach resolver work. WebSocket
connections are authorized by the subscription server on connection_init.
"""

from __future__ import annotations

import logging

from starlette.requests import Request
from starlette.types import ASGIApp, Receive, Scope, Send

from ..core.errors import AuthenticationError
from ..security import SecurityService, extract_bearer_token
from .responses import stage_error_response

logger = logging.getLogger(__name__)


class AuthenticationStage:
    def __init__(self, app: ASGIApp, *, security: SecurityService, path: str = "/graphql"):
        self.app = app
        self.security = security
        self.path = path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] != self.path or scope["method"] == "OPTIONS":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        token = extract_bearer_token(request.headers.get("authorization"))

        try:
            principal = await self.security.authenticate(token)
        except AuthenticationError as e:
            logger.info(f"Rejected {scope['method']} {scope['path']}: {e.message}")
            response = stage_error_response(e)
            await response(scope, receive, send)
            return

        scope.setdefault("state", {})["principal"] = principal
        await self.app(scope, receive, send)
