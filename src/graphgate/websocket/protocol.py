"""
GraphQL over WebSocket message dialects.

Two subprotocols are spoken on the same endpoint:
- graphql-transport-ws: subscribe / next / error / complete, ping / pong
- graphql-ws (legacy): start / data / error / complete / stop,
  connection_terminate, connection_error, keep-alive "ka" after the ack
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

GRAPHQL_TRANSPORT_WS = "graphql-transport-ws"
GRAPHQL_WS = "graphql-ws"

# Close codes
NORMAL_CLOSURE = 1000
TRY_AGAIN_LATER = 1013
BAD_REQUEST = 4400
UNAUTHORIZED = 4401
FORBIDDEN = 4403
SUBPROTOCOL_NOT_ACCEPTABLE = 4406
INIT_TIMEOUT = 4408
SUBSCRIBER_EXISTS = 4409
TOO_MANY_INIT = 4429

KEEP_ALIVE = "ka"


class ProtocolError(Exception):
    """Client broke the protocol. The connection is closed with ``code``."""

    def __init__(self, code: int, reason: str):
        self.code = code
        self.reason = reason
        super().__init__(f"{code}: {reason}")


@dataclass(frozen=True)
class Dialect:
    """Message names of one subprotocol."""
    name: str
    start: str
    stop: str
    data: str
    legacy: bool

    def next_message(self, operation_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return {"id": operation_id, "type": self.data, "payload": payload}

    def error_message(self, operation_id: str, errors: list[dict[str, Any]]) -> dict[str, Any]:
        # Legacy clients expect a single error object
        payload: Any = errors[0] if self.legacy and len(errors) == 1 else errors
        return {"id": operation_id, "type": "error", "payload": payload}

    def complete_message(self, operation_id: str) -> dict[str, Any]:
        return {"id": operation_id, "type": "complete"}

    def ack_messages(self) -> list[dict[str, Any]]:
        messages = [{"type": "connection_ack"}]
        if self.legacy:
            # First keep-alive starts the legacy client's liveness timer
            messages.append({"type": KEEP_ALIVE})
        return messages


TRANSPORT_WS = Dialect(name=GRAPHQL_TRANSPORT_WS, start="subscribe", stop="complete", data="next", legacy=False)
LEGACY_WS = Dialect(name=GRAPHQL_WS, start="start", stop="stop", data="data", legacy=True)

DIALECTS = {dialect.name: dialect for dialect in (TRANSPORT_WS, LEGACY_WS)}


def select_dialect(offered: list[str]) -> Optional[Dialect]:
    """
    Pick the dialect for a handshake.

    No offered subprotocol means graphql-transport-ws. Offers that name
    neither supported subprotocol return None.
    """
    if not offered:
        return TRANSPORT_WS
    for name in offered:
        if name in DIALECTS:
            return DIALECTS[name]
    return None
