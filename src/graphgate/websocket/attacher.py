"""
Transport attachment.

The WebSocket route on the GraphQL path is registered while the pipeline is
composed, as a closed TransportGate. Once the listener is bound, the
TransportAttacher creates the TransportBinding and opens the gate, so the
subscription transport shares the socket used for HTTP traffic.

Usage:
    gate = TransportGate("/graphql")
    attacher = TransportAttacher(gate, lifecycle, server_factory)
    attacher.attach(schema=schema, security=security, listener=listener)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from graphql import GraphQLSchema
from starlette.websockets import WebSocket

from ..core.errors import LifecycleError
from ..core.lifecycle import ServerLifecycle, ServerState
from .protocol import TRY_AGAIN_LATER
from .router import SubscriptionServer

if TYPE_CHECKING:
    from ..security import SecurityService
    from ..server.listener import Listener

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportBinding:
    """The subscription transport bound to a live listener."""
    schema: GraphQLSchema
    security: Optional[SecurityService]
    path: str
    listener: Listener

    def __post_init__(self) -> None:
        if not self.listener.is_bound:
            raise LifecycleError("Transport binding requires a bound listener")


ServerFactory = Callable[[TransportBinding], SubscriptionServer]


class TransportGate:
    """WebSocket endpoint that refuses upgrades until a binding is attached."""

    def __init__(self, path: str):
        self.path = path
        self.binding: Optional[TransportBinding] = None
        self.server: Optional[SubscriptionServer] = None

    @property
    def is_open(self) -> bool:
        return self.server is not None

    def open(self, binding: TransportBinding, server: SubscriptionServer) -> None:
        if self.server is not None:
            raise LifecycleError(f"Transport already attached at {self.path}")
        self.binding = binding
        self.server = server

    async def endpoint(self, websocket: WebSocket) -> None:
        server = self.server
        if server is None:
            logger.info(f"Refused WebSocket upgrade on {self.path}: transport not attached")
            await websocket.close(code=TRY_AGAIN_LATER)
            return
        await server.handle_connection(websocket)


class TransportAttacher:
    def __init__(self, gate: TransportGate, lifecycle: ServerLifecycle, server_factory: ServerFactory):
        self.gate = gate
        self.lifecycle = lifecycle
        self.server_factory = server_factory

    def attach(
        self,
        *,
        schema: GraphQLSchema,
        security: Optional[SecurityService],
        listener: Listener,
    ) -> TransportBinding:
        """
        Bind the subscription transport to the listener.

        Raises:
            LifecycleError: If the server is not LISTENING, or on a second attach
        """
        if self.gate.is_open:
            raise LifecycleError(f"Transport already attached at {self.gate.path}")
        self.lifecycle.require(ServerState.LISTENING)

        binding = TransportBinding(schema=schema, security=security, path=self.gate.path, listener=listener)
        self.gate.open(binding, self.server_factory(binding))
        self.lifecycle.transition(ServerState.TRANSPORT_ATTACHED)

        logger.info(f"Subscription transport attached at ws://{listener.host}:{listener.port}{binding.path}")
        return binding
