"""
Subscription server.

Runs GraphQL operations over a WebSocket connection, speaking
graphql-transport-ws and the legacy graphql-ws dialect.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from inspect import isawaitable
from typing import TYPE_CHECKING, Any, Optional

from graphql import ExecutionResult, GraphQLError, GraphQLSchema, OperationType, execute, subscribe
from starlette.websockets import WebSocket, WebSocketDisconnect

from ..core.errors import AuthenticationError
from ..schema.execution import (
    GraphQLRequest,
    format_error,
    format_execution_result,
    operation_of,
    parse_and_validate,
)
from .manager import ConnectionInfo, ConnectionManager
from .protocol import (
    BAD_REQUEST,
    FORBIDDEN,
    INIT_TIMEOUT,
    NORMAL_CLOSURE,
    SUBPROTOCOL_NOT_ACCEPTABLE,
    SUBSCRIBER_EXISTS,
    TOO_MANY_INIT,
    UNAUTHORIZED,
    ProtocolError,
    select_dialect,
)

if TYPE_CHECKING:
    from ..runtime import ContextFactory
    from ..security import SecurityService

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION_INIT_TIMEOUT = 10.0


class SubscriptionServer:
    """
    GraphQL over WebSocket.

    Flow:
    1. Negotiate the subprotocol and accept
    2. Wait for connection_init, authorize it when security is bound
    3. Acknowledge, then run subscribe/start messages as operation tasks
    4. Cancel the connection's operations on stop or disconnect
    """

    def __init__(
        self,
        schema: GraphQLSchema,
        context_factory: ContextFactory,
        *,
        security: Optional[SecurityService] = None,
        connection_init_timeout: float = DEFAULT_CONNECTION_INIT_TIMEOUT,
        debug: bool = False,
    ):
        self.schema = schema
        self.context_factory = context_factory
        self.security = security
        self.connection_init_timeout = connection_init_timeout
        self.debug = debug
        self.manager = ConnectionManager()

    async def handle_connection(self, websocket: WebSocket) -> None:
        """
        Handle one WebSocket connection until it closes.

        Args:
            websocket: Starlette WebSocket, not yet accepted
        """
        offered = list(websocket.scope.get("subprotocols") or [])
        dialect = select_dialect(offered)
        if dialect is None:
            logger.info(f"Rejected WebSocket upgrade, unsupported subprotocols: {offered}")
            await websocket.close(code=SUBPROTOCOL_NOT_ACCEPTABLE)
            return

        await websocket.accept(subprotocol=dialect.name if offered else None)
        connection_id = str(uuid.uuid4())
        info = self.manager.connect(connection_id, websocket, dialect)

        try:
            await self._initialise(info)

            while True:
                message = await self._receive(websocket)
                if not await self._handle_message(connection_id, info, message):
                    await websocket.close(code=NORMAL_CLOSURE)
                    break

        except ProtocolError as e:
            logger.info(f"Closing WebSocket {connection_id}: {e.reason} ({e.code})")
            await websocket.close(code=e.code, reason=e.reason)
        except WebSocketDisconnect:
            logger.info(f"Client {connection_id} disconnected")
        finally:
            await self.manager.disconnect(connection_id)

    # =========================================================================
    # Handshake
    # =========================================================================

    async def _initialise(self, info: ConnectionInfo) -> None:
        websocket = info.websocket
        try:
            message = await asyncio.wait_for(self._receive(websocket), self.connection_init_timeout)
        except asyncio.TimeoutError:
            raise ProtocolError(INIT_TIMEOUT, "Connection initialisation timeout")

        if message.get("type") != "connection_init":
            raise ProtocolError(UNAUTHORIZED, "Unauthorized")

        payload = message.get("payload") or {}
        if not isinstance(payload, dict):
            raise ProtocolError(BAD_REQUEST, "Invalid connection_init payload")

        if self.security is not None:
            try:
                principal = await self.security.authorize_connection(payload)
            except AuthenticationError as e:
                if info.dialect.legacy:
                    await websocket.send_json({"type": "connection_error", "payload": {"message": e.message}})
                raise ProtocolError(FORBIDDEN, "Forbidden")

            info.principal = principal
            websocket.scope.setdefault("state", {})["principal"] = principal

        info.acknowledged = True
        for message in info.dialect.ack_messages():
            await websocket.send_json(message)

    async def _receive(self, websocket: WebSocket) -> dict[str, Any]:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", NORMAL_CLOSURE))

        raw = message.get("text")
        if raw is None and message.get("bytes") is not None:
            raw = message["bytes"].decode("utf-8", errors="replace")

        try:
            data = json.loads(raw or "")
        except json.JSONDecodeError:
            raise ProtocolError(BAD_REQUEST, "Invalid message received")
        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            raise ProtocolError(BAD_REQUEST, "Invalid message received")
        return data

    # =========================================================================
    # Messages
    # =========================================================================

    async def _handle_message(self, connection_id: str, info: ConnectionInfo, message: dict[str, Any]) -> bool:
        """Handle one client message. Returns False when the client asked to terminate."""
        dialect = info.dialect
        message_type = message["type"]

        if message_type == "connection_init":
            raise ProtocolError(TOO_MANY_INIT, "Too many initialisation requests")

        if message_type == "ping":
            await info.websocket.send_json({"type": "pong"})
        elif message_type == "pong":
            pass
        elif message_type == dialect.start:
            self._start_operation(connection_id, info, message)
        elif message_type == dialect.stop:
            self.manager.stop_operation(connection_id, str(message.get("id")))
        elif dialect.legacy and message_type == "connection_terminate":
            return False
        else:
            raise ProtocolError(BAD_REQUEST, f"Unknown message type: {message_type}")
        return True

    def _start_operation(self, connection_id: str, info: ConnectionInfo, message: dict[str, Any]) -> None:
        operation_id = message.get("id")
        if not isinstance(operation_id, str) or not operation_id:
            raise ProtocolError(BAD_REQUEST, "Operation id is required")
        if operation_id in info.operations:
            raise ProtocolError(SUBSCRIBER_EXISTS, f"Subscriber for {operation_id} already exists")

        task = asyncio.create_task(
            self._run_operation(info, operation_id, message.get("payload")),
            name=f"graphgate-ws-{connection_id}-{operation_id}",
        )
        self.manager.start_operation(connection_id, operation_id, task)

    # =========================================================================
    # Operations
    # =========================================================================

    async def _run_operation(self, info: ConnectionInfo, operation_id: str, payload: Any) -> None:
        websocket = info.websocket
        dialect = info.dialect

        try:
            try:
                request = GraphQLRequest.from_payload(payload)
            except GraphQLError as e:
                await websocket.send_json(dialect.error_message(operation_id, [e.formatted]))
                return

            document, errors = parse_and_validate(self.schema, request)
            if document is None:
                formatted = [format_error(e, debug=self.debug) for e in errors]
                await websocket.send_json(dialect.error_message(operation_id, formatted))
                return

            operation = operation_of(document, request.operation_name)
            if operation is None:
                await websocket.send_json(
                    dialect.error_message(operation_id, [{"message": "Unknown or ambiguous operation."}])
                )
                return

            context = await self.context_factory.build(websocket)

            if operation.operation == OperationType.SUBSCRIPTION:
                result = subscribe(
                    self.schema,
                    document,
                    variable_values=request.variables,
                    operation_name=request.operation_name,
                    context_value=context,
                )
                if isawaitable(result):
                    result = await result

                if isinstance(result, ExecutionResult):
                    formatted = [format_error(e, debug=self.debug) for e in result.errors or []]
                    await websocket.send_json(dialect.error_message(operation_id, formatted))
                    return

                try:
                    async for item in result:
                        payload = format_execution_result(item, debug=self.debug)
                        await websocket.send_json(dialect.next_message(operation_id, payload))
                finally:
                    aclose = getattr(result, "aclose", None)
                    if aclose is not None:
                        await aclose()
            else:
                result = execute(
                    self.schema,
                    document,
                    variable_values=request.variables,
                    operation_name=request.operation_name,
                    context_value=context,
                )
                if isawaitable(result):
                    result = await result
                payload = format_execution_result(result, debug=self.debug)
                await websocket.send_json(dialect.next_message(operation_id, payload))

            await websocket.send_json(dialect.complete_message(operation_id))

        except asyncio.CancelledError:
            logger.debug(f"Operation {operation_id} stopped")
            raise
        except (WebSocketDisconnect, RuntimeError) as e:
            # Socket closed while the operation was still sending
            logger.debug(f"Operation {operation_id} ended with closed socket: {e}")
        except Exception as e:
            logger.error(f"Error in operation {operation_id}: {e}", exc_info=True)
