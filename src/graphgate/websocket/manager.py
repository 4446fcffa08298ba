"""WebSocket connection registry with per-connection running operations"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from starlette.websockets import WebSocket

from .protocol import Dialect

logger = logging.getLogger(__name__)


@dataclass
class ConnectionInfo:
    """Information about a WebSocket connection."""
    websocket: WebSocket
    dialect: Dialect
    principal: Optional[Any] = None
    operations: Dict[str, asyncio.Task] = field(default_factory=dict)  # operation id -> task
    acknowledged: bool = False


class ConnectionManager:
    """
    Tracks open subscription connections.

    Manages:
    - WebSocket connections from clients
    - Running operation tasks per connection
    - Cancellation on stop and on disconnect
    """

    def __init__(self):
        self._connections: Dict[str, ConnectionInfo] = {}

    def connect(self, connection_id: str, websocket: WebSocket, dialect: Dialect) -> ConnectionInfo:
        """Register an accepted WebSocket connection"""
        info = ConnectionInfo(websocket=websocket, dialect=dialect)
        self._connections[connection_id] = info
        logger.info(f"WebSocket connected: {connection_id} ({dialect.name}, total: {len(self._connections)})")
        return info

    async def disconnect(self, connection_id: str) -> None:
        """Remove the connection and cancel its running operations"""
        info = self._connections.pop(connection_id, None)
        if info is None:
            return

        tasks = list(info.operations.values())
        info.operations.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info(f"WebSocket disconnected: {connection_id} (total: {len(self._connections)})")

    def get(self, connection_id: str) -> Optional[ConnectionInfo]:
        return self._connections.get(connection_id)

    def start_operation(self, connection_id: str, operation_id: str, task: asyncio.Task) -> None:
        info = self._connections[connection_id]
        info.operations[operation_id] = task
        task.add_done_callback(lambda _: self._forget(connection_id, operation_id, task))

    def stop_operation(self, connection_id: str, operation_id: str) -> bool:
        """Cancel a running operation. Returns False if it was not running."""
        info = self._connections.get(connection_id)
        if info is None:
            return False
        task = info.operations.pop(operation_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def _forget(self, connection_id: str, operation_id: str, task: asyncio.Task) -> None:
        info = self._connections.get(connection_id)
        if info is not None and info.operations.get(operation_id) is task:
            del info.operations[operation_id]

    @property
    def connection_count(self) -> int:
        """Get total number of active connections"""
        return len(self._connections)

    @property
    def operation_count(self) -> int:
        """Get total number of running operations across all connections"""
        return sum(len(info.operations) for info in self._connections.values())
