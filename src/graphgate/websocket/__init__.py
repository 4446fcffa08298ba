"""
WebSocket module for GraphQL subscriptions.

Provides:
- TransportGate / TransportAttacher: attach the transport to the bound listener
- SubscriptionServer: graphql-transport-ws and graphql-ws protocol handling
- ConnectionManager: open connections and their running operations
"""

from __future__ import annotations

from .attacher import TransportAttacher, TransportBinding, TransportGate
from .manager import ConnectionInfo, ConnectionManager
from .protocol import GRAPHQL_TRANSPORT_WS, GRAPHQL_WS, ProtocolError, select_dialect
from .router import SubscriptionServer

__all__ = [
    # Attachment
    "TransportGate",
    "TransportAttacher",
    "TransportBinding",
    # Protocol
    "SubscriptionServer",
    "ProtocolError",
    "select_dialect",
    "GRAPHQL_TRANSPORT_WS",
    "GRAPHQL_WS",
    # Connections
    "ConnectionManager",
    "ConnectionInfo",
]
