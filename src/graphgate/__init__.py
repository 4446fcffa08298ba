"""
Graphgate - GraphQL gateway server.

Sequences startup of the storage, security and push-notification services,
composes the HTTP pipeline, and attaches GraphQL subscriptions over
WebSocket to the same listener.

Usage:
    import asyncio
    from graphgate import GatewayServer, load_config

    server = GatewayServer(load_config("graphgate.yaml"))
    exit_code = asyncio.run(server.serve())
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import NotificationConfig, SecurityConfig, ServerConfig, load_config
from .core import (
    AuthenticationError,
    ConfigError,
    GraphgateError,
    LifecycleError,
    ListenerBindError,
    NotificationClientError,
    OperationError,
    OptionalServiceInitFailure,
    PipelineCompositionError,
    PipelineStageError,
    StartupAborted,
    StartupFailure,
    StorageBootstrapError,
    UploadError,
    ServerLifecycle,
    ServerState,
)
from .runtime import ContextFactory, DependencyBootstrapper, RequestContext, ResolvedDependencies
from .notifications import NotificationResolver, NotificationState, NotificationStatus
from .schema import make_executable_schema
from .server import GatewayServer, run

__all__ = [
    "__version__",
    # Config
    "ServerConfig",
    "SecurityConfig",
    "NotificationConfig",
    "load_config",
    # Server
    "GatewayServer",
    "run",
    "ServerLifecycle",
    "ServerState",
    # Runtime
    "DependencyBootstrapper",
    "ResolvedDependencies",
    "ContextFactory",
    "RequestContext",
    "NotificationResolver",
    "NotificationState",
    "NotificationStatus",
    # Schema
    "make_executable_schema",
    # Errors
    "GraphgateError",
    "ConfigError",
    "StartupAborted",
    "StartupFailure",
    "StorageBootstrapError",
    "ListenerBindError",
    "OptionalServiceInitFailure",
    "NotificationClientError",
    "PipelineStageError",
    "AuthenticationError",
    "UploadError",
    "OperationError",
    "LifecycleError",
    "PipelineCompositionError",
]
