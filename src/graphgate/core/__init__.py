"""
Core module - errors and server lifecycle.
"""

from __future__ import annotations

from .errors import (
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
    SchemaDefinitionError,
    StartupAborted,
    StartupFailure,
    StorageBootstrapError,
    UploadError,
)
from .lifecycle import ServerLifecycle, ServerState

__all__ = [
    # Errors
    "GraphgateError",
    "ConfigError",
    "SchemaDefinitionError",
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
    # Lifecycle
    "ServerState",
    "ServerLifecycle",
]
