"""
Custom exceptions for the graphgate server.

Only StartupFailure is fatal. Everything else is converted into a
response at the nearest boundary.
"""

from __future__ import annotations

from typing import Any, Optional


class GraphgateError(Exception):
    """Base exception for all graphgate errors."""
    pass


class ConfigError(GraphgateError):
    """Raised when configuration cannot be loaded or validated."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Invalid configuration: {'; '.join(errors)}")


class SchemaDefinitionError(GraphgateError):
    """Raised when resolvers do not match the type definitions."""
    pass


# =============================================================================
# Startup
# =============================================================================


class StartupFailure(GraphgateError):
    """Raised when the server cannot reach the listening state."""
    pass


class StorageBootstrapError(StartupFailure):
    """Raised when the mandatory storage connection cannot be established."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"Storage '{url}' unreachable: {message}")


class ListenerBindError(StartupFailure):
    """Raised when the listener socket cannot be bound."""

    def __init__(self, host: str, port: int, message: str):
        self.host = host
        self.port = port
        super().__init__(f"Could not bind {host}:{port}: {message}")


class StartupAborted(StartupFailure):
    """Raised when a fatal error was reported while startup was in progress."""
    pass


# =============================================================================
# Optional services
# =============================================================================


class OptionalServiceInitFailure(GraphgateError):
    """Raised when an optional service could not be constructed."""

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"Optional service '{service}' unavailable: {message}")


class NotificationClientError(OptionalServiceInitFailure):
    """Raised when the push notification client cannot be created."""

    def __init__(self, message: str):
        super().__init__("notifications", message)


# =============================================================================
# Request handling
# =============================================================================


class PipelineStageError(GraphgateError):
    """
    Raised inside a pipeline stage.

    The stage converts it into a JSON error response, it never reaches
    the process.
    """

    status_code: int = 400
    code: str = "BAD_REQUEST"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        super().__init__(message)

    @property
    def headers(self) -> dict[str, str]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "extensions": {"code": self.code}}


class AuthenticationError(PipelineStageError):
    """Raised when a bearer token is missing or invalid."""

    status_code = 401
    code = "UNAUTHENTICATED"

    @property
    def headers(self) -> dict[str, str]:
        return {"WWW-Authenticate": "Bearer"}


class UploadError(PipelineStageError):
    """Raised when a multipart GraphQL request cannot be decoded."""

    code = "BAD_USER_INPUT"


class OperationError(GraphgateError):
    """
    Raised by resolvers for expected, client-visible failures.

    Reported in the ``errors`` list of the operation response with its
    code under ``extensions``.
    """

    def __init__(self, message: str, code: str = "OPERATION_ERROR"):
        self.code = code
        super().__init__(message)


# =============================================================================
# Programming errors
# =============================================================================


class LifecycleError(GraphgateError):
    """Raised on an illegal server lifecycle transition."""
    pass


class PipelineCompositionError(GraphgateError):
    """Raised when pipeline stages violate their ordering contract."""
    pass
