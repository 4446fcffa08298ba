"""
Shared GraphQL execution helpers for HTTP and WebSocket transports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from graphql import (
    DocumentNode,
    ExecutionResult,
    GraphQLError,
    GraphQLSchema,
    OperationDefinitionNode,
    get_operation_ast,
    parse,
    validate,
)

from ..core.errors import OperationError

logger = logging.getLogger(__name__)


@dataclass
class GraphQLRequest:
    """A decoded GraphQL operation request."""
    query: str
    variables: Optional[dict[str, Any]] = None
    operation_name: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> GraphQLRequest:
        """
        Decode ``{"query", "variables", "operationName"}``.

        Raises:
            GraphQLError: If the payload is not a valid operation request
        """
        if not isinstance(payload, dict):
            raise GraphQLError("GraphQL params must be an object.")

        query = payload.get("query")
        if not isinstance(query, str) or not query.strip():
            raise GraphQLError("Must provide query string.")

        variables = payload.get("variables")
        if variables is not None and not isinstance(variables, dict):
            raise GraphQLError("Variables must be an object.")

        operation_name = payload.get("operationName")
        if operation_name is not None and not isinstance(operation_name, str):
            raise GraphQLError("Operation name must be a string.")

        return cls(query=query, variables=variables, operation_name=operation_name)


def parse_and_validate(
    schema: GraphQLSchema, request: GraphQLRequest
) -> tuple[Optional[DocumentNode], list[GraphQLError]]:
    """Parse and validate a request. Returns the document or the errors."""
    try:
        document = parse(request.query)
    except GraphQLError as e:
        return None, [e]

    errors = validate(schema, document)
    if errors:
        return None, list(errors)
    return document, []


def operation_of(document: DocumentNode, operation_name: Optional[str]) -> Optional[OperationDefinitionNode]:
    return get_operation_ast(document, operation_name)


def format_error(error: GraphQLError, *, debug: bool = False) -> dict[str, Any]:
    """
    Format an error for the response payload.

    OperationError codes are exposed under extensions. Other resolver
    exceptions are logged and, outside debug mode, masked.
    """
    formatted = dict(error.formatted)
    original = error.original_error

    if isinstance(original, OperationError):
        formatted["extensions"] = {**formatted.get("extensions", {}), "code": original.code}
    elif original is not None and not isinstance(original, GraphQLError):
        logger.error(f"Resolver error at {error.path}: {original}", exc_info=original)
        if not debug:
            formatted["message"] = "Internal server error"
        formatted["extensions"] = {**formatted.get("extensions", {}), "code": "INTERNAL_SERVER_ERROR"}

    return formatted


def format_execution_result(result: ExecutionResult, *, debug: bool = False) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if result.errors:
        payload["errors"] = [format_error(e, debug=debug) for e in result.errors]
    payload["data"] = result.data
    if result.extensions:
        payload["extensions"] = result.extensions
    return payload
