"""
GraphQL HTTP stage.

Terminal for the GraphQL path over HTTP:
- GET: playground for browsers, otherwise query operations from URL params
- POST: JSON body (single or batched) or operations decoded by the upload stage

Subscriptions are rejected here; they run over the WebSocket transport.
"""

from __future__ import annotations

import json
import logging
from inspect import isawaitable
from typing import TYPE_CHECKING, Any, Optional

from graphql import GraphQLError, GraphQLSchema, OperationType, execute
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response

from ..playground import get_playground_html, wants_playground
from ..schema.execution import (
    GraphQLRequest,
    format_error,
    format_execution_result,
    operation_of,
    parse_and_validate,
)
from .uploads import OPERATIONS_STATE_KEY

if TYPE_CHECKING:
    from fastapi import FastAPI

    from ..runtime import ContextFactory

logger = logging.getLogger(__name__)


class _Outcome:
    __slots__ = ("payload", "status_code", "headers")

    def __init__(self, payload: Any, status_code: int = 200, headers: Optional[dict[str, str]] = None):
        self.payload = payload
        self.status_code = status_code
        self.headers = headers

    @classmethod
    def error(cls, message: str, status_code: int = 400, headers: Optional[dict[str, str]] = None) -> _Outcome:
        return cls({"errors": [{"message": message}]}, status_code, headers)


class GraphQLHTTPHandler:
    """
    Executes GraphQL operations received over HTTP.

    Usage:
        handler = GraphQLHTTPHandler(schema, context_factory, path="/graphql")
        handler.install(app)
    """

    def __init__(
        self,
        schema: GraphQLSchema,
        context_factory: ContextFactory,
        *,
        path: str = "/graphql",
        playground: bool = True,
        debug: bool = False,
    ):
        self.schema = schema
        self.context_factory = context_factory
        self.path = path
        self.playground = playground
        self.debug = debug

    def install(self, app: FastAPI) -> None:
        app.add_route(self.path, self.handle, methods=["GET", "POST"], include_in_schema=False)

    async def handle(self, request: Request) -> Response:
        if request.method in ("GET", "HEAD"):
            return await self.handle_get(request)
        return await self.handle_post(request)

    # =========================================================================
    # Methods
    # =========================================================================

    async def handle_get(self, request: Request) -> Response:
        if self.playground and wants_playground(request):
            return HTMLResponse(get_playground_html(endpoint=self.path, subscription_endpoint=self.path))

        params: dict[str, Any] = dict(request.query_params)
        raw_variables = params.get("variables")
        if raw_variables:
            try:
                params["variables"] = json.loads(raw_variables)
            except json.JSONDecodeError:
                return self._respond(_Outcome.error("Variables are invalid JSON."))

        return self._respond(await self._run(request, params, query_only=True))

    async def handle_post(self, request: Request) -> Response:
        state = request.scope.get("state") or {}
        if OPERATIONS_STATE_KEY in state:
            payload = state[OPERATIONS_STATE_KEY]
        else:
            try:
                payload = await request.json()
            except (json.JSONDecodeError, UnicodeDecodeError):
                return self._respond(_Outcome.error("POST body sent invalid JSON."))

        if isinstance(payload, list):
            if not payload:
                return self._respond(_Outcome.error("Received an empty list in the batch request."))
            outcomes = [await self._run(request, item) for item in payload]
            return JSONResponse([outcome.payload for outcome in outcomes])

        return self._respond(await self._run(request, payload))

    # =========================================================================
    # Execution
    # =========================================================================

    async def _run(self, request: Request, payload: Any, *, query_only: bool = False) -> _Outcome:
        try:
            gql_request = GraphQLRequest.from_payload(payload)
        except GraphQLError as e:
            return _Outcome.error(e.message)

        document, errors = parse_and_validate(self.schema, gql_request)
        if document is None:
            return _Outcome({"errors": [format_error(e, debug=self.debug) for e in errors]}, 400)

        operation = operation_of(document, gql_request.operation_name)
        if operation is None:
            if gql_request.operation_name:
                return _Outcome.error(f"Unknown operation named '{gql_request.operation_name}'.")
            return _Outcome.error("Must provide operation name if query contains multiple operations.")

        if operation.operation == OperationType.SUBSCRIPTION:
            return _Outcome.error("Subscriptions are only supported over WebSocket.")
        if query_only and operation.operation != OperationType.QUERY:
            return _Outcome.error(
                f"Can only perform a {operation.operation.value} operation from a POST request.",
                status_code=405,
                headers={"Allow": "POST"},
            )

        context = await self.context_factory.build(request)
        result = execute(
            self.schema,
            document,
            variable_values=gql_request.variables,
            operation_name=gql_request.operation_name,
            context_value=context,
        )
        if isawaitable(result):
            result = await result

        return _Outcome(format_execution_result(result, debug=self.debug))

    @staticmethod
    def _respond(outcome: _Outcome) -> Response:
        return JSONResponse(outcome.payload, status_code=outcome.status_code, headers=outcome.headers)
