"""Error responses produced at pipeline stage boundaries."""

from __future__ import annotations

from typing import Any

from starlette.responses import JSONResponse

from ..core.errors import PipelineStageError


def stage_error_response(error: PipelineStageError) -> JSONResponse:
    return JSONResponse(
        {"errors": [error.to_dict()]},
        status_code=error.status_code,
        headers=error.headers,
    )


def graphql_error_response(errors: list[dict[str, Any]], status_code: int = 400) -> JSONResponse:
    return JSONResponse({"errors": errors}, status_code=status_code)
