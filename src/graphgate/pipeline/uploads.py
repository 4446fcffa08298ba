"""
Upload stage.

Decodes GraphQL multipart requests before they reach operation handling:

    operations: {"query": "...", "variables": {"file": null}}
    map:        {"0": ["variables.file"]}
    0:          <file part>

Files are placed into the operation variables as UploadFile objects. The
decoded operations are handed to the GraphQL route via request state.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import Request
from starlette.types import ASGIApp, Receive, Scope, Send

from ..core.errors import UploadError
from .responses import stage_error_response

logger = logging.getLogger(__name__)

OPERATIONS_STATE_KEY = "graphql_operations"
DEFAULT_MAX_FILE_SIZE = 10_000_000  # 10 MB
DEFAULT_MAX_FILES = 5


def _step(target: Any, key: str) -> Any:
    if isinstance(target, list):
        return target[int(key)]
    return target[key]


def _set_path(operations: Any, path: str, value: UploadFile) -> None:
    parts = path.split(".")
    try:
        target = operations
        for part in parts[:-1]:
            target = _step(target, part)

        last = parts[-1]
        if isinstance(target, list):
            target[int(last)] = value
        elif isinstance(target, dict):
            target[last] = value
        else:
            raise TypeError(f"cannot assign into {type(target).__name__}")
    except (KeyError, IndexError, ValueError, TypeError) as e:
        raise UploadError(f"Invalid upload map path '{path}': {e}")


def _load_json_field(form: FormData, name: str) -> Any:
    raw = form.get(name)
    if raw is None or isinstance(raw, UploadFile):
        raise UploadError(f"Multipart request is missing the '{name}' field")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise UploadError(f"Invalid JSON in the '{name}' multipart field: {e.msg}")


def decode_operations(form: FormData, max_file_size: int) -> Any:
    """
    Build GraphQL operations from a parsed multipart form.

    Raises:
        UploadError: On a malformed request or a file over the size limit
    """
    operations = _load_json_field(form, "operations")
    file_map = _load_json_field(form, "map")

    if not isinstance(operations, (dict, list)):
        raise UploadError("'operations' must be an object or an array")
    if not isinstance(file_map, dict):
        raise UploadError("'map' must be an object")

    for key, paths in file_map.items():
        upload = form.get(key)
        if not isinstance(upload, UploadFile):
            raise UploadError(f"File missing in the request for map key '{key}'")
        if upload.size is not None and upload.size > max_file_size:
            raise UploadError(
                f"File '{upload.filename}' exceeds the maximum size of {max_file_size} bytes",
                status_code=413,
            )
        if not isinstance(paths, list):
            raise UploadError(f"Map entry '{key}' must be an array of paths")
        for path in paths:
            _set_path(operations, str(path), upload)

    return operations


class UploadStage:
    def __init__(
        self,
        app: ASGIApp,
        *,
        path: str = "/graphql",
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        max_files: int = DEFAULT_MAX_FILES,
    ):
        self.app = app
        self.path = path
        self.max_file_size = max_file_size
        self.max_files = max_files

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] != self.path or scope["method"] != "POST":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        if not request.headers.get("content-type", "").startswith("multipart/form-data"):
            await self.app(scope, receive, send)
            return

        try:
            form = await request.form(max_files=self.max_files)
        except (MultiPartException, HTTPException) as e:
            detail = getattr(e, "message", None) or getattr(e, "detail", str(e))
            response = stage_error_response(UploadError(f"Invalid multipart request: {detail}"))
            await response(scope, receive, send)
            return

        try:
            try:
                operations = decode_operations(form, self.max_file_size)
            except UploadError as e:
                logger.info(f"Rejected upload: {e.message}")
                response = stage_error_response(e)
                await response(scope, receive, send)
                return

            scope.setdefault("state", {})[OPERATIONS_STATE_KEY] = operations
            await self.app(scope, receive, send)
        finally:
            await form.close()
