"""
Schema module - executable schema construction and execution helpers.
"""

from __future__ import annotations

from .executable import make_executable_schema
from .execution import (
    GraphQLRequest,
    format_error,
    format_execution_result,
    operation_of,
    parse_and_validate,
)

__all__ = [
    "make_executable_schema",
    "GraphQLRequest",
    "parse_and_validate",
    "operation_of",
    "format_error",
    "format_execution_result",
]
