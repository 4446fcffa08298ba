"""
Executable schema construction.

Binds a resolver map onto SDL type definitions, the way the gateway's
schema collaborators supply them.

Usage:
    schema = make_executable_schema(
        '''
        type Query { hello(name: String): String! }
        ''',
        {"Query": {"hello": lambda root, info, name="world": f"Hello {name}"}},
    )
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Sequence, Union

from graphql import (
    GraphQLEnumType,
    GraphQLError,
    GraphQLObjectType,
    GraphQLScalarType,
    GraphQLSchema,
    build_schema,
)
from starlette.datastructures import UploadFile

from ..core.errors import SchemaDefinitionError

ResolverMap = Mapping[str, Mapping[str, Any]]


def _serialize_upload(value: Any) -> Any:
    raise GraphQLError("'Upload' scalar serialization unsupported.")


def _parse_upload_value(value: Any) -> UploadFile:
    if not isinstance(value, UploadFile):
        raise GraphQLError("Upload value invalid.")
    return value


def _parse_upload_literal(value_node: Any, variables: Optional[dict[str, Any]] = None) -> Any:
    raise GraphQLError("Upload literal unsupported.", value_node)


def _bind_scalar(scalar: GraphQLScalarType, definition: Any) -> None:
    if isinstance(definition, GraphQLScalarType):
        definition = {
            "serialize": definition.serialize,
            "parse_value": definition.parse_value,
            "parse_literal": definition.parse_literal,
        }
    for attr in ("serialize", "parse_value", "parse_literal"):
        if attr in definition:
            setattr(scalar, attr, definition[attr])


def _bind_enum(enum_type: GraphQLEnumType, values: Mapping[str, Any]) -> None:
    for name, value in values.items():
        if name not in enum_type.values:
            raise SchemaDefinitionError(f"Enum '{enum_type.name}' has no value '{name}'")
        enum_type.values[name].value = value


def _bind_fields(
    object_type: GraphQLObjectType,
    resolvers: Mapping[str, Union[Callable, Mapping[str, Callable]]],
    is_subscription: bool,
) -> None:
    for field_name, resolver in resolvers.items():
        field = object_type.fields.get(field_name)
        if field is None:
            raise SchemaDefinitionError(f"{object_type.name}.{field_name} defined in resolvers, but not in schema")

        if isinstance(resolver, Mapping):
            # {"subscribe": ..., "resolve": ...}
            if "subscribe" in resolver:
                field.subscribe = resolver["subscribe"]
            if "resolve" in resolver:
                field.resolve = resolver["resolve"]
        elif is_subscription:
            field.subscribe = resolver
        else:
            field.resolve = resolver


def make_executable_schema(
    type_defs: Union[str, Sequence[str]],
    resolvers: Optional[ResolverMap] = None,
) -> GraphQLSchema:
    """
    Build a GraphQLSchema from SDL and a resolver map.

    Resolver map keys are type names. Object types map field names to
    resolvers (subscription fields to subscribe functions, or to
    {"subscribe", "resolve"} dicts); scalars map to
    serialize/parse_value/parse_literal; enums map value names to values.

    A ``scalar Upload`` declared in the SDL is bound to multipart uploads
    unless the map overrides it.

    Raises:
        SchemaDefinitionError: If the map names unknown types or fields
    """
    sdl = type_defs if isinstance(type_defs, str) else "\n".join(type_defs)
    try:
        schema = build_schema(sdl)
    except GraphQLError as e:
        raise SchemaDefinitionError(f"Invalid type definitions: {e.message}") from e

    resolvers = resolvers or {}
    subscription_type = schema.subscription_type

    for type_name, definition in resolvers.items():
        graphql_type = schema.get_type(type_name)
        if graphql_type is None:
            raise SchemaDefinitionError(f"Type '{type_name}' defined in resolvers, but not in schema")

        if isinstance(graphql_type, GraphQLScalarType):
            _bind_scalar(graphql_type, definition)
        elif isinstance(graphql_type, GraphQLEnumType):
            _bind_enum(graphql_type, definition)
        elif isinstance(graphql_type, GraphQLObjectType):
            _bind_fields(graphql_type, definition, graphql_type is subscription_type)
        else:
            raise SchemaDefinitionError(f"Cannot bind resolvers to '{type_name}'")

    upload = schema.get_type("Upload")
    if isinstance(upload, GraphQLScalarType) and "Upload" not in resolvers:
        _bind_scalar(upload, {
            "serialize": _serialize_upload,
            "parse_value": _parse_upload_value,
            "parse_literal": _parse_upload_literal,
        })

    return schema
