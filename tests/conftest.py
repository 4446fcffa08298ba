"""
Pytest configuration and fixtures for graphgate tests.
"""

from __future__ import annotations

import base64
import time

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from graphgate import GatewayServer, ServerConfig, make_executable_schema
from graphgate.config import SecurityConfig
from graphgate.core import ServerState
from graphgate.notifications import create_notification_client
from graphgate.runtime import DependencyBootstrapper

AUTH_SERVER = "http://sso.test/auth"
REALM = "tasks"
CLIENT_ID = "graphgate"

TEST_TYPE_DEFS = """
scalar Upload

type File {
  filename: String!
  size: Int!
}

type Query {
  hello(name: String): String!
  contextProbe: String!
  pushStatus: String!
  whoami: String
  boom: String
}

type Mutation {
  singleUpload(file: Upload!): File!
}

type Subscription {
  countdown(start: Int!): Int!
}
"""


def build_test_schema(recorded_contexts: list):
    """Small schema whose resolvers expose what they receive."""

    def context_probe(root, info):
        recorded_contexts.append(info.context)
        return "ok"

    def whoami(root, info):
        principal = info.context.principal
        return principal.username if principal else None

    def boom(root, info):
        raise RuntimeError("kaboom")

    async def single_upload(root, info, file):
        content = await file.read()
        return {"filename": file.filename, "size": len(content)}

    async def countdown(root, info, start):
        for value in range(start, 0, -1):
            yield {"countdown": value}

    return make_executable_schema(
        TEST_TYPE_DEFS,
        {
            "Query": {
                "hello": lambda root, info, name="world": f"Hello {name}",
                "contextProbe": context_probe,
                "pushStatus": lambda root, info: info.context.push_client.status.value,
                "whoami": whoami,
                "boom": boom,
            },
            "Mutation": {"singleUpload": single_upload},
            "Subscription": {"countdown": countdown},
        },
    )


def failing_push_transport() -> httpx.MockTransport:
    """Transport for an unreachable push server."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.MockTransport(handler)


def healthy_push_transport(sent: list | None = None) -> httpx.MockTransport:
    """Transport for a push server that accepts everything."""

    def handler(request: httpx.Request) -> httpx.Response:
        if sent is not None and request.method == "POST":
            sent.append(request)
        return httpx.Response(200, json={})

    return httpx.MockTransport(handler)


def asgi_client(app) -> httpx.AsyncClient:
    """In-process HTTP client on the test's event loop."""
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


def bootstrapper_with_push_transport(config: ServerConfig, transport: httpx.AsyncBaseTransport):
    return DependencyBootstrapper(
        config,
        notification_factory=lambda cfg: create_notification_client(cfg, transport=transport),
    )


@pytest.fixture
def make_config(tmp_path):
    """Build a ServerConfig on a fresh sqlite file and an ephemeral port."""

    def factory(**overrides) -> ServerConfig:
        values = {
            "host": "127.0.0.1",
            "port": 0,
            "database_url": f"sqlite+aiosqlite:///{tmp_path / 'graphgate.db'}",
            "static_dir": str(tmp_path / "website"),
        }
        values.update(overrides)
        return ServerConfig(**values)

    return factory


@pytest.fixture
def config(make_config) -> ServerConfig:
    return make_config()


@pytest.fixture
def recorded_contexts() -> list:
    return []


@pytest.fixture
def schema(recorded_contexts):
    return build_test_schema(recorded_contexts)


@pytest.fixture(scope="session")
def private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def realm_public_key(private_key) -> str:
    """Base64 DER public key, as the realm publishes it."""
    der = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return base64.b64encode(der).decode()


@pytest.fixture
def security_config(realm_public_key) -> SecurityConfig:
    return SecurityConfig(
        realm=REALM,
        auth_server_url=AUTH_SERVER,
        resource=CLIENT_ID,
        realm_public_key=realm_public_key,
    )


@pytest.fixture
def make_token(private_key):
    def factory(kid: str = "key-1", **overrides) -> str:
        claims = {
            "sub": "user-1",
            "preferred_username": "alice",
            "iss": f"{AUTH_SERVER}/realms/{REALM}",
            "exp": int(time.time()) + 300,
            "realm_access": {"roles": ["user"]},
            "resource_access": {CLIENT_ID: {"roles": ["admin"]}},
        }
        claims.update(overrides)
        return jwt.encode(claims, private_key, algorithm="RS256", headers={"kid": kid})

    return factory


@pytest.fixture
async def make_server(schema):
    """Start servers up to SERVING without running uvicorn; closes them afterwards."""
    servers = []

    async def factory(config: ServerConfig, **kwargs) -> GatewayServer:
        kwargs.setdefault("schema", schema)
        server = GatewayServer(config, **kwargs)
        servers.append(server)
        await server.start()
        server.mark_serving()
        return server

    yield factory

    for server in servers:
        server.lifecycle.transition(ServerState.SHUTTING_DOWN)
        await server.aclose()


@pytest.fixture
async def server(make_server, config):
    return await make_server(config)


@pytest.fixture
async def client(server):
    async with asgi_client(server.app) as client:
        yield client
