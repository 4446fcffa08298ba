"""
Tests for pipeline composition, uploads and metrics stages.
"""
import json

import pytest
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware

from graphgate.core import PipelineCompositionError
from graphgate.pipeline import PipelineDescriptor, PipelineStage

from conftest import asgi_client

UPLOAD_MUTATION = "mutation($file: Upload!) { singleUpload(file: $file) { filename size } }"


def middleware_stage(name: str) -> PipelineStage:
    return PipelineStage(name, lambda: Middleware(CORSMiddleware, allow_origins=["*"]))


def route_stage(name: str) -> PipelineStage:
    return PipelineStage(name, lambda app: None, terminal=True)


class TestPipelineDescriptor:
    """Tests for stage ordering rules."""

    @pytest.mark.asyncio
    async def test_composed_order_without_security(self, server):
        assert server.descriptor.names == ("cors", "metrics", "uploads", "health", "graphql", "static")
        assert "auth" not in server.descriptor

    def test_positions_assigned(self):
        descriptor = PipelineDescriptor((middleware_stage("cors"), route_stage("static")))
        assert [stage.position for stage in descriptor.stages] == [0, 1]

    def test_cors_must_be_first(self):
        with pytest.raises(PipelineCompositionError, match="cors"):
            PipelineDescriptor((middleware_stage("metrics"), middleware_stage("cors"), route_stage("static")))

    def test_static_must_be_last(self):
        with pytest.raises(PipelineCompositionError, match="static"):
            PipelineDescriptor((middleware_stage("cors"), route_stage("static"), route_stage("graphql")))

    def test_auth_must_precede_graphql(self):
        with pytest.raises(PipelineCompositionError, match="auth"):
            PipelineDescriptor((
                middleware_stage("cors"),
                route_stage("graphql"),
                middleware_stage("auth"),
                route_stage("static"),
            ))

    def test_duplicate_stage(self):
        with pytest.raises(PipelineCompositionError, match="Duplicate"):
            PipelineDescriptor((middleware_stage("cors"), middleware_stage("cors"), route_stage("static")))


class TestUploadStage:
    """Tests for GraphQL multipart requests."""

    @pytest.mark.asyncio
    async def test_single_upload(self, client):
        response = await client.post(
            "/graphql",
            data={
                "operations": json.dumps({"query": UPLOAD_MUTATION, "variables": {"file": None}}),
                "map": json.dumps({"0": ["variables.file"]}),
            },
            files={"0": ("notes.txt", b"hello upload", "text/plain")},
        )

        assert response.status_code == 200
        assert response.json() == {"data": {"singleUpload": {"filename": "notes.txt", "size": 12}}}

    @pytest.mark.asyncio
    async def test_missing_map(self, client):
        response = await client.post(
            "/graphql",
            data={"operations": json.dumps({"query": UPLOAD_MUTATION, "variables": {"file": None}})},
            files={"0": ("notes.txt", b"x", "text/plain")},
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["extensions"]["code"] == "BAD_USER_INPUT"

    @pytest.mark.asyncio
    async def test_map_points_at_missing_file(self, client):
        response = await client.post(
            "/graphql",
            data={
                "operations": json.dumps({"query": UPLOAD_MUTATION, "variables": {"file": None}}),
                "map": json.dumps({"1": ["variables.file"]}),
            },
            files={"0": ("notes.txt", b"x", "text/plain")},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_file_too_large(self, make_server, make_config):
        server = await make_server(make_config(max_file_size=4))

        async with asgi_client(server.app) as client:
            response = await client.post(
                "/graphql",
                data={
                    "operations": json.dumps({"query": UPLOAD_MUTATION, "variables": {"file": None}}),
                    "map": json.dumps({"0": ["variables.file"]}),
                },
                files={"0": ("big.bin", b"0123456789", "application/octet-stream")},
            )

        assert response.status_code == 413

    @pytest.mark.asyncio
    async def test_too_many_files(self, make_server, make_config):
        server = await make_server(make_config(max_files=1))

        async with asgi_client(server.app) as client:
            response = await client.post(
                "/graphql",
                data={
                    "operations": json.dumps({"query": UPLOAD_MUTATION, "variables": {"file": None}}),
                    "map": json.dumps({"0": ["variables.file"]}),
                },
                files=[
                    ("0", ("a.txt", b"a", "text/plain")),
                    ("1", ("b.txt", b"b", "text/plain")),
                ],
            )

        assert response.status_code == 400


class TestMetricsStage:
    """Tests for the metrics stage."""

    @pytest.mark.asyncio
    async def test_requests_counted(self, client):
        await client.get("/health")
        await client.post("/graphql", json={"query": "{ hello }"})
        await client.get("/unknown/page")

        response = await client.get("/metrics")
        body = response.text

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert 'graphgate_http_requests_total{method="GET",path="/health",status="200"} 1.0' in body
        assert 'graphgate_http_requests_total{method="POST",path="/graphql",status="200"} 1.0' in body
        assert 'graphgate_http_requests_total{method="GET",path="other",status="404"} 1.0' in body
        assert "graphgate_http_request_duration_seconds_bucket" in body

    @pytest.mark.asyncio
    async def test_servers_keep_separate_registries(self, make_server, make_config, tmp_path):
        first = await make_server(make_config())
        second = await make_server(make_config(database_url=f"sqlite+aiosqlite:///{tmp_path / 'second.db'}"))

        async with asgi_client(first.app) as client:
            await client.get("/health")
        async with asgi_client(second.app) as client:
            body = (await client.get("/metrics")).text

        assert 'path="/health"' not in body
