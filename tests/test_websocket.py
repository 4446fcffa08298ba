"""
Tests for the subscription transport: gate attachment and protocol handling.

Starlette's TestClient runs the app on its own event loop, so these tests
only exercise operations that need no storage I/O.
"""
import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from graphgate import GatewayServer
from graphgate.core import LifecycleError, ServerState
from graphgate.websocket import GRAPHQL_TRANSPORT_WS, GRAPHQL_WS, select_dialect

COUNTDOWN = {"query": "subscription { countdown(start: 3) }"}


def connect(app, subprotocol=GRAPHQL_TRANSPORT_WS):
    subprotocols = [subprotocol] if subprotocol else None
    return TestClient(app).websocket_connect("/graphql", subprotocols=subprotocols)


def init(ws, payload=None):
    message = {"type": "connection_init"}
    if payload is not None:
        message["payload"] = payload
    ws.send_json(message)
    return ws.receive_json()


def init_legacy(ws, payload=None):
    ack = init(ws, {} if payload is None else payload)
    assert ws.receive_json() == {"type": "ka"}
    return ack


class TestTransportGate:
    """Upgrades are refused until the listener is bound."""

    @pytest.mark.asyncio
    async def test_upgrade_refused_before_listening(self, config, schema):
        server = GatewayServer(config, schema=schema)
        await server.prepare()
        try:
            assert server.lifecycle.state is ServerState.PIPELINE_COMPOSED
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with connect(server.app):
                    pass
            assert exc_info.value.code == 1013

            server.listen()
            assert server.lifecycle.state is ServerState.TRANSPORT_ATTACHED
            with connect(server.app) as ws:
                assert init(ws) == {"type": "connection_ack"}
        finally:
            server.lifecycle.transition(ServerState.SHUTTING_DOWN)
            await server.aclose()

    @pytest.mark.asyncio
    async def test_binding_references_live_listener(self, server):
        binding = server.binding
        assert binding.listener is server.listener
        assert binding.path == "/graphql"
        assert binding.security is None
        assert server.lifecycle.history.index(ServerState.LISTENING) < server.lifecycle.history.index(
            ServerState.TRANSPORT_ATTACHED
        )

    @pytest.mark.asyncio
    async def test_second_attach_rejected(self, server):
        with pytest.raises(LifecycleError):
            server._attach_transport(server.listener)


class TestTransportWsProtocol:
    """graphql-transport-ws message flow."""

    @pytest.mark.asyncio
    async def test_subscription_streams_then_completes(self, server):
        with connect(server.app) as ws:
            assert init(ws) == {"type": "connection_ack"}
            ws.send_json({"id": "1", "type": "subscribe", "payload": COUNTDOWN})

            values = [ws.receive_json() for _ in range(3)]
            assert [m["payload"]["data"]["countdown"] for m in values] == [3, 2, 1]
            assert all(m["type"] == "next" and m["id"] == "1" for m in values)
            assert ws.receive_json() == {"id": "1", "type": "complete"}

    @pytest.mark.asyncio
    async def test_query_over_socket(self, server):
        with connect(server.app) as ws:
            init(ws)
            ws.send_json({"id": "q", "type": "subscribe", "payload": {"query": "{ hello }"}})

            assert ws.receive_json() == {"id": "q", "type": "next", "payload": {"data": {"hello": "Hello world"}}}
            assert ws.receive_json() == {"id": "q", "type": "complete"}

    @pytest.mark.asyncio
    async def test_validation_error(self, server):
        with connect(server.app) as ws:
            init(ws)
            ws.send_json({"id": "e", "type": "subscribe", "payload": {"query": "subscription { nope }"}})

            message = ws.receive_json()
            assert message["type"] == "error"
            assert isinstance(message["payload"], list)

    @pytest.mark.asyncio
    async def test_ping_pong(self, server):
        with connect(server.app) as ws:
            init(ws)
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    @pytest.mark.asyncio
    async def test_no_subprotocol_defaults_to_transport_ws(self, server):
        with connect(server.app, subprotocol=None) as ws:
            assert init(ws) == {"type": "connection_ack"}

    @pytest.mark.asyncio
    async def test_message_before_init_closes_4401(self, server):
        with connect(server.app) as ws:
            ws.send_json({"type": "ping"})
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()
        assert exc_info.value.code == 4401

    @pytest.mark.asyncio
    async def test_second_init_closes_4429(self, server):
        with connect(server.app) as ws:
            init(ws)
            ws.send_json({"type": "connection_init"})
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()
        assert exc_info.value.code == 4429

    @pytest.mark.asyncio
    async def test_invalid_json_closes_4400(self, server):
        with connect(server.app) as ws:
            init(ws)
            ws.send_text("{oops")
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()
        assert exc_info.value.code == 4400

    @pytest.mark.asyncio
    async def test_unsupported_subprotocol_rejected(self, server):
        with pytest.raises(WebSocketDisconnect):
            with connect(server.app, subprotocol="mqtt"):
                pass


class TestLegacyGraphqlWs:
    """graphql-ws (legacy) message names."""

    @pytest.mark.asyncio
    async def test_start_data_complete(self, server):
        with connect(server.app, subprotocol=GRAPHQL_WS) as ws:
            assert init_legacy(ws) == {"type": "connection_ack"}
            ws.send_json({"id": "1", "type": "start", "payload": COUNTDOWN})

            messages = [ws.receive_json() for _ in range(4)]
            assert [m["type"] for m in messages] == ["data", "data", "data", "complete"]

    @pytest.mark.asyncio
    async def test_single_error_object(self, server):
        with connect(server.app, subprotocol=GRAPHQL_WS) as ws:
            init_legacy(ws)
            ws.send_json({"id": "1", "type": "start", "payload": {"query": "{ nope }"}})

            message = ws.receive_json()
            assert message["type"] == "error"
            assert "nope" in message["payload"]["message"]

    @pytest.mark.asyncio
    async def test_connection_terminate(self, server):
        with connect(server.app, subprotocol=GRAPHQL_WS) as ws:
            init_legacy(ws)
            ws.send_json({"type": "connection_terminate"})
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()
        assert exc_info.value.code == 1000

    @pytest.mark.asyncio
    async def test_keep_alive_follows_ack(self, server):
        with connect(server.app, subprotocol=GRAPHQL_WS) as ws:
            assert init(ws, {}) == {"type": "connection_ack"}
            assert ws.receive_json() == {"type": "ka"}

    @pytest.mark.asyncio
    async def test_no_keep_alive_for_transport_ws(self, server):
        with connect(server.app) as ws:
            assert init(ws) == {"type": "connection_ack"}
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}


class TestSecuredConnections:
    """connection_init authorization when security is configured."""

    @pytest.fixture
    async def secured_server(self, make_server, make_config, security_config):
        return await make_server(make_config(security=security_config))

    @pytest.mark.asyncio
    async def test_missing_token_closes_4403(self, secured_server):
        with connect(secured_server.app) as ws:
            ws.send_json({"type": "connection_init", "payload": {}})
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()
        assert exc_info.value.code == 4403

    @pytest.mark.asyncio
    async def test_legacy_gets_connection_error_first(self, secured_server):
        with connect(secured_server.app, subprotocol=GRAPHQL_WS) as ws:
            message = init(ws, {"token": "garbage"})
            assert message["type"] == "connection_error"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()
        assert exc_info.value.code == 4403

    @pytest.mark.asyncio
    async def test_token_in_payload(self, secured_server, make_token):
        with connect(secured_server.app) as ws:
            assert init(ws, {"Authorization": f"Bearer {make_token()}"}) == {"type": "connection_ack"}
            ws.send_json({"id": "w", "type": "subscribe", "payload": {"query": "{ whoami }"}})
            assert ws.receive_json()["payload"] == {"data": {"whoami": "alice"}}


def test_select_dialect():
    assert select_dialect([]).name == GRAPHQL_TRANSPORT_WS
    assert select_dialect(["graphql-ws"]).name == GRAPHQL_WS
    assert select_dialect(["foo", "graphql-transport-ws"]).name == GRAPHQL_TRANSPORT_WS
    assert select_dialect(["foo"]) is None
