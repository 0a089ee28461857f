"""Tests for the HTTP unary and broadcast transports."""

import asyncio
import json
from typing import Any

import httpx
import pytest

from toolhost.hub import BroadcastHub
from toolhost.protocol.provider import CancellationToken
from toolhost.protocol.registry import ToolRegistry
from toolhost.protocol.router import MethodRouter
from toolhost.transports.http import HttpServer, _event_stream, create_app


@pytest.fixture
def app(router: MethodRouter, hub: BroadcastHub) -> Any:
    return create_app(router, hub, server_name="test-server")


@pytest.fixture
async def client(app: Any) -> Any:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


class _FakeRequest:
    def __init__(self) -> None:
        self.disconnected = False

    async def is_disconnected(self) -> bool:
        return self.disconnected


class TestIndexAndHealth:
    async def test_index(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "server": "test-server"}

    async def test_health(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.text == "OK"


class TestRpc:
    async def test_ping(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/rpc", content=b'{"jsonrpc":"2.0","id":1,"method":"ping"}')
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == {"jsonrpc": "2.0", "id": 1, "result": {}}

    async def test_tool_call(self, client: httpx.AsyncClient) -> None:
        body = {
            "jsonrpc": "2.0",
            "id": "c1",
            "method": "tools/call",
            "params": {"name": "echo", "arguments": {"message": "over http"}},
        }
        response = await client.post("/rpc", json=body)
        data = response.json()
        assert data["id"] == "c1"
        assert data["result"]["content"] == [{"type": "text", "text": "over http"}]

    async def test_malformed_body_is_protocol_error(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/rpc", content=b"{broken")
        assert response.status_code == 200
        assert response.json()["error"]["code"] == -32700

    async def test_notification_is_no_content(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/rpc", content=b'{"jsonrpc":"2.0","method":"notifications/initialized"}')
        assert response.status_code == 204
        assert response.content == b""

    async def test_concurrent_calls_complete_independently(self, make_tool: Any, hub: BroadcastHub) -> None:
        registry = ToolRegistry()
        registry.register_tool(make_tool("slow", delay=0.3, result="slow"))
        registry.register_tool(make_tool("fast", result="fast"))
        registry.freeze()
        app = create_app(MethodRouter(registry, hub=hub), hub)

        def body(name: str, request_id: int) -> dict[str, Any]:
            return {"jsonrpc": "2.0", "id": request_id, "method": "tools/call", "params": {"name": name}}

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            slow = asyncio.ensure_future(http.post("/rpc", json=body("slow", 1)))
            await asyncio.sleep(0.01)
            fast = await asyncio.wait_for(http.post("/rpc", json=body("fast", 2)), timeout=0.2)
            assert fast.json()["result"]["content"][0]["text"] == "fast"
            assert not slow.done()
            assert (await slow).json()["result"]["content"][0]["text"] == "slow"

    async def test_session_token_reaches_calls(self, make_tool: Any, hub: BroadcastHub) -> None:
        registry = ToolRegistry()
        registry.register_tool(make_tool("slow", delay=10))
        registry.freeze()
        session = CancellationToken()
        app = create_app(MethodRouter(registry, hub=hub), hub, cancellation=session)
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            pending = asyncio.ensure_future(
                http.post("/rpc", json={"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "slow"}})
            )
            await asyncio.sleep(0.01)
            session.cancel("shutdown")
            response = await asyncio.wait_for(pending, timeout=1)
        assert response.json()["error"]["code"] == -32800

    async def test_rpc_events_reach_hub(self, client: httpx.AsyncClient, hub: BroadcastHub) -> None:
        subscription = hub.subscribe("rpc.*")
        await client.post("/rpc", content=b'{"jsonrpc":"2.0","id":1,"method":"ping"}')
        event = subscription.get_nowait()
        assert event is not None
        assert event.name == "rpc.completed"


class TestSse:
    def test_route_registered(self, app: Any) -> None:
        assert "/sse" in {route.path for route in app.routes}

    async def test_stream_yields_greeting_then_frames(self, hub: BroadcastHub) -> None:
        stream = _event_stream(_FakeRequest(), hub.subscribe())  # type: ignore[arg-type]
        assert await stream.__anext__() == ": connected\n\n"
        hub.publish("rpc.completed", {"method": "ping"})
        frame = await asyncio.wait_for(stream.__anext__(), timeout=1)
        assert frame.startswith("event: rpc.completed\n")
        data_line = frame.strip().split("\n")[-1]
        assert json.loads(data_line[len("data: ") :])["payload"] == {"method": "ping"}
        await stream.aclose()
        assert hub.subscriber_count == 0

    async def test_stream_ends_when_hub_closes(self, hub: BroadcastHub) -> None:
        stream = _event_stream(_FakeRequest(), hub.subscribe())  # type: ignore[arg-type]
        await stream.__anext__()
        hub.close()
        frames = [frame async for frame in stream]
        assert frames == []

    async def test_stream_stops_on_disconnect(self, hub: BroadcastHub) -> None:
        request = _FakeRequest()
        stream = _event_stream(request, hub.subscribe())  # type: ignore[arg-type]
        await stream.__anext__()
        request.disconnected = True
        hub.publish("rpc.completed")
        frames = [frame async for frame in stream]
        assert frames == []
        assert hub.subscriber_count == 0

    async def test_pattern_filters_stream(self, hub: BroadcastHub) -> None:
        stream = _event_stream(_FakeRequest(), hub.subscribe("transport.*"))  # type: ignore[arg-type]
        await stream.__anext__()
        hub.publish("rpc.completed")
        hub.publish("transport.error", {"detail": "x"})
        frame = await asyncio.wait_for(stream.__anext__(), timeout=1)
        assert frame.startswith("event: transport.error\n")
        await stream.aclose()


class TestHttpServer:
    async def test_stops_when_token_fires(self, app: Any) -> None:
        server = HttpServer(app, host="127.0.0.1", port=0, grace_seconds=1)
        stop = CancellationToken()
        task = asyncio.ensure_future(server.run(stop))
        for _ in range(200):
            if server.started:
                break
            await asyncio.sleep(0.01)
        assert server.started
        stop.cancel("done")
        await asyncio.wait_for(task, timeout=5)
