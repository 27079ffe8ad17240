"""Tests for the aiohttp WebSocket transport against an in-process server."""

from __future__ import annotations

import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from relay_tui.errors import ChannelError
from relay_tui.tui.transport import AiohttpTransport


async def _start(handler) -> TestServer:
    app = web.Application()
    app.router.add_get("/ws", handler)
    server = TestServer(app)
    await server.start_server()
    return server


class TestAiohttpTransport:
    """Tests for AiohttpTransport and AiohttpConnection."""

    @pytest.mark.asyncio
    async def test_receive_send_and_close(self):
        """Text and binary frames are returned as text; a server close ends the stream."""
        received = []

        async def handler(request: web.Request) -> web.WebSocketResponse:
            ws = web.WebSocketResponse()
            await ws.prepare(request)
            await ws.send_str(json.dumps({"event": "session.status", "payload": {}}))
            await ws.send_bytes(b'{"event": "message"}')
            received.append(json.loads(await ws.receive_str()))
            await ws.close()
            return ws

        server = await _start(handler)
        transport = AiohttpTransport(heartbeat_seconds=5.0)
        try:
            connection = await transport.open(f"ws://{server.host}:{server.port}/ws")
            first = await connection.receive()
            second = await connection.receive()
            await connection.send({"type": "ping"})
            end = await connection.receive()
            await connection.close()
        finally:
            await transport.close()
            await server.close()

        assert json.loads(first)["event"] == "session.status"
        assert second == '{"event": "message"}'
        assert end is None
        assert received == [{"type": "ping"}]

    @pytest.mark.asyncio
    async def test_open_failure_raises_channel_error(self):
        """A refused handshake surfaces as ChannelError."""

        async def handler(request: web.Request) -> web.Response:
            return web.Response(status=401)

        server = await _start(handler)
        transport = AiohttpTransport(open_timeout_seconds=5.0)
        try:
            with pytest.raises(ChannelError):
                await transport.open(f"ws://{server.host}:{server.port}/ws")
        finally:
            await transport.close()
            await server.close()
