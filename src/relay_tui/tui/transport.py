"""WebSocket transport for the real-time channel.

The channel manager only depends on the two protocols below, so tests can
drive it with in-memory fakes. AiohttpTransport is the production
implementation.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import aiohttp

from ..errors import ChannelError

logger = logging.getLogger(__name__)


class ChannelConnection(Protocol):
    """An open channel. Recreated on every reconnect."""

    async def receive(self) -> str | None:
        """Next text frame, or None once the connection is closed."""
        ...

    async def send(self, payload: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class ChannelTransport(Protocol):
    async def open(self, url: str) -> ChannelConnection:
        """Open a connection.

        Raises:
            ChannelError: If the connection cannot be established
        """
        ...


class AiohttpConnection:
    """ChannelConnection backed by an aiohttp WebSocket."""

    def __init__(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        self.ws = ws

    async def receive(self) -> str | None:
        while True:
            try:
                msg = await self.ws.receive()
            except (aiohttp.ClientError, asyncio.TimeoutError) as err:
                logger.warning(f"Channel receive failed: {err}")
                return None
            if msg.type == aiohttp.WSMsgType.TEXT:
                return msg.data
            if msg.type == aiohttp.WSMsgType.BINARY:
                return msg.data.decode("utf-8", errors="replace")
            if msg.type in (
                aiohttp.WSMsgType.CLOSE,
                aiohttp.WSMsgType.CLOSING,
                aiohttp.WSMsgType.CLOSED,
            ):
                return None
            if msg.type == aiohttp.WSMsgType.ERROR:
                logger.warning(f"Channel error frame: {self.ws.exception()}")
                return None
            # PING/PONG are handled by aiohttp

    async def send(self, payload: dict[str, Any]) -> None:
        try:
            await self.ws.send_str(json.dumps(payload))
        except (aiohttp.ClientError, ConnectionError) as err:
            raise ChannelError(f"Channel send failed: {err}") from err

    async def close(self) -> None:
        if not self.ws.closed:
            await self.ws.close()


class AiohttpTransport:
    """Opens WebSocket connections on a shared aiohttp session.

    Protocol-level pings every heartbeat_seconds detect dead connections;
    aiohttp closes the socket when a pong is missed, which the reader sees as
    end of stream.
    """

    def __init__(
        self,
        heartbeat_seconds: float = 20.0,
        http_session: aiohttp.ClientSession | None = None,
        open_timeout_seconds: float = 15.0,
    ) -> None:
        self.heartbeat_seconds = heartbeat_seconds
        self.open_timeout_seconds = open_timeout_seconds
        self._http_session = http_session
        self._owns_session = http_session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
            self._owns_session = True
        return self._http_session

    async def open(self, url: str) -> AiohttpConnection:
        try:
            ws = await asyncio.wait_for(
                self._get_session().ws_connect(url, heartbeat=self.heartbeat_seconds),
                timeout=self.open_timeout_seconds,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as err:
            raise ChannelError(f"Channel open failed: {err or type(err).__name__}") from err
        return AiohttpConnection(ws)

    async def close(self) -> None:
        """Close the HTTP session if this transport created it."""
        if self._owns_session and self._http_session is not None:
            await self._http_session.close()
        self._http_session = None
