"""Real-time channel manager.

Owns the lifecycle of the gateway WebSocket: connect, read frames into the
store, heartbeat, and reconnect with backoff after unexpected closures.
Connection failures never reach callers; the connection slice of the store
is the only place they are observable.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Callable
from typing import Any

from ..errors import ChannelError, RelayError
from ..retry_handler import RetryConfig, SleepFn, calculate_backoff
from ..utils import redact_url
from .events import EventDispatcher, parse_frame
from .models import ChannelStatus
from .presence import PresenceTracker
from .store import StateStore
from .transport import ChannelConnection, ChannelTransport

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_CONFIG = RetryConfig(
    max_retries=0, initial_delay_seconds=1.0, max_delay_seconds=30.0, backoff_multiplier=2.0
)


async def _cancel(task: asyncio.Task[Any] | None) -> None:
    if task is None or task.done() or task is asyncio.current_task():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


class ChannelManager:
    """Keeps one live channel connection and feeds its events into the store."""

    def __init__(
        self,
        store: StateStore,
        transport: ChannelTransport,
        url: str,
        *,
        reconnect_config: RetryConfig | None = None,
        max_reconnect_attempts: int = 0,
        presence: PresenceTracker | None = None,
        heartbeat_interval: float = 5.0,
        dispatcher: EventDispatcher | None = None,
        api_key: str = "",
        rng: random.Random | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize channel manager.

        Args:
            store: State store receiving events and connection status
            transport: Opens channel connections
            url: Channel URL (see utils.build_ws_url)
            reconnect_config: Backoff shape for reconnect delays
            max_reconnect_attempts: Give up after this many failed reconnects (0 = never)
            presence: Presence tracker driven by the heartbeat
            heartbeat_interval: Seconds between heartbeat ticks
            dispatcher: Applies events to the store (built from store if None)
            api_key: Secret to redact from logged URLs
            rng: Random source for reconnect jitter
            sleep: Coroutine function used for reconnect delays
            clock: Time source for last-activity stamps
        """
        self.store = store
        self.transport = transport
        self.url = url
        self.reconnect_config = reconnect_config or DEFAULT_RECONNECT_CONFIG
        self.max_reconnect_attempts = max_reconnect_attempts
        self.presence = presence
        self.heartbeat_interval = heartbeat_interval
        self.dispatcher = dispatcher or EventDispatcher(store)
        self.api_key = api_key
        self.rng = rng
        self.sleep = sleep
        self.clock = clock

        self.status = ChannelStatus.DISCONNECTED
        self.reconnect_attempt = 0
        self._connection: ChannelConnection | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._epoch = 0

    @property
    def is_connected(self) -> bool:
        return self.status == ChannelStatus.CONNECTED

    def _set_status(self, status: ChannelStatus, error_message: str | None = None) -> None:
        if status != self.status:
            logger.info(
                f"Channel {self.status.value} -> {status.value}",
                extra={"extra_context": {"reconnect_attempt": self.reconnect_attempt}},
            )
        self.status = status
        self.store.set_connection_status(
            status, reconnect_attempt=self.reconnect_attempt, error_message=error_message
        )

    async def connect(self) -> None:
        """Open the channel unless it is already open or opening.

        While reconnecting, the pending reconnect is cancelled and the channel
        connects immediately. From DISCONNECTED the reconnect attempt count
        starts over.
        """
        if self.status in (ChannelStatus.CONNECTED, ChannelStatus.CONNECTING):
            return
        await _cancel(self._reconnect_task)
        self._reconnect_task = None
        if self.status == ChannelStatus.DISCONNECTED:
            self.reconnect_attempt = 0
        await self._open()

    async def _open(self) -> None:
        epoch = self._epoch
        self._set_status(ChannelStatus.CONNECTING)
        logger.info(f"Connecting to {redact_url(self.url, self.api_key)}")
        try:
            connection = await self.transport.open(self.url)
        except (RelayError, OSError, asyncio.TimeoutError) as err:
            if epoch != self._epoch:
                return
            logger.warning(f"Channel open failed: {err}")
            self._schedule_reconnect(str(err) or "Connection failed")
            return

        if epoch != self._epoch:
            # disconnect() ran while the connection was opening
            await connection.close()
            return

        self._connection = connection
        self.reconnect_attempt = 0
        self._set_status(ChannelStatus.CONNECTED)
        self.store.touch_connection(self.clock())
        self._reader_task = asyncio.create_task(self._read_loop(connection))
        if self.presence is not None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def _schedule_reconnect(self, reason: str) -> None:
        if 0 < self.max_reconnect_attempts <= self.reconnect_attempt:
            message = f"Gave up reconnecting after {self.reconnect_attempt} attempt(s): {reason}"
            logger.error(message)
            self._set_status(ChannelStatus.DISCONNECTED, error_message=message)
            return

        self.reconnect_attempt += 1
        delay = calculate_backoff(self.reconnect_attempt, self.reconnect_config, self.rng)
        logger.info(
            f"Reconnecting in {delay:.2f}s (attempt {self.reconnect_attempt})",
            extra={"extra_context": {"reason": reason, "delay": delay}},
        )
        self._set_status(ChannelStatus.RECONNECTING, error_message=reason)
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await self.sleep(delay)
        self._reconnect_task = None
        await self._open()

    async def _read_loop(self, connection: ChannelConnection) -> None:
        reason = "Connection closed"
        while True:
            try:
                raw = await connection.receive()
            except (RelayError, OSError) as err:
                reason = f"Connection lost: {err}"
                break
            if raw is None:
                break
            self.handle_frame(raw)

        if connection is self._connection and self.status == ChannelStatus.CONNECTED:
            await self._on_unexpected_close(reason)

    async def _on_unexpected_close(self, reason: str) -> None:
        logger.warning(f"Channel closed unexpectedly: {reason}")
        await _cancel(self._heartbeat_task)
        self._heartbeat_task = None
        connection, self._connection = self._connection, None
        if connection is not None:
            await connection.close()
        self._schedule_reconnect(reason)

    def handle_frame(self, raw: str) -> None:
        """Apply one inbound frame to the store. Malformed frames are dropped."""
        self.store.touch_connection(self.clock())
        event = parse_frame(raw)
        if event is None:
            return
        try:
            self.dispatcher.dispatch(event)
        except Exception:
            logger.exception(f"Failed to apply channel event {type(event).__name__}")

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if self.presence is None:
                return
            chat_id = self.store.navigation.get().current_chat_id
            try:
                await self.presence.tick(chat_id)
            except Exception:
                logger.exception("Presence heartbeat failed")

    def mark_activity(self) -> None:
        """Forward user activity to presence tracking."""
        if self.presence is not None:
            self.presence.mark_activity()

    async def send(self, payload: dict[str, Any]) -> None:
        """Send a JSON frame over the live connection.

        Raises:
            ChannelError: If the channel is not connected
        """
        if self.status != ChannelStatus.CONNECTED or self._connection is None:
            raise ChannelError("Channel is not connected")
        await self._connection.send(payload)

    async def disconnect(self) -> None:
        """Close the channel and stop reconnecting. Safe to call repeatedly."""
        self._epoch += 1
        await _cancel(self._reconnect_task)
        self._reconnect_task = None
        await _cancel(self._heartbeat_task)
        self._heartbeat_task = None
        await _cancel(self._reader_task)
        self._reader_task = None

        connection, self._connection = self._connection, None
        if connection is not None:
            try:
                await connection.close()
            except (RelayError, OSError) as err:
                logger.warning(f"Error closing channel: {err}")

        if self.presence is not None:
            await self.presence.stop()

        was_disconnected = self.status == ChannelStatus.DISCONNECTED
        self.reconnect_attempt = 0
        if not was_disconnected:
            self._set_status(ChannelStatus.DISCONNECTED)
