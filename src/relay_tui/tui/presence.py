"""Session presence: online while the user is active, offline when idle.

The gateway only streams presence.update events for chats this session is
subscribed to, and subscriptions expire, so the tracker also re-subscribes
to the open chat periodically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Protocol

from ..chat_types import SessionPresence
from ..errors import RelayError

logger = logging.getLogger(__name__)


class PresenceGateway(Protocol):
    async def set_presence(self, session: str, presence: SessionPresence) -> None: ...

    async def subscribe_presence(self, session: str, chat_id: str) -> None: ...


class PresenceTracker:
    """Tracks user activity and drives presence calls to the gateway."""

    def __init__(
        self,
        gateway: PresenceGateway,
        session: Callable[[], str | None],
        idle_timeout: float = 30.0,
        resubscribe_interval: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize presence tracker.

        Args:
            gateway: Object performing the presence calls
            session: Returns the current session name (None if no session)
            idle_timeout: Seconds without activity before going offline
            resubscribe_interval: Seconds between presence subscriptions of the open chat
            clock: Monotonic time source
        """
        self.gateway = gateway
        self.session = session
        self.idle_timeout = idle_timeout
        self.resubscribe_interval = resubscribe_interval
        self.clock = clock

        self.status = SessionPresence.OFFLINE
        self.last_activity = clock()
        self.subscribed_chat_id: str | None = None
        self.last_subscribed_at: float | None = None
        self._pending: asyncio.Task[None] | None = None

    @property
    def idle_seconds(self) -> float:
        return self.clock() - self.last_activity

    def mark_activity(self) -> None:
        """Record user activity; goes back online in the background if needed."""
        self.last_activity = self.clock()
        if self.status == SessionPresence.ONLINE:
            return
        if self._pending is not None and not self._pending.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, presence update deferred to next tick")
            return
        self._pending = loop.create_task(self.set_presence(SessionPresence.ONLINE))

    async def set_presence(self, presence: SessionPresence) -> bool:
        """Announce presence. Reverts the recorded status if the call fails.

        Returns:
            True if the gateway accepted the change (or nothing changed)
        """
        if presence == self.status:
            return True
        session = self.session()
        if not session:
            return False

        previous = self.status
        self.status = presence
        try:
            await self.gateway.set_presence(session, presence)
        except RelayError as err:
            self.status = previous
            logger.warning(
                f"Failed to set presence {presence.value}: {err}",
                extra={"extra_context": {"session": session}},
            )
            return False
        logger.debug(f"Presence set to {presence.value}")
        return True

    async def subscribe(self, chat_id: str) -> bool:
        session = self.session()
        if not session:
            return False
        try:
            await self.gateway.subscribe_presence(session, chat_id)
        except RelayError as err:
            logger.warning(
                f"Failed to subscribe to presence of {chat_id}: {err}",
                extra={"extra_context": {"session": session, "chat_id": chat_id}},
            )
            return False
        self.subscribed_chat_id = chat_id
        self.last_subscribed_at = self.clock()
        return True

    async def tick(self, chat_id: str | None) -> None:
        """One heartbeat step.

        Args:
            chat_id: Currently open conversation, if any
        """
        now = self.clock()
        if chat_id is not None and (
            chat_id != self.subscribed_chat_id
            or self.last_subscribed_at is None
            or now - self.last_subscribed_at >= self.resubscribe_interval
        ):
            await self.subscribe(chat_id)

        if self.status == SessionPresence.ONLINE and now - self.last_activity > self.idle_timeout:
            logger.info(f"Idle for {now - self.last_activity:.0f}s, going offline")
            await self.set_presence(SessionPresence.OFFLINE)

    async def stop(self) -> None:
        """Go offline and forget subscriptions."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
            try:
                await self._pending
            except asyncio.CancelledError:
                pass
        self._pending = None
        if self.status == SessionPresence.ONLINE:
            await self.set_presence(SessionPresence.OFFLINE)
        self.subscribed_chat_id = None
        self.last_subscribed_at = None
