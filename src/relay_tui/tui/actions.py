"""User actions that call the gateway and feed results into the store.

This is where terminal failures end up: each action reports errors through
the ErrorReporter and shows a short message in the footer instead of
raising.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import ErrorReporter, RelayError, StateError
from .models import ViewType
from .store import StateStore

if TYPE_CHECKING:
    from ..gateway_client import GatewayClient
    from .presence import PresenceTracker

logger = logging.getLogger(__name__)


class ChatActions:
    """Gateway-backed operations triggered by keys and app startup."""

    def __init__(
        self,
        store: StateStore,
        client: GatewayClient,
        error_reporter: ErrorReporter,
        presence: PresenceTracker | None = None,
        messages_page_size: int = 50,
    ) -> None:
        """Initialize chat actions.

        Args:
            store: State store updated with results
            client: Gateway client performing the calls
            error_reporter: Receives every terminal failure
            presence: Presence tracker notified when a chat is opened
            messages_page_size: Number of messages loaded per chat
        """
        self.store = store
        self.client = client
        self.error_reporter = error_reporter
        self.presence = presence
        self.messages_page_size = messages_page_size

    def _report(self, err: RelayError, action: str) -> None:
        info = self.error_reporter.handle(err, {"component": "ChatActions", "action": action})
        self.store.set_error(self.error_reporter.user_message(info))

    def _require_session(self) -> str:
        session = self.store.session.get().current_session
        if not session:
            raise StateError("No active session. Please select a session first.")
        return session

    async def load_sessions(self, preferred: str | None = None) -> bool:
        """Load sessions; switches to preferred when it exists and none is active."""
        try:
            sessions = await self.client.list_sessions()
        except RelayError as err:
            self._report(err, "load_sessions")
            return False

        self.store.set_sessions(sessions)
        logger.info(f"Loaded {len(sessions)} session(s)")
        if preferred and self.store.session.get().current_session is None:
            if any(s.name == preferred for s in sessions):
                return await self.select_session(preferred)
        return True

    async def select_session(self, name: str) -> bool:
        """Make a session current and load its chats."""
        me_id = None
        try:
            me_id = await self.client.get_me(name)
        except RelayError as err:
            # Own id only filters self-presence, the session is usable without it
            logger.warning(f"Could not load account of session {name}: {err}")

        self.store.set_current_session(name, me_id)
        self.store.set_view(ViewType.CHATS)
        return await self.load_chats()

    async def load_chats(self) -> bool:
        try:
            session = self._require_session()
            chats = await self.client.list_chats(session)
        except RelayError as err:
            self._report(err, "load_chats")
            return False
        self.store.set_chats(chats)
        self.store.set_error(None)
        return True

    async def load_messages(self, chat_id: str) -> bool:
        try:
            session = self._require_session()
            messages = await self.client.get_messages(
                session, chat_id, limit=self.messages_page_size
            )
        except RelayError as err:
            self._report(err, "load_messages")
            return False
        self.store.set_messages(chat_id, messages)
        return True

    async def open_chat(self, chat_id: str) -> bool:
        """Show a conversation, load its messages and subscribe to its presence."""
        self.store.open_chat(chat_id)
        self.store.mark_chat_read(chat_id)
        loaded = await self.load_messages(chat_id)
        if self.presence is not None:
            self.presence.mark_activity()
            await self.presence.subscribe(chat_id)
        return loaded

    async def send_message(self) -> bool:
        """Send the current input line to the open chat."""
        text = self.store.ui.get().message_input
        chat_id = self.store.navigation.get().current_chat_id
        if not text.strip() or chat_id is None or self.store.ui.get().is_sending:
            return False

        self.store.set_is_sending(True)
        try:
            session = self._require_session()
            message = await self.client.send_text(session, chat_id, text)
        except RelayError as err:
            self._report(err, "send_message")
            return False
        finally:
            self.store.set_is_sending(False)

        self.store.append_message(chat_id, message)
        self.store.record_incoming_message(message)
        self.store.set_message_input("")
        self.store.set_error(None)
        return True
