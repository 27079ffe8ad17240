"""Keyboard input handling for TUI application.

This module maps keyboard inputs to actions, handling navigation, the
conversation input line, and meta commands. Gateway calls are scheduled
through the spawn callback so key handling itself never blocks.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

from .models import ViewType

if TYPE_CHECKING:
    from .actions import ChatActions
    from .channel import ChannelManager
    from .store import StateStore

logger = logging.getLogger(__name__)

Spawn = Callable[[Coroutine[Any, Any, Any]], Any]

BACKSPACE_KEYS = ("backspace", "\x7f", "\b")
ENTER_KEYS = ("enter", "\n", "\r")


class KeybindingHandler:
    """Handles keyboard input and dispatches actions."""

    def __init__(
        self,
        store: StateStore,
        actions: ChatActions,
        spawn: Spawn,
        channel: ChannelManager | None = None,
        viewport_rows: int = 20,
    ) -> None:
        """Initialize keybinding handler.

        Args:
            store: State store for navigation and input state
            actions: Gateway-backed actions
            spawn: Schedules a coroutine on the running loop
            channel: Real-time channel (activity tracking, manual reconnect)
            viewport_rows: Visible rows of the chat list, for scroll follow
        """
        self.store = store
        self.actions = actions
        self.spawn = spawn
        self.channel = channel
        self.viewport_rows = viewport_rows

    def handle_key(self, key: str) -> tuple[bool, str | None]:
        """Process keyboard input and execute corresponding action.

        Args:
            key: Key press identifier (e.g., "up", "down", "j", "q")

        Returns:
            Tuple of (handled, message):
                - handled: True if key was recognized and handled, False otherwise
                - message: Optional feedback message for user ("quit" to exit)
        """
        if self.channel is not None:
            self.channel.mark_activity()

        snapshot = self.store.get_state()

        # The input line captures everything while focused
        if snapshot.ui.input_mode:
            return self._handle_input_key(key)

        if snapshot.ui.show_help:
            if key in ("?", "\x1b", "escape", "q"):
                self.store.toggle_help()
            return True, None

        view = snapshot.current_view
        if key in ("k", "up"):
            return self._handle_move(-1, view)
        if key in ("j", "down"):
            return self._handle_move(1, view)
        if key == "g":
            return self._handle_jump(top=True, view=view)
        if key == "G":
            return self._handle_jump(top=False, view=view)
        if key in ENTER_KEYS:
            return self._handle_select(view)
        if key == "i" and view == ViewType.CONVERSATION:
            self.store.set_input_mode(True)
            return True, None
        if key == "r":
            return self._handle_refresh(view)

        # Meta handlers
        if key == "C":
            return self._handle_reconnect()
        if key == "?":
            self.store.toggle_help()
            return True, None
        if key in ("\x1b", "escape"):
            return self._handle_escape(view)
        if key == "q":
            return True, "quit"

        if len(key) == 1 and key.isprintable():
            return True, f"Key '{key}' not assigned"
        return True, f"Key {repr(key)} not assigned"

    # Navigation handlers

    def _handle_move(self, delta: int, view: ViewType) -> tuple[bool, str | None]:
        if view == ViewType.SESSIONS:
            index = self.store.session.get().selected_session_index + delta
            self.store.set_selected_session_index(index)
            return True, None

        if view == ViewType.CHATS:
            state = self.store.chat.get()
            if not state.chats:
                return True, None
            self._select_chat(state.selected_chat_index + delta)
            return True, None

        # Conversation: k scrolls back in history, j forward
        position = self.store.message.get().scroll_position - delta
        self.store.set_message_scroll(position)
        return True, None

    def _select_chat(self, index: int) -> None:
        """Select a chat and scroll so it stays within the viewport."""
        state = self.store.chat.get()
        index = max(0, min(index, len(state.chats) - 1))
        if index == state.selected_chat_index:
            return
        self.store.set_selected_chat_index(index)

        offset = state.chat_list_scroll_offset
        if index < offset:
            self.store.set_chat_list_scroll_offset(index)
        elif index >= offset + self.viewport_rows:
            self.store.set_chat_list_scroll_offset(index - self.viewport_rows + 1)

    def _handle_jump(self, top: bool, view: ViewType) -> tuple[bool, str | None]:
        if view == ViewType.CHATS:
            chats = self.store.chat.get().chats
            if chats:
                self._select_chat(0 if top else len(chats) - 1)
        elif view == ViewType.SESSIONS:
            count = len(self.store.session.get().sessions)
            self.store.set_selected_session_index(0 if top else count - 1)
        return True, None

    def _handle_select(self, view: ViewType) -> tuple[bool, str | None]:
        if view == ViewType.SESSIONS:
            state = self.store.session.get()
            if not state.sessions:
                return True, "Error: No sessions available"
            session = state.sessions[state.selected_session_index]
            self.spawn(self.actions.select_session(session.name))
            return True, f"Opening session {session.name}"

        if view == ViewType.CHATS:
            chat = self.store.chat.get().selected_chat
            if chat is None:
                return True, None
            self.spawn(self.actions.open_chat(chat.id))
            return True, None

        self.store.set_input_mode(True)
        return True, None

    def _handle_refresh(self, view: ViewType) -> tuple[bool, str | None]:
        if view == ViewType.SESSIONS:
            self.spawn(self.actions.load_sessions())
            return True, "Refreshing sessions"
        if view == ViewType.CHATS:
            self.spawn(self.actions.load_chats())
            return True, "Refreshing chats"
        chat_id = self.store.navigation.get().current_chat_id
        if chat_id is not None:
            self.spawn(self.actions.load_messages(chat_id))
        return True, "Refreshing messages"

    # Conversation input

    def _handle_input_key(self, key: str) -> tuple[bool, str | None]:
        text = self.store.ui.get().message_input
        if key in ("\x1b", "escape"):
            self.store.set_input_mode(False)
            return True, None
        if key in ENTER_KEYS:
            if text.strip():
                self.spawn(self.actions.send_message())
            return True, None
        if key in BACKSPACE_KEYS:
            self.store.set_message_input(text[:-1])
            return True, None
        if len(key) == 1 and key.isprintable():
            self.store.set_message_input(text + key)
            return True, None
        return False, None

    # Meta handlers

    def _handle_reconnect(self) -> tuple[bool, str | None]:
        if self.channel is None:
            return True, "Error: Real-time channel is not configured"
        self.spawn(self.channel.connect())
        return True, "Reconnecting..."

    def _handle_escape(self, view: ViewType) -> tuple[bool, str | None]:
        if view == ViewType.CONVERSATION:
            self.store.close_chat()
        elif view == ViewType.CHATS:
            self.store.set_view(ViewType.SESSIONS)
        return True, None
