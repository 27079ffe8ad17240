"""Reactive state store built from independent slices.

A Slice owns one frozen snapshot and a list of listeners. Setting a slice
replaces the snapshot and synchronously calls every listener, in registration
order, before set() returns. There is no batching.

StateStore aggregates the slices, keeps a monotonic version and the type of
the last change, and offers the helpers through which every cross-slice
update happens. Listeners must not assume anything about the order in which
the slices touched by one helper are updated.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from ..chat_types import ChatPresence, ChatSummary, Message, PresenceStatus, Reaction, SessionInfo
from .models import (
    ChangeType,
    ChannelStatus,
    ChatState,
    ConnectionState,
    MessageState,
    NavigationState,
    SessionState,
    SettingsState,
    StoreSnapshot,
    UIState,
    ViewType,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SliceListener = Callable[[T], None]
StoreListener = Callable[[StoreSnapshot], None]
Unsubscribe = Callable[[], None]


class Slice(Generic[T]):
    """A named, independently observable piece of state."""

    def __init__(self, name: str, initial: T) -> None:
        self.name = name
        self._initial = initial
        self._value = initial
        self._listeners: list[SliceListener[T]] = []

    def get(self) -> T:
        return self._value

    def set(self, **changes: Any) -> None:
        """Shallow-merge changes into a new snapshot and notify listeners.

        Raises:
            TypeError: If a change names a field the snapshot does not have
        """
        self._value = replace(self._value, **changes)
        self._notify()

    def reset(self) -> None:
        """Restore the initial snapshot and notify listeners."""
        self._value = self._initial
        self._notify()

    def subscribe(self, listener: SliceListener[T]) -> Unsubscribe:
        """Register a listener; the returned function removes it (idempotent)."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        # Snapshot the list so (un)subscribing mid-round applies from the next round
        value = self._value
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.exception(f"Listener on slice '{self.name}' failed")


class StateStore:
    """Aggregates all slices and exposes cross-slice helpers."""

    def __init__(self) -> None:
        self.connection: Slice[ConnectionState] = Slice("connection", ConnectionState())
        self.session: Slice[SessionState] = Slice("session", SessionState())
        self.navigation: Slice[NavigationState] = Slice("navigation", NavigationState())
        self.chat: Slice[ChatState] = Slice("chat", ChatState())
        self.message: Slice[MessageState] = Slice("message", MessageState())
        self.settings: Slice[SettingsState] = Slice("settings", SettingsState())
        self.ui: Slice[UIState] = Slice("ui", UIState())

        self.version = 0
        self.last_change = ChangeType.OTHER
        self._active_change: ChangeType | None = None
        self._listeners: list[StoreListener] = []

        for slice_ in self.slices:
            slice_.subscribe(self._on_slice_change)

    @property
    def slices(self) -> tuple[Slice[Any], ...]:
        return (
            self.connection,
            self.session,
            self.navigation,
            self.chat,
            self.message,
            self.settings,
            self.ui,
        )

    def get_state(self) -> StoreSnapshot:
        return StoreSnapshot(
            connection=self.connection.get(),
            session=self.session.get(),
            navigation=self.navigation.get(),
            chat=self.chat.get(),
            message=self.message.get(),
            settings=self.settings.get(),
            ui=self.ui.get(),
            version=self.version,
            last_change=self.last_change,
        )

    def subscribe(self, listener: StoreListener) -> Unsubscribe:
        """Register a global listener, called once per slice change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def reset(self) -> None:
        """Reset every slice to its defaults."""
        with self._change(ChangeType.OTHER):
            for slice_ in self.slices:
                slice_.reset()

    @contextmanager
    def _change(self, change_type: ChangeType) -> Iterator[None]:
        previous = self._active_change
        self._active_change = change_type
        try:
            yield
        finally:
            self._active_change = previous

    def _on_slice_change(self, _value: Any) -> None:
        self.version += 1
        self.last_change = self._active_change or ChangeType.OTHER
        snapshot = self.get_state()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Store listener failed")

    # Navigation

    def set_view(self, view: ViewType) -> None:
        with self._change(ChangeType.VIEW):
            self.navigation.set(current_view=view)

    def open_chat(self, chat_id: str) -> None:
        """Show a conversation and reset its per-view state."""
        with self._change(ChangeType.VIEW):
            self.navigation.set(current_view=ViewType.CONVERSATION, current_chat_id=chat_id)
            self.message.set(scroll_position=0)
            self.ui.set(input_mode=False, message_input="")

    def close_chat(self) -> None:
        with self._change(ChangeType.VIEW):
            self.navigation.set(current_view=ViewType.CHATS, current_chat_id=None)
            self.ui.set(input_mode=False, message_input="")

    # Sessions

    def set_sessions(self, sessions: list[SessionInfo] | tuple[SessionInfo, ...]) -> None:
        sessions = tuple(sessions)
        current = self.session.get()
        index = min(current.selected_session_index, max(0, len(sessions) - 1))
        with self._change(ChangeType.DATA):
            self.session.set(sessions=sessions, selected_session_index=index)

    def set_current_session(self, name: str | None, me_id: str | None = None) -> None:
        """Switch the active session; chat and message data of the old one is dropped."""
        changed = self.session.get().current_session != name
        with self._change(ChangeType.DATA):
            self.session.set(current_session=name, me_id=me_id)
            if changed:
                self.chat.reset()
                self.message.reset()

    def set_selected_session_index(self, index: int) -> None:
        count = len(self.session.get().sessions)
        index = max(0, min(index, count - 1)) if count else 0
        with self._change(ChangeType.SELECTION):
            self.session.set(selected_session_index=index)

    def update_session_status(self, name: str, status: str) -> None:
        sessions = self.session.get().sessions
        if not any(s.name == name for s in sessions):
            return
        updated = tuple(replace(s, status=status) if s.name == name else s for s in sessions)
        with self._change(ChangeType.DATA):
            self.session.set(sessions=updated)

    # Chat list

    def set_chats(self, chats: list[ChatSummary] | tuple[ChatSummary, ...]) -> None:
        """Replace the chat list, keeping the selection on the same chat when possible."""
        chats = tuple(chats)
        current = self.chat.get()
        selected = current.selected_chat
        index = current.selected_chat_index
        if selected is not None:
            for i, chat in enumerate(chats):
                if chat.id == selected.id:
                    index = i
                    break
        index = min(index, max(0, len(chats) - 1))
        with self._change(ChangeType.DATA):
            self.chat.set(chats=chats, selected_chat_index=index)

    def set_selected_chat_index(self, index: int) -> None:
        count = len(self.chat.get().chats)
        index = max(0, min(index, count - 1)) if count else 0
        with self._change(ChangeType.SELECTION):
            self.chat.set(selected_chat_index=index)

    def set_chat_list_scroll_offset(self, offset: int) -> None:
        with self._change(ChangeType.SCROLL):
            self.chat.set(chat_list_scroll_offset=max(0, offset))

    # Messages

    def _set_chat_messages(self, chat_id: str, messages: tuple[Message, ...]) -> None:
        updated = dict(self.message.get().messages)
        updated[chat_id] = messages
        self.message.set(messages=MappingProxyType(updated))

    def set_messages(self, chat_id: str, messages: list[Message] | tuple[Message, ...]) -> None:
        with self._change(ChangeType.DATA):
            self._set_chat_messages(chat_id, tuple(messages))

    def append_message(self, chat_id: str, message: Message) -> None:
        """Append a message, replacing an existing one with the same id."""
        existing = self.message.get().messages.get(chat_id, ())
        if message.id and any(m.id == message.id for m in existing):
            messages = tuple(message if m.id == message.id else m for m in existing)
        else:
            messages = (*existing, message)
        with self._change(ChangeType.DATA):
            self._set_chat_messages(chat_id, messages)

    def set_message_scroll(self, position: int) -> None:
        """Number of messages hidden below the conversation viewport."""
        with self._change(ChangeType.SCROLL):
            self.message.set(scroll_position=max(0, position))

    def _update_message(
        self, chat_id: str, message_id: str, update: Callable[[Message], Message]
    ) -> bool:
        existing = self.message.get().messages.get(chat_id)
        if not existing or not any(m.id == message_id for m in existing):
            return False
        messages = tuple(update(m) if m.id == message_id else m for m in existing)
        with self._change(ChangeType.DATA):
            self._set_chat_messages(chat_id, messages)
        return True

    def update_message_ack(
        self, chat_id: str, message_id: str, ack: int, ack_name: str = ""
    ) -> bool:
        """Set delivery status of a loaded message. Returns False if it is not loaded."""
        return self._update_message(
            chat_id, message_id, lambda m: replace(m, ack=ack, ack_name=ack_name or m.ack_name)
        )

    def update_message_reaction(self, chat_id: str, message_id: str, reaction: Reaction) -> bool:
        """Add or replace a sender's reaction; an empty reaction text removes it."""

        def apply(message: Message) -> Message:
            reactions = tuple(r for r in message.reactions if r.sender_id != reaction.sender_id)
            if reaction.text:
                reactions = (*reactions, reaction)
            return replace(message, reactions=reactions)

        return self._update_message(chat_id, message_id, apply)

    def mark_message_revoked(self, chat_id: str, message_id: str) -> bool:
        return self._update_message(
            chat_id, message_id, lambda m: replace(m, revoked=True, body="")
        )

    def update_chat_last_message_ack(self, chat_id: str, message_id: str, ack: int) -> bool:
        """Update the ack of a chat's last-message preview if it is that message."""
        state = self.chat.get()
        index = state.index_of(chat_id)
        if index is None:
            return False
        chat = state.chats[index]
        if chat.last_message is None or chat.last_message.id != message_id:
            return False
        updated = replace(chat, last_message=replace(chat.last_message, ack=ack))
        chats = state.chats[:index] + (updated,) + state.chats[index + 1 :]
        with self._change(ChangeType.DATA):
            self.chat.set(chats=chats)
        return True

    def record_incoming_message(self, message: Message) -> None:
        """Move the message's chat to the top of the list with a new preview.

        Unread count grows for messages from others unless the chat is open.
        The selection stays on the same chat.
        """
        state = self.chat.get()
        selected = state.selected_chat
        index = state.index_of(message.chat_id)
        chat = state.chats[index] if index is not None else ChatSummary(id=message.chat_id)
        others = tuple(c for c in state.chats if c.id != message.chat_id)

        is_open = self.navigation.get().current_chat_id == message.chat_id
        unread = chat.unread_count
        if not message.from_me and not is_open:
            unread += 1
        updated = replace(chat, last_message=message.preview(), unread_count=unread)
        chats = (updated, *others)

        selected_index = state.selected_chat_index
        if selected is not None:
            for i, c in enumerate(chats):
                if c.id == selected.id:
                    selected_index = i
                    break

        with self._change(ChangeType.DATA):
            self.chat.set(chats=chats, selected_chat_index=selected_index)

    def mark_chat_read(self, chat_id: str) -> None:
        state = self.chat.get()
        index = state.index_of(chat_id)
        if index is None or state.chats[index].unread_count == 0:
            return
        updated = replace(state.chats[index], unread_count=0)
        chats = state.chats[:index] + (updated,) + state.chats[index + 1 :]
        with self._change(ChangeType.DATA):
            self.chat.set(chats=chats)

    # Presence

    def _set_presence(self, presence: ChatPresence) -> None:
        presences = dict(self.chat.get().presences)
        presences[presence.chat_id] = presence
        self.chat.set(presences=MappingProxyType(presences))

    def update_chat_presence(self, presence: ChatPresence) -> None:
        """Merge a presence update into the chat's known presence per participant."""
        current = self.chat.get().presences.get(presence.chat_id)
        merged = current.merged(presence) if current is not None else presence
        with self._change(ChangeType.DATA):
            self._set_presence(merged)

    def clear_typing_for_sender(self, chat_id: str, sender_id: str) -> None:
        """A sender who just delivered a message is no longer composing."""
        current = self.chat.get().presences.get(chat_id)
        if current is None:
            return
        entries = tuple(
            replace(entry, status=PresenceStatus.PAUSED)
            if entry.participant == sender_id and entry.status.is_composing
            else entry
            for entry in current.entries
        )
        if entries == current.entries:
            return
        with self._change(ChangeType.DATA):
            self._set_presence(replace(current, entries=entries))

    def is_chat_typing(self, chat_id: str) -> bool:
        presence = self.chat.get().presences.get(chat_id)
        return presence is not None and presence.composing_participant is not None

    # Connection and UI

    def set_connection_status(
        self,
        status: ChannelStatus,
        *,
        reconnect_attempt: int | None = None,
        error_message: str | None = None,
        last_activity_at: float | None = None,
    ) -> None:
        changes: dict[str, Any] = {"status": status, "error_message": error_message}
        if reconnect_attempt is not None:
            changes["reconnect_attempt"] = reconnect_attempt
        if last_activity_at is not None:
            changes["last_activity_at"] = last_activity_at
        with self._change(ChangeType.OTHER):
            self.connection.set(**changes)

    def touch_connection(self, at: float) -> None:
        """Record the time of the last inbound channel frame."""
        with self._change(ChangeType.OTHER):
            self.connection.set(last_activity_at=at)

    def set_offline(self, offline: bool) -> None:
        if self.connection.get().is_offline == offline:
            return
        with self._change(ChangeType.OTHER):
            self.connection.set(is_offline=offline)

    def set_error(self, message: str | None) -> None:
        with self._change(ChangeType.OTHER):
            self.ui.set(error_message=message)

    def set_status_message(self, message: str | None) -> None:
        with self._change(ChangeType.OTHER):
            self.ui.set(status_message=message)

    def toggle_help(self) -> None:
        with self._change(ChangeType.VIEW):
            self.ui.set(show_help=not self.ui.get().show_help)

    def set_input_mode(self, enabled: bool) -> None:
        with self._change(ChangeType.OTHER):
            self.ui.set(input_mode=enabled)

    def set_message_input(self, text: str) -> None:
        with self._change(ChangeType.OTHER):
            self.ui.set(message_input=text)

    def set_is_sending(self, sending: bool) -> None:
        with self._change(ChangeType.OTHER):
            self.ui.set(is_sending=sending)
