"""Inbound channel events: parsing and dispatch into the store.

parse_frame() turns a raw text frame into a typed event. EventDispatcher
applies events to the store through its helpers; it never renders and never
talks to the gateway.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..chat_types import ChatPresence, Message, Reaction, serialized_id
from ..utils import normalize_id
from .store import StateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelEvent:
    """Base for all events received over the channel."""

    session: str | None


@dataclass(frozen=True)
class SessionStatusEvent(ChannelEvent):
    status: str = "UNKNOWN"


@dataclass(frozen=True)
class MessageEvent(ChannelEvent):
    message: Message | None = None


@dataclass(frozen=True)
class MessageAckEvent(ChannelEvent):
    chat_id: str = ""
    message_id: str = ""
    ack: int = 0
    ack_name: str = ""


@dataclass(frozen=True)
class MessageReactionEvent(ChannelEvent):
    chat_id: str = ""
    message_id: str = ""
    reaction: Reaction | None = None


@dataclass(frozen=True)
class MessageRevokedEvent(ChannelEvent):
    chat_id: str = ""
    message_id: str = ""


@dataclass(frozen=True)
class PresenceEvent(ChannelEvent):
    presence: ChatPresence | None = None


@dataclass(frozen=True)
class UnknownEvent(ChannelEvent):
    name: str = ""
    payload: Mapping[str, Any] = field(default_factory=dict)


def _chat_id_of(payload: Mapping[str, Any]) -> str:
    """Outgoing messages belong to their recipient, incoming ones to their sender."""
    key = "to" if payload.get("fromMe") else "from"
    return serialized_id(payload.get(key))


def _parse_message(session: str | None, payload: Mapping[str, Any]) -> MessageEvent:
    return MessageEvent(session=session, message=Message.from_payload(dict(payload)))


def _parse_ack(session: str | None, payload: Mapping[str, Any]) -> MessageAckEvent:
    return MessageAckEvent(
        session=session,
        chat_id=_chat_id_of(payload),
        message_id=serialized_id(payload.get("id")),
        ack=int(payload.get("ack") or 0),
        ack_name=str(payload.get("ackName") or ""),
    )


def _parse_reaction(session: str | None, payload: Mapping[str, Any]) -> MessageReactionEvent:
    reaction = payload.get("reaction") or {}
    sender = serialized_id(payload.get("participant") or payload.get("from"))
    return MessageReactionEvent(
        session=session,
        chat_id=_chat_id_of(payload),
        message_id=serialized_id(reaction.get("messageId")),
        reaction=Reaction(sender_id=sender, text=str(reaction.get("text") or "")),
    )


def _parse_revoked(session: str | None, payload: Mapping[str, Any]) -> MessageRevokedEvent:
    source = payload.get("after") or payload.get("before") or {}
    return MessageRevokedEvent(
        session=session,
        chat_id=_chat_id_of(source) if isinstance(source, Mapping) else "",
        message_id=serialized_id(payload.get("revokedMessageId")),
    )


def _parse_presence(session: str | None, payload: Mapping[str, Any]) -> PresenceEvent:
    return PresenceEvent(session=session, presence=ChatPresence.from_payload(dict(payload)))


def _parse_session_status(session: str | None, payload: Mapping[str, Any]) -> SessionStatusEvent:
    return SessionStatusEvent(session=session, status=str(payload.get("status") or "UNKNOWN"))


_PARSERS: dict[str, Callable[[str | None, Mapping[str, Any]], ChannelEvent]] = {
    "session.status": _parse_session_status,
    "message": _parse_message,
    "message.any": _parse_message,
    "message.ack": _parse_ack,
    "message.reaction": _parse_reaction,
    "message.revoked": _parse_revoked,
    "presence.update": _parse_presence,
}


def parse_frame(raw: str | bytes) -> ChannelEvent | None:
    """Parse one channel frame.

    Args:
        raw: Text frame as received

    Returns:
        Typed event, UnknownEvent for unrecognized event names, or None when
        the frame is not a JSON object with an event name
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as err:
        logger.warning(f"Dropping undecodable channel frame: {err}")
        return None
    if not isinstance(data, dict) or not isinstance(data.get("event"), str):
        logger.warning("Dropping channel frame without an event name")
        return None

    name = data["event"]
    session = data.get("session")
    session = str(session) if session else None
    payload = data.get("payload")
    if not isinstance(payload, dict):
        payload = {}

    parser = _PARSERS.get(name)
    if parser is None:
        return UnknownEvent(session=session, name=name, payload=payload)
    try:
        return parser(session, payload)
    except (TypeError, ValueError, AttributeError) as err:
        logger.warning(
            f"Dropping malformed '{name}' event: {err}",
            extra={"extra_context": {"event": name}},
        )
        return None


class EventDispatcher:
    """Applies channel events to the store."""

    def __init__(self, store: StateStore, dedupe_window: int = 256) -> None:
        self.store = store
        self._recent_message_ids: deque[str] = deque(maxlen=dedupe_window)
        self._handlers: dict[type[ChannelEvent], Callable[[Any], None]] = {
            SessionStatusEvent: self._on_session_status,
            MessageEvent: self._on_message,
            MessageAckEvent: self._on_ack,
            MessageReactionEvent: self._on_reaction,
            MessageRevokedEvent: self._on_revoked,
            PresenceEvent: self._on_presence,
        }

    def dispatch(self, event: ChannelEvent) -> bool:
        """Apply an event. Returns False if it was ignored."""
        current_session = self.store.session.get().current_session
        if event.session and current_session and event.session != current_session:
            logger.debug(f"Ignoring event for session {event.session}")
            return False

        handler = self._handlers.get(type(event))
        if handler is None:
            logger.debug(f"Unhandled channel event {getattr(event, 'name', type(event).__name__)}")
            return False
        handler(event)
        return True

    def _on_session_status(self, event: SessionStatusEvent) -> None:
        if event.session:
            self.store.update_session_status(event.session, event.status)

    def _on_message(self, event: MessageEvent) -> None:
        message = event.message
        if message is None or not message.chat_id:
            return
        # "message" and "message.any" both deliver incoming messages
        if message.id:
            if message.id in self._recent_message_ids:
                return
            self._recent_message_ids.append(message.id)

        if not message.from_me and message.sender_id:
            self.store.clear_typing_for_sender(message.chat_id, message.sender_id)

        if self.store.navigation.get().current_chat_id == message.chat_id:
            self.store.append_message(message.chat_id, message)
        self.store.record_incoming_message(message)

    def _on_ack(self, event: MessageAckEvent) -> None:
        if not event.chat_id or not event.message_id:
            return
        if self.store.navigation.get().current_chat_id == event.chat_id:
            self.store.update_message_ack(event.chat_id, event.message_id, event.ack, event.ack_name)
        self.store.update_chat_last_message_ack(event.chat_id, event.message_id, event.ack)

    def _current_or(self, chat_id: str) -> str | None:
        return chat_id or self.store.navigation.get().current_chat_id

    def _on_reaction(self, event: MessageReactionEvent) -> None:
        chat_id = self._current_or(event.chat_id)
        if chat_id and event.message_id and event.reaction is not None:
            self.store.update_message_reaction(chat_id, event.message_id, event.reaction)

    def _on_revoked(self, event: MessageRevokedEvent) -> None:
        chat_id = self._current_or(event.chat_id)
        if chat_id and event.message_id:
            self.store.mark_message_revoked(chat_id, event.message_id)

    def _on_presence(self, event: PresenceEvent) -> None:
        presence = event.presence
        if presence is None or not presence.chat_id:
            return

        me = normalize_id(self.store.session.get().me_id)
        if me:
            if normalize_id(presence.chat_id) == me:
                return
            entries = tuple(e for e in presence.entries if normalize_id(e.participant) != me)
            if not entries:
                return
            presence = ChatPresence(chat_id=presence.chat_id, entries=entries)

        self.store.update_chat_presence(presence)
