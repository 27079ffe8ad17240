"""Gateway records: sessions, chats, messages and presence.

Every record is immutable and built from loosely-typed gateway payloads via
from_payload(), which tolerates missing fields and the two id encodings the
gateway uses (plain string or {"_serialized": ...}).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


def serialized_id(value: Any) -> str:
    """Return the string form of a gateway id."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        serialized = value.get("_serialized") or value.get("id")
        if serialized:
            return str(serialized)
    return "" if value is None else str(value)


class PresenceStatus(Enum):
    """Per-participant presence reported by the gateway."""

    ONLINE = "online"
    OFFLINE = "offline"
    TYPING = "typing"
    RECORDING = "recording"
    PAUSED = "paused"

    @classmethod
    def parse(cls, value: Any) -> PresenceStatus:
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.OFFLINE

    @property
    def is_composing(self) -> bool:
        return self in (PresenceStatus.TYPING, PresenceStatus.RECORDING)


class SessionPresence(Enum):
    """Presence this client announces for its own session.

    OFFLINE is the gateway's "available but not actively online" state.
    """

    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(frozen=True)
class SessionInfo:
    """A gateway session (one linked account)."""

    name: str
    status: str = "UNKNOWN"
    me_id: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SessionInfo:
        me = payload.get("me") or {}
        return cls(
            name=str(payload.get("name", "")),
            status=str(payload.get("status", "UNKNOWN")),
            me_id=serialized_id(me.get("id")) or None if isinstance(me, dict) else None,
        )


@dataclass(frozen=True)
class MessagePreview:
    """Last message of a chat as shown in the chat list."""

    id: str = ""
    body: str = ""
    timestamp: int = 0
    from_me: bool = False
    ack: int = 0
    has_media: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> MessagePreview | None:
        if not payload:
            return None
        return cls(
            id=serialized_id(payload.get("id")),
            body=str(payload.get("body") or ""),
            timestamp=int(payload.get("timestamp") or 0),
            from_me=bool(payload.get("fromMe", False)),
            ack=int(payload.get("ack") or 0),
            has_media=bool(payload.get("hasMedia", False)),
        )

    @property
    def text(self) -> str:
        if self.body:
            return self.body
        return "[Media]" if self.has_media else ""


@dataclass(frozen=True)
class ChatSummary:
    """One entry of the chat list."""

    id: str
    name: str = ""
    last_message: MessagePreview | None = None
    unread_count: int = 0
    pinned: bool = False
    muted: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ChatSummary:
        chat_data = payload.get("_chat") or {}
        return cls(
            id=serialized_id(payload.get("id")),
            name=str(payload.get("name") or ""),
            last_message=MessagePreview.from_payload(payload.get("lastMessage")),
            unread_count=int(payload.get("unreadCount") or chat_data.get("unreadCount") or 0),
            pinned=bool(payload.get("pinned") or chat_data.get("pinned")),
            muted=bool(payload.get("isMuted") or chat_data.get("isMuted")),
        )

    @property
    def display_name(self) -> str:
        return self.name or self.id.split("@", 1)[0]

    @property
    def is_group(self) -> bool:
        return self.id.endswith("@g.us")


@dataclass(frozen=True)
class Reaction:
    """A reaction left on a message by one sender."""

    sender_id: str
    text: str


@dataclass(frozen=True)
class Message:
    """A message inside a conversation."""

    id: str
    chat_id: str
    body: str = ""
    from_me: bool = False
    sender_id: str = ""
    timestamp: int = 0
    ack: int = 0
    ack_name: str = ""
    has_media: bool = False
    reactions: tuple[Reaction, ...] = ()
    revoked: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any], chat_id: str | None = None) -> Message:
        from_me = bool(payload.get("fromMe", False))
        sender = serialized_id(payload.get("participant") or payload.get("from"))
        if chat_id is None:
            chat_id = serialized_id(payload.get("to") if from_me else payload.get("from"))
        return cls(
            id=serialized_id(payload.get("id")),
            chat_id=chat_id,
            body=str(payload.get("body") or ""),
            from_me=from_me,
            sender_id=sender,
            timestamp=int(payload.get("timestamp") or 0),
            ack=int(payload.get("ack") or 0),
            ack_name=str(payload.get("ackName") or ""),
            has_media=bool(payload.get("hasMedia", False)),
        )

    def preview(self) -> MessagePreview:
        """Chat-list preview of this message."""
        return MessagePreview(
            id=self.id,
            body=self.body,
            timestamp=self.timestamp,
            from_me=self.from_me,
            ack=self.ack,
            has_media=self.has_media,
        )


@dataclass(frozen=True)
class PresenceEntry:
    """Presence of one participant inside a chat."""

    participant: str
    status: PresenceStatus = PresenceStatus.OFFLINE
    last_seen: int | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PresenceEntry:
        last_seen = payload.get("lastSeen")
        return cls(
            participant=serialized_id(payload.get("participant")),
            status=PresenceStatus.parse(payload.get("lastKnownPresence")),
            last_seen=int(last_seen) if isinstance(last_seen, (int, float)) else None,
        )


@dataclass(frozen=True)
class ChatPresence:
    """Presence of all known participants of a chat."""

    chat_id: str
    entries: tuple[PresenceEntry, ...] = ()

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ChatPresence:
        return cls(
            chat_id=serialized_id(payload.get("id")),
            entries=tuple(
                PresenceEntry.from_payload(p)
                for p in payload.get("presences") or []
                if isinstance(p, dict)
            ),
        )

    def merged(self, update: ChatPresence) -> ChatPresence:
        """Merge another presence update per participant (update wins)."""
        by_participant = {entry.participant: entry for entry in self.entries}
        for entry in update.entries:
            by_participant[entry.participant] = entry
        return ChatPresence(chat_id=self.chat_id, entries=tuple(by_participant.values()))

    @property
    def composing_participant(self) -> str | None:
        for entry in self.entries:
            if entry.status.is_composing:
                return entry.participant
        return None
