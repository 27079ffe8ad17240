"""State models for the TUI application.

Each slice of the store holds one of the frozen snapshot dataclasses below.
Snapshots are replaced wholesale on every change, so collections inside them
are tuples or read-only mappings.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from ..chat_types import ChatPresence, ChatSummary, Message, SessionInfo


def _empty_mapping() -> Mapping:
    return MappingProxyType({})


class ViewType(Enum):
    """Top-level screen currently shown."""

    SESSIONS = "sessions"
    CHATS = "chats"
    CONVERSATION = "conversation"


class ChangeType(Enum):
    """Kind of the most recent store change, used to pick a render strategy."""

    SELECTION = "selection"
    SCROLL = "scroll"
    DATA = "data"
    VIEW = "view"
    OTHER = "other"


class ChannelStatus(Enum):
    """Lifecycle of the real-time channel."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class ConnectionState:
    """Real-time channel and network status."""

    status: ChannelStatus = ChannelStatus.DISCONNECTED
    reconnect_attempt: int = 0
    last_activity_at: float | None = None
    error_message: str | None = None
    is_offline: bool = False


@dataclass(frozen=True)
class SessionState:
    """Known gateway sessions and the active one."""

    sessions: tuple[SessionInfo, ...] = ()
    current_session: str | None = None
    me_id: str | None = None
    selected_session_index: int = 0


@dataclass(frozen=True)
class NavigationState:
    current_view: ViewType = ViewType.SESSIONS
    current_chat_id: str | None = None


@dataclass(frozen=True)
class ChatState:
    """Chat list, its selection and scroll, and per-chat presence."""

    chats: tuple[ChatSummary, ...] = ()
    selected_chat_index: int = 0
    chat_list_scroll_offset: int = 0
    presences: Mapping[str, ChatPresence] = field(default_factory=_empty_mapping)

    @property
    def selected_chat(self) -> ChatSummary | None:
        if 0 <= self.selected_chat_index < len(self.chats):
            return self.chats[self.selected_chat_index]
        return None

    def index_of(self, chat_id: str) -> int | None:
        for index, chat in enumerate(self.chats):
            if chat.id == chat_id:
                return index
        return None


@dataclass(frozen=True)
class MessageState:
    """Loaded messages per chat id (oldest first) and conversation scroll."""

    messages: Mapping[str, tuple[Message, ...]] = field(default_factory=_empty_mapping)
    scroll_position: int = 0


@dataclass(frozen=True)
class SettingsState:
    show_timestamps: bool = True
    show_read_receipts: bool = True


@dataclass(frozen=True)
class UIState:
    """Input line and transient feedback shown in the footer."""

    input_mode: bool = False
    message_input: str = ""
    is_sending: bool = False
    error_message: str | None = None
    status_message: str | None = None
    show_help: bool = False


@dataclass(frozen=True)
class StoreSnapshot:
    """Immutable view of the whole store at one version."""

    connection: ConnectionState
    session: SessionState
    navigation: NavigationState
    chat: ChatState
    message: MessageState
    settings: SettingsState
    ui: UIState
    version: int = 0
    last_change: ChangeType = ChangeType.OTHER

    @property
    def current_view(self) -> ViewType:
        return self.navigation.current_view

    @property
    def current_chat_id(self) -> str | None:
        return self.navigation.current_chat_id

    @property
    def chats(self) -> tuple[ChatSummary, ...]:
        return self.chat.chats

    @property
    def current_messages(self) -> tuple[Message, ...]:
        if self.navigation.current_chat_id is None:
            return ()
        return self.message.messages.get(self.navigation.current_chat_id, ())
