"""State management for TUI application.

This module provides a unified interface to the state models and the store:
- models.py: slice snapshots and enums
- store.py: Slice and StateStore
"""

from __future__ import annotations

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
from .store import Slice, StateStore

__all__ = [
    "ChangeType",
    "ChannelStatus",
    "ChatState",
    "ConnectionState",
    "MessageState",
    "NavigationState",
    "SessionState",
    "SettingsState",
    "Slice",
    "StateStore",
    "StoreSnapshot",
    "UIState",
    "ViewType",
]
