"""TUI utility functions for formatting and display helpers."""

import shutil
from datetime import datetime

from .models import ChannelStatus


def format_timestamp(timestamp: int, now: datetime | None = None) -> str:
    """
    Format a unix timestamp for the chat list and conversation.

    Args:
        timestamp: Seconds since the epoch (0 means unknown)
        now: Reference time (current local time if None)

    Returns:
        "HH:MM" for today, "DD/MM/YY" for older dates, "" when unknown

    Examples:
        >>> format_timestamp(0)
        ''
    """
    if timestamp <= 0:
        return ""
    moment = datetime.fromtimestamp(timestamp)
    reference = now or datetime.now()
    if moment.date() == reference.date():
        return moment.strftime("%H:%M")
    return moment.strftime("%d/%m/%y")


def truncate_text(text: str, max_len: int) -> str:
    """
    Truncate text to max length, adding ellipsis if needed.

    Args:
        text: Text to truncate
        max_len: Maximum length including ellipsis

    Returns:
        Truncated text with "..." suffix if text exceeds max_len

    Examples:
        >>> truncate_text("short", 10)
        'short'
        >>> truncate_text("this is a long text", 10)
        'this is...'
    """
    if len(text) <= max_len:
        return text

    if max_len <= 3:
        return "..."[:max_len]

    return text[: max_len - 3] + "..."


def single_line(text: str) -> str:
    """Collapse newlines so a message preview fits on one row."""
    return " ".join(text.split())


def get_terminal_size() -> tuple[int, int]:
    """
    Get terminal size as (columns, rows) tuple.

    Returns:
        Tuple of (columns, rows), defaults to (80, 24) if unavailable
    """
    try:
        size = shutil.get_terminal_size(fallback=(80, 24))
        return (size.columns, size.lines)
    except OSError:
        return (80, 24)


def get_status_badge(status: ChannelStatus) -> tuple[str, str]:
    """
    Get glyph and color for a ChannelStatus.

    Examples:
        >>> get_status_badge(ChannelStatus.CONNECTED)
        ('●', 'green')
        >>> get_status_badge(ChannelStatus.RECONNECTING)
        ('↻', 'yellow')
    """
    badge_map = {
        ChannelStatus.CONNECTED: ("●", "green"),
        ChannelStatus.CONNECTING: ("○", "yellow"),
        ChannelStatus.RECONNECTING: ("↻", "yellow"),
        ChannelStatus.DISCONNECTED: ("■", "red"),
    }

    return badge_map.get(status, ("?", "white"))


def ack_indicator(ack: int) -> tuple[str, str]:
    """
    Delivery tick for an outgoing message.

    Gateway ack levels: -1 error, 0 pending, 1 sent, 2 delivered, 3 read, 4 played.

    Examples:
        >>> ack_indicator(1)
        ('✓', 'dim')
        >>> ack_indicator(3)
        ('✓✓', 'cyan')
    """
    if ack < 0:
        return ("!", "red")
    if ack == 0:
        return ("⏱", "dim")
    if ack == 1:
        return ("✓", "dim")
    if ack == 2:
        return ("✓✓", "dim")
    return ("✓✓", "cyan")
