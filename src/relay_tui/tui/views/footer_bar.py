"""Footer bar renderer for status indicators.

This module provides the render_footer_bar function that displays
a status bar with channel status, error messages, and help hints.
"""

from __future__ import annotations

from rich.text import Text

from ..models import ChannelStatus
from ..tui_utils import get_status_badge, truncate_text

HELP_HINT = "Press ? for help"


def _status_text(status: ChannelStatus, reconnect_attempt: int, is_offline: bool) -> str:
    if is_offline:
        return "Offline"
    if status == ChannelStatus.RECONNECTING and reconnect_attempt:
        return f"Reconnecting (attempt {reconnect_attempt})"
    return status.value.capitalize()


def render_footer_bar(
    status: ChannelStatus,
    reconnect_attempt: int = 0,
    is_offline: bool = False,
    error_message: str | None = None,
    status_message: str | None = None,
    terminal_width: int = 80,
) -> Text:
    """Build Rich Text displaying footer status bar.

    Args:
        status: Real-time channel status
        reconnect_attempt: Current reconnect attempt, shown while reconnecting
        is_offline: Whether the gateway is unreachable
        error_message: Current error message to display, if any
        status_message: Informational message, shown when there is no error
        terminal_width: Terminal width for truncation calculations

    Returns:
        Rich Text component ready for rendering
    """
    glyph, color = get_status_badge(status)
    if is_offline:
        color = "red"
    status_part = f"{glyph} {_status_text(status, reconnect_attempt, is_offline)}"
    parts = [(status_part, color)]

    # Format: "[status] | [message] | Press ? for help"
    message, style = (error_message, "red") if error_message else (status_message, "yellow")
    if message:
        separators = len(" | ") * 2
        available_width = terminal_width - len(status_part) - len(HELP_HINT) - separators

        if available_width > 10:  # Minimum space for a meaningful message
            parts.append((" | ", "dim"))
            parts.append((truncate_text(message, available_width), style))

    parts.append((" | ", "dim"))
    parts.append((HELP_HINT, "cyan"))

    footer = Text()
    for text, part_style in parts:
        footer.append(text, style=part_style)

    return footer
