"""Conversation panel renderer.

This module provides the render_conversation_panel function that displays
the messages of the open chat followed by the input line.
"""

from __future__ import annotations

from collections.abc import Sequence

from rich.console import Group
from rich.panel import Panel
from rich.text import Text

from ...chat_types import ChatSummary, Message
from ...utils import is_group_chat, normalize_id
from ..tui_utils import ack_indicator, format_timestamp


def _render_message(
    message: Message, is_group: bool, show_timestamps: bool, show_acks: bool
) -> Text:
    line = Text()
    if show_timestamps and message.timestamp:
        line.append(f"{format_timestamp(message.timestamp)} ", style="dim")

    if message.from_me:
        line.append("You: ", style="bold green")
    elif is_group and message.sender_id:
        line.append(f"{normalize_id(message.sender_id)}: ", style="bold cyan")

    if message.revoked:
        line.append("This message was deleted", style="dim italic")
    elif message.body:
        line.append(message.body)
    elif message.has_media:
        line.append("[Media]", style="italic")

    if message.from_me and show_acks:
        tick, tick_style = ack_indicator(message.ack)
        line.append(f" {tick}", style=tick_style)

    if message.reactions:
        reactions = " ".join(r.text for r in message.reactions)
        line.append(f"  {reactions}")
    return line


def render_conversation_panel(
    chat_id: str,
    messages: Sequence[Message],
    chat: ChatSummary | None = None,
    typing_participant: str | None = None,
    input_mode: bool = False,
    message_input: str = "",
    is_sending: bool = False,
    scroll_position: int = 0,
    viewport_size: int | None = None,
    show_timestamps: bool = True,
    show_read_receipts: bool = True,
) -> Panel:
    """Build Rich Panel displaying a conversation.

    Args:
        chat_id: Id of the open chat
        messages: Loaded messages, oldest first
        chat: Chat list entry for the title (falls back to chat_id)
        typing_participant: Participant currently composing, if any
        input_mode: Whether the input line has focus
        message_input: Current input text
        is_sending: Whether a send is in flight
        scroll_position: Number of messages hidden below the viewport
        viewport_size: Maximum number of messages to show (None = show all)
        show_timestamps: Prefix messages with their time
        show_read_receipts: Show delivery ticks on own messages

    Returns:
        Rich Panel component ready for rendering
    """
    is_group = is_group_chat(chat_id)
    end = len(messages) - max(0, scroll_position)
    start = 0 if viewport_size is None else max(0, end - viewport_size)
    visible = messages[start:end]

    lines: list[Text] = [
        _render_message(m, is_group, show_timestamps, show_read_receipts) for m in visible
    ]
    if not lines:
        lines.append(Text("No messages", style="dim italic", justify="center"))

    if typing_participant:
        label = f"{normalize_id(typing_participant)} is typing..." if is_group else "typing..."
        lines.append(Text(label, style="italic green"))

    prompt = Text()
    if is_sending:
        prompt.append("Sending...", style="yellow")
    elif input_mode:
        prompt.append("> ", style="bold cyan")
        prompt.append(message_input)
        prompt.append("▏", style="blink")
    else:
        prompt.append("i: write · Esc: back", style="dim")

    name = chat.display_name if chat else normalize_id(chat_id)
    return Panel(
        Group(*lines, Text(""), prompt),
        title=f"[bold white]{name}[/bold white]",
        border_style="cyan" if input_mode else "blue",
        padding=(0, 1),
    )
