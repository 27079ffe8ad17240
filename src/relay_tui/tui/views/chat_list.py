"""Chat list rows and panel.

ChatRowFactory builds one Rich Text row per chat for the render cache;
render_chat_list_panel lays the visible rows out in a panel.
"""

from __future__ import annotations

from collections.abc import Callable

from rich.console import Group
from rich.panel import Panel
from rich.text import Text

from ...chat_types import ChatSummary
from ..render_cache import ListHandle, RowHandle
from ..tui_utils import ack_indicator, format_timestamp, single_line, truncate_text

SELECTED_STYLE = "reverse"
NAME_WIDTH = 24
PREVIEW_WIDTH = 40


class ChatRowFactory:
    """Builds chat-list rows.

    Args:
        is_typing: Returns whether someone is composing in a chat
    """

    def __init__(self, is_typing: Callable[[str], bool] | None = None) -> None:
        self.is_typing = is_typing or (lambda _chat_id: False)
        self.built = 0
        self.restyled = 0
        self.destroyed = 0

    def key(self, item: ChatSummary) -> str:
        return item.id

    def fingerprint(self, item: ChatSummary) -> str:
        last = item.last_message
        last_part = f"{last.id}:{last.body}:{last.ack}:{last.timestamp}" if last else "-"
        typing = "t" if self.is_typing(item.id) else ""
        flags = f"{int(item.pinned)}{int(item.muted)}{typing}"
        return f"{item.name}:{item.unread_count}:{flags}:{last_part}"

    def _preview(self, item: ChatSummary) -> Text:
        if self.is_typing(item.id):
            return Text("typing...", style="italic green")
        last = item.last_message
        if last is None:
            return Text("")
        preview = Text()
        if last.from_me:
            tick, tick_style = ack_indicator(last.ack)
            preview.append(f"{tick} ", style=tick_style)
        preview.append(truncate_text(single_line(last.text), PREVIEW_WIDTH), style="dim")
        return preview

    def build(self, item: ChatSummary, selected: bool) -> Text:
        self.built += 1
        row = Text(no_wrap=True, overflow="ellipsis")
        if item.pinned:
            row.append("📌 ")
        name_style = "bold" if item.unread_count else ""
        row.append(truncate_text(item.display_name, NAME_WIDTH).ljust(NAME_WIDTH), style=name_style)
        row.append(" ")
        row.append_text(self._preview(item))
        if item.last_message is not None:
            row.append(f"  {format_timestamp(item.last_message.timestamp)}", style="dim")
        if item.unread_count:
            row.append(f" ({item.unread_count})", style="bold green")
        if item.muted:
            row.append(" 🔇", style="dim")
        if selected:
            row.stylize(SELECTED_STYLE)
        return row

    def restyle(self, handle: RowHandle, selected: bool) -> None:
        self.restyled += 1
        text: Text = handle.renderable
        # Drop the selection span, keep everything else
        text.spans = [span for span in text.spans if span.style != SELECTED_STYLE]
        if selected:
            text.stylize(SELECTED_STYLE)

    def destroy(self, handle: RowHandle) -> None:
        self.destroyed += 1
        handle.renderable = None


def render_chat_list_panel(
    handle: ListHandle | None,
    session_name: str | None = None,
    viewport_size: int | None = None,
) -> Panel:
    """Build Rich Panel displaying the cached chat rows.

    Args:
        handle: Current render cache build (None before the first build)
        session_name: Active session, shown in the title
        viewport_size: Maximum number of rows to show (None = show all)

    Returns:
        Rich Panel component with the visible chat rows
    """
    total = len(handle.order) if handle else 0
    if not total:
        body: Group | Text = Text("No chats yet", style="dim italic", justify="center")
        showing_range = "0"
    else:
        rows = handle.visible_rows(viewport_size)
        body = Group(*(row.renderable for row in rows))
        start = handle.scroll_offset + 1
        showing_range = f"{start}-{handle.scroll_offset + len(rows)}"

    title = f"[bold white]Chats[/bold white] [dim]({showing_range}/{total})[/dim]"
    if session_name:
        title = f"{title} [cyan]{session_name}[/cyan]"

    return Panel(
        body,
        title=title,
        subtitle="[dim]j/k: move · Enter: open · r: refresh[/dim]",
        border_style="blue",
        padding=(0, 1),
    )
