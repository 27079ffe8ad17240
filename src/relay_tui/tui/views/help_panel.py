"""Help panel renderer for keybinding reference.

This module provides the render_help_panel function that displays
a table of all available keybindings organized by category.
"""

from __future__ import annotations

from rich.panel import Panel
from rich.table import Table


def render_help_panel() -> Panel:
    """Build Rich Panel displaying keybinding reference table.

    Returns:
        Rich Panel component with categorized keybindings
    """
    table = Table(
        show_header=True,
        header_style="bold magenta",
        border_style="blue",
        padding=(0, 1),
    )
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Action", style="yellow")
    table.add_column("Description", style="white")

    table.add_row("", "[bold cyan]Navigation[/bold cyan]", "", style="bold")
    table.add_row("↑/↓ or k/j", "Navigate", "Move selection up/down")
    table.add_row("g / G", "Jump", "Jump to first/last chat")
    table.add_row("Enter", "Open", "Open selected session or chat")
    table.add_row("ESC", "Back", "Leave input mode or go back one screen")

    table.add_row("", "", "")
    table.add_row("", "[bold green]Conversation[/bold green]", "", style="bold")
    table.add_row("i", "Write", "Focus the input line")
    table.add_row("Enter", "Send", "Send the message (in input mode)")
    table.add_row("k/j", "Scroll", "Scroll messages (outside input mode)")

    table.add_row("", "", "")
    table.add_row("", "[bold magenta]Meta[/bold magenta]", "", style="bold")
    table.add_row("r", "Refresh", "Reload sessions, chats or messages")
    table.add_row("C", "Reconnect", "Reconnect the real-time channel now")
    table.add_row("?", "Help", "Toggle this help panel")
    table.add_row("q", "Quit", "Exit the client")

    return Panel(
        table,
        title="[bold white]Keybindings[/bold white]",
        border_style="blue",
        padding=(1, 2),
    )
