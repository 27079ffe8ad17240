"""Sessions panel renderer."""

from __future__ import annotations

from collections.abc import Sequence

from rich.panel import Panel
from rich.table import Table

from ...chat_types import SessionInfo


def _status_style(status: str) -> str:
    if status == "WORKING":
        return "green"
    if status in ("STARTING", "SCAN_QR_CODE"):
        return "yellow"
    return "red"


def render_sessions_panel(
    sessions: Sequence[SessionInfo],
    selected_index: int = 0,
    current_session: str | None = None,
) -> Panel:
    """Build Rich Panel listing gateway sessions.

    Args:
        sessions: Sessions known to the gateway
        selected_index: Highlighted row
        current_session: Active session, marked with an arrow

    Returns:
        Rich Panel component with one row per session
    """
    table = Table(
        show_header=True,
        header_style="bold cyan",
        border_style="blue",
        padding=(0, 1),
        expand=True,
    )
    table.add_column("", width=2)
    table.add_column("Session", style="white")
    table.add_column("Status", no_wrap=True)

    if not sessions:
        table.add_row("", "[dim italic]No sessions found[/dim italic]", "")

    for index, session in enumerate(sessions):
        marker = "▶" if session.name == current_session else ""
        style = "reverse" if index == selected_index else None
        status_style = _status_style(session.status)
        table.add_row(
            marker,
            session.name,
            f"[{status_style}]{session.status}[/{status_style}]",
            style=style,
        )

    return Panel(
        table,
        title="[bold white]Sessions[/bold white] [dim](j/k: move · Enter: open)[/dim]",
        border_style="blue",
        padding=(1, 2),
    )
