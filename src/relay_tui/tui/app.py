"""Main TUI application loop and layout.

This module wires the store, gateway client, real-time channel, render
cache and views together and runs them on one asyncio loop under a Rich
Live display.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
import termios
import tty
from collections.abc import Coroutine, Iterator
from typing import Any

from rich.console import Console
from rich.layout import Layout
from rich.live import Live

from ..errors import ErrorReporter
from ..gateway_client import GatewayClient
from ..network import NetworkMonitor
from ..utils import Config
from .actions import ChatActions
from .channel import ChannelManager
from .keybindings import KeybindingHandler
from .models import StoreSnapshot, ViewType
from .presence import PresenceTracker
from .render_cache import ListRenderCache
from .store import StateStore
from .transport import AiohttpTransport
from .tui_utils import get_terminal_size
from .views.chat_list import ChatRowFactory, render_chat_list_panel
from .views.conversation_panel import render_conversation_panel
from .views.footer_bar import render_footer_bar
from .views.help_panel import render_help_panel
from .views.sessions_panel import render_sessions_panel

logger = logging.getLogger(__name__)

ESCAPE_SEQUENCES = {
    "\x1b[A": "up",
    "\x1b[B": "down",
    "\x1b[C": "right",
    "\x1b[D": "left",
    "\x1b[H": "home",
    "\x1b[F": "end",
}


def decode_keys(data: str) -> list[str]:
    """Split a chunk of raw terminal input into key identifiers."""
    keys: list[str] = []
    i = 0
    while i < len(data):
        if data[i] == "\x1b":
            sequence = data[i : i + 3]
            if sequence in ESCAPE_SEQUENCES:
                keys.append(ESCAPE_SEQUENCES[sequence])
                i += 3
                continue
            keys.append("escape")
            i += 1
            continue
        keys.append(data[i])
        i += 1
    return keys


class TUIApp:
    """Main TUI application orchestrating all components."""

    def __init__(self, config: Config, console: Console | None = None):
        """Initialize TUI application.

        Args:
            config: Runtime configuration
            console: Rich console to render on (a new one if None)
        """
        self.config = config
        self.console = console or Console()
        self.should_quit = False

        # State and error reporting
        self.store = StateStore()
        self.error_reporter = ErrorReporter()
        self.network_monitor = NetworkMonitor()
        self.network_monitor.subscribe(self.store.set_offline)

        # Gateway access
        self.client = GatewayClient(config, network_monitor=self.network_monitor)
        self.presence = PresenceTracker(
            self.client,
            lambda: self.store.session.get().current_session,
            idle_timeout=config.presence_idle_seconds,
            resubscribe_interval=config.presence_resubscribe_seconds,
        )
        self.transport = AiohttpTransport(
            heartbeat_seconds=config.ws_heartbeat_seconds,
            open_timeout_seconds=config.request_timeout_seconds,
        )
        self.channel = ChannelManager(
            self.store,
            self.transport,
            config.ws_url(),
            reconnect_config=config.reconnect_config(),
            max_reconnect_attempts=config.reconnect_max_attempts,
            presence=self.presence,
            heartbeat_interval=config.presence_tick_seconds,
            api_key=config.api_key,
        )
        self.actions = ChatActions(
            self.store,
            self.client,
            self.error_reporter,
            presence=self.presence,
            messages_page_size=config.messages_page_size,
        )
        self.keybinding_handler = KeybindingHandler(
            self.store,
            self.actions,
            self._spawn,
            channel=self.channel,
            viewport_rows=config.chat_list_viewport_rows,
        )

        # Rendering
        self.render_cache = ListRenderCache(ChatRowFactory(self.store.is_chat_typing))
        self._dirty = True
        self._last_view = self.store.navigation.get().current_view
        self.store.subscribe(self._on_store_change)

        # Background work and input
        self._tasks: set[asyncio.Task[Any]] = set()
        self._keys: asyncio.Queue[str] = asyncio.Queue()

        # Terminal size tracking
        self.terminal_width, self.terminal_height = get_terminal_size()
        self.min_terminal_cols = config.tui_min_terminal_cols
        self.min_terminal_rows = config.tui_min_terminal_rows

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run a coroutine in the background, logging any failure."""
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        err = task.exception()
        if err is not None:
            logger.error(f"Background task failed: {err}", exc_info=err)
            self.store.set_error(f"Error: {err}")

    def _on_store_change(self, snapshot: StoreSnapshot) -> None:
        if self._last_view == ViewType.CHATS and snapshot.current_view != ViewType.CHATS:
            self.render_cache.destroy()
        self._last_view = snapshot.current_view
        self._dirty = True

    def _check_terminal_size(self) -> bool:
        """Check if terminal meets minimum size requirements.

        Returns:
            True if terminal is large enough, False otherwise
        """
        self.terminal_width, self.terminal_height = get_terminal_size()
        return (
            self.terminal_width >= self.min_terminal_cols
            and self.terminal_height >= self.min_terminal_rows
        )

    def _build_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="main", ratio=1),
            Layout(name="footer", size=1),
        )
        return layout

    def _render_main(self, snapshot: StoreSnapshot) -> Any:
        if snapshot.ui.show_help:
            return render_help_panel()

        view = snapshot.current_view
        if view == ViewType.SESSIONS:
            return render_sessions_panel(
                snapshot.session.sessions,
                snapshot.session.selected_session_index,
                snapshot.session.current_session,
            )

        if view == ViewType.CHATS:
            handle = self.render_cache.render(snapshot)
            return render_chat_list_panel(
                handle,
                session_name=snapshot.session.current_session,
                viewport_size=self.config.chat_list_viewport_rows,
            )

        chat_id = snapshot.current_chat_id or ""
        chat_state = snapshot.chat
        index = chat_state.index_of(chat_id)
        presence = chat_state.presences.get(chat_id)
        return render_conversation_panel(
            chat_id,
            snapshot.current_messages,
            chat=chat_state.chats[index] if index is not None else None,
            typing_participant=presence.composing_participant if presence else None,
            input_mode=snapshot.ui.input_mode,
            message_input=snapshot.ui.message_input,
            is_sending=snapshot.ui.is_sending,
            scroll_position=snapshot.message.scroll_position,
            viewport_size=max(1, self.terminal_height - 6),
            show_timestamps=snapshot.settings.show_timestamps,
            show_read_receipts=snapshot.settings.show_read_receipts,
        )

    def _render_layout(self, layout: Layout) -> None:
        """Render all panels into the layout.

        Args:
            layout: Layout to render into
        """
        snapshot = self.store.get_state()
        layout["main"].update(self._render_main(snapshot))
        connection = snapshot.connection
        layout["footer"].update(
            render_footer_bar(
                status=connection.status,
                reconnect_attempt=connection.reconnect_attempt,
                is_offline=connection.is_offline,
                error_message=snapshot.ui.error_message or connection.error_message,
                status_message=snapshot.ui.status_message,
                terminal_width=self.terminal_width,
            )
        )

    def _on_stdin_ready(self) -> None:
        try:
            data = os.read(sys.stdin.fileno(), 64).decode("utf-8", errors="ignore")
        except OSError as err:
            logger.warning(f"Error reading keyboard input: {err}")
            return
        for key in decode_keys(data):
            self._keys.put_nowait(key)

    @contextlib.contextmanager
    def _keyboard(self) -> Iterator[None]:
        """Put the terminal in cbreak mode and feed key presses into the queue."""
        if not sys.stdin.isatty():
            logger.info("stdin is not a terminal, keyboard input disabled")
            yield
            return

        fd = sys.stdin.fileno()
        saved = termios.tcgetattr(fd)
        loop = asyncio.get_running_loop()
        tty.setcbreak(fd)
        loop.add_reader(fd, self._on_stdin_ready)
        try:
            yield
        finally:
            loop.remove_reader(fd)
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)

    def _handle_key(self, key: str) -> None:
        handled, message = self.keybinding_handler.handle_key(key)
        if not handled or not message:
            return
        if message == "quit":
            self.should_quit = True
        elif message.startswith("Error:"):
            self.store.set_error(message)
        else:
            # Clear error on successful action
            self.store.set_error(None)
            self.store.set_status_message(message)

    def _update_size_error(self) -> None:
        error = self.store.ui.get().error_message
        if not self._check_terminal_size():
            if error is None:
                self.store.set_error(
                    f"Terminal too small! Need {self.min_terminal_cols}x"
                    f"{self.min_terminal_rows}, got {self.terminal_width}x"
                    f"{self.terminal_height}"
                )
        elif error and "Terminal too small" in error:
            self.store.set_error(None)

    async def run(self) -> int:
        """Run the main TUI event loop.

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        try:
            self._update_size_error()
            self._spawn(self.actions.load_sessions(preferred=self.config.session_name))
            await self.channel.connect()

            layout = self._build_layout()
            frame_seconds = 1.0 / self.config.tui_refresh_per_second

            with (
                Live(
                    layout,
                    console=self.console,
                    refresh_per_second=self.config.tui_refresh_per_second,
                    screen=True,
                ) as live,
                self._keyboard(),
            ):
                logger.info("TUI main loop started")

                while not self.should_quit:
                    try:
                        key = await asyncio.wait_for(self._keys.get(), timeout=frame_seconds)
                    except asyncio.TimeoutError:
                        key = None
                    if key is not None:
                        self._handle_key(key)

                    self._update_size_error()

                    if self._dirty:
                        self._dirty = False
                        self._render_layout(layout)
                        live.update(layout)

            logger.info("TUI main loop exited")
            return 0

        except asyncio.CancelledError:
            logger.info("TUI cancelled")
            return 130

        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Stop background work and release network resources."""
        logger.info("Shutting down TUI")

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        await self.channel.disconnect()
        await self.transport.close()
        await self.client.close()
        self.render_cache.destroy()

        logger.info("TUI shutdown complete")
