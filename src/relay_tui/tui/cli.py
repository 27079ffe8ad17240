"""CLI entry point for TUI application.

This module handles command-line argument parsing, logging setup,
signal handling, and the main entry point.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import logging.handlers
import signal
import sys
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

from rich.console import Console

from ..errors import ConfigError
from ..utils import DEFAULT_CONFIG_PATH, Config, load_config, redact_url
from .app import TUIApp

logger = logging.getLogger(__name__)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log line
        """
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "event": record.getMessage(),
            "context": {
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
            },
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_context"):
            log_data["context"].update(record.extra_context)

        return json.dumps(log_data, default=str)


def _setup_logging(log_file: Path, debug: bool) -> None:
    """Setup structured JSON logging to file.

    Nothing is logged to the terminal while the TUI owns it.

    Args:
        log_file: Path to log file
        debug: Enable debug level logging
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Create rotating file handler (10MB max, 3 backups)
    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setFormatter(JSONFormatter())
    file_handler.setLevel(logging.DEBUG if debug else logging.INFO)

    root_logger.addHandler(file_handler)

    # aiohttp access/debug chatter is not useful at INFO
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    logger.info(
        "Logging initialized",
        extra={"extra_context": {"log_file": str(log_file), "debug": debug}},
    )


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        prog="relay-tui",
        description="Terminal client for a messaging gateway",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to config.json (default: {DEFAULT_CONFIG_PATH})",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--session",
        type=str,
        metavar="NAME",
        help="Session to open on startup (overrides config)",
    )

    return parser.parse_args(argv)


def _load(args: argparse.Namespace, console: Console) -> Config | None:
    try:
        config = load_config(args.config)
    except (ConfigError, ValueError) as err:
        console.print(f"[red]Error loading config: {err}[/red]")
        logger.error(
            "Failed to load config",
            extra={"extra_context": {"error": str(err), "config_path": str(args.config)}},
            exc_info=True,
        )
        return None

    if args.session:
        config = replace(config, session_name=args.session)

    logger.info(
        "Config loaded successfully",
        extra={
            "extra_context": {
                "gateway_url": redact_url(config.gateway_url, config.api_key),
                "session": config.session_name,
                "cache_dir": str(config.cache_dir),
            }
        },
    )
    return config


async def _run_app(app: TUIApp) -> int:
    """Run the app, turning SIGTERM into a graceful quit."""
    loop = asyncio.get_running_loop()

    def _on_sigterm() -> None:
        logger.info("Received SIGTERM, shutting down")
        app.should_quit = True

    try:
        loop.add_signal_handler(signal.SIGTERM, _on_sigterm)
    except (NotImplementedError, RuntimeError):
        logger.debug("SIGTERM handler not supported on this platform")

    return await app.run()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for TUI application.

    Returns:
        Exit code (0=success, 1=error, 130=SIGINT)
    """
    args = _parse_args(argv)
    console = Console()

    log_file = Path.home() / ".cache" / "relay-tui" / "tui.log"
    _setup_logging(log_file, args.debug)

    logger.info(
        "TUI starting",
        extra={"extra_context": {"config_path": str(args.config), "debug": args.debug}},
    )

    config = _load(args, console)
    if config is None:
        return 1

    if config.cache_dir != log_file.parent:
        log_file = config.cache_dir / "tui.log"
        _setup_logging(log_file, args.debug)

    try:
        app = TUIApp(config, console)
        exit_code = asyncio.run(_run_app(app))
        logger.info("TUI exited", extra={"extra_context": {"exit_code": exit_code}})
        return exit_code

    except KeyboardInterrupt:
        logger.info("TUI interrupted by user (KeyboardInterrupt)")
        return 130

    except Exception as err:
        logger.error(
            "TUI crashed with unhandled exception",
            extra={"extra_context": {"error": str(err)}},
            exc_info=True,
        )
        console.print(f"[red]Fatal error: {err}[/red]")
        console.print(f"[dim]Check logs at: {log_file}[/dim]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
