"""Shared helpers: runtime configuration and identifier utilities."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlencode, urlsplit, urlunsplit

from .errors import ConfigError
from .retry_handler import RetryConfig

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_URL = "http://localhost:3000"
DEFAULT_CONFIG_PATH = Path("~/.config/relay-tui/config.json")

ENV_GATEWAY_URL = "RELAY_GATEWAY_URL"
ENV_API_KEY = "RELAY_API_KEY"
ENV_SESSION = "RELAY_SESSION"

CHANNEL_EVENTS = (
    "session.status",
    "message",
    "message.any",
    "message.ack",
    "message.reaction",
    "message.revoked",
    "presence.update",
)


def validate_gateway_url(url: str) -> str:
    """Check that url is an absolute http(s) or ws(s) URL.

    Raises:
        ConfigError: If the URL is empty or malformed
    """
    if not url:
        raise ConfigError("Gateway URL is required", context={"config_key": "gateway_url"})
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https", "ws", "wss") or not parts.netloc:
        raise ConfigError(
            f"Gateway URL must be a valid http(s) URL, got {url!r}",
            context={"config_key": "gateway_url"},
        )
    return url.rstrip("/")


@dataclass(frozen=True)
class Config:
    """Runtime configuration loaded from config.json and the environment."""

    gateway_url: str = DEFAULT_GATEWAY_URL
    api_key: str = ""
    session_name: str = "default"
    cache_dir: Path = Path("~/.cache/relay-tui").expanduser()
    retry_preset: str = "standard"
    request_timeout_seconds: float = 15.0
    reconnect_initial_delay_seconds: float = 1.0
    reconnect_max_delay_seconds: float = 30.0
    reconnect_max_attempts: int = 0
    ws_heartbeat_seconds: float = 20.0
    presence_tick_seconds: float = 5.0
    presence_idle_seconds: float = 30.0
    presence_resubscribe_seconds: float = 300.0
    messages_page_size: int = 50
    tui_refresh_per_second: int = 8
    tui_min_terminal_cols: int = 80
    tui_min_terminal_rows: int = 24
    chat_list_viewport_rows: int = 20

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Config:
        """Create a Config object from a raw dictionary."""
        gateway_url = validate_gateway_url(str(payload.get("gateway_url", DEFAULT_GATEWAY_URL)))
        cache_dir = Path(
            os.path.expanduser(payload.get("cache_dir", "~/.cache/relay-tui"))
        ).resolve()

        retry_preset = str(payload.get("retry_preset", "standard"))
        # Raises ValueError for unknown names
        RetryConfig.preset(retry_preset)

        request_timeout_seconds = float(payload.get("request_timeout_seconds", 15.0))
        reconnect_initial = float(payload.get("reconnect_initial_delay_seconds", 1.0))
        reconnect_max = float(payload.get("reconnect_max_delay_seconds", 30.0))
        reconnect_max_attempts = int(payload.get("reconnect_max_attempts", 0))
        ws_heartbeat_seconds = float(payload.get("ws_heartbeat_seconds", 20.0))
        presence_tick_seconds = float(payload.get("presence_tick_seconds", 5.0))
        presence_idle_seconds = float(payload.get("presence_idle_seconds", 30.0))
        presence_resubscribe_seconds = float(payload.get("presence_resubscribe_seconds", 300.0))
        messages_page_size = int(payload.get("messages_page_size", 50))
        tui_refresh_per_second = int(payload.get("tui_refresh_per_second", 8))
        tui_min_terminal_cols = int(payload.get("tui_min_terminal_cols", 80))
        tui_min_terminal_rows = int(payload.get("tui_min_terminal_rows", 24))
        chat_list_viewport_rows = int(payload.get("chat_list_viewport_rows", 20))

        positive = {
            "request_timeout_seconds": request_timeout_seconds,
            "reconnect_initial_delay_seconds": reconnect_initial,
            "reconnect_max_delay_seconds": reconnect_max,
            "ws_heartbeat_seconds": ws_heartbeat_seconds,
            "presence_tick_seconds": presence_tick_seconds,
            "presence_idle_seconds": presence_idle_seconds,
            "presence_resubscribe_seconds": presence_resubscribe_seconds,
            "messages_page_size": messages_page_size,
            "tui_refresh_per_second": tui_refresh_per_second,
            "tui_min_terminal_cols": tui_min_terminal_cols,
            "tui_min_terminal_rows": tui_min_terminal_rows,
            "chat_list_viewport_rows": chat_list_viewport_rows,
        }
        for key, value in positive.items():
            if value <= 0:
                raise ValueError(f"{key} must be positive, got {value}")
        if reconnect_max_attempts < 0:
            raise ValueError(
                f"reconnect_max_attempts must be >= 0, got {reconnect_max_attempts}"
            )
        if reconnect_max < reconnect_initial:
            raise ValueError(
                "reconnect_max_delay_seconds must be >= reconnect_initial_delay_seconds"
            )

        return cls(
            gateway_url=gateway_url,
            api_key=str(payload.get("api_key", "")),
            session_name=str(payload.get("session_name", "default")),
            cache_dir=cache_dir,
            retry_preset=retry_preset,
            request_timeout_seconds=request_timeout_seconds,
            reconnect_initial_delay_seconds=reconnect_initial,
            reconnect_max_delay_seconds=reconnect_max,
            reconnect_max_attempts=reconnect_max_attempts,
            ws_heartbeat_seconds=ws_heartbeat_seconds,
            presence_tick_seconds=presence_tick_seconds,
            presence_idle_seconds=presence_idle_seconds,
            presence_resubscribe_seconds=presence_resubscribe_seconds,
            messages_page_size=messages_page_size,
            tui_refresh_per_second=tui_refresh_per_second,
            tui_min_terminal_cols=tui_min_terminal_cols,
            tui_min_terminal_rows=tui_min_terminal_rows,
            chat_list_viewport_rows=chat_list_viewport_rows,
        )

    def retry_config(self) -> RetryConfig:
        """Retry policy for gateway requests."""
        return RetryConfig.preset(self.retry_preset)

    def reconnect_config(self) -> RetryConfig:
        """Backoff shape for channel reconnects.

        max_retries is only used for validation here; the channel manager
        applies its own attempt cap from reconnect_max_attempts.
        """
        return RetryConfig(
            max_retries=self.reconnect_max_attempts,
            initial_delay_seconds=self.reconnect_initial_delay_seconds,
            max_delay_seconds=self.reconnect_max_delay_seconds,
            backoff_multiplier=2.0,
            jitter=True,
        )

    def ws_url(self) -> str:
        """WebSocket URL for the real-time channel, including query parameters."""
        return build_ws_url(self.gateway_url, self.session_name, self.api_key)


def build_ws_url(
    gateway_url: str,
    session: str = "*",
    api_key: str = "",
    events: tuple[str, ...] = CHANNEL_EVENTS,
) -> str:
    """Derive the channel URL from the gateway's HTTP URL.

    "http://localhost:3000" becomes "ws://localhost:3000/ws?session=...&events=...".
    """
    parts = urlsplit(gateway_url)
    scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme or "ws")
    path = parts.path.rstrip("/")
    if not path.endswith("/ws"):
        path = f"{path}/ws"

    query: list[tuple[str, str]] = [("session", session)]
    query.extend(("events", event) for event in events)
    if api_key:
        query.append(("x-api-key", api_key))

    return urlunsplit((scheme, parts.netloc, path, urlencode(query), ""))


def redact_url(url: str, secret: str) -> str:
    """Hide a secret (API key) inside a URL for logging."""
    if not secret:
        return url
    return url.replace(secret, "***")


def load_config(path: Path | None = None) -> Config:
    """Load configuration from JSON, overlaying environment variables.

    A missing file yields defaults; environment variables win over the file.

    Args:
        path: Path to config.json (DEFAULT_CONFIG_PATH if None)

    Returns:
        Validated configuration

    Raises:
        ConfigError: If the file is unreadable or not a JSON object
    """
    config_path = (path or DEFAULT_CONFIG_PATH).expanduser()
    payload: dict[str, Any] = {}

    if config_path.exists():
        try:
            with config_path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as err:
            raise ConfigError(f"Failed to read config {config_path}: {err}") from err
        if not isinstance(payload, dict):
            raise ConfigError(f"Config {config_path} must contain a JSON object")
    else:
        logger.info(f"No config file at {config_path}, using defaults")

    overrides = {
        "gateway_url": os.environ.get(ENV_GATEWAY_URL),
        "api_key": os.environ.get(ENV_API_KEY),
        "session_name": os.environ.get(ENV_SESSION),
    }
    payload.update({key: value for key, value in overrides.items() if value})

    return Config.from_dict(payload)


def normalize_id(contact_id: str | None) -> str:
    """Strip the domain suffix from a gateway id ("123@c.us" -> "123")."""
    if not contact_id:
        return ""
    return contact_id.split("@", 1)[0]


def is_group_chat(chat_id: str) -> bool:
    """Group chats use the "@g.us" suffix."""
    return chat_id.endswith("@g.us")
