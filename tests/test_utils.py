"""Tests for configuration loading and id helpers."""

from __future__ import annotations

import json
from pathlib import Path
from urllib.parse import parse_qs, urlsplit

import pytest

from relay_tui.errors import ConfigError
from relay_tui.utils import (
    CHANNEL_EVENTS,
    ENV_API_KEY,
    ENV_GATEWAY_URL,
    ENV_SESSION,
    Config,
    build_ws_url,
    is_group_chat,
    load_config,
    normalize_id,
    redact_url,
    validate_gateway_url,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer environment variables out of config tests."""
    for name in (ENV_GATEWAY_URL, ENV_API_KEY, ENV_SESSION):
        monkeypatch.delenv(name, raising=False)


def _write_config(path: Path, payload: dict) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


class TestConfigFromDict:
    """Tests for Config.from_dict validation."""

    def test_defaults(self, tmp_path):
        """An empty payload yields defaults."""
        config = Config.from_dict({"cache_dir": str(tmp_path)})
        assert config.gateway_url == "http://localhost:3000"
        assert config.session_name == "default"
        assert config.retry_preset == "standard"
        assert config.reconnect_max_attempts == 0
        assert config.cache_dir == tmp_path.resolve()

    def test_trailing_slash_stripped(self):
        """Gateway URLs are normalized without a trailing slash."""
        config = Config.from_dict({"gateway_url": "https://gw.example.com/"})
        assert config.gateway_url == "https://gw.example.com"

    def test_invalid_gateway_url(self):
        """Non-http URLs raise ConfigError."""
        with pytest.raises(ConfigError):
            Config.from_dict({"gateway_url": "localhost:3000"})

    def test_unknown_retry_preset(self):
        """Unknown retry presets are rejected."""
        with pytest.raises(ValueError, match="retry preset"):
            Config.from_dict({"retry_preset": "yolo"})

    def test_non_positive_numbers_rejected(self):
        """Timeouts and sizes must be positive."""
        with pytest.raises(ValueError, match="presence_idle_seconds"):
            Config.from_dict({"presence_idle_seconds": 0})

    def test_reconnect_bounds(self):
        """The reconnect delay cap cannot be below the initial delay."""
        with pytest.raises(ValueError, match="reconnect_max_delay_seconds"):
            Config.from_dict(
                {"reconnect_initial_delay_seconds": 10, "reconnect_max_delay_seconds": 5}
            )

    def test_negative_reconnect_attempts(self):
        """reconnect_max_attempts must not be negative."""
        with pytest.raises(ValueError, match="reconnect_max_attempts"):
            Config.from_dict({"reconnect_max_attempts": -1})

    def test_retry_and_reconnect_configs(self):
        """Derived retry policies follow the config."""
        config = Config.from_dict(
            {
                "retry_preset": "quick",
                "reconnect_initial_delay_seconds": 2,
                "reconnect_max_delay_seconds": 60,
            }
        )
        assert config.retry_config().max_delay_seconds == 2.0
        reconnect = config.reconnect_config()
        assert reconnect.initial_delay_seconds == 2.0
        assert reconnect.max_delay_seconds == 60.0


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_uses_defaults(self, tmp_path):
        """A missing config file is not an error."""
        config = load_config(tmp_path / "missing.json")
        assert config.gateway_url == "http://localhost:3000"

    def test_reads_file(self, tmp_path):
        """Values come from the JSON file."""
        path = _write_config(
            tmp_path / "config.json",
            {"gateway_url": "http://gw:3000", "api_key": "secret", "session_name": "work"},
        )
        config = load_config(path)
        assert config.gateway_url == "http://gw:3000"
        assert config.api_key == "secret"
        assert config.session_name == "work"

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        """Environment variables win over the file."""
        path = _write_config(tmp_path / "config.json", {"session_name": "work"})
        monkeypatch.setenv(ENV_SESSION, "personal")
        monkeypatch.setenv(ENV_API_KEY, "from-env")

        config = load_config(path)
        assert config.session_name == "personal"
        assert config.api_key == "from-env"

    def test_invalid_json(self, tmp_path):
        """Broken JSON raises ConfigError."""
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="Failed to read config"):
            load_config(path)

    def test_non_object_json(self, tmp_path):
        """A JSON array is not a config."""
        path = _write_config(tmp_path / "config.json", [])
        with pytest.raises(ConfigError, match="JSON object"):
            load_config(path)


class TestBuildWsUrl:
    """Tests for channel URL derivation."""

    def test_http_becomes_ws(self):
        """http maps to ws and /ws is appended."""
        url = build_ws_url("http://localhost:3000", "default")
        parts = urlsplit(url)
        assert parts.scheme == "ws"
        assert parts.netloc == "localhost:3000"
        assert parts.path == "/ws"

    def test_https_becomes_wss(self):
        """https maps to wss and an existing /ws path is kept."""
        url = build_ws_url("https://gw.example.com/ws", "default")
        parts = urlsplit(url)
        assert parts.scheme == "wss"
        assert parts.path == "/ws"

    def test_query_parameters(self):
        """Session, every event and the API key are passed as query parameters."""
        query = parse_qs(urlsplit(build_ws_url("http://gw", "work", "k3y")).query)
        assert query["session"] == ["work"]
        assert query["events"] == list(CHANNEL_EVENTS)
        assert query["x-api-key"] == ["k3y"]

    def test_no_api_key(self):
        """The key parameter is omitted when there is no key."""
        query = parse_qs(urlsplit(build_ws_url("http://gw")).query)
        assert "x-api-key" not in query
        assert query["session"] == ["*"]


class TestHelpers:
    """Tests for small helpers."""

    def test_redact_url(self):
        """Secrets are masked."""
        assert redact_url("ws://gw/ws?x-api-key=abc", "abc") == "ws://gw/ws?x-api-key=***"
        assert redact_url("ws://gw/ws", "") == "ws://gw/ws"

    def test_normalize_id(self):
        """Domain suffixes are stripped."""
        assert normalize_id("123@c.us") == "123"
        assert normalize_id("456@lid") == "456"
        assert normalize_id(None) == ""

    def test_is_group_chat(self):
        """Groups use the g.us suffix."""
        assert is_group_chat("123-456@g.us")
        assert not is_group_chat("123@c.us")

    def test_validate_gateway_url_empty(self):
        """Empty URLs are rejected."""
        with pytest.raises(ConfigError, match="required"):
            validate_gateway_url("")
