"""Tests for error classification and reporting."""

from __future__ import annotations

import errno
from types import SimpleNamespace
from unittest.mock import Mock

import aiohttp

from relay_tui.errors import (
    AuthError,
    ChannelError,
    ErrorCategory,
    ErrorReporter,
    NetworkError,
    RateLimitError,
    ServerError,
    classify_error,
    get_status_code,
    is_network_error,
    is_transient_error,
)


class TestStatusCode:
    """Tests for status extraction."""

    def test_status_attribute(self):
        """A status attribute is used directly."""
        assert get_status_code(SimpleNamespace(status=404)) == 404

    def test_response_status(self):
        """response.status is used when the error wraps a response."""
        error = SimpleNamespace(response=SimpleNamespace(status=502))
        assert get_status_code(error) == 502

    def test_no_status(self):
        """Plain exceptions carry no status."""
        assert get_status_code(RuntimeError("x")) is None


class TestNetworkDetection:
    """Tests for network failure detection."""

    def test_message_patterns(self):
        """Known connection failure strings are recognized."""
        for text in ("connect ECONNREFUSED", "getaddrinfo ENOTFOUND host", "fetch failed"):
            assert is_network_error(Exception(text))

    def test_os_errors(self):
        """Connection-related errnos are network errors."""
        assert is_network_error(ConnectionRefusedError(errno.ECONNREFUSED, "refused"))
        assert is_network_error(OSError(errno.ENETUNREACH, "unreachable"))

    def test_aiohttp_connection_errors(self):
        """aiohttp connection failures are network errors."""
        assert is_network_error(aiohttp.ServerDisconnectedError())

    def test_timeouts(self):
        """Timeouts are network errors."""
        assert is_network_error(TimeoutError())

    def test_unrelated_error(self):
        """Ordinary exceptions are not network errors."""
        assert not is_network_error(KeyError("chat"))


class TestClassifyError:
    """Tests for classify_error."""

    def test_relay_error_keeps_its_code(self):
        """Relay exceptions are classified by their own attributes."""
        info = classify_error(ChannelError("closed", context={"url": "ws://x"}))
        assert info.code == "CHANNEL_ERROR"
        assert info.category == ErrorCategory.NETWORK
        assert info.recoverable is True
        assert info.context == {"url": "ws://x"}

    def test_foreign_401_is_auth(self):
        """A foreign error with status 401 maps onto AUTH_ERROR."""
        info = classify_error(SimpleNamespace(status=401))
        assert info.code == "AUTH_ERROR"
        assert info.category == ErrorCategory.AUTH
        assert info.status == 401

    def test_foreign_5xx_is_server_error(self):
        """5xx statuses map onto SERVER_ERROR."""
        error = Exception("bad gateway")
        error.status_code = 502
        info = classify_error(error)
        assert info.code == "SERVER_ERROR"
        assert info.status == 502

    def test_foreign_404(self):
        """404 maps onto NOT_FOUND and is not recoverable."""
        error = Exception("missing")
        error.status = 404
        info = classify_error(error)
        assert info.code == "NOT_FOUND"
        assert info.recoverable is False

    def test_foreign_network(self):
        """Network-looking errors without status are NETWORK_ERROR."""
        info = classify_error(Exception("ECONNRESET"), {"action": "load_chats"})
        assert info.code == "NETWORK_ERROR"
        assert info.context == {"action": "load_chats"}

    def test_unknown(self):
        """Anything else is UNKNOWN_ERROR with its message."""
        info = classify_error(RuntimeError("odd"))
        assert info.code == "UNKNOWN_ERROR"
        assert info.message == "odd"


class TestTransient:
    """Tests for the default retry classifier."""

    def test_network_and_server_errors_are_transient(self):
        """Network errors and 5xx responses may be retried."""
        assert is_transient_error(NetworkError())
        assert is_transient_error(ServerError(status=503))
        assert is_transient_error(ConnectionResetError())

    def test_auth_and_client_errors_are_permanent(self):
        """Authorization failures and other errors are not retried."""
        assert not is_transient_error(AuthError(status=401))
        assert not is_transient_error(RateLimitError(retry_after=5))
        assert not is_transient_error(ValueError("nope"))


class TestRateLimitError:
    """Tests for RateLimitError."""

    def test_recovery_action_mentions_wait(self):
        """The recovery hint includes the Retry-After value."""
        error = RateLimitError(retry_after=30)
        assert error.status == 429
        assert error.recovery_action == "Wait 30 seconds before trying again"


class TestErrorReporter:
    """Tests for ErrorReporter."""

    def test_handle_records_newest_first(self):
        """Recent errors are kept newest first."""
        reporter = ErrorReporter()
        reporter.handle(NetworkError("first"))
        reporter.handle(AuthError("second"))
        assert [info.message for info in reporter.recent_errors] == ["second", "first"]

    def test_history_bounded(self):
        """Only max_recent errors are kept."""
        reporter = ErrorReporter(max_recent=3)
        for n in range(5):
            reporter.handle(RuntimeError(str(n)))
        assert [info.message for info in reporter.recent_errors] == ["4", "3", "2"]

    def test_listeners_notified(self):
        """Subscribed listeners receive each classified error."""
        reporter = ErrorReporter()
        listener = Mock()
        unsubscribe = reporter.subscribe(listener)

        info = reporter.handle(ServerError(status=500))
        listener.assert_called_once_with(info)

        unsubscribe()
        unsubscribe()
        reporter.handle(ServerError(status=500))
        assert listener.call_count == 1

    def test_failing_listener_does_not_stop_others(self):
        """A listener that raises is logged and the others still run."""
        reporter = ErrorReporter()
        second = Mock()
        reporter.subscribe(Mock(side_effect=RuntimeError("listener bug")))
        reporter.subscribe(second)

        reporter.handle(NetworkError())
        second.assert_called_once()

    def test_notify_false_skips_listeners(self):
        """notify=False records without broadcasting."""
        reporter = ErrorReporter()
        listener = Mock()
        reporter.subscribe(listener)
        reporter.handle(NetworkError(), notify=False)
        listener.assert_not_called()
        assert len(reporter.recent_errors) == 1

    def test_clear(self):
        """clear() forgets history."""
        reporter = ErrorReporter()
        reporter.handle(NetworkError())
        reporter.clear()
        assert reporter.recent_errors == ()

    def test_user_messages(self):
        """User messages depend on the category."""
        network = classify_error(NetworkError())
        auth = classify_error(AuthError())
        unknown = classify_error(RuntimeError("x"))
        assert "network" in ErrorReporter.user_message(network)
        assert "re-authenticate" in ErrorReporter.user_message(auth)
        assert ErrorReporter.user_message(unknown) == "An unexpected error occurred."
