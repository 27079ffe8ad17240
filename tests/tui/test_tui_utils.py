"""Unit tests for TUI utility functions."""

from datetime import datetime

from relay_tui.tui.models import ChannelStatus
from relay_tui.tui.tui_utils import (
    ack_indicator,
    format_timestamp,
    get_status_badge,
    get_terminal_size,
    single_line,
    truncate_text,
)


class TestFormatTimestamp:
    """Tests for format_timestamp function."""

    def test_unknown(self):
        """Test zero timestamp renders as empty."""
        assert format_timestamp(0) == ""

    def test_today_shows_time(self):
        """Test same-day timestamps render as HH:MM."""
        moment = datetime(2024, 5, 17, 9, 5)
        now = datetime(2024, 5, 17, 18, 0)
        assert format_timestamp(int(moment.timestamp()), now=now) == "09:05"

    def test_older_shows_date(self):
        """Test earlier days render as DD/MM/YY."""
        moment = datetime(2024, 5, 1, 9, 5)
        now = datetime(2024, 5, 17, 18, 0)
        assert format_timestamp(int(moment.timestamp()), now=now) == "01/05/24"


class TestTruncateText:
    """Tests for truncate_text function."""

    def test_short_text_unchanged(self):
        """Test text shorter than max_len is unchanged."""
        assert truncate_text("short", 10) == "short"

    def test_exact_length_unchanged(self):
        """Test text exactly max_len is unchanged."""
        assert truncate_text("exactly10!", 10) == "exactly10!"

    def test_long_text_truncated(self):
        """Test long text is truncated with ellipsis."""
        result = truncate_text("this is a long text", 10)
        assert result == "this is..."
        assert len(result) == 10

    def test_tiny_max_len(self):
        """Test max_len below the ellipsis length."""
        assert truncate_text("hello", 3) == "..."
        assert truncate_text("hello", 2) == ".."
        assert truncate_text("hello", 0) == ""

    def test_empty_text(self):
        """Test empty text remains empty."""
        assert truncate_text("", 10) == ""


class TestSingleLine:
    """Tests for single_line function."""

    def test_newlines_collapsed(self):
        """Test multi-line text collapses to one line."""
        assert single_line("hello\n\nworld  again") == "hello world again"


class TestGetTerminalSize:
    """Tests for get_terminal_size function."""

    def test_returns_tuple(self):
        """Test returns a (columns, rows) tuple of positive ints."""
        columns, rows = get_terminal_size()
        assert columns > 0
        assert rows > 0


class TestGetStatusBadge:
    """Tests for get_status_badge function."""

    def test_connected(self):
        """Test CONNECTED status returns green dot."""
        assert get_status_badge(ChannelStatus.CONNECTED) == ("●", "green")

    def test_reconnecting(self):
        """Test RECONNECTING status returns yellow arrow."""
        assert get_status_badge(ChannelStatus.RECONNECTING) == ("↻", "yellow")

    def test_disconnected(self):
        """Test DISCONNECTED status returns red square."""
        assert get_status_badge(ChannelStatus.DISCONNECTED) == ("■", "red")

    def test_all_statuses_covered(self):
        """Test every status has a badge."""
        for status in ChannelStatus:
            glyph, color = get_status_badge(status)
            assert glyph != "?"
            assert color != "white"


class TestAckIndicator:
    """Tests for ack_indicator function."""

    def test_levels(self):
        """Test each ack level maps to its tick."""
        assert ack_indicator(-1) == ("!", "red")
        assert ack_indicator(0) == ("⏱", "dim")
        assert ack_indicator(1) == ("✓", "dim")
        assert ack_indicator(2) == ("✓✓", "dim")
        assert ack_indicator(3) == ("✓✓", "cyan")
        assert ack_indicator(4) == ("✓✓", "cyan")
