"""Tests for retry handler functionality."""

from __future__ import annotations

import random
from unittest.mock import Mock

import pytest

from relay_tui.errors import AuthError, ServerError, ValidationError
from relay_tui.retry_handler import (
    RETRY_PRESETS,
    RetryConfig,
    RetryContext,
    RetryHandler,
    calculate_backoff,
    create_retry_handler,
    retryable,
    with_retry,
)


class StatusError(Exception):
    """Foreign exception carrying an HTTP status."""

    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.status = status


class Flaky:
    """Operation that fails a number of times before succeeding."""

    def __init__(self, failures: list[BaseException], result: str = "ok") -> None:
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class TestRetryConfig:
    """Tests for RetryConfig dataclass."""

    def test_default_values(self):
        """Test default configuration values."""
        config = RetryConfig()
        assert config.max_retries == 3
        assert config.initial_delay_seconds == 1.0
        assert config.max_delay_seconds == 10.0
        assert config.backoff_multiplier == 2.0
        assert config.jitter is True
        assert config.on_retry is None

    def test_negative_max_retries_rejected(self):
        """Negative retry budgets are invalid."""
        with pytest.raises(ValueError, match="max_retries"):
            RetryConfig(max_retries=-1)

    def test_multiplier_below_one_rejected(self):
        """A shrinking backoff is invalid."""
        with pytest.raises(ValueError, match="backoff_multiplier"):
            RetryConfig(backoff_multiplier=0.5)

    def test_presets(self):
        """Presets carry the documented budgets and delays."""
        assert (RETRY_PRESETS["quick"].max_retries, RETRY_PRESETS["quick"].max_delay_seconds) == (
            3,
            2.0,
        )
        assert RETRY_PRESETS["aggressive"].max_retries == 5
        assert RETRY_PRESETS["aggressive"].initial_delay_seconds == 2.0
        assert RETRY_PRESETS["gentle"].initial_delay_seconds == 3.0
        assert RETRY_PRESETS["gentle"].max_delay_seconds == 15.0

    def test_preset_with_overrides(self):
        """Overrides replace preset fields."""
        config = RetryConfig.preset("standard", max_retries=1, jitter=False)
        assert config.max_retries == 1
        assert config.jitter is False
        assert config.max_delay_seconds == 10.0

    def test_unknown_preset(self):
        """Unknown preset names raise ValueError listing the known ones."""
        with pytest.raises(ValueError, match="quick"):
            RetryConfig.preset("reckless")


class TestCalculateBackoff:
    """Tests for the backoff formula."""

    def test_exponential_without_jitter(self):
        """Delays double per attempt."""
        config = RetryConfig(initial_delay_seconds=1.0, max_delay_seconds=100.0, jitter=False)
        assert [calculate_backoff(n, config) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self):
        """No delay exceeds max_delay_seconds."""
        config = RetryConfig(initial_delay_seconds=1.0, max_delay_seconds=5.0, jitter=False)
        assert calculate_backoff(10, config) == 5.0

    def test_jitter_within_bounds(self):
        """Jitter scales the delay by a factor in [0.5, 1.0]."""
        config = RetryConfig(initial_delay_seconds=2.0, max_delay_seconds=100.0)
        rng = random.Random(7)
        for attempt in range(1, 6):
            base = 2.0 * 2 ** (attempt - 1)
            delay = calculate_backoff(attempt, config, rng)
            assert base * 0.5 <= delay <= base

    def test_jitter_deterministic_with_seed(self):
        """The same seed yields the same delays."""
        config = RetryConfig()
        first = [calculate_backoff(n, config, random.Random(3)) for n in (1, 2, 3)]
        second = [calculate_backoff(n, config, random.Random(3)) for n in (1, 2, 3)]
        assert first == second


class TestRetryContext:
    """Tests for RetryContext."""

    def test_initial_state(self):
        """Test initial retry context state."""
        ctx = RetryContext(operation="list_chats")
        assert ctx.attempt_count == 0
        assert ctx.last_error is None

    def test_add_attempt(self):
        """Test adding retry attempts."""
        ctx = RetryContext(operation="list_chats")
        ctx.add_attempt("boom", delay=1.5, duration=0.2)
        ctx.add_attempt("boom again", delay=None, duration=0.1)

        assert ctx.attempt_count == 2
        assert ctx.attempts[0].attempt_number == 1
        assert ctx.attempts[0].delay_seconds == 1.5
        assert ctx.attempts[1].delay_seconds is None
        assert ctx.last_error == "boom again"

    def test_to_dict(self):
        """Context serializes for logging."""
        ctx = RetryContext(operation="send_text")
        ctx.add_attempt("failed", delay=1.0, duration=0.5)
        data = ctx.to_dict()
        assert data["operation"] == "send_text"
        assert data["attempt_count"] == 1
        assert data["attempts"][0]["error_message"] == "failed"


class TestWithRetry:
    """Tests for retry execution."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt_never_waits(self, fake_sleep):
        """An operation that succeeds right away is called once and never sleeps."""
        operation = Flaky([])

        result = await with_retry(operation, RetryConfig(max_retries=3), sleep=fake_sleep)

        assert result == "ok"
        assert operation.calls == 1
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_connection_refused_twice_then_ok(self, fake_sleep):
        """Two refused connections then success: three calls, result returned."""
        operation = Flaky(
            [Exception("connect ECONNREFUSED 127.0.0.1:3000")] * 2,
        )
        config = RetryConfig(max_retries=3, initial_delay_seconds=1.0, jitter=False)

        result = await with_retry(operation, config, sleep=fake_sleep)

        assert result == "ok"
        assert operation.calls == 3
        assert fake_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_unauthorized_is_not_retried(self, fake_sleep):
        """A 401 fails immediately with the original error."""
        error = StatusError("Unauthorized", status=401)
        operation = Flaky([error])

        with pytest.raises(StatusError) as exc_info:
            await with_retry(operation, RetryConfig(max_retries=3), sleep=fake_sleep)

        assert exc_info.value is error
        assert operation.calls == 1
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_auth_error_message_mentioning_network_not_retried(self, fake_sleep):
        """Status wins over message patterns."""
        operation = Flaky([StatusError("Network Error", status=403)])
        with pytest.raises(StatusError):
            await with_retry(operation, RetryConfig(), sleep=fake_sleep)
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_zero_retries_means_single_attempt(self, fake_sleep):
        """max_retries=0 runs the operation once."""
        operation = Flaky([ConnectionResetError("reset")])
        with pytest.raises(ConnectionResetError):
            await with_retry(operation, RetryConfig(max_retries=0), sleep=fake_sleep)
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_budget_exhausted_raises_last_error(self, fake_sleep):
        """Persistent transient failures run 1 + max_retries attempts."""
        errors = [ServerError(f"down {n}", status=503) for n in range(5)]
        operation = Flaky(errors)

        with pytest.raises(ServerError, match="down 2"):
            await with_retry(
                operation, RetryConfig(max_retries=2, jitter=False), sleep=fake_sleep
            )

        assert operation.calls == 3
        assert len(fake_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_unknown_errors_are_permanent(self, fake_sleep):
        """Errors that are neither network nor 5xx are not retried."""
        operation = Flaky([ValueError("bad payload")])
        with pytest.raises(ValueError):
            await with_retry(operation, RetryConfig(), sleep=fake_sleep)
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_on_retry_called_before_each_wait(self, fake_sleep):
        """on_retry receives the failed attempt number and the delay."""
        hook = Mock()
        config = RetryConfig(max_retries=3, jitter=False, on_retry=hook)
        operation = Flaky([TimeoutError(), TimeoutError()])

        await with_retry(operation, config, sleep=fake_sleep)

        assert [c.args for c in hook.call_args_list] == [(1, 1.0), (2, 2.0)]

    @pytest.mark.asyncio
    async def test_custom_classifier(self, fake_sleep):
        """is_retryable overrides the default classification."""
        config = RetryConfig(max_retries=2, jitter=False, is_retryable=lambda e: True)
        operation = Flaky([ValidationError("flaky validation")])

        assert await with_retry(operation, config, sleep=fake_sleep) == "ok"
        assert operation.calls == 2

    @pytest.mark.asyncio
    async def test_failing_classifier_treated_as_permanent(self, fake_sleep):
        """A classifier that raises stops retrying."""

        def classifier(error: BaseException) -> bool:
            raise RuntimeError("classifier bug")

        operation = Flaky([ConnectionError("down")])
        with pytest.raises(ConnectionError):
            await with_retry(
                operation, RetryConfig(is_retryable=classifier), sleep=fake_sleep
            )
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_context_records_attempts(self, fake_sleep):
        """Each failed attempt lands in the context."""
        ctx = RetryContext(operation="get_messages")
        operation = Flaky([ConnectionError("a"), AuthError("b", status=401)])

        with pytest.raises(AuthError):
            await with_retry(operation, RetryConfig(jitter=False), context=ctx, sleep=fake_sleep)

        assert ctx.attempt_count == 2
        assert ctx.attempts[0].delay_seconds == 1.0
        assert ctx.attempts[1].delay_seconds is None


class TestRetryable:
    """Tests for the decorator form."""

    @pytest.mark.asyncio
    async def test_forwards_arguments_and_keeps_metadata(self, fake_sleep):
        """Decorated functions keep their name and receive all arguments."""
        calls = []

        @retryable(RetryConfig(jitter=False), sleep=fake_sleep)
        async def fetch(chat_id: str, *, limit: int = 10) -> str:
            """Fetch something."""
            calls.append((chat_id, limit))
            if len(calls) == 1:
                raise ConnectionError("first call fails")
            return f"{chat_id}:{limit}"

        assert fetch.__name__ == "fetch"
        assert fetch.__doc__ == "Fetch something."
        assert await fetch("123@c.us", limit=5) == "123@c.us:5"
        assert calls == [("123@c.us", 5), ("123@c.us", 5)]


class TestFactory:
    """Tests for factory function."""

    def test_create_retry_handler(self):
        """Test factory function creates handler correctly."""
        config = RetryConfig(max_retries=5)
        handler = create_retry_handler(config)

        assert isinstance(handler, RetryHandler)
        assert handler.config.max_retries == 5

    def test_default_handler_uses_standard_preset(self):
        """Handlers without config use the standard preset."""
        assert RetryHandler().config == RETRY_PRESETS["standard"]
