"""Retry handler for gateway calls with exponential backoff.

This module provides retry logic with exponential backoff, optional jitter and
a pluggable retryability classifier for asynchronous remote calls. Every
request the gateway client makes goes through it.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, ParamSpec, TypeVar

from .errors import is_transient_error

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = ParamSpec("P")

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    """Maximum number of retries after the first attempt (default: 3)"""

    initial_delay_seconds: float = 1.0
    """Delay before the first retry in seconds (default: 1.0)"""

    max_delay_seconds: float = 10.0
    """Upper bound for any single delay in seconds (default: 10.0)"""

    backoff_multiplier: float = 2.0
    """Exponential backoff multiplier (default: 2.0)"""

    jitter: bool = True
    """Scale each delay by a random factor in [0.5, 1.0] (default: True)"""

    is_retryable: Callable[[BaseException], bool] = is_transient_error
    """Classifier deciding whether a failure may be retried"""

    on_retry: Callable[[int, float], None] | None = None
    """Observability hook called with (attempt, delay) before each wait"""

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.initial_delay_seconds < 0:
            raise ValueError(
                f"initial_delay_seconds must be >= 0, got {self.initial_delay_seconds}"
            )
        if self.max_delay_seconds < 0:
            raise ValueError(f"max_delay_seconds must be >= 0, got {self.max_delay_seconds}")
        if self.backoff_multiplier < 1:
            raise ValueError(
                f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}"
            )

    @classmethod
    def preset(cls, name: str, **overrides: Any) -> RetryConfig:
        """Build a config from a named preset, applying overrides on top.

        Args:
            name: One of "quick", "standard", "aggressive", "gentle"
            **overrides: Field values replacing the preset's

        Returns:
            Retry configuration

        Raises:
            ValueError: If the preset name is unknown
        """
        try:
            base = RETRY_PRESETS[name]
        except KeyError:
            known = ", ".join(sorted(RETRY_PRESETS))
            raise ValueError(f"Unknown retry preset '{name}' (expected one of: {known})") from None
        return replace(base, **overrides) if overrides else base


RETRY_PRESETS: dict[str, RetryConfig] = {
    # Minor network hiccups
    "quick": RetryConfig(max_retries=3, initial_delay_seconds=0.5, max_delay_seconds=2.0),
    # Regular API calls
    "standard": RetryConfig(max_retries=3, initial_delay_seconds=1.0, max_delay_seconds=10.0),
    # Critical operations
    "aggressive": RetryConfig(max_retries=5, initial_delay_seconds=2.0, max_delay_seconds=30.0),
    # Background work that can wait
    "gentle": RetryConfig(max_retries=3, initial_delay_seconds=3.0, max_delay_seconds=15.0),
}


@dataclass
class RetryAttempt:
    """Record of a single failed attempt."""

    attempt_number: int
    timestamp: str
    error_message: str
    delay_seconds: float | None
    duration_seconds: float


@dataclass
class RetryContext:
    """Context for tracking retry state across attempts."""

    operation: str
    attempts: list[RetryAttempt] = field(default_factory=list)
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def attempt_count(self) -> int:
        """Get total number of failed attempts recorded."""
        return len(self.attempts)

    @property
    def last_error(self) -> str | None:
        """Error message of the most recent failed attempt."""
        return self.attempts[-1].error_message if self.attempts else None

    @property
    def total_duration_seconds(self) -> float:
        """Get total duration across all attempts."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    def add_attempt(
        self,
        error_message: str,
        delay: float | None,
        duration: float,
    ) -> None:
        """Record a failed attempt."""
        self.attempts.append(
            RetryAttempt(
                attempt_number=self.attempt_count + 1,
                timestamp=datetime.now(UTC).isoformat(),
                error_message=error_message,
                delay_seconds=delay,
                duration_seconds=duration,
            )
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "operation": self.operation,
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": self.total_duration_seconds,
            "attempt_count": self.attempt_count,
            "attempts": [asdict(a) for a in self.attempts],
        }


def calculate_backoff(
    attempt: int,
    config: RetryConfig,
    rng: random.Random | None = None,
) -> float:
    """Calculate exponential backoff delay.

    Args:
        attempt: Number of the attempt that just failed (1-indexed)
        config: Retry configuration
        rng: Random source for jitter (module-level random if None)

    Returns:
        Backoff delay in seconds, never above config.max_delay_seconds
    """
    delay = config.initial_delay_seconds * (config.backoff_multiplier ** (attempt - 1))
    delay = min(delay, config.max_delay_seconds)
    if config.jitter:
        factor = (rng or random).uniform(0.5, 1.0)
        delay = min(delay * factor, config.max_delay_seconds)
    return delay


class RetryHandler:
    """Runs asynchronous operations under a retry policy."""

    def __init__(
        self,
        config: RetryConfig | None = None,
        rng: random.Random | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize retry handler.

        Args:
            config: Retry configuration (standard preset if None)
            rng: Random source for jitter, injectable for deterministic tests
            sleep: Coroutine function used to wait between attempts
        """
        self.config = config or RETRY_PRESETS["standard"]
        self.rng = rng
        self.sleep = sleep

    def _should_retry(self, attempt: int, error: BaseException) -> bool:
        """Determine if a failed attempt should be retried.

        Args:
            attempt: Number of the attempt that failed (1-indexed)
            error: The exception it raised

        Returns:
            True if should retry, False otherwise
        """
        if attempt > self.config.max_retries:
            return False
        try:
            return bool(self.config.is_retryable(error))
        except Exception:
            logger.exception("Retry classifier failed, treating error as permanent")
            return False

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        context: RetryContext | None = None,
        name: str | None = None,
    ) -> T:
        """Execute an operation with retry logic.

        Args:
            operation: Zero-argument coroutine function to run
            context: Optional context recording each failed attempt
            name: Label used in log lines (defaults to the context's operation)

        Returns:
            Result of the first successful attempt

        Raises:
            The last exception raised by operation, unchanged, once the error
            is not retryable or the retry budget is exhausted.
        """
        if name is None:
            name = context.operation if context else getattr(operation, "__name__", "operation")
        total = self.config.max_retries + 1
        attempt = 0

        while True:
            attempt += 1
            start_time = time.monotonic()
            try:
                result = await operation()
            except Exception as err:
                duration = time.monotonic() - start_time

                if not self._should_retry(attempt, err):
                    if context is not None:
                        context.add_attempt(str(err), None, duration)
                    logger.error(
                        f"{name} failed after {attempt}/{total} attempt(s): {err}",
                        extra={"extra_context": {"operation": name, "attempts": attempt}},
                    )
                    raise

                delay = calculate_backoff(attempt, self.config, self.rng)
                if context is not None:
                    context.add_attempt(str(err), delay, duration)
                logger.warning(
                    f"{name} attempt {attempt}/{total} failed, retrying in {delay:.2f}s: {err}"
                )
                if self.config.on_retry is not None:
                    self.config.on_retry(attempt, delay)
                await self.sleep(delay)
                continue

            if attempt > 1:
                logger.debug(f"{name} succeeded on attempt {attempt}/{total}")
            return result


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    *,
    context: RetryContext | None = None,
    rng: random.Random | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """Run operation under the given retry policy.

    Example:
        result = await with_retry(fetch_chats, RetryConfig(max_retries=3))
    """
    return await RetryHandler(config, rng=rng, sleep=sleep).execute(operation, context)


def retryable(
    config: RetryConfig | None = None,
    *,
    rng: random.Random | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator applying the retry policy to every call of a coroutine function.

    Example:
        @retryable(RetryConfig.preset("quick"))
        async def fetch(chat_id: str) -> list[dict]: ...
    """
    handler = RetryHandler(config, rng=rng, sleep=sleep)

    def decorator(fn: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await handler.execute(lambda: fn(*args, **kwargs), name=fn.__qualname__)

        return wrapper

    return decorator


def create_retry_handler(config: RetryConfig) -> RetryHandler:
    """Factory function to create a retry handler.

    Args:
        config: Retry configuration

    Returns:
        Configured RetryHandler instance
    """
    return RetryHandler(config)
