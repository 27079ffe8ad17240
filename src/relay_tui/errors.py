"""Error taxonomy, classification and reporting.

This module defines the exception hierarchy raised by the gateway client and
the real-time channel, a classifier that maps any exception (including
foreign ones from aiohttp or the OS) onto a small set of categories, and an
ErrorReporter that keeps recent errors for display.
"""

from __future__ import annotations

import asyncio
import errno
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Broad error categories used for retry and display decisions."""

    NETWORK = "network"
    API = "api"
    AUTH = "auth"
    VALIDATION = "validation"
    STATE = "state"
    UNKNOWN = "unknown"


class RelayError(Exception):
    """Base exception for all relay-tui errors."""

    code = "RELAY_ERROR"
    category = ErrorCategory.UNKNOWN
    recoverable = False
    recovery_action: str | None = None
    default_message = "An unexpected error occurred."

    def __init__(
        self,
        message: str | None = None,
        *,
        status: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message or self.default_message)
        self.status = status
        self.context = dict(context or {})


class NetworkError(RelayError):
    """Raised when the gateway cannot be reached (refused, reset, timeout)."""

    code = "NETWORK_ERROR"
    category = ErrorCategory.NETWORK
    recoverable = True
    recovery_action = "Check your network connection and try again"
    default_message = "Unable to connect. Please check your network connection."


class ChannelError(NetworkError):
    """Raised when the real-time channel fails to open or send."""

    code = "CHANNEL_ERROR"
    recovery_action = "The channel reconnects automatically"
    default_message = "Real-time channel unavailable."


class AuthError(RelayError):
    """Raised on 401/403 responses. Never retried."""

    code = "AUTH_ERROR"
    category = ErrorCategory.AUTH
    recoverable = True
    recovery_action = "Check the gateway API key"
    default_message = "Authentication failed. Please re-authenticate."


class GatewayAPIError(RelayError):
    """Raised for gateway responses that are not covered by a subclass."""

    code = "API_ERROR"
    category = ErrorCategory.API
    recoverable = True
    default_message = "The gateway rejected the request."


class NotFoundError(GatewayAPIError):
    """Raised on 404 responses."""

    code = "NOT_FOUND"
    recoverable = False
    default_message = "The requested resource was not found."


class ServerError(GatewayAPIError):
    """Raised on 5xx responses."""

    code = "SERVER_ERROR"
    recovery_action = "Wait a moment and try again"
    default_message = "Server error. Please try again later."


class RateLimitError(GatewayAPIError):
    """Raised on 429 responses."""

    code = "RATE_LIMIT_ERROR"
    default_message = "Too many requests. Please slow down."

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after: float | None = None,
        status: int | None = 429,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, status=status, context=context)
        self.retry_after = retry_after
        wait = f"{retry_after:g}" if retry_after is not None else "a few"
        self.recovery_action = f"Wait {wait} seconds before trying again"


class ValidationError(RelayError):
    """Raised when user input or gateway payloads fail validation."""

    code = "VALIDATION_ERROR"
    category = ErrorCategory.VALIDATION
    recoverable = True
    recovery_action = "Check your input and try again"


class ConfigError(RelayError):
    """Raised when configuration is invalid or cannot be loaded."""

    code = "CONFIG_ERROR"
    category = ErrorCategory.VALIDATION
    recovery_action = "Check your configuration and try again"


class StateError(RelayError):
    """Raised when application state is inconsistent beyond self-healing."""

    code = "STATE_ERROR"
    category = ErrorCategory.STATE
    recovery_action = "Restart the application"


NETWORK_ERROR_PATTERNS = (
    "ECONNREFUSED",
    "ECONNRESET",
    "ENOTFOUND",
    "ETIMEDOUT",
    "ENETUNREACH",
    "ERR_NETWORK",
    "Network Error",
    "Failed to fetch",
    "fetch failed",
)

_NETWORK_ERRNOS = {
    errno.ECONNREFUSED,
    errno.ECONNRESET,
    errno.ETIMEDOUT,
    errno.ENETUNREACH,
    errno.EHOSTUNREACH,
    errno.ECONNABORTED,
    errno.EPIPE,
}

_AUTH_STATUSES = (401, 403)


@dataclass(frozen=True)
class ErrorInfo:
    """Structured description of a classified exception."""

    code: str
    message: str
    category: ErrorCategory
    status: int | None = None
    recoverable: bool = False
    recovery_action: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    error: BaseException | None = field(default=None, compare=False, repr=False)


def get_status_code(error: BaseException) -> int | None:
    """Extract an HTTP-like status from an exception, if it carries one."""
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    if response is not None:
        value = getattr(response, "status", None)
        if isinstance(value, int):
            return value
        if isinstance(response, dict) and isinstance(response.get("status"), int):
            return response["status"]
    return None


def is_network_error(error: BaseException) -> bool:
    """Check whether an exception describes a transient connectivity failure."""
    if isinstance(error, NetworkError):
        return True
    if isinstance(error, (aiohttp.ClientConnectionError, asyncio.TimeoutError, TimeoutError)):
        return True
    if isinstance(error, ConnectionError):
        return True
    if isinstance(error, OSError) and error.errno in _NETWORK_ERRNOS:
        return True

    text = str(error)
    code = getattr(error, "code", None)
    code_text = code if isinstance(code, str) else ""
    return any(pattern in text or pattern in code_text for pattern in NETWORK_ERROR_PATTERNS)


def classify_error(error: BaseException, context: dict[str, Any] | None = None) -> ErrorInfo:
    """Map any exception onto an ErrorInfo.

    Relay exceptions keep their own code and category. Foreign exceptions are
    classified by status code first (so an object carrying status 401 is an
    auth error even if its message looks like a network failure), then by
    network patterns.

    Args:
        error: Exception to classify
        context: Extra context merged into the result

    Returns:
        Classified error information
    """
    merged = dict(context or {})

    if isinstance(error, RelayError):
        merged = {**error.context, **merged}
        return ErrorInfo(
            code=error.code,
            message=str(error),
            category=error.category,
            status=error.status,
            recoverable=error.recoverable,
            recovery_action=error.recovery_action,
            context=merged,
            error=error,
        )

    status = get_status_code(error)
    if status is not None:
        merged["status"] = status
        if status in _AUTH_STATUSES:
            return ErrorInfo(
                code=AuthError.code,
                message=AuthError.default_message,
                category=ErrorCategory.AUTH,
                status=status,
                recoverable=True,
                recovery_action=AuthError.recovery_action,
                context=merged,
                error=error,
            )
        if status == 404:
            return ErrorInfo(
                code=NotFoundError.code,
                message=NotFoundError.default_message,
                category=ErrorCategory.API,
                status=status,
                context=merged,
                error=error,
            )
        if status >= 500:
            return ErrorInfo(
                code=ServerError.code,
                message=ServerError.default_message,
                category=ErrorCategory.API,
                status=status,
                recoverable=True,
                recovery_action=ServerError.recovery_action,
                context=merged,
                error=error,
            )
        return ErrorInfo(
            code=GatewayAPIError.code,
            message=str(error) or GatewayAPIError.default_message,
            category=ErrorCategory.API,
            status=status,
            recoverable=True,
            context=merged,
            error=error,
        )

    if is_network_error(error):
        return ErrorInfo(
            code=NetworkError.code,
            message=NetworkError.default_message,
            category=ErrorCategory.NETWORK,
            recoverable=True,
            recovery_action=NetworkError.recovery_action,
            context=merged,
            error=error,
        )

    return ErrorInfo(
        code="UNKNOWN_ERROR",
        message=str(error) or RelayError.default_message,
        category=ErrorCategory.UNKNOWN,
        context=merged,
        error=error,
    )


def is_transient_error(error: BaseException) -> bool:
    """Default retry classifier: network failures and server errors only."""
    info = classify_error(error)
    if info.category == ErrorCategory.NETWORK:
        return True
    return info.category == ErrorCategory.API and info.code == ServerError.code


ErrorListener = Callable[[ErrorInfo], None]


class ErrorReporter:
    """Collects terminal errors for display and keeps a short history."""

    def __init__(self, max_recent: int = 50) -> None:
        self.max_recent = max_recent
        self._recent: list[ErrorInfo] = []
        self._listeners: list[ErrorListener] = []

    @property
    def recent_errors(self) -> tuple[ErrorInfo, ...]:
        """Most recent errors first."""
        return tuple(self._recent)

    def subscribe(self, listener: ErrorListener) -> Callable[[], None]:
        """Register a listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def handle(
        self,
        error: BaseException,
        context: dict[str, Any] | None = None,
        notify: bool = True,
    ) -> ErrorInfo:
        """Classify, log, record and broadcast an error.

        Args:
            error: Exception that reached the caller
            context: Extra context (component, action, ...)
            notify: Whether to call listeners

        Returns:
            The classified error
        """
        info = classify_error(error, context)

        self._recent.insert(0, info)
        del self._recent[self.max_recent :]

        logger.warning(
            f"[{info.code}] {info.message}",
            extra={"extra_context": {"category": info.category.value, **info.context}},
        )

        if notify:
            for listener in list(self._listeners):
                try:
                    listener(info)
                except Exception:
                    logger.exception("Error listener failed")

        return info

    def clear(self) -> None:
        """Forget all recorded errors."""
        self._recent.clear()

    @staticmethod
    def user_message(info: ErrorInfo) -> str:
        """Short, user-facing message for an error."""
        if info.category == ErrorCategory.NETWORK:
            return "Connection problem. Please check your network."
        if info.category == ErrorCategory.AUTH:
            return "Session expired or API key rejected. Please re-authenticate."
        if info.category in (ErrorCategory.API, ErrorCategory.VALIDATION):
            return info.message or "Something went wrong. Please try again."
        return "An unexpected error occurred."
