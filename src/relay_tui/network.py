"""Connectivity tracking derived from gateway request outcomes."""

from __future__ import annotations

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

StatusListener = Callable[[bool], None]


class NetworkMonitor:
    """Flips to offline after a run of consecutive network failures.

    A single successful request brings it back online. Listeners receive the
    new is_offline value and are only called when it changes.
    """

    def __init__(self, max_consecutive_failures: int = 3) -> None:
        if max_consecutive_failures < 1:
            raise ValueError(
                f"max_consecutive_failures must be >= 1, got {max_consecutive_failures}"
            )
        self.max_consecutive_failures = max_consecutive_failures
        self.consecutive_failures = 0
        self.is_offline = False
        self._listeners: list[StatusListener] = []

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a status listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def mark_online(self) -> None:
        """Record a request that reached the gateway."""
        self.consecutive_failures = 0
        if self.is_offline:
            logger.info("Gateway reachable again")
            self._set_offline(False)

    def mark_failure(self) -> None:
        """Record a request that failed with a network error."""
        self.consecutive_failures += 1
        if not self.is_offline and self.consecutive_failures >= self.max_consecutive_failures:
            logger.warning(
                f"Gateway unreachable after {self.consecutive_failures} consecutive failures",
                extra={"extra_context": {"failures": self.consecutive_failures}},
            )
            self._set_offline(True)

    def _set_offline(self, offline: bool) -> None:
        self.is_offline = offline
        for listener in list(self._listeners):
            try:
                listener(offline)
            except Exception:
                logger.exception("Network status listener failed")
