"""Shared fixtures."""

from __future__ import annotations

import pytest


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    """Sleep replacement that records delays."""
    return FakeSleep()
