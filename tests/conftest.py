# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Shared fixtures for webhook_relay tests.

Provides:
- ManualScheduler: deterministic clock and timer queue
- RecordingTransport: scripted HTTP outcomes, records every request
- RecordingSleep: records backoff delays without waiting
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

import pytest

from webhook_relay.config import ConfigWebhookRelay
from webhook_relay.delivery.delivery_client import DeliveryClient
from webhook_relay.exceptions import DeliveryError
from webhook_relay.models import ModelHttpRequest
from webhook_relay.scheduler import TimerCallback

# -------------------------------------------------------------------------
# Fakes
# -------------------------------------------------------------------------


class ManualTimerHandle:
    def __init__(self, due: float, callback: TimerCallback) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose clock only moves when ``advance`` is awaited."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self._timers: list[ManualTimerHandle] = []

    def monotonic(self) -> float:
        return self.now

    def call_later(self, delay_seconds: float, callback: TimerCallback) -> ManualTimerHandle:
        handle = ManualTimerHandle(self.now + delay_seconds, callback)
        self._timers.append(handle)
        return handle

    @property
    def pending(self) -> list[ManualTimerHandle]:
        return [t for t in self._timers if not t.cancelled and not t.fired]

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.now = max(self.now, timer.due)
            timer.fired = True
            await timer.callback()
        self.now = target


class RecordingTransport:
    """Transport returning scripted outcomes (status codes or exceptions).

    Once the script is exhausted every request succeeds with ``default``.
    """

    def __init__(self, outcomes: Iterable[int | Exception] = (), default: int = 200) -> None:
        self.requests: list[ModelHttpRequest] = []
        self._outcomes: deque[int | Exception] = deque(outcomes)
        self._default = default
        self.closed = False

    async def send(self, request: ModelHttpRequest) -> int:
        self.requests.append(request)
        outcome = self._outcomes.popleft() if self._outcomes else self._default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True

    @property
    def bodies(self) -> list[object]:
        return [request.body for request in self.requests]


class FailingTransport(RecordingTransport):
    """Transport whose every request fails with the given error."""

    def __init__(self, error: Exception | None = None) -> None:
        super().__init__()
        self._error = error or DeliveryError("Service Unavailable", status_code=503)

    async def send(self, request: ModelHttpRequest) -> int:
        self.requests.append(request)
        raise self._error


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# -------------------------------------------------------------------------
# Fixtures
# -------------------------------------------------------------------------


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def relay_config() -> ConfigWebhookRelay:
    """Config with explicit defaults so environment variables cannot leak in."""
    return ConfigWebhookRelay(
        debug=False,
        default_timeout_ms=10_000,
        default_max_attempts=3,
        default_retry_delay_ms=1000,
        destinations=[],
    )


@pytest.fixture
def client(
    transport: RecordingTransport,
    relay_config: ConfigWebhookRelay,
    sleep: RecordingSleep,
) -> DeliveryClient:
    return DeliveryClient(transport, relay_config, sleep=sleep)
