# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Timer capability used by the rate limiter and the completion aggregator.

Both components schedule delayed work (queue flushes, idle debounce) and
must be able to cancel it synchronously on teardown. They depend on
ProtocolScheduler rather than on the event loop directly, so their state
transitions can be driven by a manual clock in tests.

Concurrency: coroutine-safe on a single event loop (not thread-safe).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class ProtocolTimerHandle(Protocol):
    """Cancellation handle returned by ProtocolScheduler.call_later."""

    def cancel(self) -> None:
        """Cancel the timer. Has no effect once the callback has started."""
        ...


@runtime_checkable
class ProtocolScheduler(Protocol):
    """Arms delayed coroutine callbacks and reports monotonic time."""

    def monotonic(self) -> float:
        """Current monotonic time in seconds."""
        ...

    def call_later(
        self, delay_seconds: float, callback: TimerCallback
    ) -> ProtocolTimerHandle:
        """Run ``callback()`` after ``delay_seconds``; return a cancel handle."""
        ...


class AsyncioTimerHandle:
    """Handle for a callback scheduled on the running event loop."""

    def __init__(self) -> None:
        self._timer: asyncio.TimerHandle | None = None
        self._started = False

    def cancel(self) -> None:
        if self._timer is not None and not self._started:
            self._timer.cancel()
        self._timer = None


class AsyncioScheduler:
    """ProtocolScheduler backed by ``loop.call_later``.

    Fired callbacks run as tasks. The scheduler keeps a reference to each
    task until it completes so that it is not garbage collected mid-flight,
    and logs any exception the callback raises.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def monotonic(self) -> float:
        return time.monotonic()

    def call_later(
        self, delay_seconds: float, callback: TimerCallback
    ) -> AsyncioTimerHandle:
        loop = asyncio.get_running_loop()
        handle = AsyncioTimerHandle()

        def _fire() -> None:
            handle._started = True
            task = loop.create_task(self._run(callback))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        handle._timer = loop.call_later(max(0.0, delay_seconds), _fire)
        return handle

    async def _run(self, callback: TimerCallback) -> None:
        try:
            await callback()
        except Exception:
            logger.exception("Scheduled callback failed")

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)


__all__: list[str] = [
    "AsyncioScheduler",
    "AsyncioTimerHandle",
    "ProtocolScheduler",
    "ProtocolTimerHandle",
    "TimerCallback",
]
