# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Per-destination sliding-window rate limiting with a FIFO backlog.

Queue Behavior:
    1. Timestamps older than the window are pruned on every check
    2. With capacity and an empty backlog, the event is sent immediately
    3. With capacity but a backlog, the event joins the backlog and the
       backlog is flushed so a fresh event never overtakes older ones
    4. Without capacity, the event joins the backlog and exactly one flush
       is scheduled for when the oldest timestamp leaves the window

Queued payloads keep their original ``timestamp``; the only visible trace
of queuing is ``was_queued=True`` on the delivery result.

State Machine:
    IDLE ---(no capacity)---> QUEUED
    QUEUED ---(flush drains backlog)---> IDLE

Nothing is persisted: teardown cancels the scheduled flush and drops any
remaining backlog.

Concurrency: coroutine-safe on a single event loop (not thread-safe). A
timestamp is recorded before each send is awaited, so concurrent admits and
flushes cannot exceed the window.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from webhook_relay.delivery.delivery_client import DeliveryClient
from webhook_relay.enums import EnumRateWindowState
from webhook_relay.models import (
    ModelDeliveryResult,
    ModelDestinationConfig,
    ModelEventPayload,
)
from webhook_relay.scheduler import ProtocolScheduler, ProtocolTimerHandle

logger = logging.getLogger(__name__)

MIN_FLUSH_DELAY_SECONDS = 0.1

ResultCallback = Callable[[ModelDeliveryResult], Awaitable[None]]


@dataclass
class RateWindowState:
    """Mutable window state for one destination.

    Attributes:
        request_timestamps: Monotonic send times inside the window, oldest first.
        pending: Payloads waiting for capacity, oldest first.
        flush_handle: Handle of the scheduled flush, if any.
    """

    request_timestamps: deque[float] = field(default_factory=deque)
    pending: deque[ModelEventPayload] = field(default_factory=deque)
    flush_handle: ProtocolTimerHandle | None = None


class RateLimitedQueue:
    """Admits events for one destination within its rate limit.

    Destinations without ``rate_limit`` are passed straight through to the
    delivery client.
    """

    def __init__(
        self,
        destination: ModelDestinationConfig,
        client: DeliveryClient,
        scheduler: ProtocolScheduler,
        on_result: ResultCallback | None = None,
    ) -> None:
        """Initialize the queue.

        Args:
            destination: The destination this queue guards.
            client: Delivery client used for every send.
            scheduler: Timer capability for deferred flushes.
            on_result: Optional coroutine receiving every delivery result,
                immediate or flushed.
        """
        self._destination = destination
        self._client = client
        self._scheduler = scheduler
        self._on_result = on_result
        self._state = RateWindowState()
        self._closed = False

    @property
    def destination(self) -> ModelDestinationConfig:
        return self._destination

    @property
    def state(self) -> EnumRateWindowState:
        if self._state.pending:
            return EnumRateWindowState.QUEUED
        return EnumRateWindowState.IDLE

    @property
    def pending_count(self) -> int:
        return len(self._state.pending)

    @property
    def flush_scheduled(self) -> bool:
        return self._state.flush_handle is not None

    async def admit(self, payload: ModelEventPayload) -> ModelDeliveryResult | None:
        """Send ``payload`` now or queue it.

        Returns:
            The delivery result when the payload was sent immediately or
            dropped because the queue is closed, or None when it went into
            the backlog. Backlog deliveries are reported through
            ``on_result``.
        """
        if self._closed:
            logger.warning(
                f"Dropping event for {self._destination.url}: queue is closed",
                extra={"event_type": payload.event_type},
            )
            return ModelDeliveryResult(
                success=False,
                destination_url=self._destination.url,
                error="Queue is closed",
                attempts=0,
            )

        rate_limit = self._destination.rate_limit
        if rate_limit is None:
            return await self._send(payload, was_queued=False)

        now = self._scheduler.monotonic()
        self._prune(now)
        state = self._state

        if len(state.request_timestamps) < rate_limit.max_requests:
            if state.pending:
                state.pending.append(payload)
                await self.flush()
                return None
            state.request_timestamps.append(now)
            return await self._send(payload, was_queued=False)

        state.pending.append(payload)
        logger.debug(
            f"Rate limit reached for {self._destination.url}, "
            f"queuing event (queue size: {len(state.pending)})"
        )
        self._schedule_flush(now)
        return None

    async def flush(self) -> None:
        """Send as many backlog events as the window allows."""
        state = self._state
        if state.flush_handle is not None:
            state.flush_handle.cancel()
            state.flush_handle = None
        if not state.pending or self._closed:
            return

        rate_limit = self._destination.rate_limit
        if rate_limit is None:
            return

        logger.debug(
            f"Flushing {len(state.pending)} queued event(s) for {self._destination.url}"
        )
        while state.pending and not self._closed:
            now = self._scheduler.monotonic()
            self._prune(now)
            if len(state.request_timestamps) >= rate_limit.max_requests:
                self._schedule_flush(now)
                break
            payload = state.pending.popleft()
            state.request_timestamps.append(now)
            await self._send(payload, was_queued=True)

    def destroy(self) -> None:
        """Cancel the scheduled flush and drop the backlog."""
        self._closed = True
        state = self._state
        if state.flush_handle is not None:
            state.flush_handle.cancel()
            state.flush_handle = None
        if state.pending:
            logger.warning(
                f"Discarding {len(state.pending)} queued event(s) for "
                f"{self._destination.url} on shutdown"
            )
            state.pending.clear()

    def _prune(self, now: float) -> None:
        rate_limit = self._destination.rate_limit
        if rate_limit is None:
            return
        window = rate_limit.window_seconds
        timestamps = self._state.request_timestamps
        while timestamps and now - timestamps[0] >= window:
            timestamps.popleft()

    def _schedule_flush(self, now: float) -> None:
        state = self._state
        rate_limit = self._destination.rate_limit
        if state.flush_handle is not None or rate_limit is None:
            return
        oldest = state.request_timestamps[0] if state.request_timestamps else now
        delay = max(MIN_FLUSH_DELAY_SECONDS, rate_limit.window_seconds - (now - oldest))
        logger.debug(
            f"Scheduling flush in {delay * 1000:.0f}ms for {self._destination.url} "
            f"({len(state.pending)} event(s) waiting)"
        )
        state.flush_handle = self._scheduler.call_later(delay, self.flush)

    async def _send(
        self, payload: ModelEventPayload, *, was_queued: bool
    ) -> ModelDeliveryResult:
        try:
            body = self._destination.render(payload)
            result = await self._client.deliver(
                self._destination, payload, body=body, was_queued=was_queued
            )
        except Exception as e:
            logger.exception(f"Failed to prepare webhook for {self._destination.url}")
            result = ModelDeliveryResult(
                success=False,
                destination_url=self._destination.url,
                error=str(e) or type(e).__name__,
                attempts=0,
                was_queued=was_queued,
            )

        if self._on_result is not None:
            try:
                await self._on_result(result)
            except Exception:
                logger.exception("Delivery result callback failed")
        return result


__all__: list[str] = [
    "MIN_FLUSH_DELAY_SECONDS",
    "RateLimitedQueue",
    "RateWindowState",
    "ResultCallback",
]
