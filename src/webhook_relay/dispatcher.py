# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Event routing and fan-out to webhook destinations.

The dispatcher owns the event-type index and the per-destination rate
limit queues. Both are built once at construction; there are no
module-level registries, so several dispatchers can coexist (e.g. in
tests) without sharing state.

Routing:
    host event -> subscribed destinations -> should_send filter
        -> rate-limited?  yes: RateLimitedQueue.admit (transform at send time)
                          no:  transform, DeliveryClient.deliver

Error Isolation:
    Each destination is processed in its own coroutine. An exception from
    one destination (a failing filter or transform) becomes a failed
    result for that destination only; ``handle_event`` always returns one
    result per subscribed destination and never raises.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from webhook_relay.config import ConfigWebhookRelay
from webhook_relay.delivery.delivery_client import DeliveryClient
from webhook_relay.delivery.rate_limiter import RateLimitedQueue, ResultCallback
from webhook_relay.delivery.transport import HttpxTransport, ProtocolHttpTransport
from webhook_relay.models import (
    ModelDeliveryResult,
    ModelDestinationConfig,
    ModelEventPayload,
)
from webhook_relay.scheduler import AsyncioScheduler, ProtocolScheduler

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "webhook_relay"


class WebhookDispatcher:
    """Routes events to subscribed destinations and collects results.

    Example:
        >>> config = ConfigWebhookRelay(destinations=[
        ...     ModelDestinationConfig(url="https://hooks.example.com/in",
        ...                            events=["session.idle"]),
        ... ])
        >>> dispatcher = WebhookDispatcher(config)
        >>> dispatcher.registered_event_types
        ['session.idle']
    """

    def __init__(
        self,
        config: ConfigWebhookRelay,
        destinations: Iterable[ModelDestinationConfig] | None = None,
        *,
        transport: ProtocolHttpTransport | None = None,
        scheduler: ProtocolScheduler | None = None,
        client: DeliveryClient | None = None,
        on_result: ResultCallback | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            config: Global settings. Its ``destinations`` are used when
                ``destinations`` is not given.
            destinations: Webhook targets to index.
            transport: HTTP transport; defaults to an owned HttpxTransport.
            scheduler: Timer capability for rate limit flushes.
            client: Pre-built delivery client (overrides ``transport``).
            on_result: Optional coroutine receiving every delivery result
                produced by a rate-limited destination, including deferred
                backlog deliveries.
        """
        self._config = config
        self._destinations = list(
            destinations if destinations is not None else config.destinations
        )
        self._owns_transport = transport is None and client is None
        if client is None:
            transport = transport or HttpxTransport()
            client = DeliveryClient(transport, config)
        self._transport = transport
        self._client = client
        self._scheduler = scheduler or AsyncioScheduler()
        self._on_result = on_result
        self._index: dict[str, list[ModelDestinationConfig]] = {}
        self._queues: dict[int, RateLimitedQueue] = {}

        # Restored by destroy()
        self._previous_log_level: int | None = None
        if config.debug:
            package_logger = logging.getLogger(PACKAGE_LOGGER)
            self._previous_log_level = package_logger.level
            package_logger.setLevel(logging.DEBUG)

        self._index_destinations()

        logger.info(
            "WebhookDispatcher initialized",
            extra={
                "destination_count": len(self._destinations),
                "events": self.registered_event_types,
                "rate_limited_destinations": len(self._queues),
            },
        )

    def _index_destinations(self) -> None:
        for destination in self._destinations:
            for event_type in sorted(destination.event_types):
                subscribers = self._index.setdefault(event_type, [])
                if not any(existing is destination for existing in subscribers):
                    subscribers.append(destination)

            if destination.rate_limit is not None and id(destination) not in self._queues:
                self._queues[id(destination)] = RateLimitedQueue(
                    destination,
                    self._client,
                    self._scheduler,
                    on_result=self._on_result,
                )

    @property
    def registered_event_types(self) -> list[str]:
        return list(self._index)

    @property
    def destinations(self) -> list[ModelDestinationConfig]:
        return list(self._destinations)

    def subscribers(self, event_type: str) -> list[ModelDestinationConfig]:
        return list(self._index.get(str(event_type), ()))

    def queue_for(self, destination: ModelDestinationConfig) -> RateLimitedQueue | None:
        return self._queues.get(id(destination))

    def build_payload(
        self, event_type: str, fields: Mapping[str, Any] | None = None
    ) -> ModelEventPayload:
        """Stamp ``timestamp`` and ``eventType``; caller fields take precedence."""
        data: dict[str, Any] = {
            "timestamp": datetime.now(UTC),
            "eventType": str(event_type),
        }
        if fields:
            data.update(fields)
        return ModelEventPayload.model_validate(data)

    async def handle_event(
        self, event_type: str, fields: Mapping[str, Any] | None = None
    ) -> list[ModelDeliveryResult]:
        """Deliver one event to every subscribed destination.

        Args:
            event_type: Subscription key of the event.
            fields: Caller-supplied payload fields (``sessionId``,
                ``userId``, and any extra keys).

        Returns:
            One result per subscribed destination, in subscription order.
            Empty when nothing subscribes to ``event_type``.
        """
        subscribers = self._index.get(str(event_type))
        if not subscribers:
            logger.debug(f"No destinations subscribed to {event_type}")
            return []

        try:
            payload = self.build_payload(event_type, fields)
        except Exception as e:
            logger.exception(f"Could not build payload for {event_type}")
            return [
                ModelDeliveryResult(
                    success=False,
                    destination_url=destination.url,
                    error=f"Invalid event payload: {e}",
                    attempts=0,
                )
                for destination in subscribers
            ]

        logger.debug(
            f"Handling event: {event_type}",
            extra={"destinations": len(subscribers), "session_id": payload.session_id},
        )

        outcomes = await asyncio.gather(
            *(self._process(destination, payload) for destination in subscribers),
            return_exceptions=True,
        )

        results: list[ModelDeliveryResult] = []
        for destination, outcome in zip(subscribers, outcomes, strict=True):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.warning(
                    f"Webhook processing failed for {destination.url}: {outcome}",
                    extra={"event_type": payload.event_type},
                )
                results.append(
                    ModelDeliveryResult(
                        success=False,
                        destination_url=destination.url,
                        error=str(outcome) or type(outcome).__name__,
                        attempts=0,
                    )
                )
            else:
                results.append(outcome)
        return results

    async def _process(
        self, destination: ModelDestinationConfig, payload: ModelEventPayload
    ) -> ModelDeliveryResult:
        if destination.should_send is not None and not destination.should_send(payload):
            logger.debug(f"Webhook filtered out by should_send: {destination.url}")
            return ModelDeliveryResult(
                success=True,
                destination_url=destination.url,
                attempts=0,
            )

        queue = self._queues.get(id(destination))
        if queue is not None:
            result = await queue.admit(payload)
            if result is not None:
                return result
            return ModelDeliveryResult(
                success=True,
                destination_url=destination.url,
                attempts=0,
                was_queued=True,
            )

        body = destination.render(payload)
        return await self._client.deliver(destination, payload, body=body)

    def destroy(self) -> None:
        """Cancel every scheduled flush and drop queued events.

        Also restores the package log level raised by ``config.debug``.
        """
        for queue in self._queues.values():
            queue.destroy()
        if self._previous_log_level is not None:
            logging.getLogger(PACKAGE_LOGGER).setLevel(self._previous_log_level)
            self._previous_log_level = None

    async def aclose(self) -> None:
        """Tear down queues and close an owned HTTP transport."""
        self.destroy()
        if self._owns_transport and self._transport is not None:
            await self._transport.aclose()


__all__: list[str] = ["WebhookDispatcher"]
