# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Webhook delivery with retry and linear backoff.

Retry strategy (max_attempts=3, delay_ms=1000):
    - Attempt 1: immediate
    - Attempt 2: after 1000ms
    - Attempt 3: after 2000ms

Failures never propagate: every outcome is returned as a
ModelDeliveryResult. The transform is applied at most once per delivery,
before the first attempt, and only when the caller has not already
rendered the body. A body that cannot be encoded as JSON fails the
delivery up front with attempts=0; it is never retried.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from webhook_relay.config import ConfigWebhookRelay
from webhook_relay.delivery.transport import ProtocolHttpTransport
from webhook_relay.models import (
    ModelDeliveryResult,
    ModelDestinationConfig,
    ModelEventPayload,
    ModelHttpRequest,
)

logger = logging.getLogger(__name__)

_UNRENDERED: Any = object()


class DeliveryClient:
    """Sends one event to one destination, retrying on failure."""

    def __init__(
        self,
        transport: ProtocolHttpTransport,
        config: ConfigWebhookRelay,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the delivery client.

        Args:
            transport: Performs the actual HTTP requests.
            config: Global defaults for retry, timeout and User-Agent.
            sleep: Coroutine used for backoff waits (injectable for tests).
        """
        self._transport = transport
        self._config = config
        self._sleep = sleep

    def build_headers(self, destination: ModelDestinationConfig) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "User-Agent": self._config.user_agent,
            **destination.headers,
        }

    async def deliver(
        self,
        destination: ModelDestinationConfig,
        payload: ModelEventPayload,
        *,
        body: Any = _UNRENDERED,
        was_queued: bool = False,
    ) -> ModelDeliveryResult:
        """Deliver ``payload`` to ``destination``.

        Args:
            destination: Target configuration.
            payload: The event being delivered.
            body: Pre-rendered wire body. When omitted, the destination's
                transform is applied here.
            was_queued: Recorded on the result for backlog deliveries.

        Returns:
            The delivery result; never raises for delivery failures.
        """
        if body is _UNRENDERED:
            body = destination.render(payload)

        try:
            json.dumps(body, allow_nan=False)
        except (TypeError, ValueError) as e:
            logger.warning(
                f"Webhook body for {destination.url} is not JSON serializable: {e}",
                extra={"event_type": payload.event_type},
            )
            return ModelDeliveryResult(
                success=False,
                destination_url=destination.url,
                error=f"Invalid webhook body: {e}",
                attempts=0,
                was_queued=was_queued,
            )

        max_attempts, delay_ms = self._config.resolve_retry(destination)
        request = ModelHttpRequest(
            method=destination.method,
            url=destination.url,
            headers=self.build_headers(destination),
            body=body,
            timeout_seconds=self._config.resolve_timeout_seconds(destination),
        )

        last_error: str | None = None
        for attempt in range(1, max_attempts + 1):
            logger.debug(
                f"Attempt {attempt}/{max_attempts} - sending webhook to {destination.url}",
                extra={"event_type": payload.event_type, "was_queued": was_queued},
            )
            try:
                status_code = await self._transport.send(request)
            except Exception as e:
                last_error = str(e) or type(e).__name__
                logger.debug(
                    f"Attempt {attempt} failed for {destination.url}: {last_error}"
                )
                if attempt < max_attempts:
                    await self._sleep(delay_ms * attempt / 1000.0)
                continue

            logger.debug(
                f"Sent webhook to {destination.url} (status: {status_code})",
                extra={"attempts": attempt},
            )
            return ModelDeliveryResult(
                success=True,
                destination_url=destination.url,
                status_code=status_code,
                attempts=attempt,
                was_queued=was_queued,
            )

        logger.warning(
            f"All {max_attempts} delivery attempts failed for {destination.url}: "
            f"{last_error}",
            extra={"event_type": payload.event_type},
        )
        return ModelDeliveryResult(
            success=False,
            destination_url=destination.url,
            error=last_error or "Unknown error",
            attempts=max_attempts,
            was_queued=was_queued,
        )


__all__: list[str] = ["DeliveryClient"]
