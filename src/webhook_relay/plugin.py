# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""WebhookRelayPlugin: host integration entry point.

Wires one WebhookDispatcher and, when any destination subscribes to
``agent.completed``, one CompletionAggregator. The host hands every event
to ``handle``; the plugin feeds the aggregator, routes the event to the
dispatcher under its own type, and routes completions back into the
dispatcher as ``agent.completed`` events.

Construct it once at startup and pass the instance to whatever delivers
host events. ``handle`` never raises.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from webhook_relay.aggregators.completion_aggregator import (
    CompletionAggregator,
    CompletionCallback,
)
from webhook_relay.aggregators.config import ConfigCompletionAggregator
from webhook_relay.aggregators.models import ModelAgentCompletedPayload
from webhook_relay.aggregators.protocol_session_lookup import ProtocolSessionLookup
from webhook_relay.config import ConfigWebhookRelay
from webhook_relay.delivery.rate_limiter import ResultCallback
from webhook_relay.delivery.transport import ProtocolHttpTransport
from webhook_relay.dispatcher import WebhookDispatcher
from webhook_relay.enums import EnumOpencodeEventType
from webhook_relay.exceptions import ConfigurationError
from webhook_relay.models import ModelDeliveryResult, ModelDestinationConfig
from webhook_relay.scheduler import AsyncioScheduler, ProtocolScheduler

logger = logging.getLogger(__name__)


def extract_event_fields(properties: Mapping[str, Any]) -> dict[str, Any]:
    """Build dispatch fields from host event properties.

    ``sessionId`` is lifted from ``sessionID``, ``info.sessionID`` or
    ``part.sessionID`` unless the properties already carry one.
    """
    fields = dict(properties)
    if fields.get("sessionId") is not None:
        return fields

    candidates: list[object] = [properties.get("sessionID")]
    for nested_key in ("info", "part"):
        nested = properties.get(nested_key)
        if isinstance(nested, Mapping):
            candidates.append(nested.get("sessionID"))

    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            fields["sessionId"] = candidate
            break
    return fields


class WebhookRelayPlugin:
    """Routes host events to webhooks, including synthesized completions."""

    def __init__(
        self,
        dispatcher: WebhookDispatcher,
        aggregator: CompletionAggregator | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._aggregator = aggregator

    @property
    def dispatcher(self) -> WebhookDispatcher:
        return self._dispatcher

    @property
    def aggregator(self) -> CompletionAggregator | None:
        return self._aggregator

    async def handle(self, event: Mapping[str, Any]) -> list[ModelDeliveryResult]:
        """Process one host event ``{type, properties}``.

        Returns:
            Results of dispatching the event under its own type. Completions
            triggered by this event are dispatched separately.
        """
        event_type = event.get("type")
        if not isinstance(event_type, str) or not event_type:
            logger.debug("Ignoring host event without a type")
            return []

        properties = event.get("properties")
        if not isinstance(properties, Mapping):
            properties = {k: v for k, v in event.items() if k != "type"}

        if self._aggregator is not None:
            try:
                await self._aggregator.handle_event(event)
            except Exception:
                logger.exception(f"Completion aggregator failed on {event_type}")

        return await self._dispatcher.handle_event(
            event_type, extract_event_fields(properties)
        )

    def destroy(self) -> None:
        """Cancel every pending timer (idle debounce and queue flushes)."""
        if self._aggregator is not None:
            self._aggregator.destroy()
        self._dispatcher.destroy()

    async def aclose(self) -> None:
        if self._aggregator is not None:
            self._aggregator.destroy()
        await self._dispatcher.aclose()


def create_webhook_plugin(
    config: ConfigWebhookRelay | None = None,
    destinations: Iterable[ModelDestinationConfig | Mapping[str, Any]] | None = None,
    *,
    aggregator_config: ConfigCompletionAggregator | None = None,
    transport: ProtocolHttpTransport | None = None,
    scheduler: ProtocolScheduler | None = None,
    session_lookup: ProtocolSessionLookup | None = None,
    working_directory: str | None = None,
    on_result: ResultCallback | None = None,
    on_complete: CompletionCallback | None = None,
) -> WebhookRelayPlugin:
    """Build a WebhookRelayPlugin.

    Args:
        config: Global settings; loaded from the environment when omitted.
        destinations: Destination models or plain mappings; defaults to
            ``config.destinations``.
        aggregator_config: Completion aggregation settings.
        transport: HTTP transport shared by all destinations.
        scheduler: Timer capability shared by queues and the aggregator.
        session_lookup: Source of session titles for completions.
        working_directory: Host project directory (title fallback).
        on_result: Receives every rate-limited delivery result.
        on_complete: Also receives each completion payload, after it has
            been dispatched.

    Raises:
        ConfigurationError: If a destination mapping is invalid.
    """
    config = config or ConfigWebhookRelay()
    scheduler = scheduler or AsyncioScheduler()

    resolved: list[ModelDestinationConfig] | None = None
    if destinations is not None:
        resolved = []
        for index, destination in enumerate(destinations):
            if isinstance(destination, ModelDestinationConfig):
                resolved.append(destination)
                continue
            try:
                resolved.append(ModelDestinationConfig.model_validate(destination))
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid webhook destination at index {index}: {e}"
                ) from e

    dispatcher = WebhookDispatcher(
        config,
        resolved,
        transport=transport,
        scheduler=scheduler,
        on_result=on_result,
    )
    aggregator: CompletionAggregator | None = None
    if EnumOpencodeEventType.AGENT_COMPLETED in dispatcher.registered_event_types:

        async def _on_complete(payload: ModelAgentCompletedPayload) -> None:
            await dispatcher.handle_event(
                EnumOpencodeEventType.AGENT_COMPLETED, payload.to_fields()
            )
            if on_complete is not None:
                await on_complete(payload)

        aggregator = CompletionAggregator(
            _on_complete,
            aggregator_config,
            session_lookup=session_lookup,
            working_directory=working_directory,
            scheduler=scheduler,
        )

    return WebhookRelayPlugin(dispatcher, aggregator)


__all__: list[str] = [
    "WebhookRelayPlugin",
    "create_webhook_plugin",
    "extract_event_fields",
]
