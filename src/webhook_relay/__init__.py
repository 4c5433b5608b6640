"""webhook-relay - outbound webhooks for AI coding agent events.

This package routes host events (session and message lifecycle) to HTTP
webhook destinations with per-destination filtering, payload transforms,
retry with backoff, and sliding-window rate limiting. A completion
aggregator condenses streamed assistant replies into one
``agent.completed`` event per idle session.

Example:
    >>> from webhook_relay import create_webhook_plugin
    >>> plugin = create_webhook_plugin(destinations=[
    ...     {"url": "https://hooks.example.com/in", "events": ["agent.completed"]},
    ... ])
    >>> # await plugin.handle({"type": "session.idle", "properties": {...}})
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from webhook_relay.config import ConfigWebhookRelay
from webhook_relay.dispatcher import WebhookDispatcher
from webhook_relay.enums import EnumHttpMethod, EnumOpencodeEventType
from webhook_relay.exceptions import (
    ConfigurationError,
    DeliveryError,
    WebhookRelayError,
)
from webhook_relay.models import (
    ModelDeliveryResult,
    ModelDestinationConfig,
    ModelEventPayload,
    ModelRateLimit,
    ModelRetryPolicy,
)
from webhook_relay.plugin import WebhookRelayPlugin, create_webhook_plugin

try:
    __version__ = version("webhook-relay")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = [
    "ConfigWebhookRelay",
    "ConfigurationError",
    "DeliveryError",
    "EnumHttpMethod",
    "EnumOpencodeEventType",
    "ModelDeliveryResult",
    "ModelDestinationConfig",
    "ModelEventPayload",
    "ModelRateLimit",
    "ModelRetryPolicy",
    "WebhookDispatcher",
    "WebhookRelayError",
    "WebhookRelayPlugin",
    "__version__",
    "create_webhook_plugin",
]
