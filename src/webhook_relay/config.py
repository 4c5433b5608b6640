# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Configuration for webhook routing and delivery.

Loads from environment variables with the WEBHOOK_RELAY_ prefix.
Destinations can be supplied programmatically or as a JSON list in
WEBHOOK_RELAY_DESTINATIONS; transform and filter functions can only be
supplied programmatically.

Example:
    WEBHOOK_RELAY_DEBUG=true
    WEBHOOK_RELAY_DEFAULT_TIMEOUT_MS=5000
    WEBHOOK_RELAY_DESTINATIONS='[{"url": "https://hooks.example.com/in",
                                  "events": ["session.idle"]}]'
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from webhook_relay.models import ModelDestinationConfig, ModelRetryPolicy

DEFAULT_USER_AGENT = "Opencode-Webhook-Plugin/1.0"


class ConfigWebhookRelay(BaseSettings):
    """Global settings for the dispatcher and delivery client.

    Per-destination ``retry`` and ``timeout_ms`` take precedence over the
    defaults defined here.
    """

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOK_RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    debug: bool = Field(
        default=False,
        description="Raise the webhook_relay logger to DEBUG for attempt-level detail",
    )
    default_timeout_ms: int = Field(
        default=10_000,
        ge=1,
        le=600_000,
        description="Per-attempt timeout when a destination sets none",
    )
    default_max_attempts: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Attempts per delivery when a destination sets none",
    )
    default_retry_delay_ms: int = Field(
        default=1000,
        ge=0,
        le=600_000,
        description="Base backoff delay; attempt n waits delay * n",
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        min_length=1,
        description="User-Agent header sent with every request",
    )
    destinations: list[ModelDestinationConfig] = Field(
        default_factory=list,
        description="Configured webhook targets",
    )

    def resolve_retry(self, destination: ModelDestinationConfig) -> tuple[int, int]:
        """Return ``(max_attempts, delay_ms)`` for ``destination``."""
        retry = destination.retry or ModelRetryPolicy()
        max_attempts = (
            retry.max_attempts
            if retry.max_attempts is not None
            else self.default_max_attempts
        )
        delay_ms = (
            retry.delay_ms if retry.delay_ms is not None else self.default_retry_delay_ms
        )
        return max_attempts, delay_ms

    def resolve_timeout_seconds(self, destination: ModelDestinationConfig) -> float:
        timeout_ms = destination.timeout_ms or self.default_timeout_ms
        return timeout_ms / 1000.0


__all__: list[str] = ["DEFAULT_USER_AGENT", "ConfigWebhookRelay"]
