# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Exception types for webhook delivery.

This module defines a small hierarchy of exceptions:

- WebhookRelayError: Base exception for all relay errors
- DeliveryError: A single HTTP attempt failed (network, timeout, non-2xx)
- ConfigurationError: Invalid destination or plugin configuration

DeliveryError is raised by transports and caught by the delivery client,
which converts it into a failed ModelDeliveryResult. It never reaches
callers of the dispatcher. ConfigurationError is raised at construction
time only.
"""

from __future__ import annotations

__all__ = [
    "ConfigurationError",
    "DeliveryError",
    "WebhookRelayError",
]


class WebhookRelayError(Exception):
    """Base exception for webhook relay errors."""

    pass


class DeliveryError(WebhookRelayError):
    """Raised when one HTTP delivery attempt fails.

    Attributes:
        reason: Short description of the failure.
        status_code: HTTP status code if a response was received, else None.

    Example:
        >>> str(DeliveryError("Bad Gateway", status_code=502))
        'Webhook request failed: Bad Gateway (status: 502)'
    """

    def __init__(self, reason: str, status_code: int | None = None) -> None:
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Webhook request failed: {reason} (status: {status_code})")


class ConfigurationError(WebhookRelayError, ValueError):
    """Raised when destination or plugin configuration is invalid."""

    pass
