# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Delivery path: HTTP transport, retrying client, and rate-limited queue.

Key Components:
    - ProtocolHttpTransport / HttpxTransport: One HTTP request
    - DeliveryClient: Retry with linear backoff, never raises
    - RateLimitedQueue: Sliding-window admission with FIFO backlog
"""

from __future__ import annotations

from webhook_relay.delivery.delivery_client import DeliveryClient
from webhook_relay.delivery.rate_limiter import RateLimitedQueue, RateWindowState
from webhook_relay.delivery.transport import HttpxTransport, ProtocolHttpTransport

__all__ = [
    "DeliveryClient",
    "HttpxTransport",
    "ProtocolHttpTransport",
    "RateLimitedQueue",
    "RateWindowState",
]
