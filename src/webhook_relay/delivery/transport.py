# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""HTTP transport for webhook delivery.

The delivery client only needs one capability: send a request and either
return the status code or raise DeliveryError. HttpxTransport implements it
with ``httpx.AsyncClient``; any non-2xx response is treated as a failure so
that the delivery client retries it like a network error.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import httpx

from webhook_relay.exceptions import DeliveryError
from webhook_relay.models import ModelHttpRequest

logger = logging.getLogger(__name__)


@runtime_checkable
class ProtocolHttpTransport(Protocol):
    """Performs one HTTP request."""

    async def send(self, request: ModelHttpRequest) -> int:
        """Send ``request`` and return the HTTP status code.

        Raises:
            DeliveryError: On network failure, timeout, or non-2xx status.
        """
        ...

    async def aclose(self) -> None:
        """Release underlying connections."""
        ...


class HttpxTransport:
    """ProtocolHttpTransport backed by ``httpx.AsyncClient``.

    Example:
        ```python
        async with HttpxTransport() as transport:
            status = await transport.send(request)
        ```
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def send(self, request: ModelHttpRequest) -> int:
        try:
            response = await self._client.request(
                request.method.value,
                request.url,
                headers=request.headers,
                json=request.body,
                timeout=request.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise DeliveryError(f"Timeout after {request.timeout_seconds}s") from e
        except httpx.HTTPError as e:
            raise DeliveryError(str(e) or type(e).__name__) from e

        if not response.is_success:
            raise DeliveryError(
                response.reason_phrase or "Unexpected status",
                status_code=response.status_code,
            )
        return response.status_code

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__: list[str] = ["HttpxTransport", "ProtocolHttpTransport"]
