# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Tests for DeliveryClient.

Validates:
- Success on first attempt, no retry after success
- Retry up to max_attempts with linear backoff
- Last error surfaced on exhaustion, never raised
- Header merging, method, timeout and transform handling
"""

from __future__ import annotations

from datetime import UTC, datetime

import httpx
import pytest

from webhook_relay.config import ConfigWebhookRelay
from webhook_relay.delivery.delivery_client import DeliveryClient
from webhook_relay.delivery.transport import HttpxTransport
from webhook_relay.enums import EnumHttpMethod
from webhook_relay.exceptions import DeliveryError
from webhook_relay.models import ModelDestinationConfig, ModelEventPayload

from tests.conftest import FailingTransport, RecordingSleep, RecordingTransport


def make_destination(**overrides: object) -> ModelDestinationConfig:
    data: dict[str, object] = {
        "url": "https://hooks.example.com/in",
        "events": ["session.idle"],
    }
    data.update(overrides)
    return ModelDestinationConfig.model_validate(data)


def make_payload(**fields: object) -> ModelEventPayload:
    return ModelEventPayload.model_validate(
        {
            "timestamp": datetime(2025, 1, 1, 12, 0, tzinfo=UTC),
            "eventType": "session.idle",
            **fields,
        }
    )


class TestSuccessfulDelivery:
    @pytest.mark.asyncio
    async def test_first_attempt_success(
        self, client: DeliveryClient, transport: RecordingTransport
    ) -> None:
        result = await client.deliver(make_destination(), make_payload(sessionId="s1"))

        assert result.success is True
        assert result.status_code == 200
        assert result.attempts == 1
        assert result.was_queued is False
        assert result.destination_url == "https://hooks.example.com/in"
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_success_after_failures_stops_retrying(
        self, relay_config: ConfigWebhookRelay, sleep: RecordingSleep
    ) -> None:
        transport = RecordingTransport(
            [DeliveryError("Bad Gateway", 502), DeliveryError("Bad Gateway", 502), 201]
        )
        client = DeliveryClient(transport, relay_config, sleep=sleep)

        result = await client.deliver(
            make_destination(retry={"maxAttempts": 5, "delayMs": 100}), make_payload()
        )

        assert result.success is True
        assert result.status_code == 201
        assert result.attempts == 3
        assert len(transport.requests) == 3
        assert sleep.delays == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_default_body_is_wire_payload(
        self, client: DeliveryClient, transport: RecordingTransport
    ) -> None:
        await client.deliver(make_destination(), make_payload(sessionId="s1", extra=1))

        body = transport.bodies[0]
        assert body == {
            "timestamp": "2025-01-01T12:00:00Z",
            "eventType": "session.idle",
            "sessionId": "s1",
            "extra": 1,
        }

    @pytest.mark.asyncio
    async def test_request_shape(
        self, client: DeliveryClient, transport: RecordingTransport
    ) -> None:
        destination = make_destination(
            method="put",
            headers={"Authorization": "Bearer token", "User-Agent": "custom/2.0"},
            timeoutMs=2500,
        )

        await client.deliver(destination, make_payload())

        request = transport.requests[0]
        assert request.method == EnumHttpMethod.PUT
        assert request.url == "https://hooks.example.com/in"
        assert request.timeout_seconds == 2.5
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["Authorization"] == "Bearer token"
        assert request.headers["User-Agent"] == "custom/2.0"

    @pytest.mark.asyncio
    async def test_default_timeout_applies(
        self, client: DeliveryClient, transport: RecordingTransport
    ) -> None:
        await client.deliver(make_destination(), make_payload())

        assert transport.requests[0].timeout_seconds == 10.0
        assert transport.requests[0].method == EnumHttpMethod.POST


class TestTransform:
    @pytest.mark.asyncio
    async def test_transform_applied_once(
        self, relay_config: ConfigWebhookRelay, sleep: RecordingSleep
    ) -> None:
        calls: list[str] = []

        def transform(payload: ModelEventPayload) -> dict[str, str]:
            calls.append(payload.event_type)
            return {"text": f"Event: {payload.event_type}"}

        transport = RecordingTransport([DeliveryError("timeout"), 200])
        client = DeliveryClient(transport, relay_config, sleep=sleep)

        result = await client.deliver(make_destination(transform=transform), make_payload())

        assert result.success is True
        assert calls == ["session.idle"]
        assert transport.bodies == [
            {"text": "Event: session.idle"},
            {"text": "Event: session.idle"},
        ]

    @pytest.mark.asyncio
    async def test_pre_rendered_body_skips_transform(
        self, client: DeliveryClient, transport: RecordingTransport
    ) -> None:
        def transform(payload: ModelEventPayload) -> dict[str, str]:
            raise AssertionError("transform must not run twice")

        await client.deliver(
            make_destination(transform=transform), make_payload(), body={"ready": True}
        )

        assert transport.bodies == [{"ready": True}]


class TestRetryExhaustion:
    @pytest.mark.asyncio
    async def test_always_failing_destination(
        self, relay_config: ConfigWebhookRelay, sleep: RecordingSleep
    ) -> None:
        transport = FailingTransport(DeliveryError("Service Unavailable", 503))
        client = DeliveryClient(transport, relay_config, sleep=sleep)

        result = await client.deliver(
            make_destination(retry={"maxAttempts": 4, "delayMs": 50}), make_payload()
        )

        assert result.success is False
        assert result.attempts == 4
        assert len(transport.requests) == 4
        assert result.error == "Webhook request failed: Service Unavailable (status: 503)"
        assert sleep.delays == [0.05, 0.1, 0.15]

    @pytest.mark.asyncio
    async def test_default_policy_is_three_attempts(
        self, relay_config: ConfigWebhookRelay, sleep: RecordingSleep
    ) -> None:
        transport = FailingTransport()
        client = DeliveryClient(transport, relay_config, sleep=sleep)

        result = await client.deliver(make_destination(), make_payload())

        assert result.attempts == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_last_error_is_reported(
        self, relay_config: ConfigWebhookRelay, sleep: RecordingSleep
    ) -> None:
        transport = RecordingTransport(
            [DeliveryError("first"), DeliveryError("second"), DeliveryError("third", 500)]
        )
        client = DeliveryClient(transport, relay_config, sleep=sleep)

        result = await client.deliver(make_destination(), make_payload())

        assert result.success is False
        assert result.error is not None
        assert "third" in result.error
        assert "500" in result.error

    @pytest.mark.asyncio
    async def test_unexpected_transport_exception_is_captured(
        self, relay_config: ConfigWebhookRelay, sleep: RecordingSleep
    ) -> None:
        transport = FailingTransport(RuntimeError("connection reset"))
        client = DeliveryClient(transport, relay_config, sleep=sleep)

        result = await client.deliver(
            make_destination(retry={"maxAttempts": 1}), make_payload()
        )

        assert result.success is False
        assert result.error == "connection reset"
        assert result.attempts == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_global_defaults_used_when_destination_has_none(
        self, sleep: RecordingSleep
    ) -> None:
        config = ConfigWebhookRelay(default_max_attempts=2, default_retry_delay_ms=250)
        transport = FailingTransport()
        client = DeliveryClient(transport, config, sleep=sleep)

        result = await client.deliver(make_destination(), make_payload())

        assert result.attempts == 2
        assert sleep.delays == [0.25]

    @pytest.mark.asyncio
    async def test_was_queued_flag_is_carried(
        self, client: DeliveryClient
    ) -> None:
        result = await client.deliver(make_destination(), make_payload(), was_queued=True)

        assert result.was_queued is True


class TestUnencodableBody:
    @pytest.mark.asyncio
    async def test_fails_without_attempts_or_backoff(
        self,
        client: DeliveryClient,
        transport: RecordingTransport,
        sleep: RecordingSleep,
    ) -> None:
        destination = make_destination(transform=lambda p: {"when": p.timestamp})

        result = await client.deliver(destination, make_payload())

        assert result.success is False
        assert result.attempts == 0
        assert result.error is not None
        assert "JSON serializable" in result.error
        assert transport.requests == []
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_httpx_handler_never_called(
        self, relay_config: ConfigWebhookRelay, sleep: RecordingSleep
    ) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = DeliveryClient(HttpxTransport(http), relay_config, sleep=sleep)
            result = await client.deliver(
                make_destination(transform=lambda p: {"when": p.timestamp}),
                make_payload(),
            )

        assert result.success is False
        assert result.attempts == 0
        assert calls == []
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_nan_is_rejected(
        self, client: DeliveryClient, transport: RecordingTransport
    ) -> None:
        result = await client.deliver(
            make_destination(), make_payload(), body={"ratio": float("nan")}
        )

        assert result.success is False
        assert result.attempts == 0
        assert transport.requests == []
