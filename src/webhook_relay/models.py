# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Core models for webhook routing and delivery.

Models:
    - ModelEventPayload: Immutable open record built for every dispatched event
    - ModelRetryPolicy: Per-destination retry overrides
    - ModelRateLimit: Per-destination sliding-window limit
    - ModelDestinationConfig: One configured webhook target
    - ModelHttpRequest: One outbound HTTP request handed to a transport
    - ModelDeliveryResult: Outcome of one delivery (all attempts)

Wire format:
    Payloads and results serialize with camelCase keys (``eventType``,
    ``sessionId``, ``destinationUrl``) so that downstream consumers see the
    same JSON shape regardless of how the record was built in Python.
    Python code uses the snake_case attribute names; both spellings are
    accepted on input.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

from webhook_relay.enums import EnumHttpMethod

# =============================================================================
# Event Payload
# =============================================================================


class ModelEventPayload(BaseModel):
    """Immutable event record delivered to destinations.

    The base fields are always present; any additional fields supplied by
    the caller are kept as-is (``extra="allow"``) and are reachable both as
    attributes and through ``model_extra``.

    Attributes:
        timestamp: When the event occurred (timezone-aware, UTC).
        event_type: The event type identifier used for routing.
        session_id: Optional host session identifier.
        user_id: Optional host user identifier.

    Example:
        >>> payload = ModelEventPayload.model_validate(
        ...     {"timestamp": datetime.now(UTC), "eventType": "session.idle",
        ...      "sessionId": "s1", "reason": "done"}
        ... )
        >>> payload.reason
        'done'
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
    )

    timestamp: datetime = Field(
        ...,
        description="When the event occurred",
    )
    event_type: str = Field(
        ...,
        min_length=1,
        alias="eventType",
        description="Event type identifier used as the subscription key",
    )
    session_id: str | None = Field(
        default=None,
        alias="sessionId",
        description="Host session identifier",
    )
    user_id: str | None = Field(
        default=None,
        alias="userId",
        description="Host user identifier",
    )

    @field_validator("timestamp", mode="after")
    @classmethod
    def ensure_utc_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        if v.utcoffset() == timedelta(0):
            if v.tzinfo is not UTC:
                return v.replace(tzinfo=UTC)
            return v
        return v.astimezone(UTC)

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the default JSON body (camelCase, supplied fields only)."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


# =============================================================================
# Destination Configuration
# =============================================================================


class ModelRetryPolicy(BaseModel):
    """Retry overrides for one destination.

    Unset fields fall back to the global defaults in ConfigWebhookRelay.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    max_attempts: int | None = Field(
        default=None,
        ge=1,
        le=20,
        alias="maxAttempts",
        description="Total attempts including the first one",
    )
    delay_ms: int | None = Field(
        default=None,
        ge=0,
        le=600_000,
        validation_alias=AliasChoices("delay_ms", "delayMs", "baseDelayMs"),
        description="Base delay; attempt n waits delay_ms * n before retrying",
    )


class ModelRateLimit(BaseModel):
    """Sliding-window request cap for one destination."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    max_requests: int = Field(
        ...,
        ge=1,
        alias="maxRequests",
        description="Maximum sends inside any trailing window",
    )
    window_ms: int = Field(
        ...,
        ge=1,
        alias="windowMs",
        description="Length of the trailing window in milliseconds",
    )

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000.0


class ModelDestinationConfig(BaseModel):
    """One webhook target: URL, subscription, and delivery policy.

    Immutable after construction. The dispatcher indexes each instance
    under every event type it subscribes to and shares it by reference.

    Attributes:
        url: Target URL (http or https).
        event_types: Event types this destination subscribes to.
        method: HTTP method (POST, PUT or PATCH).
        headers: Extra request headers; these override the defaults.
        transform: Optional function turning the payload into the wire body.
        should_send: Optional predicate; returning False skips delivery.
        retry: Optional retry overrides.
        timeout_ms: Optional per-attempt timeout override.
        rate_limit: Optional sliding-window limit; enables queuing.

    Example:
        >>> destination = ModelDestinationConfig(
        ...     url="https://hooks.example.com/in",
        ...     events=["session.idle"],
        ...     rateLimit={"maxRequests": 10, "windowMs": 60000},
        ... )
        >>> sorted(destination.event_types)
        ['session.idle']
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    url: str = Field(..., min_length=1, description="Target URL")
    event_types: frozenset[str] = Field(
        ...,
        validation_alias=AliasChoices("event_types", "eventTypes", "events"),
        description="Subscribed event types",
    )
    method: EnumHttpMethod = Field(default=EnumHttpMethod.POST)
    headers: dict[str, str] = Field(default_factory=dict)
    transform: Callable[[ModelEventPayload], Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("transform", "transformPayload"),
        exclude=True,
    )
    should_send: Callable[[ModelEventPayload], bool] | None = Field(
        default=None,
        validation_alias=AliasChoices("should_send", "shouldSend", "filter"),
        exclude=True,
    )
    retry: ModelRetryPolicy | None = Field(default=None)
    timeout_ms: int | None = Field(
        default=None,
        ge=1,
        le=600_000,
        validation_alias=AliasChoices("timeout_ms", "timeoutMs"),
    )
    rate_limit: ModelRateLimit | None = Field(
        default=None,
        validation_alias=AliasChoices("rate_limit", "rateLimit"),
    )

    @field_validator("url", mode="after")
    @classmethod
    def validate_url_scheme(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Webhook URL must use http or https: {v!r}")
        return v

    @field_validator("event_types", mode="after")
    @classmethod
    def validate_event_types(cls, v: frozenset[str]) -> frozenset[str]:
        if not v:
            raise ValueError("Destination must subscribe to at least one event type")
        # StrEnum members are normalized to their plain string values
        return frozenset(str(event_type) for event_type in v)

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: object) -> object:
        if isinstance(v, str):
            return v.upper()
        return v

    def render(self, payload: ModelEventPayload) -> Any:
        """Produce the wire body for ``payload``.

        Applies ``transform`` when configured, otherwise the payload's own
        wire form. A pydantic model returned by a transform is dumped to
        JSON-compatible data.
        """
        if self.transform is None:
            return payload.to_wire()
        body = self.transform(payload)
        if isinstance(body, BaseModel):
            return body.model_dump(mode="json", by_alias=True, exclude_none=True)
        return body


# =============================================================================
# Transport and Results
# =============================================================================


class ModelHttpRequest(BaseModel):
    """A single outbound HTTP request handed to a transport."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: EnumHttpMethod
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    timeout_seconds: float = Field(..., gt=0)


class ModelDeliveryResult(BaseModel):
    """Outcome of delivering one event to one destination.

    A filtered event is reported as ``success=True, attempts=0``. An event
    accepted into a rate-limit backlog is reported by the dispatcher as
    ``success=True, attempts=0, was_queued=True``; the eventual delivery
    carries ``was_queued=True`` and the real attempt count.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    success: bool = Field(..., description="Whether delivery succeeded")
    destination_url: str = Field(..., alias="destinationUrl")
    status_code: int | None = Field(default=None, alias="statusCode")
    error: str | None = Field(default=None, description="Last error message")
    attempts: int = Field(..., ge=0, description="HTTP attempts made")
    was_queued: bool = Field(
        default=False,
        alias="wasQueued",
        description="Whether the event waited in a rate-limit backlog",
    )


__all__ = [
    "ModelDeliveryResult",
    "ModelDestinationConfig",
    "ModelEventPayload",
    "ModelHttpRequest",
    "ModelRateLimit",
    "ModelRetryPolicy",
]
