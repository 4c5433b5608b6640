# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Models for host message events and the synthetic completion event.

The host reports message activity with camelCase-with-ID keys
(``sessionID``, ``messageID``). These models accept that shape and ignore
fields the aggregator does not use.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from webhook_relay.enums import EnumOpencodeEventType


class ModelTokenUsage(BaseModel):
    """Token counters reported with an assistant message.

    Additional counters (e.g. cache read/write) are preserved as extras.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    input: int = 0
    output: int = 0
    reasoning: int = 0


class ModelMessageInfo(BaseModel):
    """``properties.info`` of a ``message.updated`` event."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str = Field(..., min_length=1)
    role: str
    session_id: str = Field(..., min_length=1, alias="sessionID")
    tokens: ModelTokenUsage | None = None
    cost: float | None = None


class ModelMessagePart(BaseModel):
    """``properties.part`` of a ``message.part.updated`` event."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str = Field(..., min_length=1)
    type: str
    text: str = ""
    session_id: str = Field(..., min_length=1, alias="sessionID")
    message_id: str = Field(..., min_length=1, alias="messageID")


class ModelSessionInfo(BaseModel):
    """Session metadata returned by a session lookup."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str | None = None
    title: str | None = None


class ModelAgentCompletedPayload(BaseModel):
    """Consolidated record emitted when an agent finishes a reply.

    Attributes:
        timestamp: When the completion was detected.
        event_type: Always ``agent.completed``.
        session_id: Session that went idle.
        session_title: Human-readable session name (with fallbacks).
        message_content: All assistant text parts, smart-joined.
        message_id: Id of the last assistant message that contributed text.
        tokens: Token usage of the last assistant message, if reported.
        cost: Cost of the last assistant message, if reported.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    event_type: str = Field(
        default=EnumOpencodeEventType.AGENT_COMPLETED.value, alias="eventType"
    )
    session_id: str = Field(..., alias="sessionId")
    session_title: str = Field(..., alias="sessionTitle")
    message_content: str = Field(..., alias="messageContent")
    message_id: str | None = Field(default=None, alias="messageId")
    tokens: ModelTokenUsage | None = None
    cost: float | None = None

    def to_fields(self) -> dict[str, Any]:
        """Serialize for dispatch (camelCase keys, unset optionals omitted)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__: list[str] = [
    "ModelAgentCompletedPayload",
    "ModelMessageInfo",
    "ModelMessagePart",
    "ModelSessionInfo",
    "ModelTokenUsage",
]
