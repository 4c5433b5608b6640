# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Enums for webhook routing and delivery.

The host event vocabulary is a set of stable string identifiers used as
exact-match subscription keys. EnumOpencodeEventType lists the identifiers
emitted by OpenCode plus the synthetic ``agent.completed`` event produced by
the completion aggregator. Destinations may subscribe to any string; the
enum is a convenience, and because it is a StrEnum its members compare equal
to their plain string values.
"""

from __future__ import annotations

from enum import StrEnum


class EnumOpencodeEventType(StrEnum):
    """Event types emitted by the host application.

    Example:
        >>> EnumOpencodeEventType.SESSION_IDLE == "session.idle"
        True
    """

    # Session lifecycle
    SESSION_CREATED = "session.created"
    SESSION_UPDATED = "session.updated"
    SESSION_IDLE = "session.idle"
    SESSION_DELETED = "session.deleted"
    SESSION_ERROR = "session.error"
    SESSION_COMPACTED = "session.compacted"
    SESSION_RESUMED = "session.resumed"

    # Message lifecycle
    MESSAGE_UPDATED = "message.updated"
    MESSAGE_REMOVED = "message.removed"
    MESSAGE_PART_UPDATED = "message.part.updated"
    MESSAGE_PART_REMOVED = "message.part.removed"

    # Workspace
    FILE_EDITED = "file.edited"
    PERMISSION_UPDATED = "permission.updated"

    # Synthetic, produced by CompletionAggregator
    AGENT_COMPLETED = "agent.completed"


class EnumHttpMethod(StrEnum):
    """HTTP methods accepted for webhook delivery."""

    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"


class EnumRateWindowState(StrEnum):
    """State of a rate-limited destination queue.

    State Transitions:
        IDLE -> QUEUED: An event arrives with no capacity left in the window
        QUEUED -> IDLE: A flush pass drains the backlog
    """

    IDLE = "idle"
    QUEUED = "queued"


__all__ = [
    "EnumHttpMethod",
    "EnumOpencodeEventType",
    "EnumRateWindowState",
]
