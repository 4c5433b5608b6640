# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Completion aggregation for host message events.

This package turns the host's low-level message stream into one
``agent.completed`` event per idle transition of a session.

Key Components:
    - CompletionAggregator: Per-session accumulator with idle debounce
    - ConfigCompletionAggregator: Aggregation settings (idle delay)
    - ProtocolSessionLookup: Optional source of session titles
    - join_message_parts: Smart-separator join of text fragments
    - ModelAgentCompletedPayload: The emitted completion record

Architecture:
    ```
    message.updated ------+
    message.part.updated -+--> CompletionAggregator --(session.idle)-->
    session.idle ---------+        ModelAgentCompletedPayload --> dispatcher
    ```

Example:
    >>> from webhook_relay.aggregators import (
    ...     CompletionAggregator,
    ...     ConfigCompletionAggregator,
    ... )
    >>>
    >>> async def on_complete(payload):
    ...     print(payload.session_title, payload.message_content)
    >>>
    >>> aggregator = CompletionAggregator(
    ...     on_complete, ConfigCompletionAggregator(idle_delay_secs=5)
    ... )
"""

from __future__ import annotations

from webhook_relay.aggregators.completion_aggregator import (
    CompletionAggregator,
    CompletionCallback,
    SessionAccumulatorState,
)
from webhook_relay.aggregators.config import ConfigCompletionAggregator
from webhook_relay.aggregators.models import (
    ModelAgentCompletedPayload,
    ModelMessageInfo,
    ModelMessagePart,
    ModelSessionInfo,
    ModelTokenUsage,
)
from webhook_relay.aggregators.protocol_session_lookup import ProtocolSessionLookup
from webhook_relay.aggregators.text_join import join_message_parts

__all__ = [
    # Implementation
    "CompletionAggregator",
    "CompletionCallback",
    "SessionAccumulatorState",
    # Configuration
    "ConfigCompletionAggregator",
    # Protocol
    "ProtocolSessionLookup",
    # Models
    "ModelAgentCompletedPayload",
    "ModelMessageInfo",
    "ModelMessagePart",
    "ModelSessionInfo",
    "ModelTokenUsage",
    # Text
    "join_message_parts",
]
