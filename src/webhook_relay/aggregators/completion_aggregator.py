# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Agent completion aggregator.

Accumulates streamed assistant text per session and emits one
ModelAgentCompletedPayload when the session goes idle.

Consumed Events:
    - message.updated: Registers assistant message ids and keeps the
      latest token/cost snapshot (overwrite, not merge).
    - message.part.updated: Upserts text parts of registered assistant
      messages, keyed by part id so streaming updates overwrite earlier
      text of the same part. Parts of other messages are discarded, so
      notifications never echo the user's own prompt.
    - session.idle: Emits the completion (immediately, or after the
      configured idle delay).

State Machine (per session, idle_delay_secs > 0):
    [No State] ---(message activity)---> ACCUMULATING
    ACCUMULATING ---(session.idle)---> IDLE_PENDING (timer armed)
    IDLE_PENDING ---(session.idle)---> IDLE_PENDING (timer restarted)
    IDLE_PENDING ---(message activity)---> ACCUMULATING (timer cancelled)
    IDLE_PENDING ---(timer fires)---> [No State] (completion emitted)

    With idle_delay_secs == 0, session.idle emits directly.

Invariants:
    - Accumulated text only comes from registered assistant message ids
    - Exactly one emission per accumulation cycle; session state is
      detached before the completion callback runs
    - Sessions never share state

Concurrency: coroutine-safe on a single event loop (not thread-safe).
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

from pydantic import ValidationError

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
from webhook_relay.enums import EnumOpencodeEventType
from webhook_relay.scheduler import (
    AsyncioScheduler,
    ProtocolScheduler,
    ProtocolTimerHandle,
)

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[ModelAgentCompletedPayload], Awaitable[None]]

ASSISTANT_ROLE = "assistant"
TEXT_PART_TYPE = "text"


# =============================================================================
# Internal State Models
# =============================================================================


@dataclass
class SessionAccumulatorState:
    """Accumulation state for one session.

    Attributes:
        session_id: The host session identifier.
        parts_by_part_id: Text per part id, in first-seen order (last write wins).
        assistant_message_ids: Message ids known to belong to the assistant.
        last_message_id: Message id of the most recent accepted text part.
        last_tokens: Token usage from the latest assistant message update.
        last_cost: Cost from the latest assistant message update.
        pending_idle_timer: Armed idle debounce timer, if any.
    """

    session_id: str
    parts_by_part_id: dict[str, str] = field(default_factory=dict)
    assistant_message_ids: set[str] = field(default_factory=set)
    last_message_id: str | None = None
    last_tokens: ModelTokenUsage | None = None
    last_cost: float | None = None
    pending_idle_timer: ProtocolTimerHandle | None = None

    def cancel_idle_timer(self) -> bool:
        """Cancel a pending idle emission. Returns True if one was pending."""
        if self.pending_idle_timer is None:
            return False
        self.pending_idle_timer.cancel()
        self.pending_idle_timer = None
        return True


# =============================================================================
# Completion Aggregator
# =============================================================================


class CompletionAggregator:
    """Turns streamed message events into one completion per idle session.

    Example:
        >>> async def notify(payload: ModelAgentCompletedPayload) -> None:
        ...     print(payload.message_content)
        >>> aggregator = CompletionAggregator(notify, working_directory="/work/app")
        >>> # await aggregator.handle_event({"type": "session.idle", ...})
    """

    def __init__(
        self,
        on_complete: CompletionCallback,
        config: ConfigCompletionAggregator | None = None,
        *,
        session_lookup: ProtocolSessionLookup | None = None,
        working_directory: str | None = None,
        scheduler: ProtocolScheduler | None = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            on_complete: Coroutine invoked with each completion payload.
            config: Aggregation settings; defaults load from the environment.
            session_lookup: Optional source of session titles.
            working_directory: Host project directory; its last path
                segment is the second title fallback.
            scheduler: Timer capability for the idle debounce.
        """
        self._on_complete = on_complete
        self._config = config or ConfigCompletionAggregator()
        self._session_lookup = session_lookup
        self._working_directory = working_directory
        self._scheduler = scheduler or AsyncioScheduler()
        self._sessions: dict[str, SessionAccumulatorState] = {}
        self._closed = False

        logger.info(
            "CompletionAggregator initialized",
            extra={"idle_delay_secs": self._config.idle_delay_secs},
        )

    @property
    def active_sessions(self) -> list[str]:
        return list(self._sessions)

    def get_state(self, session_id: str) -> SessionAccumulatorState | None:
        return self._sessions.get(session_id)

    # =========================================================================
    # Event Intake
    # =========================================================================

    async def handle_event(self, event: Mapping[str, Any]) -> None:
        """Process one host event ``{type, properties}``.

        Events of other types are ignored. Malformed events are logged and
        dropped.
        """
        if self._closed:
            return

        event_type = event.get("type")
        properties = event.get("properties")
        if not isinstance(properties, Mapping):
            properties = event

        if event_type == EnumOpencodeEventType.MESSAGE_PART_UPDATED:
            self._handle_message_part_updated(properties)
        elif event_type == EnumOpencodeEventType.MESSAGE_UPDATED:
            self._handle_message_updated(properties)
        elif event_type == EnumOpencodeEventType.SESSION_IDLE:
            await self._handle_session_idle(properties)

    def _handle_message_part_updated(self, properties: Mapping[str, Any]) -> None:
        raw_part = properties.get("part")
        if not isinstance(raw_part, Mapping):
            return
        self._note_activity(raw_part.get("sessionID"))

        if raw_part.get("type") != TEXT_PART_TYPE:
            return
        try:
            part = ModelMessagePart.model_validate(raw_part)
        except ValidationError as e:
            logger.debug(f"Ignoring malformed message part: {e}")
            return

        state = self._state_for(part.session_id)
        if part.message_id not in state.assistant_message_ids:
            logger.debug(
                f"Skipping text part from non-assistant message {part.message_id}"
            )
            return

        state.parts_by_part_id[part.id] = part.text
        state.last_message_id = part.message_id
        logger.debug(
            f"Tracked text part for session {part.session_id}, "
            f"message {part.message_id}, part {part.id}"
        )

    def _handle_message_updated(self, properties: Mapping[str, Any]) -> None:
        raw_info = properties.get("info")
        if not isinstance(raw_info, Mapping):
            return
        self._note_activity(raw_info.get("sessionID"))

        if raw_info.get("role") != ASSISTANT_ROLE:
            return
        try:
            info = ModelMessageInfo.model_validate(raw_info)
        except ValidationError as e:
            logger.debug(f"Ignoring malformed message info: {e}")
            return

        state = self._state_for(info.session_id)
        state.assistant_message_ids.add(info.id)
        state.last_tokens = info.tokens
        state.last_cost = info.cost
        logger.debug(
            f"Tracked assistant message {info.id} for session {info.session_id}"
        )

    async def _handle_session_idle(self, properties: Mapping[str, Any]) -> None:
        session_id = properties.get("sessionID")
        if not isinstance(session_id, str) or not session_id:
            return

        state = self._sessions.get(session_id)
        if state is None or not state.parts_by_part_id:
            logger.debug(f"Session {session_id} idle but no messages to report")
            return

        delay = self._config.idle_delay_secs
        if delay <= 0:
            await self.emit_completion(session_id)
            return

        restarted = state.cancel_idle_timer()

        async def _on_idle_timer() -> None:
            if self._sessions.get(session_id) is not state:
                return
            state.pending_idle_timer = None
            await self.emit_completion(session_id)

        state.pending_idle_timer = self._scheduler.call_later(delay, _on_idle_timer)
        logger.debug(
            f"Session {session_id} idle; "
            f"{'restarted' if restarted else 'started'} {delay}s completion timer"
        )

    def _note_activity(self, session_id: object) -> None:
        if not isinstance(session_id, str):
            return
        state = self._sessions.get(session_id)
        if state is not None and state.cancel_idle_timer():
            logger.debug(
                f"Activity resumed in session {session_id}, pending completion cancelled"
            )

    def _state_for(self, session_id: str) -> SessionAccumulatorState:
        state = self._sessions.get(session_id)
        if state is None:
            state = SessionAccumulatorState(session_id=session_id)
            self._sessions[session_id] = state
        return state

    # =========================================================================
    # Emission
    # =========================================================================

    async def emit_completion(self, session_id: str) -> ModelAgentCompletedPayload | None:
        """Emit the completion for ``session_id`` and clear its state.

        The state is detached before any await, so activity arriving while
        the callback runs starts a fresh accumulation cycle.

        Returns:
            The emitted payload, or None if there was nothing to report or
            building/delivering the completion failed.
        """
        state = self._sessions.pop(session_id, None)
        if state is None:
            return None
        state.cancel_idle_timer()
        if not state.parts_by_part_id:
            return None

        try:
            session_title = await self.resolve_session_title(session_id)
            message_content = join_message_parts(state.parts_by_part_id.values())
            payload = ModelAgentCompletedPayload(
                session_id=session_id,
                session_title=session_title,
                message_content=message_content,
                message_id=state.last_message_id,
                tokens=state.last_tokens,
                cost=state.last_cost,
            )
            logger.debug(
                f'Agent completed in "{session_title}", '
                f"message length: {len(message_content)}"
            )
            await self._on_complete(payload)
        except Exception:
            logger.exception(f"Failed to emit completion for session {session_id}")
            return None
        return payload

    async def resolve_session_title(self, session_id: str) -> str:
        """Resolve a readable title: lookup, then directory name, then id."""
        if self._session_lookup is not None:
            try:
                session = await self._session_lookup.get_session(session_id)
                if isinstance(session, Mapping):
                    session = ModelSessionInfo.model_validate(session)
                if session is not None and session.title:
                    return session.title
            except Exception as e:
                logger.debug(f"Could not fetch session title: {e}")

        if self._working_directory:
            directory_name = PurePath(self._working_directory).name
            if directory_name:
                return directory_name

        return session_id

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def destroy(self) -> None:
        """Cancel all pending idle timers and drop all session state."""
        self._closed = True
        for state in self._sessions.values():
            state.cancel_idle_timer()
        self._sessions.clear()


__all__: list[str] = [
    "CompletionAggregator",
    "CompletionCallback",
    "SessionAccumulatorState",
]
