# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Protocol for resolving session metadata from the host.

The completion aggregator uses it to give notifications a readable session
title. Implementations typically call the host's API client and may raise;
the aggregator treats any exception or a missing title as "fall through to
the next fallback" (working directory name, then the raw session id).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from webhook_relay.aggregators.models import ModelSessionInfo


@runtime_checkable
class ProtocolSessionLookup(Protocol):
    """Looks up session metadata by id."""

    async def get_session(
        self, session_id: str
    ) -> ModelSessionInfo | Mapping[str, Any] | None:
        """Return session metadata, or None if the session is unknown.

        Args:
            session_id: The host session identifier.

        Raises:
            Exception: Any failure; callers degrade to fallbacks.
        """
        ...


__all__: list[str] = ["ProtocolSessionLookup"]
