# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Smart-separator joining of streamed text fragments.

Assistant replies arrive as several text parts. Joining them with a fixed
separator either glues sentences together or breaks a sentence that was
split mid-stream. The heuristic here inserts a paragraph break where a new
thought starts and a single space where the text simply continues.

Example:
    >>> join_message_parts(["I completed the first task.", "Now working on it."])
    'I completed the first task.\\n\\nNow working on it.'
    >>> join_message_parts(["I am working on", "the implementation now."])
    'I am working on the implementation now.'
"""

from __future__ import annotations

import re
from collections.abc import Iterable

_ENDS_CLEANLY = re.compile(r"[.!?\n]$")
_STARTS_NEW_THOUGHT = re.compile(r"^[A-Z#*\-\d]")

PARAGRAPH_BREAK = "\n\n"


def join_message_parts(parts: Iterable[str]) -> str:
    """Join text fragments, choosing a separator between each pair.

    A paragraph break is used when the text so far ends with ``.``, ``!``,
    ``?`` or a newline, or when the next fragment starts with an uppercase
    letter, ``#``, ``*``, ``-`` or a digit. Otherwise fragments are joined
    with a single space, unless either side already carries whitespace.
    Fragments that are empty after stripping leading whitespace are skipped.

    Args:
        parts: Fragments in their original order.

    Returns:
        The joined text, stripped of surrounding whitespace.
    """
    fragments = list(parts)
    if not fragments:
        return ""
    if len(fragments) == 1:
        return fragments[0].strip()

    result = fragments[0]
    for fragment in fragments[1:]:
        previous = result.rstrip()
        current = fragment.lstrip()
        if not current:
            continue

        if _ENDS_CLEANLY.search(previous) or _STARTS_NEW_THOUGHT.match(current):
            result = previous + PARAGRAPH_BREAK + current
        else:
            needs_space = not result[-1:].isspace() and not fragment[:1].isspace()
            result = result + (" " if needs_space else "") + fragment

    return result.strip()


__all__: list[str] = ["PARAGRAPH_BREAK", "join_message_parts"]
