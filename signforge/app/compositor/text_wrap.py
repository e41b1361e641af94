"""
Greedy word wrapping for fixed-width audit-page rendering.
"""

from __future__ import annotations

from typing import Any, List

DEFAULT_MAX_CHARS = 95


def wrap_text(text: Any, max_chars: int = DEFAULT_MAX_CHARS) -> List[str]:
    """
    Pack words into lines of at most ``max_chars`` characters.

    Whitespace runs collapse to single spaces. A word longer than the budget
    still gets its own line and is never truncated. Always returns at least
    one line; blank input yields ``[""]``.
    """
    words = " ".join(str(text or "").split()).split(" ")

    lines: List[str] = []
    current = ""
    for word in words:
        if not word:
            continue
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= max_chars:
            current = candidate
        else:
            if current:
                lines.append(current)
            current = word

    if current:
        lines.append(current)

    return lines or [""]
