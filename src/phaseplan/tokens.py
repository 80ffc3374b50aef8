"""Character based token estimation.

All budgets in this package use a characters/4 heuristic. It is a rough
approximation of model tokenizers, not a real tokenizer for any specific model,
and is kept deliberately cheap so it can run on every message.
"""

from __future__ import annotations

import math
from typing import Iterable

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 4
TRUNCATION_MARKER = "... (truncated)"


def estimate_tokens(text: str) -> int:
    """Return the approximate token count for ``text``."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_message_tokens(role: str, content: str) -> int:
    """Approximate a chat message including its role label and framing overhead."""
    return estimate_tokens(role) + estimate_tokens(content) + MESSAGE_OVERHEAD_TOKENS


def estimate_messages_tokens(messages: Iterable[object]) -> int:
    total = 0
    for message in messages:
        total += estimate_message_tokens(getattr(message, "role", ""), getattr(message, "content", ""))
    return total


def truncate_to_tokens(text: str, allowed_tokens: int, *, marker: str = TRUNCATION_MARKER) -> str:
    """Trim ``text`` so its estimate (marker included) stays within ``allowed_tokens``."""
    if allowed_tokens <= 0:
        return ""
    if estimate_tokens(text) <= allowed_tokens:
        return text
    max_chars = allowed_tokens * CHARS_PER_TOKEN - len(marker) - 1
    if max_chars <= 0:
        return text[: allowed_tokens * CHARS_PER_TOKEN]
    truncated = text[:max_chars].rstrip()
    if not truncated:
        return ""
    return f"{truncated}\n{marker}"
