from __future__ import annotations

from phaseplan.schema import ChatMessage
from phaseplan.tokens import (
    MESSAGE_OVERHEAD_TOKENS,
    TRUNCATION_MARKER,
    estimate_messages_tokens,
    estimate_tokens,
    truncate_to_tokens,
)


def test_estimate_tokens_rounds_up() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("abc") == 1
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_message_estimate_includes_role_and_overhead() -> None:
    messages = [ChatMessage(role="user", content="a" * 40)]

    assert estimate_messages_tokens(messages) == 1 + 10 + MESSAGE_OVERHEAD_TOKENS


def test_truncate_to_tokens_respects_budget() -> None:
    text = "word " * 200

    truncated = truncate_to_tokens(text, 20)

    assert truncated.endswith(TRUNCATION_MARKER)
    assert estimate_tokens(truncated) <= 20
    assert truncate_to_tokens("short", 20) == "short"
    assert truncate_to_tokens(text, 0) == ""
