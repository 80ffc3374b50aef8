"""Compress long conversations into a synopsis plus verbatim recent messages."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from ..schema import ChatMessage
from ..tokens import estimate_message_tokens, estimate_messages_tokens, estimate_tokens, truncate_to_tokens

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 8000
DEFAULT_PRESERVE_LAST_N = 8

_BUILT_PATTERN = re.compile(
    r"\b(?:created|implemented|built|added|set up)\s+(?:the |a |an )?([^.,\n]{3,60})",
    re.IGNORECASE,
)
_PREFERENCE_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\bi (?:want|prefer|like|need)\s+([^.!?\n]{3,80})", re.IGNORECASE),
    re.compile(r"\bplease (?:use|make|add|keep)\s+([^.!?\n]{3,80})", re.IGNORECASE),
)
_DECISION_PATTERN = re.compile(
    r"\b(?:decided|agreed|confirmed|going with|let's use|let's go with|we'll use)\s+(?:to\s+)?([^.!?\n]{3,80})",
    re.IGNORECASE,
)

MAX_FEATURES_BUILT = 10
MAX_PREFERENCES = 8
MAX_DECISIONS = 8


@dataclass(slots=True)
class ConversationSummary:
    """Synopsis standing in for the summarized (older) messages."""

    project_description: str = ""
    features_built: List[str] = field(default_factory=list)
    user_preferences: List[str] = field(default_factory=list)
    key_decisions: List[str] = field(default_factory=list)
    message_count: int = 0
    original_tokens: int = 0
    summary_tokens: int = 0
    text: str = ""


@dataclass(slots=True)
class CompressedConversation:
    summary: Optional[ConversationSummary]
    recent_messages: List[ChatMessage]
    original_tokens: int
    compressed_tokens: int

    @property
    def was_compressed(self) -> bool:
        return self.summary is not None


def needs_compression(messages: Sequence[ChatMessage], max_tokens: int = DEFAULT_MAX_TOKENS) -> bool:
    """Return True when the estimated size of ``messages`` exceeds ``max_tokens``."""
    return estimate_messages_tokens(messages) > max_tokens


def _collect(messages: Sequence[ChatMessage], role: str, patterns: Sequence[Pattern[str]], limit: int) -> List[str]:
    found: List[str] = []
    for message in messages:
        if message.role != role:
            continue
        for pattern in patterns:
            for match in pattern.finditer(message.content):
                value = match.group(1).strip()
                if value and value not in found:
                    found.append(value)
                if len(found) >= limit:
                    return found
    return found


def summarize_messages(messages: Sequence[ChatMessage]) -> ConversationSummary:
    """Build counts and extracted highlights for ``messages``."""
    first_user = next((message.content for message in messages if message.role == "user"), "")
    decisions: List[str] = []
    for message in messages:
        for match in _DECISION_PATTERN.finditer(message.content):
            value = match.group(1).strip()
            if value not in decisions:
                decisions.append(value)
    summary = ConversationSummary(
        project_description=first_user[:300].strip(),
        features_built=_collect(messages, "assistant", (_BUILT_PATTERN,), MAX_FEATURES_BUILT),
        user_preferences=_collect(messages, "user", _PREFERENCE_PATTERNS, MAX_PREFERENCES),
        key_decisions=decisions[:MAX_DECISIONS],
        message_count=len(messages),
        original_tokens=estimate_messages_tokens(messages),
    )
    summary.text = render_summary(summary)
    summary.summary_tokens = estimate_tokens(summary.text)
    return summary


def render_summary(summary: ConversationSummary) -> str:
    lines = ["=== Conversation Summary ==="]
    if summary.project_description:
        lines.append(f"Project: {summary.project_description}")
    if summary.features_built:
        lines.append("Features built: " + "; ".join(summary.features_built))
    if summary.user_preferences:
        lines.append("User preferences: " + "; ".join(summary.user_preferences))
    if summary.key_decisions:
        lines.append("Key decisions: " + "; ".join(summary.key_decisions))
    lines.append(f"(Summarized from {summary.message_count} messages)")
    return "\n".join(lines)


def _fit_recent(
    messages: Sequence[ChatMessage],
    preserve_last_n: int,
    budget: int,
) -> List[ChatMessage]:
    keep = min(preserve_last_n, len(messages))
    recent = list(messages[len(messages) - keep :]) if keep else []
    while len(recent) > 1 and estimate_messages_tokens(recent) > budget:
        recent.pop(0)
    if recent and estimate_messages_tokens(recent) > budget:
        last = recent[0]
        allowed = budget - estimate_message_tokens(last.role, "")
        content = truncate_to_tokens(last.content, allowed)
        if allowed <= 0 or not content:
            LOGGER.warning("Dropping oversized message that cannot fit in %d tokens", budget)
            return []
        recent = [last.model_copy(update={"content": content})]
    return recent


def compress_conversation(
    messages: Sequence[ChatMessage],
    max_tokens: int = DEFAULT_MAX_TOKENS,
    preserve_last_n: int = DEFAULT_PRESERVE_LAST_N,
) -> CompressedConversation:
    """Keep the most recent messages verbatim and summarize everything older.

    The verbatim window shrinks (and as a last resort the newest message is
    truncated) until it fits the budget left after the summary, so
    ``needs_compression(result.recent_messages, max_tokens)`` is always false.
    """
    if max_tokens <= 0:
        raise ValueError("max_tokens must be positive")
    original = estimate_messages_tokens(messages)
    if not needs_compression(messages, max_tokens):
        return CompressedConversation(
            summary=None,
            recent_messages=list(messages),
            original_tokens=original,
            compressed_tokens=original,
        )

    summary_budget = max(1, max_tokens // 4)
    recent = _fit_recent(messages, preserve_last_n, max_tokens - summary_budget)
    older_count = len(messages) - len(recent)
    summary = summarize_messages(messages[:older_count])
    if summary.summary_tokens > summary_budget:
        summary.text = truncate_to_tokens(summary.text, summary_budget)
        summary.summary_tokens = estimate_tokens(summary.text)

    compressed = summary.summary_tokens + estimate_messages_tokens(recent)
    LOGGER.debug(
        "Compressed %d message(s) (%d tokens) into summary of %d plus %d recent (%d tokens)",
        len(messages),
        original,
        older_count,
        len(recent),
        compressed,
    )
    return CompressedConversation(
        summary=summary,
        recent_messages=recent,
        original_tokens=original,
        compressed_tokens=compressed,
    )


def _role_label(role: str) -> str:
    return {"user": "User", "assistant": "Assistant"}.get(role, role.capitalize())


def build_compressed_context(compressed: CompressedConversation) -> str:
    """Render summary and recent messages as a single prompt-ready string."""
    parts: List[str] = []
    if compressed.summary is not None:
        parts.append(compressed.summary.text)
    if compressed.recent_messages:
        lines = ["=== Recent Messages ==="]
        lines.extend(f"{_role_label(message.role)}: {message.content}" for message in compressed.recent_messages)
        parts.append("\n".join(lines))
    return "\n\n".join(parts)


def compression_stats(compressed: CompressedConversation) -> Dict[str, Any]:
    original = compressed.original_tokens
    ratio = 0.0 if original == 0 else round(1 - compressed.compressed_tokens / original, 4)
    return {
        "originalTokens": original,
        "compressedTokens": compressed.compressed_tokens,
        "savedTokens": original - compressed.compressed_tokens,
        "compressionRatio": ratio,
        "messagesSummarized": compressed.summary.message_count if compressed.summary else 0,
        "messagesPreserved": len(compressed.recent_messages),
    }
