"""Conversation segmentation, structured extraction and compression."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping

from ..schema import ChatMessage
from .compression import (
    CompressedConversation,
    ConversationSummary,
    build_compressed_context,
    compress_conversation,
    compression_stats,
    needs_compression,
)
from .extraction import StructuredExtractor, extract_structured_context
from .segmentation import (
    build_context_from_segments,
    detect_topic,
    segment_conversation,
    topic_distribution,
)


def coerce_messages(items: Iterable[ChatMessage | Mapping[str, Any]]) -> List[ChatMessage]:
    """Validate raw mappings (or pass through messages) into :class:`ChatMessage` records."""
    return [item if isinstance(item, ChatMessage) else ChatMessage.model_validate(dict(item)) for item in items]


__all__ = [
    "CompressedConversation",
    "ConversationSummary",
    "StructuredExtractor",
    "build_compressed_context",
    "build_context_from_segments",
    "coerce_messages",
    "compress_conversation",
    "compression_stats",
    "detect_topic",
    "extract_structured_context",
    "needs_compression",
    "segment_conversation",
    "topic_distribution",
]
