"""Topic segmentation of a chat log with hysteresis."""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from ..domains import ConversationTopic
from ..schema import ChatMessage, ConversationSegment, Importance, SegmentData
from ..tokens import estimate_tokens, truncate_to_tokens

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_SEGMENT_SIZE = 20
MAX_KEY_POINTS = 10
MAX_SEGMENT_ITEMS = 10

TOPIC_LABELS: Dict[ConversationTopic, str] = {
    ConversationTopic.INTRODUCTION: "Introduction",
    ConversationTopic.FEATURE_DISCUSSION: "Feature Discussion",
    ConversationTopic.TECHNICAL_SPECS: "Technical Specifications",
    ConversationTopic.UI_DESIGN: "UI/UX Design",
    ConversationTopic.USER_ROLES: "User Roles",
    ConversationTopic.WORKFLOW: "Workflows",
    ConversationTopic.DATA_MODEL: "Data Model",
    ConversationTopic.INTEGRATION: "Integrations",
    ConversationTopic.CLARIFICATION: "Clarifications",
    ConversationTopic.GENERAL: "General Discussion",
}

# Patterns are applied to lower-cased message text; each match adds one point.
TOPIC_PATTERNS: Tuple[Tuple[ConversationTopic, Tuple[Pattern[str], ...]], ...] = (
    (
        ConversationTopic.INTRODUCTION,
        (
            re.compile(r"\b(?:i want to|i'd like to|i need to|let me|we're going to)\s+(?:build|create|make|develop)\b"),
            re.compile(r"\b(?:hello|hi|hey|welcome|let's start|getting started)\b"),
            re.compile(r"\b(?:what kind of|describe your|tell me about your)\s+(?:app|project|idea)\b"),
        ),
    ),
    (
        ConversationTopic.FEATURE_DISCUSSION,
        (
            re.compile(r"\b(?:feature|functionality|capability|ability)\s*(?:to|for|that)\b"),
            re.compile(r"\b(?:users? (?:can|should|will|need to)|the app (?:should|will|must))\b"),
            re.compile(r"\b(?:add|implement|include|build|create)\s+(?:a |an |the )?(?:\w+\s+)?(?:feature|function)\b"),
            re.compile(r"\b(?:authentication|login|signup|dashboard|profile|settings|notifications?)\b"),
        ),
    ),
    (
        ConversationTopic.TECHNICAL_SPECS,
        (
            re.compile(r"\b(?:database|api|backend|server|endpoint|integration)\b"),
            re.compile(r"\b(?:postgresql|postgres|mysql|mongodb|supabase|firebase|aws|azure)\b"),
            re.compile(r"\b(?:react|next\.?js|node|typescript|javascript|python)\b"),
            re.compile(r"\b(?:oauth|jwt|session|token)s?\b"),
            re.compile(r"\b(?:real-?time|websockets?|push notifications?|webhooks?)\b"),
        ),
    ),
    (
        ConversationTopic.UI_DESIGN,
        (
            re.compile(r"\b(?:design|layout|ui|ux|interface|screen|page|component)s?\b"),
            re.compile(r"\b(?:colou?r|theme|style|font|typography|spacing)s?\b"),
            re.compile(r"\b(?:button|form|modal|sidebar|header|footer|navigation)s?\b"),
            re.compile(r"\b(?:responsive|mobile|desktop|tablet)\b"),
            re.compile(r"\b(?:dark mode|light mode)\b"),
        ),
    ),
    (
        ConversationTopic.USER_ROLES,
        (
            re.compile(r"\b(?:roles?|permissions?|access|user types?|admins?|moderators?|editors?|viewers?)\b"),
            re.compile(r"\b(?:can access|has permission|allowed to|restricted from)\b"),
            re.compile(r"\b(?:different (?:types of )?users|user levels|user groups)\b"),
        ),
    ),
    (
        ConversationTopic.WORKFLOW,
        (
            re.compile(r"\b(?:workflow|process|flow|step|procedure|sequence)s?\b"),
            re.compile(r"\b(?:when|after|once|then|next|finally)\s+(?:the user|they|it|the system)\b"),
            re.compile(r"\b(?:first|second|third|after that|finally)\b"),
            re.compile(r"\b(?:approval|review|submission|completion)\b"),
        ),
    ),
    (
        ConversationTopic.DATA_MODEL,
        (
            re.compile(r"\b(?:data model|schema|entity|entities|table|field|column|relationship)s?\b"),
            re.compile(r"\b(?:store|save|persist|retrieve|query|fetch)\b"),
            re.compile(r"\b(?:one-to-many|many-to-many|foreign key|primary key)\b"),
            re.compile(r"\b(?:user data|profile data|preferences)\b"),
        ),
    ),
    (
        ConversationTopic.INTEGRATION,
        (
            re.compile(r"\b(?:integrate|connect|third-party|external)\b"),
            re.compile(r"\b(?:webhook|oauth|sso)\b"),
            re.compile(r"\b(?:stripe|paypal|twilio|sendgrid|slack|discord)\b"),
            re.compile(r"\b(?:import|export|sync|migration)\b"),
        ),
    ),
    (
        ConversationTopic.CLARIFICATION,
        (
            re.compile(r"\b(?:what do you mean|can you explain|could you clarify|i'm not sure)\b"),
            re.compile(r"\b(?:do you want|would you like|should i|do you need)\b"),
            re.compile(r"\?\s*$", re.MULTILINE),
        ),
    ),
)

DECISION_PATTERN = re.compile(
    r"\b(?:decided|confirmed|agreed|approved|let's do|let's go with|going with|sounds good|that works)\b",
    re.IGNORECASE,
)

_BULLET_PATTERN = re.compile(r"(?:^|\n)\s*[-•*]\s+([^.\n]+)")
_NUMBERED_PATTERN = re.compile(r"(?:^|\n)\s*\d+[.)]\s+([^.\n]+)")
_STATEMENT_PATTERN = re.compile(r"\b(?:must|should|will|need to)\s+([^.\n]+)", re.IGNORECASE)

_SEGMENT_DATA_PATTERNS: Dict[ConversationTopic, Tuple[str, Tuple[Pattern[str], ...]]] = {
    ConversationTopic.FEATURE_DISCUSSION: (
        "features",
        (
            re.compile(r"\b(?:feature|functionality):\s*([^.\n]+)", re.IGNORECASE),
            re.compile(r"\b(?:add|implement|build)\s+(?:a |an |the )?([^.\n]{10,60})", re.IGNORECASE),
        ),
    ),
    ConversationTopic.USER_ROLES: (
        "roles",
        (
            re.compile(r"\b(?:role|user type):\s*([^.\n]+)", re.IGNORECASE),
            re.compile(r"\b(admin|user|guest|moderator|editor|viewer|manager|owner)s?\b", re.IGNORECASE),
        ),
    ),
    ConversationTopic.TECHNICAL_SPECS: (
        "technical_decisions",
        (
            re.compile(r"\b(?:use|using|with)\s+([\w ]+?(?:database|api|framework|library))\b", re.IGNORECASE),
            re.compile(r"\b(postgresql|mysql|mongodb|supabase|firebase|react|next\.?js|node)\b", re.IGNORECASE),
        ),
    ),
    ConversationTopic.UI_DESIGN: (
        "ui_elements",
        (
            re.compile(
                r"\b(?:button|form|modal|sidebar|header|navigation|component)s?\b"
                r"(?:\s+(?:for|to|that)\s+([^.\n]{5,50}))?",
                re.IGNORECASE,
            ),
            re.compile(r"\b(?:design|layout):\s*([^.\n]+)", re.IGNORECASE),
        ),
    ),
    ConversationTopic.DATA_MODEL: (
        "data_models",
        (
            re.compile(r"\b(?:table|entity|model|schema):\s*([^.\n]+)", re.IGNORECASE),
            re.compile(r"\b(?:store|save)\s+([^.\n]{10,50})", re.IGNORECASE),
        ),
    ),
    ConversationTopic.INTEGRATION: (
        "integrations",
        (
            re.compile(r"\b(?:integrate|connect)\s+(?:with\s+)?([^.\n]{5,40})", re.IGNORECASE),
            re.compile(r"\b(stripe|paypal|twilio|sendgrid|slack|google|aws)\b", re.IGNORECASE),
        ),
    ),
}

_CONSTRAINT_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\b(?:must not|cannot|can't|should not|shouldn't|don't)\s+([^.\n]+)", re.IGNORECASE),
    re.compile(r"\b(?:limit|maximum|minimum)\s+([^.\n]+)", re.IGNORECASE),
)
_QUESTION_PATTERN = re.compile(r"([^.!?\n]*\?)")

_SUBSTANTIVE_TOPICS = frozenset(
    {
        ConversationTopic.FEATURE_DISCUSSION,
        ConversationTopic.TECHNICAL_SPECS,
        ConversationTopic.USER_ROLES,
        ConversationTopic.DATA_MODEL,
        ConversationTopic.UI_DESIGN,
        ConversationTopic.WORKFLOW,
        ConversationTopic.INTEGRATION,
    }
)

IMPORTANCE_RANK: Dict[Importance, int] = {Importance.HIGH: 0, Importance.MEDIUM: 1, Importance.LOW: 2}


def topic_label(topic: ConversationTopic) -> str:
    return TOPIC_LABELS[topic]


def detect_topic(content: str) -> ConversationTopic:
    """Score each topic by pattern hits; ties resolve to the earlier topic."""
    lowered = content.lower()
    best_topic = ConversationTopic.GENERAL
    best_score = 0
    for topic, patterns in TOPIC_PATTERNS:
        score = sum(len(pattern.findall(lowered)) for pattern in patterns)
        if score > best_score:
            best_topic = topic
            best_score = score
    return best_topic


def segment_token_estimate(messages: Iterable[ChatMessage]) -> int:
    return sum(estimate_tokens(message.content) + 4 for message in messages)


def extract_pattern_matches(text: str, patterns: Sequence[Pattern[str]], *, limit: int = MAX_SEGMENT_ITEMS) -> List[str]:
    """Collect unique first-group (or whole) matches between 4 and 99 characters."""
    matches: List[str] = []
    for pattern in patterns:
        for match in pattern.finditer(text):
            value = (match.group(1) if match.lastindex and match.group(1) else match.group(0)).strip()
            if 3 < len(value) < 100 and value not in matches:
                matches.append(value)
    return matches[:limit]


def extract_key_points(messages: Sequence[ChatMessage]) -> List[str]:
    """Extractive bullets: list items, numbered steps and must/should statements."""
    points: List[str] = []

    def _add(value: str, upper: int) -> None:
        value = value.strip()
        if 10 <= len(value) <= upper and value not in points:
            points.append(value)

    for message in messages:
        for match in _BULLET_PATTERN.finditer(message.content):
            _add(match.group(1), 150)
        for match in _NUMBERED_PATTERN.finditer(message.content):
            _add(match.group(1), 150)
        for match in _STATEMENT_PATTERN.finditer(message.content):
            _add(match.group(1), 100)
    return points[:MAX_KEY_POINTS]


def extract_segment_data(messages: Sequence[ChatMessage], topic: ConversationTopic) -> SegmentData:
    content = "\n".join(message.content for message in messages)
    values: Dict[str, List[str]] = {}
    entry = _SEGMENT_DATA_PATTERNS.get(topic)
    if entry is not None:
        field_name, patterns = entry
        values[field_name] = extract_pattern_matches(content, patterns)
    if topic is ConversationTopic.CLARIFICATION:
        questions: List[str] = []
        for message in messages:
            match = _QUESTION_PATTERN.search(message.content)
            if match:
                question = match.group(1).strip()
                if len(question) > 10 and question not in questions:
                    questions.append(question)
        values["questions"] = questions[:MAX_SEGMENT_ITEMS]
    values["constraints"] = extract_pattern_matches(content, _CONSTRAINT_PATTERNS)
    return SegmentData(**values)


def _summarize(messages: Sequence[ChatMessage], topic: ConversationTopic) -> str:
    user_messages = [message for message in messages if message.role == "user"]
    assistant_messages = [message for message in messages if message.role == "assistant"]
    first_user = user_messages[0].content[:150] if user_messages else ""
    last_assistant = assistant_messages[-1].content[:150] if assistant_messages else ""
    summary = f"{topic_label(topic)}: {first_user}"
    if last_assistant:
        summary += f" -> {last_assistant}"
    return summary[:300]


def _spans(topics: Sequence[ConversationTopic], max_segment_size: int) -> List[Tuple[ConversationTopic, int, int]]:
    spans: List[Tuple[ConversationTopic, int, int]] = []
    current = topics[0]
    start = 0
    general = ConversationTopic.GENERAL
    for index in range(1, len(topics)):
        topic = topics[index]
        if index - start >= max_segment_size:
            spans.append((current, start, index - 1))
            start = index
            if current is general:
                current = topic
            continue
        if current is general:
            if topic is not general:
                current = topic
            continue
        if topic is general or topic is current:
            continue
        following: Optional[ConversationTopic] = topics[index + 1] if index + 1 < len(topics) else None
        if following is not topic:
            continue
        spans.append((current, start, index - 1))
        current = topic
        start = index
    spans.append((current, start, len(topics) - 1))
    return spans


def segment_conversation(
    messages: Sequence[ChatMessage],
    *,
    max_segment_size: int = DEFAULT_MAX_SEGMENT_SIZE,
) -> List[ConversationSegment]:
    """Split ``messages`` into topic segments.

    A new segment starts only when two consecutive messages agree on a topic
    other than the current one; ``general`` messages never trigger a change.
    Segments longer than ``max_segment_size`` are cut.
    """
    if not messages:
        return []
    if max_segment_size < 2:
        raise ValueError("max_segment_size must be at least 2")

    topics = [detect_topic(message.content) for message in messages]
    segments: List[ConversationSegment] = []
    for index, (topic, start, end) in enumerate(_spans(topics, max_segment_size)):
        chunk = list(messages[start : end + 1])
        segments.append(
            ConversationSegment(
                id=f"segment-{index}-{topic.value}",
                topic=topic,
                start_index=start,
                end_index=end,
                messages=chunk,
                summary=_summarize(chunk, topic),
                key_points=extract_key_points(chunk),
                extracted_data=extract_segment_data(chunk, topic),
                token_estimate=segment_token_estimate(chunk),
            )
        )

    _assign_importance(segments)
    LOGGER.debug("Segmented %d message(s) into %d segment(s)", len(messages), len(segments))
    return segments


def _assign_importance(segments: List[ConversationSegment]) -> None:
    mentions: Counter[str] = Counter()
    for segment in segments:
        for name in {feature.lower() for feature in segment.extracted_data.features}:
            mentions[name] += 1

    for segment in segments:
        text = "\n".join(message.content for message in segment.messages)
        sole_feature = any(mentions[feature.lower()] == 1 for feature in segment.extracted_data.features)
        if DECISION_PATTERN.search(text) or sole_feature:
            segment.importance = Importance.HIGH
        elif segment.topic in _SUBSTANTIVE_TOPICS:
            segment.importance = Importance.MEDIUM
        else:
            segment.importance = Importance.LOW


def segments_by_topic(segments: Sequence[ConversationSegment], topic: ConversationTopic) -> List[ConversationSegment]:
    return [segment for segment in segments if segment.topic is topic]


def high_importance_segments(segments: Sequence[ConversationSegment]) -> List[ConversationSegment]:
    return [segment for segment in segments if segment.importance is Importance.HIGH]


def topic_distribution(segments: Sequence[ConversationSegment]) -> Dict[str, int]:
    """Count messages per topic across ``segments``."""
    distribution: Dict[str, int] = {}
    for segment in segments:
        size = segment.end_index - segment.start_index + 1
        distribution[segment.topic.value] = distribution.get(segment.topic.value, 0) + size
    return distribution


def build_context_from_segments(segments: Sequence[ConversationSegment], max_tokens: int = 4000) -> str:
    """Render the most important segments as a digest bounded by ``max_tokens``."""
    ordered = sorted(segments, key=lambda segment: (IMPORTANCE_RANK[segment.importance], segment.start_index))
    parts: List[str] = []
    used = 0
    for segment in ordered:
        lines = [f"## {topic_label(segment.topic)} ({segment.importance.value})", segment.summary]
        lines.extend(f"- {point}" for point in segment.key_points)
        block = "\n".join(line for line in lines if line)
        cost = estimate_tokens(block) + 1
        if used + cost > max_tokens:
            remaining = max_tokens - used - 1
            if remaining > 0 and not parts:
                parts.append(truncate_to_tokens(block, remaining))
            break
        parts.append(block)
        used += cost
    return "\n\n".join(parts)
