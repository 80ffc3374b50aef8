"""Assemble a bounded, phase-specific slice of the conversation."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from ..config import ContextConfig
from ..conversation.extraction import extract_structured_context
from ..conversation.segmentation import IMPORTANCE_RANK, segment_conversation
from ..domains import (
    PHASE_KEYWORDS,
    PHASE_QUERIES,
    PHASE_TECH_CATEGORIES,
    PHASE_TOPICS,
    ConversationTopic,
    FeatureDomain,
    display_name,
)
from ..schema import (
    ChatMessage,
    ConversationSegment,
    DynamicPhasePlan,
    ExtractedFeature,
    ExtractedWorkflow,
    PhaseContext,
    StructuredContext,
)
from ..tokens import estimate_tokens
from .embeddings import EmbeddingProvider, NoEmbeddings, cosine_similarity, embed_many

LOGGER = logging.getLogger(__name__)

MAX_REQUIREMENTS = 15
MAX_DECISIONS = 10
MAX_TECHNICAL_NOTES = 10
MAX_VALIDATION_RULES = 10
MAX_UI_PATTERNS = 10
MAX_SUMMARY_CHARS = 3000

_DECISION_PATTERN = re.compile(
    r"(?:decided|agreed|confirmed|going with|chose|selected)\s+(?:to\s+)?(.{10,80}?)(?:\.|,|$)",
    re.IGNORECASE | re.MULTILINE,
)
_VALIDATION_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\b(?:must be|should be|has to be)\s+([^.\n]+)", re.IGNORECASE),
    re.compile(r"\b(?:validate|validation|valid)\s+([^.\n]+)", re.IGNORECASE),
    re.compile(r"\b(?:required|mandatory|minimum|maximum)\s+([^.\n]+)", re.IGNORECASE),
    re.compile(r"\b(?:at least|at most|between)\s+([^.\n]+)", re.IGNORECASE),
)


def _bounded_unique(values: Iterable[str], limit: int) -> List[str]:
    seen: List[str] = []
    for value in values:
        value = value.strip()
        if value and value not in seen:
            seen.append(value)
        if len(seen) >= limit:
            break
    return seen


def _matches_keywords(text: str, keywords: Sequence[str]) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in keywords)


def _semantic_matches(
    segments: Sequence[ConversationSegment],
    selected_ids: set[str],
    phase_type: FeatureDomain,
    provider: EmbeddingProvider,
    settings: ContextConfig,
) -> List[ConversationSegment]:
    candidates = [segment for segment in segments if segment.id not in selected_ids]
    if not candidates or settings.semantic_limit <= 0:
        return []
    query = PHASE_QUERIES.get(phase_type, phase_type.value)
    texts = [query] + [" ".join(message.content for message in segment.messages) for segment in candidates]
    vectors = embed_many(provider, texts, max_workers=settings.max_workers)
    query_vector = vectors[0]
    scored: List[Tuple[float, int, ConversationSegment]] = []
    for position, (segment, vector) in enumerate(zip(candidates, vectors[1:])):
        similarity = cosine_similarity(query_vector, vector)
        if similarity > settings.similarity_threshold:
            scored.append((similarity, position, segment))
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [segment for _, _, segment in scored[: settings.semantic_limit]]


class PhaseContextExtractor:
    """Phase context derivation over one conversation snapshot.

    Segmentation and structured extraction run once per instance and are
    shared across phases.
    """

    def __init__(
        self,
        messages: Sequence[ChatMessage],
        *,
        embeddings: Optional[EmbeddingProvider] = None,
        config: Optional[ContextConfig] = None,
    ) -> None:
        self._settings = config or ContextConfig()
        self._messages = list(messages)
        self._provider: EmbeddingProvider = embeddings or NoEmbeddings()
        self._segments = segment_conversation(self._messages, max_segment_size=self._settings.max_segment_size)
        self._structured = extract_structured_context(self._messages)

    @property
    def segments(self) -> List[ConversationSegment]:
        return list(self._segments)

    @property
    def structured(self) -> StructuredContext:
        return self._structured

    def extract(self, phase_type: FeatureDomain | str) -> PhaseContext:
        domain = FeatureDomain(phase_type)
        relevant_topics = PHASE_TOPICS.get(domain, (ConversationTopic.GENERAL,))
        selected = [segment for segment in self._segments if segment.topic in relevant_topics]

        if self._provider.available:
            try:
                extra = _semantic_matches(
                    self._segments,
                    {segment.id for segment in selected},
                    domain,
                    self._provider,
                    self._settings,
                )
            except Exception as error:  # noqa: BLE001 - any embedding failure degrades to keyword relevance
                LOGGER.warning("Semantic segment lookup failed for %s phase: %s", domain.value, error)
            else:
                selected.extend(extra)

        unique: Dict[str, ConversationSegment] = {}
        for segment in selected:
            unique.setdefault(segment.id, segment)
        relevant = sorted(
            unique.values(),
            key=lambda segment: (IMPORTANCE_RANK[segment.importance], segment.start_index),
        )

        keywords = PHASE_KEYWORDS.get(domain, ())
        features = [feature for feature in self._structured.features if _feature_matches(feature, keywords)]
        workflows = [workflow for workflow in self._structured.workflows if _workflow_matches(workflow, keywords)]
        categories = PHASE_TECH_CATEGORIES.get(domain, ())
        specs = [spec for spec in self._structured.technical_specs if spec.category in categories]

        context = PhaseContext(
            phase_type=domain,
            relevant_segments=relevant,
            extracted_requirements=_requirements(relevant, keywords),
            user_decisions=_decisions(relevant),
            technical_notes=_technical_notes(relevant),
            feature_specs=features,
            workflow_specs=workflows,
            technical_specs=specs,
            validation_rules=_validation_rules(relevant),
            ui_patterns=_ui_patterns(relevant),
        )
        summary_limit = min(self._settings.summary_chars, MAX_SUMMARY_CHARS)
        context.context_summary = _render_summary(context)[:summary_limit]
        context.token_estimate = sum(segment.token_estimate for segment in relevant) + estimate_tokens(
            context.context_summary
        )
        LOGGER.debug(
            "Phase context for %s: %d segment(s), %d feature(s), ~%d tokens",
            domain.value,
            len(relevant),
            len(features),
            context.token_estimate,
        )
        return context


def _feature_matches(feature: ExtractedFeature, keywords: Sequence[str]) -> bool:
    text = " ".join([feature.name, feature.description, *feature.user_stories, *feature.acceptance_criteria])
    return _matches_keywords(text, keywords)


def _workflow_matches(workflow: ExtractedWorkflow, keywords: Sequence[str]) -> bool:
    return _matches_keywords(" ".join([workflow.name, *workflow.steps]), keywords)


def _requirements(segments: Sequence[ConversationSegment], keywords: Sequence[str]) -> List[str]:
    values: List[str] = []
    for segment in segments:
        values.extend(point for point in segment.key_points if _matches_keywords(point, keywords))
        data = segment.extracted_data
        values.extend(data.features[:3])
        values.extend(data.technical_decisions[:3])
        values.extend(data.constraints[:2])
    return _bounded_unique(values, MAX_REQUIREMENTS)


def _decisions(segments: Sequence[ConversationSegment]) -> List[str]:
    values: List[str] = []
    for segment in segments:
        for message in segment.messages:
            values.extend(match.group(0) for match in _DECISION_PATTERN.finditer(message.content))
    return _bounded_unique(values, MAX_DECISIONS)


def _technical_notes(segments: Sequence[ConversationSegment]) -> List[str]:
    values: List[str] = []
    for segment in segments:
        if segment.topic is ConversationTopic.TECHNICAL_SPECS:
            values.extend(segment.key_points)
            values.extend(segment.extracted_data.technical_decisions)
    return _bounded_unique(values, MAX_TECHNICAL_NOTES)


def _validation_rules(segments: Sequence[ConversationSegment]) -> List[str]:
    values: List[str] = []
    for segment in segments:
        for message in segment.messages:
            for pattern in _VALIDATION_PATTERNS:
                for match in pattern.finditer(message.content):
                    rule = match.group(1).strip()
                    if 5 < len(rule) < 100:
                        values.append(rule)
    return _bounded_unique(values, MAX_VALIDATION_RULES)


def _ui_patterns(segments: Sequence[ConversationSegment]) -> List[str]:
    values: List[str] = []
    for segment in segments:
        if segment.topic is ConversationTopic.UI_DESIGN:
            values.extend(segment.key_points)
            values.extend(segment.extracted_data.ui_elements)
    return _bounded_unique(values, MAX_UI_PATTERNS)


def _render_summary(context: PhaseContext) -> str:
    lines = [f"=== Context for {display_name(context.phase_type)} Phase ==="]
    if context.feature_specs:
        lines.append("")
        lines.append("Relevant Features:")
        for feature in context.feature_specs[:5]:
            suffix = f": {feature.description}" if feature.description else ""
            lines.append(f"- {feature.name}{suffix}")
    if context.workflow_specs:
        lines.append("")
        lines.append("Workflows:")
        for workflow in context.workflow_specs[:3]:
            lines.append(f"- {workflow.name}: {' -> '.join(workflow.steps)}")
    if context.technical_specs:
        lines.append("")
        lines.append("Technical Requirements:")
        for spec in context.technical_specs[:8]:
            lines.append(f"- {spec.category}: {spec.value}")
    if context.extracted_requirements:
        lines.append("")
        lines.append("Key Discussion Points:")
        lines.extend(f"- {item}" for item in context.extracted_requirements[:8])
    if context.user_decisions:
        lines.append("")
        lines.append("Decisions:")
        lines.extend(f"- {item}" for item in context.user_decisions[:5])
    return "\n".join(lines)


def extract_phase_context(
    messages: Sequence[ChatMessage],
    phase_type: FeatureDomain | str,
    *,
    embeddings: Optional[EmbeddingProvider] = None,
    config: Optional[ContextConfig] = None,
) -> PhaseContext:
    """Return the context relevant to ``phase_type``; never raises on extraction failures."""
    return PhaseContextExtractor(messages, embeddings=embeddings, config=config).extract(phase_type)


def extract_context_for_all_phases(
    messages: Sequence[ChatMessage],
    plan: DynamicPhasePlan,
    *,
    embeddings: Optional[EmbeddingProvider] = None,
    config: Optional[ContextConfig] = None,
) -> Dict[int, PhaseContext]:
    """Compute one context per plan phase, sharing segmentation across phases."""
    extractor = PhaseContextExtractor(messages, embeddings=embeddings, config=config)
    cache: Dict[FeatureDomain, PhaseContext] = {}
    contexts: Dict[int, PhaseContext] = {}
    for phase in plan.phases:
        if phase.domain not in cache:
            cache[phase.domain] = extractor.extract(phase.domain)
        contexts[phase.number] = cache[phase.domain].model_copy(deep=True)
    return contexts


def summarize_phase_contexts(contexts: Dict[int, PhaseContext]) -> str:
    lines = ["Phase contexts:"]
    for number in sorted(contexts):
        context = contexts[number]
        lines.append(
            f"- Phase {number} ({context.phase_type.value}): "
            f"{len(context.relevant_segments)} segment(s), "
            f"{len(context.feature_specs)} feature(s), "
            f"{len(context.extracted_requirements)} requirement(s), "
            f"~{context.token_estimate} tokens"
        )
    return "\n".join(lines)
