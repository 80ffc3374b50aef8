"""Conversation-wide extraction of features, workflows and technical specs."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from ..schema import (
    ChatMessage,
    ExtractedFeature,
    ExtractedTechnicalSpec,
    ExtractedWorkflow,
    Priority,
    StructuredContext,
)

LOGGER = logging.getLogger(__name__)

MAX_FEATURES = 30
MAX_DECISIONS = 15
MAX_QUESTIONS = 10

_FEATURE_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\b(?:feature|functionality):\s*([^.\n]{3,60})", re.IGNORECASE),
    re.compile(
        r"\b(?:add|implement|include|build|support|need|want)\s+(?:a |an |the )?"
        r"([a-z][\w\- ]{2,40}?)\s+(?:feature|functionality|system|page|module|screen)\b",
        re.IGNORECASE,
    ),
)
_USER_STORY_PATTERN = re.compile(
    r"\bas an?\s+([\w ]{2,30}?),\s*i (?:want|need|would like)(?: to)?\s+([^,.\n]{3,120}?)"
    r"(?:,?\s*so that\s+([^.\n]{3,120}))?(?:[.\n]|$)",
    re.IGNORECASE,
)
_ABILITY_PATTERN = re.compile(
    r"\busers?\s+(?:can|should be able to|will be able to|need to be able to)\s+([^.,!?\n]{5,80})",
    re.IGNORECASE,
)
_CRITERIA_HEADER = re.compile(r"acceptance criteria\s*:?", re.IGNORECASE)
_LIST_ITEM = re.compile(r"^\s*(?:[-•*]|\d+[.)])\s+(.+?)\s*$")
_HIGH_PRIORITY = re.compile(r"\b(?:must[- ]have|critical|essential|high priority|top priority)\b", re.IGNORECASE)
_LOW_PRIORITY = re.compile(r"\b(?:nice[- ]to[- ]have|optional|low priority|later|eventually)\b", re.IGNORECASE)

_WORKFLOW_HEADER = re.compile(r"\b([\w ]{0,40}?)\s*(?:workflow|process|flow)\s*:\s*$", re.IGNORECASE)
_WHEN_THEN = re.compile(
    r"\bwhen\s+([^,.\n]{3,80}),\s*(?:then\s+)?([^.\n]{3,100})",
    re.IGNORECASE,
)
_SEQUENCE = re.compile(
    r"\bfirst,?\s+([^.;\n]{3,80})[.;,]\s*(?:then|next|second),?\s+([^.;\n]{3,80})"
    r"(?:[.;,]\s*(?:then|finally|third|after that),?\s+([^.;\n]{3,80}))?",
    re.IGNORECASE,
)
_ROLE_PATTERN = re.compile(
    r"\b(admin|administrator|moderator|editor|viewer|manager|customer|guest|owner|member|user)s?\b",
    re.IGNORECASE,
)

_TECH_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("auth", re.compile(r"\b(oauth|jwt|sso|magic link|two-factor|2fa|session[- ]based auth\w*|password reset)\b", re.IGNORECASE)),
    ("database", re.compile(r"\b(postgresql|postgres|mysql|mongodb|supabase|sqlite|prisma|redis|dynamodb)\b", re.IGNORECASE)),
    ("api", re.compile(r"\b(rest api|graphql|webhooks?|endpoints?|trpc|grpc)\b", re.IGNORECASE)),
    ("realtime", re.compile(r"\b(websockets?|real-?time|live updates|pusher|socket\.io|server-sent events)\b", re.IGNORECASE)),
    ("storage", re.compile(r"\b(s3|cloudinary|blob storage|file uploads?|cdn|object storage)\b", re.IGNORECASE)),
    ("other", re.compile(r"\b(react|next\.?js|vue|svelte|tailwind|typescript|node\.?js|python|docker|vercel)\b", re.IGNORECASE)),
)

_DECISION_PATTERN = re.compile(
    r"(?:decided|agreed|confirmed|going with|chose|selected|let's go with|we'll use)\s+(?:to\s+)?(.{10,80}?)(?:[.,]|$)",
    re.IGNORECASE | re.MULTILINE,
)
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")


def _sentences(text: str) -> List[str]:
    return [sentence.strip() for sentence in _SENTENCE_SPLIT.split(text) if sentence.strip()]


def _clean_name(value: str) -> str:
    name = re.sub(r"\s+", " ", value).strip(" -:,")
    return name[:1].upper() + name[1:] if name else name


def _detect_priority(text: str) -> Optional[Priority]:
    if _HIGH_PRIORITY.search(text):
        return Priority.HIGH
    if _LOW_PRIORITY.search(text):
        return Priority.LOW
    return None


class StructuredExtractor:
    """Single pass over the whole conversation building :class:`StructuredContext`.

    Each message is processed independently; a failure on one message is logged
    and that message's records are skipped.
    """

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self._features: Dict[str, ExtractedFeature] = {}
        self._workflows: List[ExtractedWorkflow] = []
        self._specs: Dict[Tuple[str, str], ExtractedTechnicalSpec] = {}
        self._decisions: List[str] = []
        self._questions: List[str] = []

    def extract(self, messages: Sequence[ChatMessage]) -> StructuredContext:
        self._reset()
        for index, message in enumerate(messages):
            try:
                self._scan_message(index, message)
            except ValueError as error:
                LOGGER.warning("Skipping records from message %d: %s", index, error)
        return StructuredContext(
            features=list(self._features.values())[:MAX_FEATURES],
            workflows=self._workflows,
            technical_specs=list(self._specs.values()),
            decisions=self._decisions[:MAX_DECISIONS],
            open_questions=self._questions[:MAX_QUESTIONS],
        )

    def _scan_message(self, index: int, message: ChatMessage) -> None:
        content = message.content
        if message.role == "system" or not content.strip():
            return
        touched = self._scan_features(index, content)
        self._scan_criteria(content, touched)
        self._scan_workflows(index, content)
        self._scan_technical(index, content, touched)
        if message.role == "user":
            for sentence in _sentences(content):
                if sentence.endswith("?") and len(sentence) > 10 and sentence not in self._questions:
                    self._questions.append(sentence)
        for match in _DECISION_PATTERN.finditer(content):
            decision = match.group(0).strip().rstrip(".,")
            if decision not in self._decisions:
                self._decisions.append(decision)

    def _feature(self, name: str, index: int) -> ExtractedFeature:
        cleaned = _clean_name(name)
        if len(cleaned) < 3:
            raise ValueError(f"feature name too short: {name!r}")
        key = cleaned.lower()
        feature = self._features.get(key)
        if feature is None:
            feature = ExtractedFeature(name=cleaned)
            self._features[key] = feature
        if index not in feature.mentioned_in:
            feature.mentioned_in.append(index)
        return feature

    def _scan_features(self, index: int, content: str) -> List[ExtractedFeature]:
        touched: List[ExtractedFeature] = []
        priority = _detect_priority(content)

        for pattern in _FEATURE_PATTERNS:
            for match in pattern.finditer(content):
                try:
                    feature = self._feature(match.group(1), index)
                except ValueError as error:
                    LOGGER.warning("Skipping feature in message %d: %s", index, error)
                    continue
                if not feature.description:
                    sentence = next((s for s in _sentences(content) if match.group(1) in s), "")
                    feature.description = sentence[:200]
                touched.append(feature)

        for match in _USER_STORY_PATTERN.finditer(content):
            role, goal, benefit = match.group(1), match.group(2), match.group(3)
            story = f"As a {role.strip()}, I want to {goal.strip()}"
            if benefit:
                story += f" so that {benefit.strip()}"
            try:
                owner = self._owner_for(goal, touched) or self._feature(goal, index)
            except ValueError as error:
                LOGGER.warning("Skipping user story in message %d: %s", index, error)
                continue
            if story not in owner.user_stories:
                owner.user_stories.append(story)
            touched.append(owner)

        for match in _ABILITY_PATTERN.finditer(content):
            ability = match.group(1).strip()
            owner = self._owner_for(ability, touched)
            if owner is None:
                continue
            criterion = f"Users can {ability}"
            if criterion not in owner.acceptance_criteria:
                owner.acceptance_criteria.append(criterion)

        if priority is not None:
            for feature in touched:
                feature.priority = priority
        return _unique(touched)

    def _owner_for(self, text: str, candidates: Sequence[ExtractedFeature]) -> Optional[ExtractedFeature]:
        lowered = text.lower()
        for feature in list(candidates) + list(self._features.values()):
            words = [word for word in feature.name.lower().split() if len(word) > 3]
            if words and any(word in lowered for word in words):
                return feature
        return None

    def _scan_criteria(self, content: str, touched: Sequence[ExtractedFeature]) -> None:
        header = _CRITERIA_HEADER.search(content)
        if header is None or not touched:
            return
        target = touched[-1]
        for line in content[header.end() :].splitlines():
            item = _LIST_ITEM.match(line)
            if item is None:
                if line.strip():
                    break
                continue
            criterion = item.group(1).strip()
            if criterion and criterion not in target.acceptance_criteria:
                target.acceptance_criteria.append(criterion)

    def _scan_workflows(self, index: int, content: str) -> None:
        lines = content.splitlines()
        for position, line in enumerate(lines):
            header = _WORKFLOW_HEADER.search(line)
            if header is None:
                continue
            steps: List[str] = []
            for follow in lines[position + 1 :]:
                item = _LIST_ITEM.match(follow)
                if item is None:
                    if follow.strip():
                        break
                    continue
                steps.append(item.group(1).strip())
            if len(steps) >= 2:
                name = _clean_name(header.group(1)) or "Workflow"
                self._add_workflow(f"{name} workflow" if header.group(1).strip() else name, steps, index)

        for match in _WHEN_THEN.finditer(content):
            trigger, outcome = match.group(1).strip(), match.group(2).strip()
            self._add_workflow(_clean_name(f"When {trigger}"), [trigger, outcome], index)

        for match in _SEQUENCE.finditer(content):
            steps = [step.strip() for step in match.groups() if step]
            self._add_workflow(_clean_name(steps[0][:40]) + " sequence", steps, index)

    def _add_workflow(self, name: str, steps: List[str], index: int) -> None:
        if len(steps) < 2:
            raise ValueError(f"workflow {name!r} has fewer than two steps")
        if any(existing.steps == steps for existing in self._workflows):
            return
        roles: List[str] = []
        for step in steps:
            for match in _ROLE_PATTERN.finditer(step):
                role = match.group(1).lower()
                if role not in roles:
                    roles.append(role)
        self._workflows.append(
            ExtractedWorkflow(name=name, steps=steps, involved_roles=roles, source_index=index)
        )

    def _scan_technical(self, index: int, content: str, touched: Sequence[ExtractedFeature]) -> None:
        for sentence in _sentences(content):
            hit = False
            for category, pattern in _TECH_PATTERNS:
                for match in pattern.finditer(sentence):
                    hit = True
                    value = match.group(1).lower()
                    key = (category, value)
                    if key not in self._specs:
                        self._specs[key] = ExtractedTechnicalSpec(
                            category=category,
                            value=value,
                            context=sentence[:200],
                            source_index=index,
                        )
            if hit:
                note = sentence[:200]
                for feature in touched:
                    if note not in feature.technical_notes:
                        feature.technical_notes.append(note)


def _unique(features: Sequence[ExtractedFeature]) -> List[ExtractedFeature]:
    seen: List[ExtractedFeature] = []
    for feature in features:
        if not any(feature is existing for existing in seen):
            seen.append(feature)
    return seen


def extract_structured_context(messages: Sequence[ChatMessage]) -> StructuredContext:
    """Extract structured records from the whole conversation."""
    return StructuredExtractor().extract(messages)
