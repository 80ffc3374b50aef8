"""Build budgeted, sectioned prompt packages for phase executions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from operator import attrgetter
from typing import TYPE_CHECKING, Any, List, Sequence, Tuple

from ..tokens import estimate_tokens, truncate_to_tokens

if TYPE_CHECKING:
    from .manager import ExecutionContext

SYSTEM_PROMPT = (
    "You are generating one phase of a multi-phase application build. "
    "Implement only the features listed for this phase, build on files created by earlier phases, "
    "and keep the app fully functional after your changes."
)

OUTPUT_FORMAT = """## Output Format
Generate the code using the standard delimiter format:
===NAME===
[App Name]
===DESCRIPTION===
[Brief description]
===FILE:path/to/file===
[File content]
===DEPENDENCIES===
{"dependency": "version"}
===END==="""

FIRST_PHASE_INSTRUCTIONS = """This is the foundation phase. Create the core structure:
- Clean project structure and routing
- Responsive base layout with shared layout components
- Global styling
- Types for the core data structures

Do not implement features, integrations or authentication logic yet."""

LATER_PHASE_INSTRUCTIONS = """Build on the existing codebase:
1. Import existing components from previous phases
2. Follow established patterns and styling
3. Extend existing types instead of redefining them
4. Add new files only for new functionality

Do not recreate files that already exist unless you need to modify them."""


@dataclass(slots=True)
class ContextPackage:
    """Container for the system and user prompts supplied to the model."""

    system_prompt: str
    user_prompt: str
    metadata: dict[str, Any] = field(default_factory=dict)


class SectionStatus(str, Enum):
    FULL = "full"
    TRUNCATED = "truncated"
    OMITTED = "omitted"


@dataclass(slots=True)
class PromptSection:
    label: str
    priority: int
    text: str
    truncatable: bool = False


@dataclass(slots=True)
class SectionUsage:
    """How much of the phase budget one section asked for and received."""

    label: str
    status: SectionStatus
    requested_tokens: int
    tokens: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "status": self.status.value,
            "requestedTokens": self.requested_tokens,
            "tokens": self.tokens,
        }


class PhasePromptBuilder:
    """Fit prioritized phase sections into a token budget.

    Sections are placed in priority order. A section that does not fit is
    truncated when it allows it and omitted otherwise; later sections may
    still use whatever budget is left.
    """

    DEFAULT_TOKEN_BUDGET = 10_000
    _MAX_CODE_REFERENCE_CHARS = 8_000

    def __init__(self, *, token_budget: int | None = None, system_preamble: str | None = None) -> None:
        self._token_budget = token_budget or self.DEFAULT_TOKEN_BUDGET
        self._system_prompt = system_preamble or SYSTEM_PROMPT

    def build(self, context: "ExecutionContext") -> ContextPackage:
        prompt_text, usage = self._fit_sections(self._sections(context))
        tokens_used = sum(item.tokens for item in usage)
        return ContextPackage(
            system_prompt=self._system_prompt,
            user_prompt=prompt_text,
            metadata={
                "phase": context.phase.number,
                "domain": context.phase.domain.value,
                "token_budget": self._token_budget,
                "tokens_used": tokens_used,
                "tokens_remaining": self._token_budget - tokens_used,
                "truncated_sections": [item.label for item in usage if item.status is SectionStatus.TRUNCATED],
                "omitted_sections": [item.label for item in usage if item.status is SectionStatus.OMITTED],
                "sections": [item.to_dict() for item in usage],
            },
        )

    def _sections(self, context: "ExecutionContext") -> List[PromptSection]:
        phase = context.phase
        first = phase.number == 1
        instructions = FIRST_PHASE_INSTRUCTIONS if first else LATER_PHASE_INSTRUCTIONS
        sections = [
            PromptSection("header", 0, self._render_header(context)),
            PromptSection("phase_goal", 1, self._render_goal(context)),
            PromptSection("output_format", 2, OUTPUT_FORMAT),
            PromptSection("instructions", 3, "## Phase Requirements\n" + instructions),
            PromptSection("test_criteria", 4, _bullet_block("## Test Criteria", phase.test_criteria)),
        ]
        if context.phase_context.context_summary:
            sections.append(
                PromptSection(
                    "phase_context",
                    5,
                    "## Conversation Context\n" + context.phase_context.context_summary,
                    truncatable=True,
                )
            )
        if not first and (context.rollup.files or context.rollup.features):
            sections.append(PromptSection("prior_outputs", 6, self._render_rollup(context), truncatable=True))
        if context.rollup.latest_code:
            code = context.rollup.latest_code
            if len(code) > self._MAX_CODE_REFERENCE_CHARS:
                code = code[: self._MAX_CODE_REFERENCE_CHARS] + "\n\n[... truncated for context limit ...]"
            sections.append(
                PromptSection("code_reference", 7, "## Existing Code Reference\n" + code, truncatable=True)
            )
        if context.conversation_digest:
            sections.append(PromptSection("conversation_digest", 8, context.conversation_digest, truncatable=True))
        return [section for section in sections if section.text.strip()]

    @staticmethod
    def _render_header(context: "ExecutionContext") -> str:
        lines = [
            f"# Phase {context.phase.number} of {context.total_phases}: {context.phase.name}",
            "",
            "## App Overview",
            f"**Name:** {context.app_name}",
        ]
        if context.app_description:
            lines.append(f"**Description:** {context.app_description}")
        concept = context.concept
        if concept is not None:
            if concept.purpose:
                lines.append(f"**Purpose:** {concept.purpose}")
            if concept.target_users:
                lines.append(f"**Target Users:** {concept.target_users}")
            stack = []
            if concept.technical.needs_auth:
                stack.append(f"Authentication: {concept.technical.auth_type or 'email'} based")
            if concept.technical.needs_database:
                stack.append("Database: required")
            if concept.technical.needs_realtime:
                stack.append("Real-time: WebSocket/SSE needed")
            if concept.technical.needs_file_upload:
                stack.append("File Upload: storage integration needed")
            if stack:
                lines.append("")
                lines.append(_bullet_block("## Technical Stack", stack))
            if concept.roles:
                lines.append("")
                lines.append(
                    _bullet_block(
                        "## User Roles",
                        [f"{role.name}: {', '.join(role.capabilities) or 'no listed capabilities'}" for role in concept.roles],
                    )
                )
        return "\n".join(lines)

    @staticmethod
    def _render_goal(context: "ExecutionContext") -> str:
        phase = context.phase
        lines = ["## Phase Goal", phase.description]
        if phase.features:
            lines.append("")
            lines.append(
                _bullet_block(
                    "## Features to Implement in This Phase",
                    [f"{feature.name}: {feature.description}" if feature.description else feature.name for feature in phase.features],
                )
            )
        if phase.deliverables:
            lines.append("")
            lines.append(_bullet_block("## Deliverables", phase.deliverables))
        return "\n".join(lines)

    @staticmethod
    def _render_rollup(context: "ExecutionContext") -> str:
        rollup = context.rollup
        blocks = ["## Existing Project Context"]
        if rollup.files:
            blocks.append(_bullet_block("### Files Created So Far", rollup.files))
        if rollup.features:
            blocks.append(_bullet_block("### Features Already Implemented", rollup.features))
        if rollup.libraries:
            blocks.append(_bullet_block("### Libraries In Use", rollup.libraries))
        return "\n\n".join(blocks)

    def _fit_sections(self, sections: Sequence[PromptSection]) -> Tuple[str, List[SectionUsage]]:
        remaining = self._token_budget
        kept: List[str] = []
        usage: List[SectionUsage] = []
        for section in sorted(sections, key=attrgetter("priority")):
            body = section.text.strip()
            requested = estimate_tokens(body)
            if requested <= remaining:
                fitted, status = body, SectionStatus.FULL
            elif section.truncatable:
                fitted = truncate_to_tokens(body, remaining)
                status = SectionStatus.TRUNCATED if fitted else SectionStatus.OMITTED
            else:
                fitted, status = "", SectionStatus.OMITTED
            spent = estimate_tokens(fitted)
            usage.append(SectionUsage(section.label, status, requested, spent))
            if fitted:
                kept.append(fitted)
                remaining -= spent
        return "\n\n".join(kept), usage


def _bullet_block(title: str, items: Sequence[str]) -> str:
    body = "\n".join(f"- {item}" for item in items if item)
    if not body:
        return ""
    return f"{title}\n{body}"
