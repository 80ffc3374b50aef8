from __future__ import annotations

from phaseplan.domains import FeatureDomain
from phaseplan.execution.manager import ExecutionContext, ExecutionRollup
from phaseplan.execution.prompt import FIRST_PHASE_INSTRUCTIONS, SYSTEM_PROMPT, PhasePromptBuilder
from phaseplan.schema import AppConcept, Feature, Phase, PhaseContext, TechnicalRequirements
from phaseplan.tokens import TRUNCATION_MARKER


def _phase(number: int, domain: FeatureDomain = FeatureDomain.FEATURE) -> Phase:
    return Phase(
        number=number,
        name=f"Phase {number} work",
        description="Build the recipe list",
        domain=domain,
        features=[Feature(id="list", name="Recipe List", description="Browse saved recipes")],
        estimated_time="1-3 min",
        dependencies=[number - 1] if number > 1 else [],
        token_estimate=1200,
        test_criteria=["Recipe List works as expected", "No console errors"],
    )


def _context(phase: Phase, *, summary: str = "", rollup: ExecutionRollup | None = None) -> ExecutionContext:
    return ExecutionContext(
        plan_id="plan-test",
        app_name="Recipe Box",
        app_description="Collect family recipes.",
        total_phases=3,
        phase=phase,
        phase_context=PhaseContext(phase_type=phase.domain, context_summary=summary),
        rollup=rollup or ExecutionRollup(),
    )


def test_first_phase_uses_foundation_instructions() -> None:
    package = PhasePromptBuilder().build(_context(_phase(1, FeatureDomain.SETUP)))

    assert package.system_prompt == SYSTEM_PROMPT
    assert package.user_prompt.startswith("# Phase 1 of 3: Phase 1 work")
    assert FIRST_PHASE_INSTRUCTIONS in package.user_prompt
    assert "## Existing Project Context" not in package.user_prompt
    assert package.metadata["domain"] == "setup"


def test_later_phase_lists_prior_outputs() -> None:
    rollup = ExecutionRollup(
        files=["src/App.tsx"],
        libraries=["react"],
        features=["Recipe Notes"],
        completed_phases=[1],
        latest_code="===FILE:src/App.tsx===\nexport default App;\n===END===",
    )

    package = PhasePromptBuilder().build(_context(_phase(2), rollup=rollup))

    prompt = package.user_prompt
    assert "## Existing Project Context" in prompt
    assert "- src/App.tsx" in prompt
    assert "### Libraries In Use\n- react" in prompt
    assert "## Existing Code Reference" in prompt
    assert "## Features to Implement in This Phase\n- Recipe List: Browse saved recipes" in prompt


def test_concept_adds_technical_stack() -> None:
    context = _context(_phase(1, FeatureDomain.SETUP))
    context.concept = AppConcept(
        name="Recipe Box",
        purpose="Share recipes",
        technical=TechnicalRequirements(needs_auth=True, auth_type="oauth", needs_database=True),
    )

    prompt = PhasePromptBuilder().build(context).user_prompt

    assert "**Purpose:** Share recipes" in prompt
    assert "- Authentication: oauth based" in prompt
    assert "- Database: required" in prompt


def test_oversized_conversation_context_is_truncated_within_budget() -> None:
    summary = "=== Context for Feature Phase ===\n" + "recipe detail " * 4000

    package = PhasePromptBuilder(token_budget=1500).build(_context(_phase(2), summary=summary))

    sections = {section["label"]: section for section in package.metadata["sections"]}
    assert sections["header"]["status"] == "full"
    assert sections["phase_context"]["status"] == "truncated"
    assert package.metadata["truncated_sections"] == ["phase_context"]
    assert package.metadata["tokens_used"] <= 1500
    assert package.user_prompt.endswith(TRUNCATION_MARKER)


def test_low_priority_sections_drop_out_first() -> None:
    rollup = ExecutionRollup(files=["src/App.tsx"], completed_phases=[1])
    summary = "conversation " * 2000

    package = PhasePromptBuilder(token_budget=800).build(_context(_phase(2), summary=summary, rollup=rollup))

    sections = {section["label"]: section for section in package.metadata["sections"]}
    assert sections["output_format"]["status"] == "full"
    assert sections["prior_outputs"]["status"] == "omitted"
    assert sections["prior_outputs"]["tokens"] == 0
    assert "## Existing Project Context" not in package.user_prompt


def test_section_usage_is_reported_against_the_phase_budget() -> None:
    rollup = ExecutionRollup(files=["src/App.tsx"], completed_phases=[1], latest_code="x" * 6000)
    summary = "recipe detail " * 400

    package = PhasePromptBuilder(token_budget=1200).build(_context(_phase(2), summary=summary, rollup=rollup))

    metadata = package.metadata
    usage = metadata["sections"]
    assert [section["label"] for section in usage][:3] == ["header", "phase_goal", "output_format"]
    assert sum(section["tokens"] for section in usage) == metadata["tokens_used"]
    assert metadata["tokens_used"] + metadata["tokens_remaining"] == 1200
    assert metadata["truncated_sections"] == ["phase_context"]
    assert "code_reference" in metadata["omitted_sections"]
    for section in usage:
        assert section["tokens"] <= section["requestedTokens"]
        if section["status"] == "full":
            assert section["tokens"] == section["requestedTokens"]
        if section["status"] == "omitted":
            assert section["tokens"] == 0


def test_everything_fits_in_a_generous_budget() -> None:
    package = PhasePromptBuilder(token_budget=50_000).build(_context(_phase(1, FeatureDomain.SETUP), summary="short"))

    assert package.metadata["truncated_sections"] == []
    assert package.metadata["omitted_sections"] == []
    assert {section["status"] for section in package.metadata["sections"]} == {"full"}
