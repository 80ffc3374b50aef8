from __future__ import annotations

from typing import List

from phaseplan.context import HashEmbeddingProvider
from phaseplan.execution import PhaseExecutionManager
from phaseplan.planning import generate_phase_plan
from phaseplan.schema import AppConcept, ChatMessage, Feature, PhaseStatus, TechnicalRequirements


def _generated_code(phase_number: int, feature_names: List[str]) -> str:
    slug = "-".join(name.lower().replace(" ", "-") for name in feature_names) or "base"
    body = "\n".join(f"// implements {name}" for name in feature_names) or "// project skeleton"
    return (
        f"===FILE:src/phase{phase_number}/{slug}.ts===\n"
        f"{body}\n"
        "===DEPENDENCIES===\n"
        f'{{"lib-{phase_number}": "^1.0.0"}}\n'
        "===END==="
    )


def test_plan_executes_end_to_end(planning_conversation: List[ChatMessage]) -> None:
    concept = AppConcept(
        name="Recipe Share",
        description="Share and search family recipes.",
        features=[
            Feature(id="search", name="Recipe Search", description="Find recipes by ingredient"),
            Feature(id="notes", name="Recipe Notes", description="Attach notes to recipes"),
            Feature(id="chat", name="Live Chat", description="Real-time chat between cooks"),
        ],
        technical=TechnicalRequirements(needs_auth=True, needs_database=True),
    )
    plan = generate_phase_plan(concept)
    manager = PhaseExecutionManager(
        plan,
        planning_conversation,
        concept=concept,
        embeddings=HashEmbeddingProvider(dimension=32),
    )

    prompts = {}
    while (phase := manager.next_phase()) is not None:
        manager.start_phase(phase.number)
        package = manager.render_prompt(phase.number, token_budget=6000)
        prompts[phase.number] = package.user_prompt
        assert package.metadata["tokens_used"] <= 6000
        manager.record_generated_code(
            phase.number,
            _generated_code(phase.number, [feature.name for feature in phase.features]),
        )

    assert manager.is_complete()
    assert sorted(prompts) == [phase.number for phase in plan.phases]
    assert all(phase.status is PhaseStatus.COMPLETE for phase in manager.plan.phases)

    last = plan.phases[-1].number
    rollup = manager.rollup(last + 1)
    assert rollup.completed_phases == [phase.number for phase in plan.phases]
    assert rollup.libraries == [f"lib-{phase.number}" for phase in plan.phases]
    assert "Recipe Search" in rollup.features

    assert "## Existing Project Context" not in prompts[1]
    assert "### Files Created So Far" in prompts[last]
