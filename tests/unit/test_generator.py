from __future__ import annotations

import random

import pytest

from phaseplan.config import PlannerConfig
from phaseplan.domains import FeatureDomain, is_always_separate
from phaseplan.errors import MalformedConceptError
from phaseplan.planning.classifier import classify_feature
from phaseplan.planning.dependencies import topological_order
from phaseplan.planning.generator import (
    PhasePlanGenerator,
    complexity_for,
    generate_phase_plan,
    plan_summary,
)
from phaseplan.schema import AppConcept, Feature, PlanComplexity, TechnicalRequirements

_NAME_WORDS = (
    "login",
    "dashboard",
    "upload",
    "search",
    "chart",
    "calendar",
    "export",
    "widget",
    "notes",
    "payment",
    "map",
    "offline",
    "comment",
    "inventory",
    "animation",
    "profile",
)


def _random_concept(rng: random.Random) -> AppConcept:
    count = rng.randint(0, 30)
    features = [
        Feature(
            id=f"f{index}",
            name=" ".join(rng.sample(_NAME_WORDS, 2)).title(),
            priority=rng.choice(["high", "medium", "low"]),
        )
        for index in range(count)
    ]
    return AppConcept(name="Random App", features=features)


def test_two_generic_features_produce_setup_and_one_phase(simple_concept: AppConcept) -> None:
    plan = generate_phase_plan(simple_concept)

    assert plan.total_phases == 2
    assert plan.complexity is PlanComplexity.SIMPLE
    setup, features = plan.phases
    assert setup.name == "Project Setup"
    assert setup.domain is FeatureDomain.SETUP
    assert setup.dependencies == []
    assert features.domain is FeatureDomain.FEATURE
    assert [feature.id for feature in features.features] == ["notes", "list"]
    assert features.dependencies == [1]
    assert features.name == "Features"
    assert features.description == "Implement Recipe Notes, Shopping List"
    assert features.test_criteria[-1] == "No console errors"


def test_technical_flags_add_dedicated_infrastructure_phases(auth_db_concept: AppConcept) -> None:
    plan = generate_phase_plan(auth_db_concept)

    assert [phase.name for phase in plan.phases] == [
        "Project Setup",
        "Database Setup",
        "Authentication System",
        "Features",
    ]
    assert plan.phases[1].domain is FeatureDomain.DATABASE
    assert plan.phases[2].domain is FeatureDomain.AUTH
    assert plan.phases[3].dependencies == [2, 3]
    assert plan.phases[1].test_criteria[:3] == [
        "Schema is valid",
        "Types are generated",
        "Queries execute without errors",
    ]


def test_many_generic_features_are_split_by_feature_cap() -> None:
    concept = AppConcept(
        name="Widgets",
        features=[Feature(id=f"w{index}", name=f"Widget {index}") for index in range(1, 26)],
    )

    plan = generate_phase_plan(concept, PlannerConfig(max_features_per_phase=4))

    assert plan.total_phases == 8
    assert plan.complexity is PlanComplexity.MODERATE
    assert all(len(phase.features) <= 4 for phase in plan.phases)
    assert plan.phases[1].name == "Features (Part 1)"
    assert plan.phases[-1].name == "Widget 25"
    assert plan.phases[-1].dependencies == [7]


def test_plan_totals_and_contract_shape(simple_concept: AppConcept) -> None:
    plan = generate_phase_plan(simple_concept)

    assert plan.estimated_total_tokens == sum(phase.token_estimate for phase in plan.phases)
    assert plan.estimated_total_time.endswith(" min")
    contract = plan.to_contract()
    assert set(contract) == {"totalPhases", "phases", "complexity", "estimatedTotalTime"}
    assert contract["phases"][1]["features"] == ["Recipe Notes", "Shopping List"]
    assert set(contract["phases"][0]) == {
        "number",
        "name",
        "description",
        "features",
        "estimatedTime",
        "dependencies",
        "testCriteria",
    }


def test_generation_is_deterministic_and_does_not_mutate_input(auth_db_concept: AppConcept) -> None:
    before = auth_db_concept.model_dump()

    first = generate_phase_plan(auth_db_concept)
    second = generate_phase_plan(auth_db_concept)

    assert first.model_dump() == second.model_dump()
    assert first.plan_id == second.plan_id
    assert auth_db_concept.model_dump() == before


def test_plan_id_changes_with_planner_limits(simple_concept: AppConcept) -> None:
    default = generate_phase_plan(simple_concept)
    tight = generate_phase_plan(simple_concept, PlannerConfig(max_features_per_phase=1))

    assert default.plan_id != tight.plan_id
    assert default.plan_id.startswith("plan-")


def test_generate_accepts_camel_case_mapping() -> None:
    plan = PhasePlanGenerator().generate(
        {
            "name": "Mapped",
            "features": [{"id": "a", "name": "Recipe Notes"}],
            "technical": {"needsRealtime": True},
        }
    )

    assert [phase.domain for phase in plan.phases] == [
        FeatureDomain.SETUP,
        FeatureDomain.FEATURE,
        FeatureDomain.REAL_TIME,
    ]


@pytest.mark.parametrize(
    "concept",
    [
        AppConcept(name="  "),
        AppConcept(
            name="Dupes",
            features=[Feature(id="a", name="One"), Feature(id="a", name="Two")],
        ),
    ],
)
def test_malformed_concepts_are_rejected(concept: AppConcept) -> None:
    with pytest.raises(MalformedConceptError):
        generate_phase_plan(concept)


def test_invalid_mapping_is_rejected() -> None:
    with pytest.raises(MalformedConceptError):
        generate_phase_plan({"name": "Broken", "features": "not-a-list"})


def test_empty_features_allowed_unless_required() -> None:
    concept = AppConcept(name="Empty")

    plan = generate_phase_plan(concept)

    assert [phase.domain for phase in plan.phases] == [FeatureDomain.SETUP]
    with pytest.raises(MalformedConceptError):
        generate_phase_plan(concept, require_features=True)


@pytest.mark.parametrize(
    ("total", "expected"),
    [
        (1, PlanComplexity.SIMPLE),
        (4, PlanComplexity.SIMPLE),
        (5, PlanComplexity.MODERATE),
        (10, PlanComplexity.MODERATE),
        (11, PlanComplexity.COMPLEX),
        (20, PlanComplexity.COMPLEX),
        (21, PlanComplexity.VERY_COMPLEX),
    ],
)
def test_complexity_thresholds(total: int, expected: PlanComplexity) -> None:
    assert complexity_for(total) is expected


@pytest.mark.parametrize("seed", range(12))
def test_random_concepts_partition_features_into_ordered_phases(seed: int) -> None:
    rng = random.Random(seed)
    concept = _random_concept(rng)
    config = PlannerConfig(max_tokens_per_phase=rng.choice([3000, 8000]))

    plan = generate_phase_plan(concept, config)

    planned = [feature.id for phase in plan.phases for feature in phase.features]
    assert sorted(planned) == sorted(feature.id for feature in concept.features)
    assert len(planned) == len(set(planned))
    assert plan.phases[0].domain is FeatureDomain.SETUP
    assert [phase.number for phase in plan.phases] == list(range(1, plan.total_phases + 1))
    for phase in plan.phases:
        assert phase.token_estimate <= config.max_tokens_per_phase
        assert all(dependency < phase.number for dependency in phase.dependencies)
        if phase.domain is FeatureDomain.INTEGRATION:
            assert phase.dependencies == [1]
        if phase.domain is not FeatureDomain.SETUP:
            assert all(classify_feature(feature).domain is phase.domain for feature in phase.features)
    separate = [phase.domain for phase in plan.phases if is_always_separate(phase.domain)]
    assert len(separate) == len(set(separate))
    order = topological_order({phase.number: list(phase.dependencies) for phase in plan.phases})
    assert sorted(order) == [phase.number for phase in plan.phases]


def test_technical_flags_never_duplicate_covered_domains() -> None:
    concept = AppConcept(
        name="Covered",
        features=[Feature(id="login", name="Login"), Feature(id="notes", name="Recipe Notes")],
        technical=TechnicalRequirements(needs_auth=True),
    )

    plan = generate_phase_plan(concept)

    auth_phases = [phase for phase in plan.phases if phase.domain is FeatureDomain.AUTH]
    assert len(auth_phases) == 1
    assert [feature.id for feature in auth_phases[0].features] == ["login"]


def test_plan_summary_reports_overview(simple_concept: AppConcept) -> None:
    plan = generate_phase_plan(simple_concept)

    summary = plan_summary(plan)

    assert summary["totalPhases"] == 2
    assert summary["complexity"] == "simple"
    assert summary["appName"] == "Pantry Helper"
