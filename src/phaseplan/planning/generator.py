"""All-or-nothing generation of a :class:`DynamicPhasePlan` from an app concept."""

from __future__ import annotations

import hashlib
import json
import logging
import math
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from ..config import PlannerConfig
from ..domains import (
    DOMAIN_TEST_CRITERIA,
    SETUP_DELIVERABLES,
    SETUP_TEST_CRITERIA,
    FeatureDomain,
    display_name,
)
from ..errors import MalformedConceptError
from ..schema import AppConcept, DynamicPhasePlan, Phase, PlanComplexity
from .classifier import classify_features, implicit_features
from .composer import PhaseComposer, PhaseDraft
from .dependencies import resolve_dependencies

LOGGER = logging.getLogger(__name__)

TOKENS_PER_MINUTE = 1500


def complexity_for(total_phases: int) -> PlanComplexity:
    """Map a phase count onto the plan complexity label."""
    if total_phases < 5:
        return PlanComplexity.SIMPLE
    if total_phases <= 10:
        return PlanComplexity.MODERATE
    if total_phases <= 20:
        return PlanComplexity.COMPLEX
    return PlanComplexity.VERY_COMPLEX


def estimate_minutes(token_estimate: int) -> int:
    return max(1, math.ceil(token_estimate / TOKENS_PER_MINUTE))


def format_minutes(low: int, high: int) -> str:
    return f"{low}-{high} min"


def coerce_concept(payload: AppConcept | Mapping[str, Any]) -> AppConcept:
    """Validate a raw mapping into an :class:`AppConcept`."""
    if isinstance(payload, AppConcept):
        return payload
    try:
        return AppConcept.model_validate(dict(payload))
    except (ValidationError, TypeError, ValueError) as error:
        raise MalformedConceptError(f"Invalid app concept: {error}") from error


def concept_digest(concept: AppConcept, config: PlannerConfig) -> str:
    """Stable identifier derived from the concept snapshot and planner limits."""
    material = json.dumps(
        {"concept": concept.to_wire(), "planner": config.model_dump(mode="json")},
        sort_keys=True,
        separators=(",", ":"),
    )
    return "plan-" + hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]


class PhasePlanGenerator:
    """Run classification, composition and dependency resolution as one unit."""

    def __init__(self, config: Optional[PlannerConfig] = None) -> None:
        self._config = config or PlannerConfig()
        self._composer = PhaseComposer(self._config)

    @property
    def config(self) -> PlannerConfig:
        return self._config

    def generate(
        self,
        concept: AppConcept | Mapping[str, Any],
        *,
        require_features: bool = False,
    ) -> DynamicPhasePlan:
        """Build a plan; any fatal error aborts without a partial result.

        ``require_features`` marks an explicit plan request, where an empty
        feature list is rejected instead of producing a setup-only plan.
        """
        snapshot = coerce_concept(concept).model_copy(deep=True)
        self._validate(snapshot, require_features=require_features)

        classified = classify_features(snapshot.features, snapshot.technical)
        classified.extend(implicit_features(snapshot.technical, classified))
        composition = self._composer.compose(classified)
        adjacency = resolve_dependencies(composition.phases)

        domain_parts = Counter(draft.domain for draft in composition.phases if not draft.is_setup)
        seen_parts: Counter[FeatureDomain] = Counter()
        phases: List[Phase] = []
        for number, draft in enumerate(composition.phases, start=1):
            seen_parts[draft.domain] += 1
            part = seen_parts[draft.domain] if domain_parts[draft.domain] > 1 else None
            phases.append(self._build_phase(number, draft, adjacency[number], part))

        low = sum(estimate_minutes(phase.token_estimate) for phase in phases)
        plan = DynamicPhasePlan(
            plan_id=concept_digest(snapshot, self._config),
            app_name=snapshot.name,
            total_phases=len(phases),
            phases=phases,
            complexity=complexity_for(len(phases)),
            estimated_total_time=format_minutes(low, low + 2 * len(phases)),
            estimated_total_tokens=sum(phase.token_estimate for phase in phases),
            warnings=list(composition.warnings),
        )
        LOGGER.info(
            "Generated plan %s for %s: %d phase(s), complexity=%s",
            plan.plan_id,
            plan.app_name,
            plan.total_phases,
            plan.complexity.value,
        )
        return plan

    def _validate(self, concept: AppConcept, *, require_features: bool) -> None:
        if not concept.name.strip():
            raise MalformedConceptError("App concept is missing a name.")
        if require_features and not concept.features:
            raise MalformedConceptError("App concept has no features to plan.")
        counts = Counter(feature.id for feature in concept.features)
        duplicates = sorted(identifier for identifier, count in counts.items() if count > 1)
        if duplicates:
            raise MalformedConceptError(f"Duplicate feature ids: {', '.join(duplicates)}")

    def _build_phase(
        self,
        number: int,
        draft: PhaseDraft,
        dependencies: Sequence[int],
        part: Optional[int],
    ) -> Phase:
        minutes = estimate_minutes(draft.token_estimate)
        features = [item.feature for item in draft.features]
        if draft.is_setup:
            return Phase(
                number=number,
                name=display_name(FeatureDomain.SETUP),
                description="Initialize the project structure, dependencies and base layout",
                domain=FeatureDomain.SETUP,
                deliverables=list(SETUP_DELIVERABLES),
                estimated_time=format_minutes(minutes, minutes + 2),
                dependencies=list(dependencies),
                token_estimate=draft.token_estimate,
                test_criteria=list(SETUP_TEST_CRITERIA),
            )
        return Phase(
            number=number,
            name=_phase_name(draft, part),
            description=_phase_description(draft),
            domain=draft.domain,
            features=features,
            estimated_time=format_minutes(minutes, minutes + 2),
            dependencies=list(dependencies),
            token_estimate=draft.token_estimate,
            test_criteria=_test_criteria(draft),
        )


def _phase_name(draft: PhaseDraft, part: Optional[int]) -> str:
    if len(draft.features) == 1:
        return draft.features[0].feature.name
    name = display_name(draft.domain)
    if part is not None:
        return f"{name} (Part {part})"
    return name


def _phase_description(draft: PhaseDraft) -> str:
    features = [item.feature for item in draft.features]
    if len(features) == 1:
        return features[0].description or f"Implement {features[0].name}"
    names = [feature.name for feature in features]
    if len(names) <= 3:
        return "Implement " + ", ".join(names)
    return f"Implement {', '.join(names[:2])}, and {len(names) - 2} more features"


def _test_criteria(draft: PhaseDraft) -> List[str]:
    criteria = list(DOMAIN_TEST_CRITERIA.get(draft.domain, ()))
    if not criteria:
        if len(draft.features) <= 3:
            criteria = [f"{item.feature.name} works as expected" for item in draft.features]
        else:
            criteria = [f"All {len(draft.features)} features are functional"]
    criteria.append("No console errors")
    return criteria


def generate_phase_plan(
    concept: AppConcept | Mapping[str, Any],
    config: Optional[PlannerConfig] = None,
    *,
    require_features: bool = False,
) -> DynamicPhasePlan:
    return PhasePlanGenerator(config).generate(concept, require_features=require_features)


def plan_summary(plan: DynamicPhasePlan) -> Dict[str, Any]:
    """Compact overview used by the CLI."""
    return {
        "planId": plan.plan_id,
        "appName": plan.app_name,
        "totalPhases": plan.total_phases,
        "complexity": plan.complexity.value,
        "estimatedTotalTime": plan.estimated_total_time,
        "estimatedTotalTokens": plan.estimated_total_tokens,
        "warnings": list(plan.warnings),
    }
