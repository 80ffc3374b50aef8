"""Group classified features into ordered, budget-bounded phase drafts."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..config import PlannerConfig
from ..domains import DOMAIN_ORDER, SETUP_PHASE_TOKENS, FeatureDomain, is_always_separate
from ..schema import Priority
from .classifier import ClassifiedFeature

LOGGER = logging.getLogger(__name__)

_PRIORITY_RANK: Dict[Priority, int] = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


@dataclass(slots=True)
class PhaseDraft:
    """Unnumbered phase produced by the composer."""

    domain: FeatureDomain
    features: List[ClassifiedFeature] = field(default_factory=list)
    token_estimate: int = 0
    dedicated: bool = False

    @property
    def is_setup(self) -> bool:
        return self.domain is FeatureDomain.SETUP

    @property
    def splittable(self) -> bool:
        return not self.is_setup and not self.dedicated and len(self.features) >= 2

    @property
    def needs_database(self) -> bool:
        return any(item.needs_database for item in self.features)

    @property
    def needs_auth(self) -> bool:
        return any(item.needs_auth for item in self.features)


@dataclass(slots=True)
class Composition:
    phases: List[PhaseDraft]
    warnings: List[str] = field(default_factory=list)


class PhaseComposer:
    """Turn classified features into setup, dedicated and grouped phases."""

    def __init__(self, config: Optional[PlannerConfig] = None) -> None:
        self._config = config or PlannerConfig()

    @property
    def config(self) -> PlannerConfig:
        return self._config

    def feature_cost(self, item: ClassifiedFeature) -> int:
        """Token estimate for one feature, clamped to the per-phase budget."""
        return min(item.token_estimate, self._config.max_tokens_per_phase)

    def compose(self, classified: Sequence[ClassifiedFeature]) -> Composition:
        warnings: List[str] = []
        by_domain: Dict[FeatureDomain, List[ClassifiedFeature]] = {}
        for item in classified:
            by_domain.setdefault(item.domain, []).append(item)

        phases: List[PhaseDraft] = [
            PhaseDraft(
                domain=FeatureDomain.SETUP,
                token_estimate=min(SETUP_PHASE_TOKENS, self._config.max_tokens_per_phase),
            )
        ]
        for domain in DOMAIN_ORDER:
            items = by_domain.get(domain)
            if not items:
                continue
            ordered = sorted(items, key=lambda item: _PRIORITY_RANK[item.priority])
            if is_always_separate(domain):
                phases.append(self._dedicated_phase(domain, ordered, warnings))
            else:
                phases.extend(self._group(domain, ordered))

        self._split_until_minimum(phases)
        self._merge_until_maximum(phases, warnings)

        LOGGER.debug(
            "Composed %d phase(s): %s",
            len(phases),
            ", ".join(f"{draft.domain.value}[{len(draft.features)}]" for draft in phases),
        )
        return Composition(phases=phases, warnings=warnings)

    def _dedicated_phase(
        self,
        domain: FeatureDomain,
        items: Sequence[ClassifiedFeature],
        warnings: List[str],
    ) -> PhaseDraft:
        raw = sum(self.feature_cost(item) for item in items)
        limit = self._config.max_tokens_per_phase
        if raw > limit:
            message = (
                f"Dedicated {domain.value} phase needs ~{raw} tokens; "
                f"estimate clamped to max_tokens_per_phase={limit}."
            )
            LOGGER.warning(message)
            warnings.append(message)
        return PhaseDraft(domain=domain, features=list(items), token_estimate=min(raw, limit), dedicated=True)

    def _group(self, domain: FeatureDomain, items: Sequence[ClassifiedFeature]) -> List[PhaseDraft]:
        limit_tokens = self._config.max_tokens_per_phase
        limit_features = self._config.max_features_per_phase
        groups: List[PhaseDraft] = []
        current = PhaseDraft(domain=domain)
        for item in items:
            cost = self.feature_cost(item)
            over_budget = current.token_estimate + cost > limit_tokens
            if current.features and (over_budget or len(current.features) >= limit_features):
                groups.append(current)
                current = PhaseDraft(domain=domain)
            current.features.append(item)
            current.token_estimate += cost
        if current.features:
            groups.append(current)
        return groups

    def _split_until_minimum(self, phases: List[PhaseDraft]) -> None:
        while len(phases) < self._config.min_phases:
            candidates = [index for index, draft in enumerate(phases) if draft.splittable]
            if not candidates:
                return
            index = max(
                candidates,
                key=lambda idx: (phases[idx].token_estimate, len(phases[idx].features), -idx),
            )
            draft = phases[index]
            middle = math.ceil(len(draft.features) / 2)
            head = PhaseDraft(domain=draft.domain, features=draft.features[:middle])
            tail = PhaseDraft(domain=draft.domain, features=draft.features[middle:])
            for part in (head, tail):
                part.token_estimate = sum(self.feature_cost(item) for item in part.features)
            phases[index : index + 1] = [head, tail]

    def _merge_until_maximum(self, phases: List[PhaseDraft], warnings: List[str]) -> None:
        limit_tokens = self._config.max_tokens_per_phase
        while len(phases) > self._config.max_phases:
            merged = False
            for index in range(len(phases) - 1):
                left, right = phases[index], phases[index + 1]
                if left.is_setup or left.dedicated or right.dedicated:
                    continue
                if left.domain is not right.domain:
                    continue
                if left.token_estimate + right.token_estimate > limit_tokens:
                    continue
                left.features.extend(right.features)
                left.token_estimate += right.token_estimate
                del phases[index + 1]
                merged = True
                break
            if not merged:
                message = (
                    f"Plan needs {len(phases)} phases which exceeds max_phases="
                    f"{self._config.max_phases}; no further merges fit the token budget."
                )
                LOGGER.warning(message)
                warnings.append(message)
                return
