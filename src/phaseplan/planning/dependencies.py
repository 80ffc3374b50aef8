"""Rule-table dependency resolution between composed phases."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence, Tuple

from ..domains import FeatureDomain
from ..errors import CycleDetectedError
from .composer import PhaseDraft

LOGGER = logging.getLogger(__name__)

EdgePredicate = Callable[[PhaseDraft, PhaseDraft], bool]


@dataclass(frozen=True, slots=True)
class DependencyRule:
    """Adds an edge ``later -> earlier`` whenever ``applies(earlier, later)`` holds."""

    name: str
    applies: EdgePredicate


_ROLE_GATED_DOMAINS = (FeatureDomain.ADMIN, FeatureDomain.UI_ROLE)

DEPENDENCY_RULES: Tuple[DependencyRule, ...] = (
    DependencyRule(
        "database-before-persistence",
        lambda earlier, later: earlier.domain is FeatureDomain.DATABASE and later.needs_database,
    ),
    DependencyRule(
        "auth-before-role-views",
        lambda earlier, later: earlier.domain is FeatureDomain.AUTH and later.domain in _ROLE_GATED_DOMAINS,
    ),
    DependencyRule(
        "auth-before-user-data",
        lambda earlier, later: earlier.domain is FeatureDomain.AUTH and later.needs_auth,
    ),
)


def resolve_dependencies(
    phases: Sequence[PhaseDraft],
    rules: Sequence[DependencyRule] = DEPENDENCY_RULES,
) -> Dict[int, List[int]]:
    """Evaluate the rule table into an adjacency list keyed by 1-based phase number.

    Setup has no dependencies, integration phases depend on setup only, and every
    other phase also depends on its immediate predecessor. The result is checked
    with a topological sort before it is returned.
    """
    adjacency: Dict[int, List[int]] = {}
    for position, later in enumerate(phases, start=1):
        if position == 1 or later.is_setup:
            adjacency[position] = []
            continue
        if later.domain is FeatureDomain.INTEGRATION:
            adjacency[position] = [1]
            continue

        edges = {position - 1}
        for earlier_position, earlier in enumerate(phases[: position - 1], start=1):
            for rule in rules:
                if rule.applies(earlier, later):
                    LOGGER.debug("Rule %s: phase %d -> %d", rule.name, position, earlier_position)
                    edges.add(earlier_position)
        adjacency[position] = sorted(edges)

    topological_order(adjacency)
    return adjacency


def topological_order(adjacency: Dict[int, List[int]]) -> List[int]:
    """Return phase numbers in dependency order or raise :class:`CycleDetectedError`."""
    indegree: Dict[int, int] = {node: 0 for node in adjacency}
    dependents: Dict[int, List[int]] = {node: [] for node in adjacency}
    for node, requirements in adjacency.items():
        for requirement in requirements:
            if requirement not in adjacency:
                raise CycleDetectedError(
                    f"Phase {node} depends on unknown phase {requirement}", remaining=[node]
                )
            indegree[node] += 1
            dependents[requirement].append(node)

    ready = deque(sorted(node for node, count in indegree.items() if count == 0))
    order: List[int] = []
    while ready:
        node = ready.popleft()
        order.append(node)
        for dependent in sorted(dependents[node]):
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                ready.append(dependent)

    if len(order) != len(adjacency):
        remaining = sorted(node for node, count in indegree.items() if count > 0)
        raise CycleDetectedError("Phase dependencies contain a cycle", remaining=remaining)
    return order
