"""Feature classification, phase composition and dependency resolution."""

from .classifier import ClassifiedFeature, classify_feature, classify_features, classify_text, implicit_features
from .composer import Composition, PhaseComposer, PhaseDraft
from .dependencies import DEPENDENCY_RULES, DependencyRule, resolve_dependencies, topological_order
from .generator import PhasePlanGenerator, complexity_for, generate_phase_plan
from .regeneration import PlanRegenerator

__all__ = [
    "ClassifiedFeature",
    "Composition",
    "DEPENDENCY_RULES",
    "DependencyRule",
    "PhaseComposer",
    "PhaseDraft",
    "PhasePlanGenerator",
    "PlanRegenerator",
    "classify_feature",
    "classify_features",
    "classify_text",
    "complexity_for",
    "generate_phase_plan",
    "implicit_features",
    "resolve_dependencies",
    "topological_order",
]
