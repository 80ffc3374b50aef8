"""Phase planning and phase-scoped context extraction for staged app generation."""

from .config import PhaseplanConfig, PlannerConfig, load_config
from .errors import (
    ConfigError,
    CycleDetectedError,
    EmbeddingUnavailableError,
    MalformedConceptError,
    PhasePlanError,
    PhaseStateError,
)
from .planning import PhasePlanGenerator, generate_phase_plan
from .schema import AppConcept, ChatMessage, DynamicPhasePlan, Feature, Phase, PhaseContext

__all__ = [
    "AppConcept",
    "ChatMessage",
    "ConfigError",
    "CycleDetectedError",
    "DynamicPhasePlan",
    "EmbeddingUnavailableError",
    "Feature",
    "MalformedConceptError",
    "Phase",
    "PhaseContext",
    "PhasePlanError",
    "PhasePlanGenerator",
    "PhaseStateError",
    "PhaseplanConfig",
    "PlannerConfig",
    "generate_phase_plan",
    "load_config",
]
