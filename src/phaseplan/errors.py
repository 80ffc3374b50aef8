"""Error taxonomy shared by planning, context extraction and execution."""

from __future__ import annotations


class PhasePlanError(RuntimeError):
    """Base error for phase planning failures."""


class MalformedConceptError(PhasePlanError):
    """Raised when an app concept cannot seed a plan."""


class CycleDetectedError(PhasePlanError):
    """Raised when the phase dependency graph cannot be topologically sorted."""

    def __init__(self, message: str, *, remaining: list[int] | None = None) -> None:
        super().__init__(message)
        self.remaining = list(remaining or [])


class EmbeddingUnavailableError(PhasePlanError):
    """Raised by embedding providers that cannot produce vectors.

    Callers inside the context extractor treat this as non-fatal and fall back to
    keyword relevance only.
    """


class PhaseStateError(PhasePlanError):
    """Raised for illegal phase lifecycle transitions."""


class ConfigError(PhasePlanError):
    """Raised when a configuration file is missing or invalid."""
