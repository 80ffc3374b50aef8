"""YAML-backed configuration for planning, compression and context extraction."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Literal, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigError

DEFAULT_CONFIG_NAME = "phaseplan.yaml"


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class PlannerConfig(_Section):
    """Limits applied by the phase composer."""

    max_tokens_per_phase: int = Field(default=8000, gt=0)
    max_features_per_phase: int = Field(default=4, gt=0)
    min_phases: int = Field(default=2, ge=1)
    max_phases: int = Field(default=30, ge=1)

    @model_validator(mode="after")
    def _check_phase_bounds(self) -> "PlannerConfig":
        if self.min_phases > self.max_phases:
            raise ValueError("min_phases must not exceed max_phases")
        return self


class CompressionConfig(_Section):
    max_tokens: int = Field(default=8000, gt=0)
    preserve_last_n: int = Field(default=8, ge=0)


class ContextConfig(_Section):
    """Knobs for phase context extraction."""

    semantic_search: bool = False
    semantic_limit: int = Field(default=3, ge=0)
    similarity_threshold: float = 0.4
    max_workers: int = Field(default=8, gt=0)
    max_segment_size: int = Field(default=20, gt=1)
    summary_chars: int = Field(default=3000, gt=0, le=3000)


class EmbeddingConfig(_Section):
    provider: Literal["none", "hash", "openai"] = "none"
    model: str = "text-embedding-3-small"
    dimension: int = Field(default=64, gt=0)
    base_url: str = "https://api.openai.com/v1/embeddings"
    timeout: float = 30.0


class RegenerationConfig(_Section):
    debounce_ms: int = Field(default=500, ge=0)


class PhaseplanConfig(_Section):
    """Root configuration document."""

    planning: PlannerConfig = Field(default_factory=PlannerConfig)
    compression: CompressionConfig = Field(default_factory=CompressionConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    embeddings: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    regeneration: RegenerationConfig = Field(default_factory=RegenerationConfig)


DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "planning": {
        "max_tokens_per_phase": 8000,
        "max_features_per_phase": 4,
        "min_phases": 2,
        "max_phases": 30,
    },
    "compression": {
        "max_tokens": 8000,
        "preserve_last_n": 8,
    },
    "context": {
        "semantic_search": False,
        "semantic_limit": 3,
        "similarity_threshold": 0.4,
        "max_workers": 8,
        "max_segment_size": 20,
        "summary_chars": 3000,
    },
    "embeddings": {
        "provider": "none",
        "model": "text-embedding-3-small",
        "dimension": 64,
    },
    "regeneration": {
        "debounce_ms": 500,
    },
}


def default_config_data() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def config_from_mapping(data: Mapping[str, Any]) -> PhaseplanConfig:
    """Validate a raw mapping into a :class:`PhaseplanConfig`."""
    try:
        return PhaseplanConfig.model_validate(dict(data))
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration: {error}") from error


def load_config(config_path: Path | str | None) -> PhaseplanConfig:
    """Load YAML configuration from disk; ``None`` yields the defaults."""
    if config_path is None:
        return PhaseplanConfig()

    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")

    return config_from_mapping(data)


def write_default_config(config_path: Path) -> None:
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(default_config_data(), handle, sort_keys=False)
