"""Phase lifecycle tracking and per-phase prompt assembly."""

from .manager import (
    ExecutionContext,
    ExecutionProgress,
    ExecutionRollup,
    PhaseExecutionManager,
    PhaseOutput,
    extract_file_paths,
    extract_implemented_features,
    extract_libraries,
)
from .prompt import ContextPackage, PhasePromptBuilder

__all__ = [
    "ContextPackage",
    "ExecutionContext",
    "ExecutionProgress",
    "ExecutionRollup",
    "PhaseExecutionManager",
    "PhaseOutput",
    "PhasePromptBuilder",
    "extract_file_paths",
    "extract_implemented_features",
    "extract_libraries",
]
