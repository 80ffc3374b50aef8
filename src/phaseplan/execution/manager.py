"""Sequential phase execution state and per-phase execution contexts."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..config import CompressionConfig, ContextConfig
from ..context.embeddings import EmbeddingProvider
from ..context.phase_context import extract_phase_context
from ..conversation.compression import build_compressed_context, compress_conversation
from ..errors import PhaseStateError
from ..schema import AppConcept, ChatMessage, DynamicPhasePlan, Phase, PhaseContext, PhaseStatus
from .prompt import ContextPackage, PhasePromptBuilder

LOGGER = logging.getLogger(__name__)

_FILE_MARKER = re.compile(r"===FILE:([^=\n]+)===")
_DEPENDENCIES_BLOCK = re.compile(r"===DEPENDENCIES===\s*(.*?)\s*===(?:END|FILE:)", re.DOTALL)


def extract_file_paths(generated_code: str) -> List[str]:
    """Return the paths declared with ``===FILE:path===`` markers, in order."""
    paths: List[str] = []
    for match in _FILE_MARKER.finditer(generated_code):
        path = match.group(1).strip()
        if path and path not in paths:
            paths.append(path)
    return paths


def extract_libraries(generated_code: str) -> List[str]:
    """Return dependency names from the ``===DEPENDENCIES===`` JSON block, if any."""
    match = _DEPENDENCIES_BLOCK.search(generated_code)
    if match is None:
        return []
    try:
        data = json.loads(match.group(1))
    except json.JSONDecodeError as error:
        LOGGER.warning("Failed to parse dependencies block: %s", error)
        return []
    if not isinstance(data, dict):
        return []
    return [str(name) for name in data]


def extract_implemented_features(generated_code: str, expected: Sequence[str]) -> List[str]:
    """Feature names whose significant words appear in ``generated_code``."""
    lowered = generated_code.lower()
    found: List[str] = []
    for name in expected:
        words = [word for word in name.lower().split() if len(word) > 3]
        if any(word in lowered for word in words):
            found.append(name)
    return found


@dataclass(slots=True)
class PhaseOutput:
    """Declared outputs of one completed phase."""

    files: List[str] = field(default_factory=list)
    libraries: List[str] = field(default_factory=list)
    features: List[str] = field(default_factory=list)
    generated_code: str = ""

    @classmethod
    def from_generated_code(cls, generated_code: str, expected_features: Sequence[str] = ()) -> "PhaseOutput":
        return cls(
            files=extract_file_paths(generated_code),
            libraries=extract_libraries(generated_code),
            features=extract_implemented_features(generated_code, expected_features),
            generated_code=generated_code,
        )


@dataclass(slots=True)
class ExecutionRollup:
    """Accumulated outputs of completed earlier phases."""

    files: List[str] = field(default_factory=list)
    libraries: List[str] = field(default_factory=list)
    features: List[str] = field(default_factory=list)
    completed_phases: List[int] = field(default_factory=list)
    latest_code: str = ""


@dataclass(slots=True)
class ExecutionContext:
    """Everything a generation call needs for one phase."""

    plan_id: str
    app_name: str
    app_description: str
    total_phases: int
    phase: Phase
    phase_context: PhaseContext
    rollup: ExecutionRollup
    concept: Optional[AppConcept] = None
    conversation_digest: str = ""


@dataclass(slots=True)
class ExecutionProgress:
    completed: int
    total: int
    percentage: int
    current: Optional[int]
    failed: List[int] = field(default_factory=list)


class PhaseExecutionManager:
    """Track phase lifecycle and derive execution contexts on demand.

    Lifecycle: ``pending -> in-progress -> complete | failed``; a failed phase
    may be started again. Contexts are recomputed from the conversation and
    plan on every call, so a retry sees exactly the context of the first try.
    """

    def __init__(
        self,
        plan: DynamicPhasePlan,
        messages: Sequence[ChatMessage] = (),
        *,
        concept: Optional[AppConcept] = None,
        embeddings: Optional[EmbeddingProvider] = None,
        context_config: Optional[ContextConfig] = None,
        compression_config: Optional[CompressionConfig] = None,
    ) -> None:
        self._plan = plan.model_copy(deep=True)
        self._messages = [message.model_copy() for message in messages]
        self._concept = concept.model_copy(deep=True) if concept is not None else None
        self._embeddings = embeddings
        self._context_config = context_config
        self._compression_config = compression_config
        self._status: Dict[int, PhaseStatus] = {phase.number: PhaseStatus.PENDING for phase in self._plan.phases}
        self._outputs: Dict[int, PhaseOutput] = {}
        self._skipped: set[int] = set()
        self._attempts: Dict[int, int] = {}
        self._errors: Dict[int, List[str]] = {}

    @property
    def plan(self) -> DynamicPhasePlan:
        """Plan copy whose phase statuses reflect the current execution state."""
        return self._plan.model_copy(
            update={
                "phases": [
                    phase.model_copy(update={"status": self._status[phase.number]})
                    for phase in self._plan.phases
                ]
            }
        )

    def _phase(self, number: int) -> Phase:
        try:
            return self._plan.phase(number)
        except KeyError as error:
            raise PhaseStateError(f"Unknown phase {number}") from error

    def status(self, number: int) -> PhaseStatus:
        self._phase(number)
        return self._status[number]

    def attempts(self, number: int) -> int:
        return self._attempts.get(number, 0)

    def errors(self, number: int) -> List[str]:
        return list(self._errors.get(number, []))

    def is_skipped(self, number: int) -> bool:
        return number in self._skipped

    def start_phase(self, number: int) -> Phase:
        """Move a pending or failed phase to in-progress once its dependencies are complete."""
        phase = self._phase(number)
        current = self._status[number]
        if current not in (PhaseStatus.PENDING, PhaseStatus.FAILED):
            raise PhaseStateError(f"Cannot start phase {number} from status {current.value}")
        blocked = [dep for dep in phase.dependencies if self._status[dep] is not PhaseStatus.COMPLETE]
        if blocked:
            raise PhaseStateError(
                f"Phase {number} is blocked by incomplete dependencies: {', '.join(map(str, blocked))}"
            )
        self._status[number] = PhaseStatus.IN_PROGRESS
        self._attempts[number] = self._attempts.get(number, 0) + 1
        LOGGER.info("Started phase %d (%s), attempt %d", number, phase.name, self._attempts[number])
        return phase

    def complete_phase(self, number: int, output: Optional[PhaseOutput] = None) -> None:
        self._require_status(number, PhaseStatus.IN_PROGRESS, "complete")
        self._status[number] = PhaseStatus.COMPLETE
        self._outputs[number] = output or PhaseOutput()
        LOGGER.info("Completed phase %d", number)

    def record_generated_code(self, number: int, generated_code: str) -> PhaseOutput:
        """Complete ``number`` using outputs parsed from delimiter-formatted code."""
        phase = self._phase(number)
        output = PhaseOutput.from_generated_code(generated_code, [feature.name for feature in phase.features])
        self.complete_phase(number, output)
        return output

    def fail_phase(self, number: int, error: str) -> None:
        self._require_status(number, PhaseStatus.IN_PROGRESS, "fail")
        self._status[number] = PhaseStatus.FAILED
        self._errors.setdefault(number, []).append(error)
        LOGGER.warning("Phase %d failed: %s", number, error)

    def skip_phase(self, number: int) -> None:
        """Mark a pending phase complete without outputs."""
        self._require_status(number, PhaseStatus.PENDING, "skip")
        self._status[number] = PhaseStatus.COMPLETE
        self._skipped.add(number)
        LOGGER.info("Skipped phase %d", number)

    def _require_status(self, number: int, expected: PhaseStatus, action: str) -> None:
        self._phase(number)
        current = self._status[number]
        if current is not expected:
            raise PhaseStateError(
                f"Cannot {action} phase {number}: status is {current.value}, expected {expected.value}"
            )

    def next_phase(self) -> Optional[Phase]:
        """First pending or failed phase whose dependencies are complete."""
        for phase in self._plan.phases:
            if self._status[phase.number] not in (PhaseStatus.PENDING, PhaseStatus.FAILED):
                continue
            if all(self._status[dep] is PhaseStatus.COMPLETE for dep in phase.dependencies):
                return phase
        return None

    def is_complete(self) -> bool:
        return all(status is PhaseStatus.COMPLETE for status in self._status.values())

    def progress(self) -> ExecutionProgress:
        total = len(self._status)
        completed = sum(1 for status in self._status.values() if status is PhaseStatus.COMPLETE)
        current = next(
            (number for number, status in sorted(self._status.items()) if status is PhaseStatus.IN_PROGRESS),
            None,
        )
        return ExecutionProgress(
            completed=completed,
            total=total,
            percentage=round(completed / total * 100) if total else 100,
            current=current,
            failed=sorted(number for number, status in self._status.items() if status is PhaseStatus.FAILED),
        )

    def rollup(self, before: int) -> ExecutionRollup:
        """Merge outputs of completed phases numbered below ``before``."""
        rollup = ExecutionRollup()
        for number in sorted(self._outputs):
            if number >= before or self._status[number] is not PhaseStatus.COMPLETE:
                continue
            output = self._outputs[number]
            rollup.completed_phases.append(number)
            for target, values in (
                (rollup.files, output.files),
                (rollup.libraries, output.libraries),
                (rollup.features, output.features),
            ):
                for value in values:
                    if value not in target:
                        target.append(value)
            if output.generated_code:
                rollup.latest_code = output.generated_code
        return rollup

    def get_execution_context(self, number: int) -> ExecutionContext:
        phase = self._phase(number)
        phase_context = extract_phase_context(
            self._messages,
            phase.domain,
            embeddings=self._embeddings,
            config=self._context_config,
        )
        digest = ""
        if self._compression_config is not None and self._messages:
            compressed = compress_conversation(
                self._messages,
                max_tokens=self._compression_config.max_tokens,
                preserve_last_n=self._compression_config.preserve_last_n,
            )
            digest = build_compressed_context(compressed)
        return ExecutionContext(
            plan_id=self._plan.plan_id,
            app_name=self._plan.app_name,
            app_description=self._concept.description if self._concept is not None else "",
            total_phases=self._plan.total_phases,
            phase=phase.model_copy(deep=True),
            phase_context=phase_context,
            rollup=self.rollup(number),
            concept=self._concept,
            conversation_digest=digest,
        )

    def render_prompt(self, number: int, *, token_budget: Optional[int] = None) -> ContextPackage:
        """Package the execution context of ``number`` into a budgeted prompt."""
        return PhasePromptBuilder(token_budget=token_budget).build(self.get_execution_context(number))
