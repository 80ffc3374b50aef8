from __future__ import annotations

from typing import List

import pytest

from phaseplan.config import CompressionConfig
from phaseplan.errors import PhaseStateError
from phaseplan.execution.manager import (
    PhaseExecutionManager,
    PhaseOutput,
    extract_file_paths,
    extract_implemented_features,
    extract_libraries,
)
from phaseplan.planning.generator import generate_phase_plan
from phaseplan.schema import AppConcept, ChatMessage, PhaseStatus

GENERATED_DATABASE_CODE = """===NAME===
Pantry Cloud
===FILE:src/db/client.ts===
// database client setup
export const db = createClient();
===FILE:src/db/schema.sql===
create table notes (id serial primary key);
===DEPENDENCIES===
{"pg": "^8.11.0", "zod": "^3.22.0"}
===END==="""


@pytest.fixture()
def manager(auth_db_concept: AppConcept, planning_conversation: List[ChatMessage]) -> PhaseExecutionManager:
    plan = generate_phase_plan(auth_db_concept)
    return PhaseExecutionManager(plan, planning_conversation, concept=auth_db_concept)


def test_delimiter_parsing_helpers() -> None:
    assert extract_file_paths(GENERATED_DATABASE_CODE) == ["src/db/client.ts", "src/db/schema.sql"]
    assert extract_libraries(GENERATED_DATABASE_CODE) == ["pg", "zod"]
    assert extract_libraries("===DEPENDENCIES===\nnot json\n===END===") == []
    assert extract_implemented_features(GENERATED_DATABASE_CODE, ["Database Setup", "Shopping List"]) == [
        "Database Setup"
    ]


def test_phase_cannot_start_before_dependencies_complete(manager: PhaseExecutionManager) -> None:
    with pytest.raises(PhaseStateError):
        manager.start_phase(2)

    manager.start_phase(1)
    manager.complete_phase(1)

    assert manager.start_phase(2).number == 2
    assert manager.status(2) is PhaseStatus.IN_PROGRESS


def test_illegal_transitions_raise(manager: PhaseExecutionManager) -> None:
    with pytest.raises(PhaseStateError):
        manager.complete_phase(1)
    with pytest.raises(PhaseStateError):
        manager.fail_phase(1, "not running")

    manager.start_phase(1)
    with pytest.raises(PhaseStateError):
        manager.start_phase(1)
    with pytest.raises(PhaseStateError):
        manager.status(99)


def test_failed_phase_can_retry_with_identical_context(manager: PhaseExecutionManager) -> None:
    manager.start_phase(1)
    manager.complete_phase(1, PhaseOutput(files=["src/App.tsx"]))
    manager.start_phase(2)
    first = manager.get_execution_context(2)

    manager.fail_phase(2, "generation timed out")
    assert manager.status(2) is PhaseStatus.FAILED
    manager.start_phase(2)
    second = manager.get_execution_context(2)

    assert second == first
    assert manager.attempts(2) == 2
    assert manager.errors(2) == ["generation timed out"]


def test_rollup_only_includes_earlier_completed_phases(manager: PhaseExecutionManager) -> None:
    manager.start_phase(1)
    manager.complete_phase(1, PhaseOutput(files=["src/App.tsx"], libraries=["react"]))
    manager.start_phase(2)
    output = manager.record_generated_code(2, GENERATED_DATABASE_CODE)

    assert output.features == ["Database Setup"]
    assert manager.get_execution_context(2).rollup.files == ["src/App.tsx"]
    context = manager.get_execution_context(3)
    assert context.rollup.files == ["src/App.tsx", "src/db/client.ts", "src/db/schema.sql"]
    assert context.rollup.libraries == ["react", "pg", "zod"]
    assert context.rollup.features == ["Database Setup"]
    assert context.rollup.completed_phases == [1, 2]
    assert context.rollup.latest_code == GENERATED_DATABASE_CODE


def test_execution_context_carries_phase_context(manager: PhaseExecutionManager) -> None:
    context = manager.get_execution_context(2)

    assert context.phase.number == 2
    assert context.total_phases == 4
    assert context.app_name == "Pantry Cloud"
    assert context.app_description == "Kitchen ideas synced to an account."
    assert context.phase_context.phase_type.value == "database"
    assert [segment.id for segment in context.phase_context.relevant_segments] == [
        "segment-3-technical_specs",
        "segment-2-data_model",
    ]
    assert context.conversation_digest == ""


def test_conversation_digest_when_compression_configured(
    auth_db_concept: AppConcept, planning_conversation: List[ChatMessage]
) -> None:
    manager = PhaseExecutionManager(
        generate_phase_plan(auth_db_concept),
        planning_conversation,
        compression_config=CompressionConfig(max_tokens=120, preserve_last_n=2),
    )

    digest = manager.get_execution_context(1).conversation_digest

    assert digest.startswith("=== Conversation Summary ===")
    assert "=== Recent Messages ===" in digest


def test_skip_next_and_progress(manager: PhaseExecutionManager) -> None:
    assert manager.next_phase().number == 1
    manager.skip_phase(1)

    assert manager.is_skipped(1)
    assert manager.status(1) is PhaseStatus.COMPLETE
    assert manager.next_phase().number == 2
    with pytest.raises(PhaseStateError):
        manager.skip_phase(1)

    manager.start_phase(2)
    progress = manager.progress()
    assert progress.completed == 1
    assert progress.total == 4
    assert progress.percentage == 25
    assert progress.current == 2


def test_running_every_phase_completes_the_plan(manager: PhaseExecutionManager) -> None:
    while (phase := manager.next_phase()) is not None:
        manager.start_phase(phase.number)
        manager.complete_phase(phase.number)

    assert manager.is_complete()
    assert manager.progress().percentage == 100
    assert all(phase.status is PhaseStatus.COMPLETE for phase in manager.plan.phases)


def test_manager_does_not_mutate_the_input_plan(auth_db_concept: AppConcept) -> None:
    plan = generate_phase_plan(auth_db_concept)
    manager = PhaseExecutionManager(plan)

    manager.start_phase(1)
    manager.complete_phase(1)

    assert plan.phases[0].status is PhaseStatus.PENDING
    assert manager.plan.phases[0].status is PhaseStatus.COMPLETE


def test_render_prompt_packages_context(manager: PhaseExecutionManager) -> None:
    package = manager.render_prompt(1, token_budget=4000)

    assert package.user_prompt.startswith("# Phase 1 of 4: Project Setup")
    assert package.metadata["phase"] == 1
    assert package.metadata["tokens_used"] <= 4000
    assert "===FILE:path/to/file===" in package.user_prompt
