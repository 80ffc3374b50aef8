from __future__ import annotations

import json
from pathlib import Path
from typing import List

import yaml
from typer.testing import CliRunner

from phaseplan.cli import app
from phaseplan.config import PhaseplanConfig, load_config
from phaseplan.schema import AppConcept, ChatMessage, DynamicPhasePlan


def _write_json(path: Path, payload) -> Path:
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


def _write_conversation(path: Path, messages: List[ChatMessage]) -> Path:
    return _write_json(path, [message.to_wire() for message in messages])


def test_init_config_writes_defaults_once(tmp_path) -> None:
    config_path = tmp_path / "phaseplan.yaml"
    runner = CliRunner()

    result = runner.invoke(app, ["init-config", "--config", str(config_path)], catch_exceptions=False)
    assert result.exit_code == 0, result.output
    assert load_config(config_path) == PhaseplanConfig()

    again = runner.invoke(app, ["init-config", "--config", str(config_path)])
    assert again.exit_code == 1
    assert "--force" in again.output

    forced = runner.invoke(app, ["init-config", "--config", str(config_path), "--force"])
    assert forced.exit_code == 0, forced.output


def test_plan_writes_plan_file(tmp_path, auth_db_concept: AppConcept) -> None:
    concept_path = _write_json(tmp_path / "concept.json", auth_db_concept.to_wire())
    output_path = tmp_path / "out" / "plan.json"

    result = CliRunner().invoke(
        app,
        ["plan", str(concept_path), "--output", str(output_path)],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "Wrote" in result.output
    plan = DynamicPhasePlan.model_validate(json.loads(output_path.read_text(encoding="utf-8")))
    assert [phase.name for phase in plan.phases] == [
        "Project Setup",
        "Database Setup",
        "Authentication System",
        "Features",
    ]


def test_plan_summary_reads_yaml_concepts(tmp_path, simple_concept: AppConcept) -> None:
    concept_path = tmp_path / "concept.yaml"
    concept_path.write_text(yaml.safe_dump(simple_concept.to_wire(), sort_keys=False), encoding="utf-8")

    result = CliRunner().invoke(app, ["plan", str(concept_path), "--summary"], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    summary = json.loads(result.stdout)
    assert summary["appName"] == "Pantry Helper"
    assert summary["totalPhases"] == 2
    assert summary["complexity"] == "simple"


def test_plan_rejects_malformed_concepts(tmp_path) -> None:
    runner = CliRunner()
    malformed = _write_json(tmp_path / "bad.json", {"name": "Broken", "features": "not-a-list"})
    empty = _write_json(tmp_path / "empty.json", {"name": "Empty"})

    result = runner.invoke(app, ["plan", str(malformed)])
    assert result.exit_code == 1
    assert "Planning failed" in result.output

    result = runner.invoke(app, ["plan", str(empty), "--require-features"])
    assert result.exit_code == 1
    assert "no features" in result.output


def test_plan_reports_unparseable_files(tmp_path) -> None:
    broken = tmp_path / "concept.json"
    broken.write_text("{not json", encoding="utf-8")

    result = CliRunner().invoke(app, ["plan", str(broken)])

    assert result.exit_code == 1
    assert "Failed to parse" in result.output


def test_context_for_phase_type(tmp_path, ui_conversation: List[ChatMessage]) -> None:
    conversation_path = _write_conversation(tmp_path / "conversation.json", ui_conversation)

    result = CliRunner().invoke(
        app,
        ["context", str(conversation_path), "--phase-type", "database"],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["phaseType"] == "database"
    assert payload["relevantSegments"] == []


def test_context_requires_exactly_one_target(tmp_path, ui_conversation: List[ChatMessage]) -> None:
    conversation_path = _write_conversation(tmp_path / "conversation.json", ui_conversation)
    plan_path = tmp_path / "plan.json"
    plan_path.write_text("{}", encoding="utf-8")
    runner = CliRunner()

    neither = runner.invoke(app, ["context", str(conversation_path)])
    both = runner.invoke(
        app,
        ["context", str(conversation_path), "--phase-type", "auth", "--plan", str(plan_path)],
    )
    unknown = runner.invoke(app, ["context", str(conversation_path), "--phase-type", "kitchen"])

    assert neither.exit_code != 0
    assert both.exit_code != 0
    assert unknown.exit_code != 0


def test_context_for_every_plan_phase(
    tmp_path, simple_concept: AppConcept, planning_conversation: List[ChatMessage]
) -> None:
    runner = CliRunner()
    concept_path = _write_json(tmp_path / "concept.json", simple_concept.to_wire())
    plan_path = tmp_path / "plan.json"
    runner.invoke(app, ["plan", str(concept_path), "-o", str(plan_path)], catch_exceptions=False)
    conversation_path = tmp_path / "conversation.yaml"
    conversation_path.write_text(
        yaml.safe_dump({"messages": [message.to_wire() for message in planning_conversation]}),
        encoding="utf-8",
    )

    result = runner.invoke(
        app,
        ["context", str(conversation_path), "--plan", str(plan_path), "--embeddings", "hash"],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert sorted(payload) == ["1", "2"]
    assert payload["1"]["phaseType"] == "setup"
    assert payload["2"]["phaseType"] == "feature"


def test_compress_stats(tmp_path, planning_conversation: List[ChatMessage]) -> None:
    conversation_path = _write_conversation(tmp_path / "conversation.json", planning_conversation)

    result = CliRunner().invoke(
        app,
        ["compress", str(conversation_path), "--max-tokens", "60", "--stats"],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    stats = json.loads(result.stdout)
    assert stats["savedTokens"] > 0
    assert stats["messagesSummarized"] + stats["messagesPreserved"] == len(planning_conversation)


def test_compress_prints_short_conversation_verbatim(tmp_path, ui_conversation: List[ChatMessage]) -> None:
    conversation_path = _write_conversation(tmp_path / "conversation.json", ui_conversation)

    result = CliRunner().invoke(app, ["compress", str(conversation_path)], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "=== Recent Messages ===" in result.output
    assert "User: Make the colors warm and the fonts large." in result.output
    assert "=== Conversation Summary ===" not in result.output


def test_execution_context_renders_prompt(
    tmp_path, auth_db_concept: AppConcept, planning_conversation: List[ChatMessage]
) -> None:
    runner = CliRunner()
    concept_path = _write_json(tmp_path / "concept.json", auth_db_concept.to_wire())
    plan_path = tmp_path / "plan.json"
    runner.invoke(app, ["plan", str(concept_path), "-o", str(plan_path)], catch_exceptions=False)
    conversation_path = _write_conversation(tmp_path / "conversation.json", planning_conversation)

    result = runner.invoke(
        app,
        [
            "execution-context",
            str(plan_path),
            str(conversation_path),
            "--phase",
            "2",
            "--completed",
            "1",
            "--concept",
            str(concept_path),
        ],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert result.stdout.startswith("=== SYSTEM ===")
    assert "=== USER ===" in result.output
    assert "# Phase 2 of 4: Database Setup" in result.output
    assert "**Description:** Kitchen ideas synced to an account." in result.output


def test_execution_context_rejects_unknown_phase(
    tmp_path, simple_concept: AppConcept, ui_conversation: List[ChatMessage]
) -> None:
    runner = CliRunner()
    concept_path = _write_json(tmp_path / "concept.json", simple_concept.to_wire())
    plan_path = tmp_path / "plan.json"
    runner.invoke(app, ["plan", str(concept_path), "-o", str(plan_path)], catch_exceptions=False)
    conversation_path = _write_conversation(tmp_path / "conversation.json", ui_conversation)

    result = runner.invoke(app, ["execution-context", str(plan_path), str(conversation_path), "--phase", "9"])

    assert result.exit_code == 1
    assert "Unknown phase 9" in result.output
