"""CLI commands for planning phases and inspecting phase-scoped context."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import typer
import yaml
from pydantic import ValidationError

from .config import DEFAULT_CONFIG_NAME, PhaseplanConfig, load_config, write_default_config
from .context import build_embedding_provider, extract_context_for_all_phases, extract_phase_context
from .context.embeddings import EmbeddingProvider, NoEmbeddings
from .conversation import coerce_messages, compress_conversation, compression_stats
from .conversation.compression import build_compressed_context
from .domains import FeatureDomain
from .errors import PhasePlanError
from .execution import PhaseExecutionManager
from .planning import PhasePlanGenerator
from .planning.generator import plan_summary
from .schema import AppConcept, ChatMessage, DynamicPhasePlan

APP_HELP = "Split app concepts into build phases and extract phase-scoped conversation context."

LOGGER = logging.getLogger(__name__)

app = typer.Typer(help=APP_HELP)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Emit debug logging to stderr.",
    ),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_document(path: Path) -> Any:
    """Read a JSON or YAML document; YAML is used for ``.yaml``/``.yml`` files."""
    if not path.exists():
        raise typer.BadParameter(f"File not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            return yaml.safe_load(text)
        return json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as error:
        typer.echo(f"Failed to parse {path}: {error}")
        raise typer.Exit(code=1) from error


def _load_settings(config: Optional[str]) -> PhaseplanConfig:
    try:
        return load_config(Path(config) if config else None)
    except PhasePlanError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


def _load_messages(path: Path) -> List[ChatMessage]:
    data = _load_document(path)
    if isinstance(data, dict):
        data = data.get("messages", [])
    if not isinstance(data, list):
        typer.echo("Conversation must be a list of messages or a mapping with a 'messages' list.")
        raise typer.Exit(code=1)
    try:
        return coerce_messages(data)
    except (ValidationError, TypeError, ValueError) as error:
        typer.echo(f"Invalid conversation: {error}")
        raise typer.Exit(code=1) from error


def _load_plan(path: Path) -> DynamicPhasePlan:
    try:
        return DynamicPhasePlan.model_validate(_load_document(path))
    except ValidationError as error:
        typer.echo(f"Invalid phase plan: {error}")
        raise typer.Exit(code=1) from error


def _load_concept(path: Path) -> AppConcept:
    try:
        return AppConcept.model_validate(_load_document(path))
    except ValidationError as error:
        typer.echo(f"Invalid app concept: {error}")
        raise typer.Exit(code=1) from error


def _resolve_provider(settings: PhaseplanConfig, override: Optional[str]) -> EmbeddingProvider:
    if override is not None:
        if override not in {"none", "hash", "openai"}:
            raise typer.BadParameter(f"Unknown embedding provider: {override}")
        embedding_settings = settings.embeddings.model_copy(update={"provider": override})
        return build_embedding_provider(embedding_settings)
    if not settings.context.semantic_search:
        return NoEmbeddings()
    return build_embedding_provider(settings.embeddings)


def _emit(payload: Any, output: Optional[str]) -> None:
    text = json.dumps(payload, indent=2)
    if output:
        target = Path(output)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text + "\n", encoding="utf-8")
        typer.echo(f"Wrote {target.as_posix()}")
    else:
        typer.echo(text)


@app.command("init-config")
def init_config(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path of the configuration file to create.",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Overwrite an existing configuration file.",
    ),
) -> None:
    """Write the default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Configuration already exists at {config_path.as_posix()}; use --force to overwrite.")
        raise typer.Exit(code=1)
    write_default_config(config_path)
    typer.echo(f"Wrote default configuration to {config_path.as_posix()}")


@app.command()
def plan(
    concept: Path = typer.Argument(..., help="App concept as a JSON or YAML file."),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to the configuration file.",
    ),
    require_features: bool = typer.Option(
        False,
        "--require-features",
        help="Reject concepts that declare no features.",
    ),
    summary: bool = typer.Option(
        False,
        "--summary",
        help="Print the plan overview instead of the full plan.",
    ),
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the plan JSON to this path instead of stdout.",
    ),
) -> None:
    """Generate a phase plan for an app concept."""
    settings = _load_settings(config)
    payload = _load_document(concept)
    try:
        result = PhasePlanGenerator(settings.planning).generate(payload, require_features=require_features)
    except PhasePlanError as error:
        typer.echo(f"Planning failed: {error}")
        raise typer.Exit(code=1) from error
    for warning in result.warnings:
        LOGGER.info("Plan warning: %s", warning)
    _emit(plan_summary(result) if summary else result.to_wire(), output)


@app.command()
def context(
    conversation: Path = typer.Argument(..., help="Conversation messages as a JSON or YAML file."),
    phase_type: Optional[str] = typer.Option(
        None,
        "--phase-type",
        "-p",
        help="Phase domain to extract context for, e.g. 'database' or 'auth'.",
    ),
    plan_path: Optional[Path] = typer.Option(
        None,
        "--plan",
        help="Phase plan file; extract context for every phase of the plan.",
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to the configuration file.",
    ),
    embeddings: Optional[str] = typer.Option(
        None,
        "--embeddings",
        help="Embedding provider override: none, hash or openai.",
    ),
) -> None:
    """Extract the conversation context relevant to one phase or a whole plan."""
    if (phase_type is None) == (plan_path is None):
        raise typer.BadParameter("Provide exactly one of --phase-type or --plan.")
    settings = _load_settings(config)
    messages = _load_messages(conversation)
    provider = _resolve_provider(settings, embeddings)

    if plan_path is not None:
        contexts = extract_context_for_all_phases(
            messages,
            _load_plan(plan_path),
            embeddings=provider,
            config=settings.context,
        )
        _emit({str(number): item.to_wire() for number, item in contexts.items()}, None)
        return

    try:
        domain = FeatureDomain(phase_type)
    except ValueError as error:
        raise typer.BadParameter(f"Unknown phase type: {phase_type}") from error
    result = extract_phase_context(messages, domain, embeddings=provider, config=settings.context)
    _emit(result.to_wire(), None)


@app.command()
def compress(
    conversation: Path = typer.Argument(..., help="Conversation messages as a JSON or YAML file."),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to the configuration file.",
    ),
    max_tokens: Optional[int] = typer.Option(
        None,
        "--max-tokens",
        help="Token budget; defaults to the configured compression.max_tokens.",
    ),
    stats: bool = typer.Option(
        False,
        "--stats",
        help="Print compression statistics instead of the compressed context.",
    ),
) -> None:
    """Compress a conversation into a summary plus recent messages."""
    settings = _load_settings(config)
    messages = _load_messages(conversation)
    budget = max_tokens if max_tokens is not None else settings.compression.max_tokens
    if budget <= 0:
        raise typer.BadParameter("--max-tokens must be positive.")
    compressed = compress_conversation(
        messages,
        max_tokens=budget,
        preserve_last_n=settings.compression.preserve_last_n,
    )
    if stats:
        _emit(compression_stats(compressed), None)
    else:
        typer.echo(build_compressed_context(compressed))


@app.command("execution-context")
def execution_context(
    plan_path: Path = typer.Argument(..., help="Phase plan as a JSON or YAML file."),
    conversation: Path = typer.Argument(..., help="Conversation messages as a JSON or YAML file."),
    phase: int = typer.Option(..., "--phase", "-n", help="Phase number to build the prompt for."),
    concept_path: Optional[Path] = typer.Option(
        None,
        "--concept",
        help="App concept file used for the prompt header.",
    ),
    completed: List[int] = typer.Option(
        None,
        "--completed",
        help="Phase number already completed (repeatable).",
    ),
    token_budget: Optional[int] = typer.Option(
        None,
        "--token-budget",
        help="Token budget for the assembled prompt.",
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to the configuration file.",
    ),
) -> None:
    """Render the budgeted generation prompt for one phase of a plan."""
    settings = _load_settings(config)
    manager = PhaseExecutionManager(
        _load_plan(plan_path),
        _load_messages(conversation),
        concept=_load_concept(concept_path) if concept_path is not None else None,
        embeddings=_resolve_provider(settings, None),
        context_config=settings.context,
        compression_config=settings.compression,
    )
    try:
        for number in sorted(completed or []):
            manager.skip_phase(number)
        package = manager.render_prompt(phase, token_budget=token_budget)
    except PhasePlanError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error

    typer.echo("=== SYSTEM ===")
    typer.echo(package.system_prompt)
    typer.echo("=== USER ===")
    typer.echo(package.user_prompt)
    for section in package.metadata["sections"]:
        LOGGER.debug(
            "Section %s %s: %d of %d requested token(s)",
            section["label"],
            section["status"],
            section["tokens"],
            section["requestedTokens"],
        )


if __name__ == "__main__":
    app()
