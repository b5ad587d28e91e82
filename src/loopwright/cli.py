from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

import click

from loopwright.backends import (
    AgentBackend,
    BackendExecutionError,
    ClaudeCodeBackend,
    CodexBackend,
    collect_response,
)
from loopwright.config import LoopwrightConfig, load_config, save_config
from loopwright.loop import (
    CycleResult,
    CycleState,
    LoopwrightError,
    Orchestrator,
    StartOptions,
    describe_unit,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Runtime:
    repo_root: Path
    config_path: Path
    config: LoopwrightConfig
    orchestrator: Orchestrator


def _resolve_config_path(repo_root: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = repo_root / config_path
    return config_path.resolve()


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("loopwright").setLevel(level)


def _load_runtime(config_value: str) -> Runtime:
    repo_root = Path.cwd().resolve()
    config_path = _resolve_config_path(repo_root, config_value)
    config = load_config(config_path)
    ctx = click.get_current_context()
    _configure_logging(ctx.find_root().params.get("log_level") or config.logging.level)
    return Runtime(
        repo_root=repo_root,
        config_path=config_path,
        config=config,
        orchestrator=Orchestrator.from_config(repo_root, config),
    )


def _build_backend(config: LoopwrightConfig, repo_root: Path) -> AgentBackend:
    if config.agent.backend == "codex":
        return CodexBackend(binary=config.agent.binary or "codex", working_directory=repo_root)
    return ClaudeCodeBackend(binary=config.agent.binary or "claude", working_directory=repo_root)


def _emit(result: CycleResult) -> None:
    if result.message:
        click.echo(result.message, err=True)
    if result.instruction is not None:
        click.echo(result.instruction)


config_option = click.option(
    "--config", "config_value", default="loopwright.toml", show_default=True
)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Overrides [logging] level from the config file.",
)
def cli(log_level: str | None) -> None:
    """Loopwright: drive a stateless coding agent through a resumable workflow."""


@cli.command("init")
@click.option("--backend", type=click.Choice(["claude", "codex"]), default=None)
@config_option
def init_command(backend: str | None, config_value: str) -> None:
    repo_root = Path.cwd().resolve()
    config_path = _resolve_config_path(repo_root, config_value)
    config = load_config(config_path)
    if backend:
        config.agent.backend = backend  # type: ignore[assignment]
    save_config(config_path, config)
    (repo_root / config.paths.instructions_dir).mkdir(parents=True, exist_ok=True)

    click.echo(f"Initialized Loopwright in {repo_root}")
    click.echo(f"Config: {config_path}")
    click.echo(f"Agent backend: {config.agent.backend}")


@cli.command("start")
@click.option("--model", type=click.Choice(["phases", "stories"]), default=None)
@click.option("--max-iterations", type=click.IntRange(min=1), default=None)
@click.option("--context", "context_paths", multiple=True, help="Reference document path.")
@click.option("--overview", "overview_path", default=None)
@click.option("--stories", "stories_path", default=None)
@config_option
def start_command(
    model: str | None,
    max_iterations: int | None,
    context_paths: tuple[str, ...],
    overview_path: str | None,
    stories_path: str | None,
    config_value: str,
) -> None:
    runtime = _load_runtime(config_value)
    workflow = runtime.config.workflow
    options = StartOptions(
        model=model or workflow.model,  # type: ignore[arg-type]
        iteration_limit=max_iterations or workflow.iteration_limit,
        context_paths=list(context_paths) or list(workflow.context_paths),
        overview_path=overview_path,
        stories_path=stories_path,
    )
    try:
        result = runtime.orchestrator.start(options)
    except LoopwrightError as exc:
        raise click.ClickException(str(exc)) from exc
    _emit(result)


@cli.command("cycle")
@click.option(
    "--response-file",
    type=click.File("r", encoding="utf-8"),
    default="-",
    show_default=True,
    help="The agent's last response; read from stdin by default.",
)
@config_option
def cycle_command(response_file: TextIO, config_value: str) -> None:
    runtime = _load_runtime(config_value)
    result = runtime.orchestrator.run_cycle(response_file.read())
    _emit(result)


@cli.command("run")
@config_option
def run_command(config_value: str) -> None:
    runtime = _load_runtime(config_value)
    instruction = runtime.orchestrator.current_instruction()
    if instruction is None:
        raise click.ClickException("No active workflow. Run 'loopwright start' first.")

    backend = _build_backend(runtime.config, runtime.repo_root)
    timeout = runtime.config.agent.timeout_seconds or None
    while True:
        try:
            response = asyncio.run(collect_response(backend, instruction, timeout))
        except BackendExecutionError as exc:
            logger.warning("Agent invocation failed, treating it as no signal: %s", exc)
            response = ""

        result = runtime.orchestrator.run_cycle(response)
        if result.state is not CycleState.RUNNING:
            click.echo(result.message)
            return
        if result.instruction is None:
            raise click.ClickException(result.message or "Cycle produced no instruction.")
        click.echo(f"[{describe_unit(result.unit)} | Iteration: {result.iteration}]", err=True)
        instruction = result.instruction


@cli.command("status")
@config_option
def status_command(config_value: str) -> None:
    runtime = _load_runtime(config_value)
    payload = runtime.orchestrator.status()
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@cli.command("cancel")
@config_option
def cancel_command(config_value: str) -> None:
    runtime = _load_runtime(config_value)
    if runtime.orchestrator.cancel():
        click.echo("Workflow cancelled.")
    else:
        click.echo("No active workflow.")


@cli.command("skip")
@config_option
def skip_command(config_value: str) -> None:
    runtime = _load_runtime(config_value)
    _emit(runtime.orchestrator.skip())
