"""Command line interface for planning and running taskloom workflows."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer

from taskloom.config import load_config
from taskloom.contracts import Workflow
from taskloom.engine import WorkflowEngine
from taskloom.errors import WorkflowLoadError, WorkflowValidationError
from taskloom.loader import load_workflow
from taskloom.planning import plan_workflow

app = typer.Typer(help="CLI for taskloom workflows")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """taskloom CLI entry point."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_or_exit(target: str, base_path: Optional[Path]) -> Workflow:
    try:
        return load_workflow(target, base_path)
    except WorkflowLoadError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _parse_env(pairs: List[str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            typer.secho(f"Invalid --env value '{pair}', expected KEY=VALUE", fg=typer.colors.RED)
            raise typer.Exit(code=2)
        env[key] = value
    return env


@app.command("plan")
def plan_command(
    target: str,
    base_path: Optional[Path] = typer.Option(
        None, help="Directory used to resolve the workflow module"
    ),
) -> None:
    """
    Show the batches a workflow would execute in.

    Args:
        target: 'module:attribute' or 'path/to/file.py:attribute' naming a
            Workflow or a function returning one

    Example:
        taskloom plan guides/basic_workflow.py:build_workflow
        # Output: Workflow build-report: 3 tasks in 2 batches
        #         Batch 1: fetch
        #         Batch 2: summarize, archive
    """
    workflow = _load_or_exit(target, base_path)
    try:
        plan = plan_workflow(workflow)
    except WorkflowValidationError as exc:
        typer.secho(f"Invalid workflow: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(
        f"Workflow {workflow.name or workflow.id}: "
        f"{len(workflow.tasks)} tasks in {len(plan)} batches"
    )
    for index, batch_ids in enumerate(plan.describe(), start=1):
        typer.echo(f"Batch {index}: {', '.join(batch_ids)}")


@app.command("run")
def run_command(
    target: str,
    base_path: Optional[Path] = typer.Option(
        None, help="Directory used to resolve the workflow module"
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", help="Engine configuration YAML file"
    ),
    cwd: Optional[Path] = typer.Option(
        None, help="Working directory exposed to task work functions"
    ),
    env: List[str] = typer.Option(
        [], "--env", help="Extra KEY=VALUE environment entry for tasks"
    ),
) -> None:
    """
    Run a workflow to completion and report each task.

    Exits with code 1 when the workflow is rejected or any task fails.

    Example:
        taskloom run guides/basic_workflow.py:build_workflow --env REGION=eu
        # Output: Workflow build-report: completed (3/3 tasks, 812ms)
        #         - fetch: completed
        #         - summarize: completed
        #         - archive: completed
    """
    workflow = _load_or_exit(target, base_path)
    config = load_config(str(config_path) if config_path else None)
    engine = WorkflowEngine(config=config)

    overrides: dict = {}
    if cwd is not None:
        overrides["working_directory"] = str(cwd.expanduser().resolve())
    if env:
        overrides["environment"] = _parse_env(env)

    try:
        result = asyncio.run(engine.run(workflow, overrides or None))
    except WorkflowValidationError as exc:
        typer.secho(f"Invalid workflow: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    color = typer.colors.GREEN if result.success else typer.colors.RED
    typer.secho(
        f"Workflow {workflow.name or workflow.id}: {result.status.value} "
        f"({result.tasks_completed}/{result.tasks_total} tasks, {result.duration_ms}ms)",
        fg=color,
    )
    for task in workflow.tasks:
        line = f"- {task.id}: {task.status.value}"
        if task.result is not None and task.result.error:
            line += f" ({task.result.error})"
        typer.echo(line)

    if not result.success:
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
