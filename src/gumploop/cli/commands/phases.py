"""Phase commands for the gumploop CLI."""

import asyncio
from typing import Awaitable, Optional

import click

from gumploop.constants import (
    DEFAULT_CODE_ITERATIONS,
    DEFAULT_DEBUG_ITERATIONS,
    DEFAULT_DISCOVERY_ITERATIONS,
    DEFAULT_PLAN_ITERATIONS,
)
from gumploop.phases.prompts import DEEP, RESEARCH_DEPTHS
from gumploop.services import pipeline_service
from gumploop.services.pipeline_service import OperationResult
from gumploop.services.state_service import load_state

work_dir_option = click.option(
    "--work-dir",
    type=click.Path(file_okay=False),
    help="Project directory (default: the pipeline's current project)",
)
yes_option = click.option("--yes", "-y", is_flag=True, help="Skip workspace trust confirmation")


def _confirm_trust(work_dir: Optional[str], yes: bool) -> None:
    """Ask before letting unattended agents act inside the project directory."""
    if yes:
        return
    target = work_dir or load_state().work_dir
    click.echo(
        "The agents (claude, gemini, codex) run without permission prompts and will be "
        "trusted to perform all actions (read, write, and execute) in:\n"
        f"  {target}\n\n"
        "To skip this confirmation, use: --yes\n"
    )
    if not click.confirm("Do you trust all the actions in this folder?", default=True):
        raise click.ClickException("Cancelled by user")


def _run(operation: Awaitable[OperationResult]) -> None:
    result = asyncio.run(operation)
    if result.is_error:
        raise click.ClickException(result.text)
    click.echo(result.text)


@click.command()
@work_dir_option
@click.option(
    "--max-iterations", default=DEFAULT_DISCOVERY_ITERATIONS, show_default=True, type=int
)
@yes_option
def discover(work_dir, max_iterations, yes):
    """Explore the codebase and agree on features worth building."""
    _confirm_trust(work_dir, yes)
    _run(pipeline_service.discover(work_dir, max_iterations))


@click.command()
@click.argument("question")
@work_dir_option
@click.option("--depth", type=click.Choice(RESEARCH_DEPTHS), default=DEEP, show_default=True)
@yes_option
def research(question, work_dir, depth, yes):
    """Research QUESTION: gather sources, analyze, synthesize a report."""
    _confirm_trust(work_dir, yes)
    _run(pipeline_service.research(question, work_dir, depth))


@click.command()
@click.argument("task")
@work_dir_option
@click.option("--max-iterations", default=DEFAULT_PLAN_ITERATIONS, show_default=True, type=int)
@yes_option
def plan(task, work_dir, max_iterations, yes):
    """Write a plan for TASK and iterate until both reviewers approve."""
    _confirm_trust(work_dir, yes)
    _run(pipeline_service.plan(task, work_dir, max_iterations))


@click.command()
@work_dir_option
@click.option("--max-iterations", default=DEFAULT_CODE_ITERATIONS, show_default=True, type=int)
@yes_option
def code(work_dir, max_iterations, yes):
    """Implement the plan with a coder ↔ reviewer loop."""
    _confirm_trust(work_dir, yes)
    _run(pipeline_service.code(max_iterations, work_dir))


@click.command()
@work_dir_option
@yes_option
def test(work_dir, yes):
    """Write and run tests for the implemented code."""
    _confirm_trust(work_dir, yes)
    _run(pipeline_service.test(work_dir))


@click.command()
@work_dir_option
@click.option("--max-iterations", default=DEFAULT_DEBUG_ITERATIONS, show_default=True, type=int)
@yes_option
def debug(work_dir, max_iterations, yes):
    """Analyze failing tests, fix, and re-test."""
    _confirm_trust(work_dir, yes)
    _run(pipeline_service.debug(max_iterations, work_dir))
