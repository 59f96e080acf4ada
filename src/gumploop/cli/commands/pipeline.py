"""Pipeline housekeeping commands."""

import click

from gumploop.services import pipeline_service
from gumploop.services.pipeline_service import OperationResult


def _echo(result: OperationResult) -> None:
    if result.is_error:
        raise click.ClickException(result.text)
    click.echo(result.text)


@click.command()
def status():
    """Show the current pipeline status."""
    _echo(pipeline_service.status())


@click.command()
def stop():
    """Stop all running agents and clear the current phase."""
    _echo(pipeline_service.stop())


@click.command()
@click.confirmation_option(prompt="Delete all pipeline state and artifacts?")
def reset():
    """Stop all agents and clear the .gumploop directory."""
    _echo(pipeline_service.reset())
