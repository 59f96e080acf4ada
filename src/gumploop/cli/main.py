"""Main CLI entry point for gumploop."""

import click

from gumploop.cli.commands.phases import code, debug, discover, plan, research, test
from gumploop.cli.commands.pipeline import reset, status, stop
from gumploop.utils.log_config import setup_logging


@click.group()
@click.option("--log-level", default=None, help="Log level (default: $GUMPLOOP_LOG_LEVEL or INFO)")
def cli(log_level):
    """gumploop - consensus-gated pipeline of CLI agents driven through tmux."""
    setup_logging(log_level)


# Register commands
cli.add_command(discover)
cli.add_command(research)
cli.add_command(plan)
cli.add_command(code)
cli.add_command(test)
cli.add_command(debug)
cli.add_command(status)
cli.add_command(stop)
cli.add_command(reset)


if __name__ == "__main__":
    cli()
