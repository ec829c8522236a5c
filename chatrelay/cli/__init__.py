"""Chatrelay CLI: command line interface."""

import click
from chatrelay import __version__
from .shared import console


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="chatrelay")
@click.pass_context
def cli(ctx):
    """Chatrelay: IRC relay for generative completions"""
    if ctx.invoked_subcommand is None:
        _show_help()


def _show_help():
    """Show all available commands."""
    console.print(f"[bold]Chatrelay v{__version__}[/bold] - IRC relay for generative completions\n")

    commands = [
        ("start", "Connect to IRC and relay until !quit"),
        ("status", "Show effective configuration and stored history"),
    ]
    for name, desc in commands:
        console.print(f"    [bold]chatrelay {name:10s}[/bold] {desc}")
    console.print()
    console.print("[dim]Run 'chatrelay <command> --help' for details on a specific command.[/dim]")


# Import all command modules (registers commands onto cli group)
from . import cmd_start  # noqa: E402, F401
from . import cmd_status  # noqa: E402, F401
