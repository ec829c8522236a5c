"""Start command."""

import asyncio
import click

from . import cli
from .shared import console


@cli.command()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def start(debug):
    """Start the relay."""
    from chatrelay.main import run
    if debug:
        import logging
        logging.getLogger("chatrelay").setLevel(logging.DEBUG)

    console.print("[bold blue]Starting Chatrelay...[/bold blue]")
    asyncio.run(run())
