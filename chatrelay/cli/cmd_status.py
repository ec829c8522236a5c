"""Status command."""

import click

from . import cli
from .shared import console, mask_secret

from rich.table import Table


@cli.command()
def status():
    """Show Chatrelay configuration and stored history."""
    from chatrelay import __version__
    from chatrelay.config import load_settings
    from chatrelay.storage import JsonFileSink

    settings = load_settings()

    table = Table(title=f"Chatrelay Status v{__version__}", show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    scheme = "ircs" if settings.irc_tls else "irc"
    table.add_row("Server", f"{scheme}://{settings.irc_server}:{settings.irc_port}")
    table.add_row("Nickname", settings.nickname)
    table.add_row("Channels", ", ".join(settings.channels) or "[dim]none[/dim]")
    table.add_row("Owners", ", ".join(settings.owners) or "[dim]none[/dim]")
    table.add_row("Model", settings.chat_model)
    table.add_row("API base", settings.openai_base_url)
    table.add_row("API key", mask_secret(settings.openai_api_key))
    table.add_row("Upload URL", settings.upload_url)
    table.add_row("Temperature", str(settings.initial_temperature))
    table.add_row("History dir", settings.history_dir)

    console.print(table)

    sink = JsonFileSink(settings.history_dir)
    history = Table(title="Stored history")
    history.add_column("Channel", style="bold")
    history.add_column("Turns", justify="right")
    channels = list(dict.fromkeys([*settings.channels, *sink.saved_channels()]))
    for channel in channels:
        history.add_row(channel, str(sink.count(channel)))
    if channels:
        console.print(history)
    else:
        console.print("[dim]No channels configured or saved.[/dim]")
