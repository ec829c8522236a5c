"""Shared utilities for Chatrelay CLI commands."""

from rich.console import Console

console = Console()


def mask_secret(value: str | None) -> str:
    """Show only that a secret is set, plus its last 4 characters."""
    if not value:
        return "[red]not set[/red]"
    return f"set (…{value[-4:]})" if len(value) > 8 else "set"
