"""Configuration CLI commands."""

from __future__ import annotations

import typer
from rich.console import Console

from vcdcse._config import (
    CONFIG_FILE,
    CseConfig,
    get_config_value,
    set_config_value,
)

app = typer.Typer(help="Configuration management.")
console = Console()

SECRET_KEYS = ("api_token", "access_token")


def _mask(value: str) -> str:
    return value[:4] + "..." + value[-4:] if len(value) > 12 else "***"


@app.command("get")
def get(
    key: str = typer.Argument(..., help="Configuration key"),
) -> None:
    """Get a configuration value.

    Example:
        vcdcse config get url
    """
    value = get_config_value(key)

    if value is None:
        console.print(f"[dim]No value set for '{key}'[/dim]")
    else:
        if key in SECRET_KEYS and value:
            value = _mask(value)
        console.print(value)


@app.command("set")
def set_value(
    key: str = typer.Argument(..., help="Configuration key"),
    value: str = typer.Argument(..., help="Configuration value"),
) -> None:
    """Set a configuration value.

    Example:
        vcdcse config set url https://vcd.example.com
        vcdcse config set poll_interval 30
    """
    if value.lower() in ("true", "false"):
        typed_value: str | bool | int | float = value.lower() == "true"
    elif value.isdigit():
        typed_value = int(value)
    elif value.replace(".", "", 1).isdigit():
        typed_value = float(value)
    else:
        typed_value = value

    set_config_value(key, typed_value)
    shown = _mask(value) if key in SECRET_KEYS else value
    console.print(f"[green]Set {key} = {shown}[/green]")


@app.command("list")
def list_config() -> None:
    """List all configuration values."""
    config = CseConfig.load()

    console.print("[bold]Current Configuration[/bold]\n")

    for key in SECRET_KEYS:
        secret = getattr(config, key)
        console.print(f"  {key}:", end=" ")
        console.print(_mask(secret) if secret else "[dim]not set[/dim]")

    console.print(f"  url: {config.base_url}")
    console.print(f"  org: {config.org or '-'}")
    console.print(f"  api_version: {config.api_version}")
    console.print(f"  timeout: {config.timeout}")
    console.print(f"  max_retries: {config.max_retries}")
    console.print(f"  poll_interval: {config.poll_interval}")
    console.print(f"  debug: {config.debug}")
    console.print(f"  verify_ssl: {config.verify_ssl}")

    console.print(f"\n[dim]Config file: {CONFIG_FILE}[/dim]")


@app.command("path")
def show_path() -> None:
    """Show configuration file path."""
    console.print(str(CONFIG_FILE))
