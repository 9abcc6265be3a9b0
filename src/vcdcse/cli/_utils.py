"""CLI utilities."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, NoReturn

import typer
import yaml
from pydantic import BaseModel
from rich.console import Console
from rich.table import Table

from vcdcse.client import VcdClient
from vcdcse.exceptions import (
    AuthenticationError,
    ClusterError,
    CseError,
    ResolutionError,
    TimeoutError,
    ValidationError,
)

console = Console()
error_console = Console(stderr=True)


def get_client() -> VcdClient:
    """Get an authenticated VcdClient from environment variables and config file."""
    try:
        return VcdClient()
    except (AuthenticationError, ValueError) as e:
        error_console.print(f"[red]Authentication error:[/red] {e}")
        error_console.print("\nTo authenticate, run:")
        error_console.print("  vcdcse config set org <org>")
        error_console.print("  vcdcse config set api_token <token>")
        raise typer.Exit(1) from None


def load_document(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON file holding a single mapping."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise CseError(f"'{path}' must contain a mapping, not {type(data).__name__}")
    return data


def output_json(data: Any) -> None:
    """Print a model, a list of models or plain data as JSON."""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    elif isinstance(data, list):
        data = [
            item.model_dump(mode="json") if isinstance(item, BaseModel) else item
            for item in data
        ]

    console.print_json(json.dumps(data, default=str))


def _cell(value: Any) -> str:
    if value is None or value == "":
        return "-"
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return str(value)


def output_table(
    data: list[BaseModel],
    columns: list[tuple[str, str]],
    title: str | None = None,
) -> None:
    """Print models as a Rich table, one row each.

    Args:
        data: Models to show
        columns: (attribute, header) pairs
        title: Optional table title
    """
    table = Table(title=title, show_header=True, header_style="bold")
    for _, header in columns:
        table.add_column(header)
    for item in data:
        table.add_row(*(_cell(getattr(item, attr, None)) for attr, _ in columns))
    console.print(table)


def handle_error(e: Exception) -> NoReturn:
    """Print an error, with the cluster state or the invalid field when known, and exit."""
    error_console.print(f"[red]Error:[/red] {e}")

    if isinstance(e, ValidationError) and e.field:
        error_console.print(f"  field: {e.field}")
    elif isinstance(e, (ClusterError, TimeoutError)):
        if e.state:
            error_console.print(f"  last state: {e.state}")
        for detail in getattr(e, "details", []):
            error_console.print(f"  [dim]{detail}[/dim]")
    elif isinstance(e, ResolutionError) and e.resource_id:
        error_console.print(f"  unresolved {e.resource_type or 'resource'}: {e.resource_id}")

    raise typer.Exit(1)


def confirm_action(message: str, default: bool = False) -> bool:
    return typer.confirm(message, default=default)


def get_json_flag(ctx: typer.Context) -> bool:
    """Whether the global --json flag was given."""
    return bool(ctx.obj and ctx.obj.get("json"))
