"""Main CLI entry point."""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from vcdcse._version import __version__
from vcdcse.cli import cluster, config

app = typer.Typer(
    name="vcdcse",
    help="VCD CSE CLI - Kubernetes clusters on VMware Cloud Director.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

# Register sub-commands
app.add_typer(cluster.app, name="cluster", help="Cluster management")
app.add_typer(config.app, name="config", help="Configuration management")


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"vcd-cse-sdk version {__version__}")


@app.callback()
def main(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log requests and polling progress",
    ),
) -> None:
    """VCD CSE CLI - Kubernetes clusters on VMware Cloud Director."""
    ctx.ensure_object(dict)
    ctx.obj["json"] = json_output
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


if __name__ == "__main__":
    app()
