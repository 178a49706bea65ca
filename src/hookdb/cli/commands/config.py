"""Configuration commands for the hookdb CLI."""

from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table as RichTable

from hookdb.config import Config

app = typer.Typer(help="Configuration commands", invoke_without_command=True)
console = Console()


@app.callback()
def callback(ctx: typer.Context):
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(0)


@app.command()
def init(
    path: Optional[Path] = typer.Argument(
        None, help="Directory to write hookdb.toml in (default: current directory)"
    ),
):
    """Write a hookdb.toml with default settings."""
    config = Config(path)
    try:
        config.init()
    except FileExistsError:
        console.print(f"[red]❌ Config already exists at {config.config_path}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✅ Created {config.config_path}[/green]")


@app.command()
def show(
    path: Optional[Path] = typer.Argument(
        None, help="Project directory (default: HOOKDB_PROJECT_DIR or current directory)"
    ),
    format: str = typer.Option("table", "--format", "-f", help="Output format (table, json)"),
):
    """Show the effective configuration, including environment overrides."""
    config = Config(path)
    try:
        settings = config.load_or_default()
    except (ValueError, ValidationError) as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        raise typer.Exit(1)

    if format == "json":
        console.print_json(settings.model_dump_json())
        return

    source = str(config.config_path) if config.exists else "defaults"
    table = RichTable(title=f"Configuration ({source})", title_justify="left")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for section, values in settings.model_dump().items():
        if isinstance(values, dict):
            for key, value in values.items():
                table.add_row(f"{section}.{key}", str(value))
        else:
            table.add_row(section, str(values))

    console.print(table)
