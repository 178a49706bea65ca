"""Main CLI entry point for hookdb."""

import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table as RichTable

from hookdb.cli.commands import config as config_commands
from hookdb.config import Config
from hookdb.core.connection import DatabaseConnection
from hookdb.core.resolver import resolve_plugin_order
from hookdb.errors import PluginValidationError
from hookdb.health.check import HealthCheckOptions, check_database_health
from hookdb.health.types import HealthCheckResult, HealthStatus
from hookdb.plugins.registry import PluginRegistry

app = typer.Typer(
    name="hookdb",
    help="hookdb - plugin-wrapped database handles",
    add_completion=False,
    invoke_without_command=True,
)
console = Console()

STATUS_STYLES = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.DEGRADED: "yellow",
    HealthStatus.UNHEALTHY: "red",
}


@app.callback()
def main(ctx: typer.Context):
    """
    hookdb - plugin-wrapped database handles
    """
    if ctx.invoked_subcommand is None:
        # No subcommand was invoked, show help
        print(ctx.get_help())
        raise typer.Exit(0)


app.add_typer(config_commands.app, name="config", help="Configuration commands")


async def _run_health_check(db_path: Path, options: HealthCheckOptions) -> HealthCheckResult:
    connection = DatabaseConnection(db_path)
    try:
        return await check_database_health(connection, options)
    finally:
        await connection.destroy()


def _print_health(result: HealthCheckResult) -> None:
    style = STATUS_STYLES[result.status]
    table = RichTable(
        title=f"Health: [{style}]{result.status.value}[/{style}]", title_justify="left"
    )
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    table.add_column("Message")

    for check in result.checks:
        check_style = STATUS_STYLES[check.status]
        table.add_row(
            check.name, f"[{check_style}]{check.status.value}[/{check_style}]", check.message or ""
        )

    console.print(table)

    if result.metrics and result.metrics.database_version:
        console.print(f"Database version: {result.metrics.database_version}")
    for error in result.errors or ():
        console.print(f"[red]❌ {error}[/red]")


@app.command()
def health(
    db_path: Path = typer.Argument(..., help="Path to the SQLite database file"),
    timeout_ms: Optional[int] = typer.Option(
        None, "--timeout-ms", "-t", help="Health check deadline in milliseconds"
    ),
    format: str = typer.Option("table", "--format", "-f", help="Output format (table, json)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Include the database version"),
):
    """Run one health check against a database. Exits with 1 when unhealthy."""
    if not db_path.exists():
        console.print(f"[red]❌ Database file not found: {db_path}[/red]")
        raise typer.Exit(1)

    settings = Config().load_or_default()
    overrides = {"verbose": verbose}
    if timeout_ms:
        overrides["timeout_ms"] = timeout_ms
    options = HealthCheckOptions.from_config(settings, **overrides)

    result = asyncio.run(_run_health_check(db_path, options))

    if format == "json":
        console.print_json(result.model_dump_json())
    else:
        _print_health(result)

    if result.status == HealthStatus.UNHEALTHY:
        raise typer.Exit(1)


@app.command()
def plugins(
    module: Optional[List[str]] = typer.Option(
        None, "--module", "-m", help="Module to load a plugin from (repeatable)"
    ),
    discover: bool = typer.Option(
        False, "--discover", help="Load plugins from the hookdb.plugins entry points"
    ),
    plugins_dir: Optional[Path] = typer.Option(
        None, "--dir", "-d", help="Also load plugin files from this directory"
    ),
):
    """Load plugins and show the order they would run in."""
    registry = PluginRegistry()
    try:
        if discover:
            registry.discover(plugins_dir)
        elif plugins_dir is not None:
            registry.load_from_directory(plugins_dir)
        for module_name in module or []:
            registry.load_from_module(module_name)

        ordered = resolve_plugin_order(registry.plugins)
    except PluginValidationError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)

    if not ordered:
        console.print("[yellow]No plugins found[/yellow]")
        return

    table = RichTable(title="Plugin execution order", title_justify="left")
    table.add_column("#", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Priority", style="yellow")
    table.add_column("Depends on")

    for position, plugin in enumerate(ordered, start=1):
        table.add_row(
            str(position),
            plugin.name,
            getattr(plugin, "version", ""),
            str(getattr(plugin, "priority", 0)),
            ", ".join(getattr(plugin, "depends_on", ()) or ()),
        )

    console.print(table)


@app.command()
def version():
    """Show hookdb version."""
    from hookdb import __version__

    typer.echo(f"hookdb version {__version__}")


if __name__ == "__main__":
    app()
