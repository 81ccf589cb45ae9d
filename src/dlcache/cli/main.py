"""
CLI for the download cache.

Commands:
    dlcache serve - Run the HTTP API
    dlcache config - Show current configuration
    dlcache version - Print version
"""

from __future__ import annotations

from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from dlcache import __version__
from dlcache.config import Settings, clear_settings_cache, get_settings
from dlcache.logging import setup_logging

app = typer.Typer(
    name="dlcache",
    help="dlcache - time-bounded disk cache in front of a media downloader",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except Exception as e:
        error_console.print(f"[red]Error:[/red] {e}")
        return None


@app.command()
def serve(
    host: Annotated[
        Optional[str],
        typer.Option("--host", help="Bind host"),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Bind port"),
    ] = None,
    ttl_minutes: Annotated[
        Optional[int],
        typer.Option("--ttl", "-t", help="Cache duration in minutes", min=1),
    ] = None,
) -> None:
    """Run the HTTP API.

    Cached files live in CACHE_DIR; per-request workspaces in DOWNLOAD_DIR.
    """
    import uvicorn

    from dlcache.api.server import create_app

    settings = _get_settings_safe()
    if settings is None:
        raise typer.Exit(1)

    overrides: dict[str, object] = {}
    if host is not None:
        overrides["HOST"] = host
    if port is not None:
        overrides["PORT"] = port
    if ttl_minutes is not None:
        overrides["CACHE_DURATION_MINUTES"] = ttl_minutes
    if overrides:
        settings = settings.model_copy(update=overrides)

    setup_logging(settings.LOG_LEVEL, log_file=settings.LOG_FILE)

    console.print(
        Panel(
            f"[bold]Listen:[/bold] http://{settings.HOST}:{settings.PORT}\n"
            f"[bold]Cache dir:[/bold] {settings.CACHE_DIR}\n"
            f"[bold]Cache duration:[/bold] {settings.CACHE_DURATION_MINUTES} minutes\n"
            f"[bold]Fetch tool:[/bold] {settings.FETCH_EXECUTABLE}\n"
            f"[bold]Auth:[/bold] {'enabled' if settings.auth_enabled else 'disabled'}",
            title="[bold cyan]dlcache[/bold cyan]",
            border_style="cyan",
        )
    )

    uvicorn.run(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


@app.command()
def config() -> None:
    """Show current configuration.

    Displays all configuration values with the API key redacted.
    """
    console.print()
    console.print("[bold]dlcache Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()
    if settings is None:
        error_console.print("[red]Configuration is invalid.[/red]")
        error_console.print("Create a .env file or set environment variables.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()
    console.print(
        f"[bold]Sweep period:[/bold] {settings.sweep_period.total_seconds():g}s"
    )
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"dlcache version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()
