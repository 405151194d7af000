# noqa: D401
"""CLI entry point for the service supervisor."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import load_config
from .errors import SupervisorError
from .factory import create_service_manager
from .logging_config import configure_logging, get_logger
from .manager import BaseServiceManager
from .models import ServiceState, ServiceStatus

app = typer.Typer(
    name="service-supervisor",
    help="Start, stop and health-check a local inference server",
    add_completion=False,
)

console = Console()
logger = logging.getLogger(__name__)

ENV_OPTION = typer.Option(None, "--env", "-e", help="Path to .env file")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"service-supervisor version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Enable verbose logging",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit logs as JSON",
    ),
) -> None:
    """Start, stop and health-check a local inference server."""
    configure_logging("DEBUG" if verbose else "INFO", json_logs=json_logs)


def _build_manager(env_path: Optional[Path]) -> BaseServiceManager:
    """Create the platform manager from configuration."""
    config = load_config(env_path)
    logger.debug(f"Supervising '{config.command}' on port {config.port}")
    return create_service_manager(config)


def _report_error(error: SupervisorError) -> None:
    """Print the error with its structured fields."""
    payload = error.to_dict()
    get_logger(__name__).error("supervisor_operation_failed", **payload)

    console.print(f"[red]Error: {error}[/red]")
    for key, value in payload["details"].items():
        if value is not None:
            console.print(f"[dim]  {key}: {value}[/dim]")


def _print_status(status: ServiceStatus) -> None:
    """Render status as a table."""
    colors = {
        ServiceState.RUNNING: "green",
        ServiceState.STOPPED: "dim",
        ServiceState.ERROR: "red",
    }
    color = colors.get(status.state, "yellow")

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("State", f"[{color}]{status.state.value}[/{color}]")
    table.add_row("Running", "yes" if status.running else "no")
    table.add_row("PID", str(status.pid) if status.pid else "-")
    if status.last_error:
        table.add_row("Last error", f"[red]{status.last_error}[/red]")
    console.print(table)


async def _start(env_path: Optional[Path]) -> ServiceStatus:
    async with _build_manager(env_path) as manager:
        await manager.start_service()
        return await manager.get_status()


async def _stop(env_path: Optional[Path]) -> ServiceStatus:
    async with _build_manager(env_path) as manager:
        await manager.stop_service()
        return await manager.get_status()


async def _status(env_path: Optional[Path]) -> ServiceStatus:
    async with _build_manager(env_path) as manager:
        return await manager.get_status()


async def _health(env_path: Optional[Path]) -> bool:
    async with _build_manager(env_path) as manager:
        return await manager.check_health()


@app.command()
def start(env_path: Optional[Path] = ENV_OPTION) -> None:
    """Start the service and wait until it is healthy."""
    try:
        with console.status("[bold green]Starting service..."):
            status = asyncio.run(_start(env_path))
    except SupervisorError as e:
        _report_error(e)
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Service running (PID: {status.pid or 'unknown'})")


@app.command()
def stop(env_path: Optional[Path] = ENV_OPTION) -> None:
    """Stop the service and confirm it is down."""
    try:
        with console.status("[bold yellow]Stopping service..."):
            asyncio.run(_stop(env_path))
    except SupervisorError as e:
        _report_error(e)
        raise typer.Exit(1)

    console.print("[green]✓[/green] Service stopped")


@app.command()
def status(
    env_path: Optional[Path] = ENV_OPTION,
    as_json: bool = typer.Option(False, "--json", help="Print status as JSON"),
) -> None:
    """Show current service status."""
    try:
        current = asyncio.run(_status(env_path))
    except SupervisorError as e:
        _report_error(e)
        raise typer.Exit(1)

    if as_json:
        console.print_json(data=current.to_dict())
    else:
        _print_status(current)


@app.command()
def health(env_path: Optional[Path] = ENV_OPTION) -> None:
    """Probe the service once; exit code 1 when unhealthy."""
    try:
        healthy = asyncio.run(_health(env_path))
    except SupervisorError as e:
        _report_error(e)
        raise typer.Exit(1)

    if healthy:
        console.print("[green]✓[/green] Service healthy")
    else:
        console.print("[red]✗[/red] Service not responding")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
