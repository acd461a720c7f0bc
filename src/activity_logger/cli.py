"""Activity logger command line: schema setup, CSV export and uninstall."""

import asyncio
import shutil
from collections.abc import Awaitable
from datetime import date
from pathlib import Path
from typing import TypeVar

import typer
from pydantic import ValidationError
from rich.console import Console

from activity_logger import __version__
from activity_logger.config import settings
from activity_logger.core.cache.redis import RedisCache, close_redis_pool
from activity_logger.core.database import dispose_engine, get_session_factory
from activity_logger.core.errors import AppException
from activity_logger.core.logging import configure_logging
from activity_logger.modules.activity_log.schemas import SearchFilters
from activity_logger.modules.activity_log.services import (
    ActivityLogService,
    build_activity_service,
)


T = TypeVar("T")

console = Console()

app = typer.Typer(
    name="activity-logger",
    help="Manage the activity log store.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def get_service() -> ActivityLogService:
    """Service bound to the configured database and Redis namespace."""
    return build_activity_service(
        get_session_factory(), RedisCache(prefix=settings.cache_prefix)
    )


async def _close_connections() -> None:
    await close_redis_pool()
    await dispose_engine()


def _run(operation: Awaitable[T]) -> T:
    """Run one async operation, always releasing pooled connections."""

    async def runner() -> T:
        try:
            return await operation
        finally:
            await _close_connections()

    try:
        return asyncio.run(runner())
    except AppException as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from None


@app.callback(invoke_without_command=True)
def version_callback(
    version: bool = typer.Option(
        False, "--version", "-v", help="Show version and exit."
    ),
) -> None:
    """Activity logger CLI - manage the activity log store."""
    configure_logging()
    if version:
        console.print(f"[bold cyan]activity-logger[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.command(name="init-db")
def init_db() -> None:
    """Create the activity log table, or repair a legacy username column."""
    service = get_service()
    _run(service.store.ensure_schema())
    console.print("[green]✓[/green] Activity log table is ready")


@app.command(name="export")
def export(
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Destination file (default: timestamped name in the current directory)"
    ),
    text: str | None = typer.Option(None, "--text", help="Substring of username or action"),
    username: str | None = typer.Option(None, "--username", help="Exact username"),
    action: str | None = typer.Option(
        None, "--action", help="Action category: created, updated, trashed or deleted"
    ),
    start_date: str | None = typer.Option(None, "--start", help="First day (YYYY-MM-DD)"),
    end_date: str | None = typer.Option(None, "--end", help="Last day (YYYY-MM-DD)"),
) -> None:
    """Export the activity log (optionally filtered) to a CSV file."""
    try:
        filters = SearchFilters(
            text=text,
            username=username,
            action_category=action,
            start_date=date.fromisoformat(start_date) if start_date else None,
            end_date=date.fromisoformat(end_date) if end_date else None,
        )
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Error:[/red] Invalid filter: {e}")
        raise typer.Exit(1) from None

    service = get_service()
    artifact = _run(service.export(filters))

    destination = output or Path.cwd() / artifact.filename
    try:
        shutil.move(artifact.path, destination)
    except OSError as e:
        artifact.discard()
        console.print(f"[red]Error:[/red] Could not write {destination}: {e}")
        raise typer.Exit(1) from None

    console.print(
        f"[green]✓[/green] Exported {artifact.row_count} entries to [bold]{destination}[/bold]"
    )


@app.command(name="uninstall")
def uninstall(
    force: bool = typer.Option(False, "--force", "-f", help="Skip the confirmation prompt"),
) -> None:
    """Drop the activity log table and invalidate every cached read.

    This cannot be undone.
    """
    if not force:
        confirmed = typer.confirm(
            "This permanently deletes every activity log entry. Continue?"
        )
        if not confirmed:
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit(0)

    service = get_service()
    _run(service.uninstall())
    console.print("[green]✓[/green] Activity log removed")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
