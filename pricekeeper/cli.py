"""pricekeeper CLI.

Commands:
- init: Initialize database schema
- refresh: Pull reference prices into the catalog
- catalog: Show the catalog
- set-price: Manually set an item's actual price
- settings show|update: Markup configuration
- schedule create|list|cancel|apply|apply-due: Scheduled price changes
- history: Price history, newest first
- sweep: Run the due-change sweeper in the foreground
- web serve: Run the HTTP API
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from pricekeeper.config import get_config
from pricekeeper.core.logging import configure_logging
from pricekeeper.db.connection import close_db, get_engine, get_session_factory, init_db
from pricekeeper.errors import PricingError
from pricekeeper.integration.openrouter_client import OpenRouterClient
from pricekeeper.pricing.service import PricingService
from pricekeeper.pricing.sweeper import DueChangeSweeper

app = typer.Typer(
    name="pricekeeper",
    help="pricekeeper - model price catalog with scheduled changes and audit history",
    no_args_is_help=True,
)
settings_cli = typer.Typer(help="Markup settings")
app.add_typer(settings_cli, name="settings")

schedule_cli = typer.Typer(help="Scheduled price changes")
app.add_typer(schedule_cli, name="schedule")

web_cli = typer.Typer(help="Web API")
app.add_typer(web_cli, name="web")

console = Console()


def _build_service() -> PricingService:
    config = get_config()
    configure_logging(config.log_level, config.log_format)
    return PricingService.from_config(
        config,
        get_session_factory(),
        reference_source=OpenRouterClient(config.reference),
    )


def _run(action: Callable[[PricingService], Awaitable[Any]]) -> Any:
    """Run an async action against a fresh service; PricingError exits with code 1."""

    async def _main():
        service = _build_service()
        try:
            return await action(service)
        finally:
            if service.reference_source is not None:
                await service.reference_source.aclose()
            await close_db()

    try:
        return asyncio.run(_main())
    except PricingError as exc:
        console.print(f"[red]✗[/red] {exc.message}")
        raise typer.Exit(code=1) from exc


def _fmt_dt(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    async def _init():
        if drop:
            console.print("[yellow]Dropping existing tables...[/yellow]")
        await init_db(get_engine(), drop=drop)
        await close_db()

    asyncio.run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command()
def refresh():
    """Pull reference prices and upsert them (actual prices are preserved)."""
    result = _run(lambda service: service.refresh_catalog())
    console.print(
        f"[bold green]✓[/bold green] Fetched {result.fetched}: "
        f"{result.created} new, {result.updated} updated"
    )


@app.command()
def catalog(
    provider: str | None = typer.Option(None, "--provider", help="Only this provider"),
):
    """Show the catalog."""
    items = _run(lambda service: service.get_catalog())
    if provider:
        items = [item for item in items if item.provider == provider]

    table = Table(title=f"Catalog ({len(items)} items)")
    table.add_column("ID", style="cyan")
    table.add_column("Provider")
    table.add_column("Reference", justify="right")
    table.add_column("Suggested", justify="right")
    table.add_column("Actual", justify="right", style="green")
    table.add_column("Updated")
    for item in items:
        table.add_row(
            item.id,
            item.provider,
            str(item.reference_price),
            str(item.suggested_price),
            str(item.actual_price),
            _fmt_dt(item.last_updated),
        )
    console.print(table)


@app.command(name="set-price")
def set_price(
    item_id: str = typer.Argument(..., help="Item ID, e.g. openai/gpt-4o"),
    price: str = typer.Argument(..., help="New actual price"),
):
    """Manually set an item's actual price (recorded as 'manual')."""
    item = _run(lambda service: service.set_actual_price(item_id, price))
    console.print(f"[bold green]✓[/bold green] {item.id} actual price is now {item.actual_price}")


@settings_cli.command("show")
def settings_show():
    """Show current markup settings."""
    settings = _run(lambda service: service.get_settings())
    console.print(f"Percentage markup: [bold]{settings.percentage_markup}%[/bold]")
    console.print(f"Flat fee markup:   [bold]{settings.flat_fee_markup}[/bold]")
    console.print(f"Last updated:      {_fmt_dt(settings.last_updated)}")


@settings_cli.command("update")
def settings_update(
    percentage: str | None = typer.Option(None, "--percentage", help="Percentage markup"),
    flat_fee: str | None = typer.Option(None, "--flat-fee", help="Flat fee markup"),
):
    """Update markup settings and recompute all suggested prices."""
    settings = _run(
        lambda service: service.update_settings(
            percentage_markup=percentage, flat_fee_markup=flat_fee
        )
    )
    console.print(
        f"[bold green]✓[/bold green] Markup is now {settings.percentage_markup}% "
        f"+ {settings.flat_fee_markup}"
    )


@schedule_cli.command("create")
def schedule_create(
    item_id: str = typer.Argument(..., help="Item ID"),
    price: str = typer.Argument(..., help="Scheduled price"),
    effective_at: datetime = typer.Argument(..., help="Effective time (UTC, ISO format)"),
):
    """Schedule a future price change."""
    change = _run(lambda service: service.create_scheduled_change(item_id, price, effective_at))
    console.print(
        f"[bold green]✓[/bold green] Scheduled change #{change.id}: "
        f"{change.item_id} -> {change.scheduled_price} at {_fmt_dt(change.effective_at)}"
    )


@schedule_cli.command("list")
def schedule_list(
    item_id: str | None = typer.Option(None, "--item", help="Only this item"),
):
    """List pending scheduled changes."""
    views = _run(lambda service: service.list_scheduled_changes(item_id=item_id))

    table = Table(title=f"Pending changes ({len(views)})")
    table.add_column("#", justify="right")
    table.add_column("Item", style="cyan")
    table.add_column("Current", justify="right")
    table.add_column("Scheduled", justify="right", style="green")
    table.add_column("Effective")
    for view in views:
        table.add_row(
            str(view.id),
            view.item_id,
            str(view.current_price),
            str(view.scheduled_price),
            _fmt_dt(view.effective_at),
        )
    console.print(table)


@schedule_cli.command("cancel")
def schedule_cancel(change_id: int = typer.Argument(..., help="Scheduled change ID")):
    """Cancel (delete) a pending scheduled change."""
    _run(lambda service: service.cancel_scheduled_change(change_id))
    console.print(f"[bold green]✓[/bold green] Cancelled scheduled change #{change_id}")


@schedule_cli.command("apply")
def schedule_apply(change_id: int = typer.Argument(..., help="Scheduled change ID")):
    """Apply a scheduled change now."""
    item = _run(lambda service: service.apply_scheduled_change(change_id))
    console.print(f"[bold green]✓[/bold green] {item.id} actual price is now {item.actual_price}")


@schedule_cli.command("apply-due")
def schedule_apply_due():
    """Apply every scheduled change whose effective time has passed."""
    result = _run(lambda service: service.apply_due_scheduled_changes())
    console.print(
        f"[bold green]✓[/bold green] Applied {result.applied} of {result.due} due changes"
    )
    if result.failed:
        console.print(f"[yellow]⚠[/yellow] {result.failed} failed and remain pending")


@app.command()
def history(
    item_id: str | None = typer.Option(None, "--item", help="Only this item"),
    limit: int = typer.Option(50, "--limit", help="Maximum entries"),
):
    """Show price history, newest first."""
    entries = _run(lambda service: service.get_history(item_id=item_id, limit=limit))

    table = Table(title="Price history")
    table.add_column("When")
    table.add_column("Item", style="cyan")
    table.add_column("Previous", justify="right")
    table.add_column("New", justify="right", style="green")
    table.add_column("Source")
    for entry in entries:
        table.add_row(
            _fmt_dt(entry.changed_at),
            entry.item_id,
            str(entry.previous_price),
            str(entry.new_price),
            entry.change_source.value,
        )
    console.print(table)


@app.command()
def sweep(
    once: bool = typer.Option(False, "--once", help="Run a single sweep and exit"),
):
    """Run the due-change sweeper in the foreground (Ctrl+C to stop)."""
    config = get_config()

    async def _sweep(service: PricingService):
        sweeper = DueChangeSweeper.from_config(service, config.sweeper)
        if once:
            return await sweeper.run_once()
        sweeper.start()
        console.print(
            f"[bold]Sweeping every {sweeper.interval_seconds:.0f}s[/bold] (Ctrl+C to stop)"
        )
        try:
            await asyncio.Event().wait()
        finally:
            await sweeper.stop()

    try:
        result = _run(_sweep)
    except KeyboardInterrupt:
        console.print("[yellow]Sweeper stopped[/yellow]")
        return
    if result is not None:
        console.print(f"[bold green]✓[/bold green] Applied {result.applied} of {result.due} due changes")


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(5000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI app (the sweeper runs inside it)."""
    import uvicorn

    typer.echo(f"Starting pricekeeper API on http://{host}:{port}")
    uvicorn.run(
        "pricekeeper.web.app:build_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=1,
    )


if __name__ == "__main__":
    app()
