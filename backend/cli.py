"""
Queue Engine CLI.

Command-line interface for running the API and inspecting branch queues.
"""

import sys
from datetime import date, timedelta
from pathlib import Path

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).parent))

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="queue-cli",
    help="Queue Engine management CLI",
    add_completion=False,
)
console = Console()


def _format_seconds(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs:02d}s"


# =============================================================================
# Server
# =============================================================================

@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(None, help="Port (default: REST_API_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """Run the queue API with uvicorn."""
    import uvicorn
    from shared.config.settings import settings

    port = port or settings.rest_api_port
    console.print(f"[blue]Starting queue API on {host}:{port}[/blue]")
    uvicorn.run("queue_api.main:app", host=host, port=port, reload=reload)


# =============================================================================
# Database Commands
# =============================================================================

@app.command()
def db_init():
    """Create all tables."""
    from shared.infrastructure.db import engine
    from queue_api.models import Base

    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        console.print(f"[red]✗ Table creation failed: {e}[/red]")
        raise typer.Exit(1)
    console.print("[green]✓ Tables created/verified[/green]")


@app.command()
def db_seed(
    force: bool = typer.Option(False, "--force", "-f", help="Seed even in production"),
):
    """Seed the demo branch, services, counters and accounts."""
    from shared.config.settings import settings
    from shared.infrastructure.db import get_db_context
    from queue_api.seed import seed

    if settings.environment == "production" and not force:
        console.print("[red]Cannot seed production without --force[/red]")
        raise typer.Exit(1)

    try:
        with get_db_context() as db:
            branch = seed(db)
            branch_id = branch.id
    except Exception as e:
        console.print(f"[red]✗ Seeding failed: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Demo branch ready (id={branch_id})[/green]")


# =============================================================================
# Queue Commands
# =============================================================================

@app.command()
def queue(
    branch_id: int = typer.Argument(..., help="Branch id"),
):
    """Show the waiting line and who is being served."""
    from shared.infrastructure.db import get_db_context
    from queue_api.repositories import SqlQueueStore
    from queue_api.services.domain import QueueEngine

    with get_db_context() as db:
        snapshot = QueueEngine(SqlQueueStore(db)).queue_snapshot(branch_id)

    serving = Table(title=f"Now serving (branch {branch_id})")
    serving.add_column("Ticket", style="cyan")
    serving.add_column("Counter", style="green")
    for row in snapshot.serving:
        serving.add_row(row.ticket_number, row.counter_name or str(row.counter_id))
    console.print(serving)

    waiting = Table(title="Waiting")
    waiting.add_column("#", justify="right")
    waiting.add_column("Ticket", style="cyan")
    waiting.add_column("Priority", justify="right")
    waiting.add_column("Est. wait", style="yellow")
    for pos in snapshot.waiting:
        waiting.add_row(
            str(pos.position),
            pos.ticket_number,
            str(pos.priority_level),
            _format_seconds(pos.estimated_wait),
        )
    console.print(waiting)

    if not snapshot.waiting:
        console.print("[green]✓ Nobody waiting[/green]")


@app.command()
def stats(
    branch_id: int = typer.Argument(..., help="Branch id"),
    days: int = typer.Option(7, help="Window length in days, ending today"),
):
    """Show ticket statistics for the last N days."""
    from shared.infrastructure.db import get_db_context
    from shared.security.auth import CallerIdentity
    from queue_api.repositories import SqlQueueStore
    from queue_api.services.domain import QueueEngine

    end_date = date.today()
    start_date = end_date - timedelta(days=max(1, days) - 1)

    with get_db_context() as db:
        summary = QueueEngine(SqlQueueStore(db)).get_stats(
            CallerIdentity.system(), branch_id, start_date, end_date
        )

    table = Table(title=f"Branch {branch_id}: {start_date} to {end_date}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Total tickets", str(summary.total))
    for status, count in summary.counts.items():
        table.add_row(f"  {status}", str(count))
    table.add_row("Completion rate", f"{summary.completion_rate:.1%}")
    table.add_row("Avg wait", _format_seconds(summary.avg_wait_time))
    table.add_row("Avg service", _format_seconds(summary.avg_service_time))
    table.add_row("Daily average", f"{summary.daily_average:.1f}")
    if summary.best_day is not None:
        table.add_row("Best day", f"{summary.best_day.day} ({summary.best_day.completed} completed)")

    console.print(table)


@app.command()
def watch(
    branch_id: int = typer.Argument(..., help="Branch id"),
):
    """Print queue change events for a branch as they arrive (Ctrl+C to stop)."""
    from shared.infrastructure.db import get_db_context
    from shared.infrastructure.events import get_change_bus
    from shared.security.auth import CallerIdentity
    from queue_api.repositories import SqlQueueStore
    from queue_api.services.domain import QueueEngine

    with get_db_context() as db:
        subscription = QueueEngine(SqlQueueStore(db), get_change_bus()).subscribe_to_changes(
            CallerIdentity.system(), branch_id
        )

    console.print(f"[blue]Watching branch {branch_id}...[/blue]")
    try:
        with subscription:
            for event in subscription:
                number = event.entity.get("ticket_number") or event.entity.get("name") or ""
                console.print(f"[dim]{event.ts}[/dim] [cyan]{event.type}[/cyan] {number}")
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")


# =============================================================================
# Health Commands
# =============================================================================

@app.command()
def health():
    """Check database and Redis connectivity."""
    from queue_api.routers.public.health import check_database_health, check_redis_health

    table = Table(title="Dependency Health")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Response Time", style="yellow")

    for result in (check_database_health(), check_redis_health()):
        latency = f"{result.latency_ms:.0f}ms" if result.latency_ms is not None else "-"
        if result.error:
            table.add_row(result.component, f"✗ {result.error}", latency)
        else:
            table.add_row(result.component, "✓ Healthy", latency)

    console.print(table)


@app.command()
def version():
    """Show version information."""
    table = Table(title="Queue Engine Version")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("API", "0.1.0")
    table.add_row("Python", sys.version.split()[0])

    console.print(table)


if __name__ == "__main__":
    app()
