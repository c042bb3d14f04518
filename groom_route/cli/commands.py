"""CLI commands for GroomRoute."""

import asyncio
import json
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from groom_route.config import get_settings
from groom_route.scheduling.models import Appointment, RescheduleResult, Route
from groom_route.scheduling.travel import TravelTimeProvider

app = typer.Typer(
    name="groom-route",
    help="Route optimization and auto-scheduling for mobile pet grooming",
    add_completion=False,
)
console = Console()

T = TypeVar("T")


def load_appointments(path: Path) -> list[Appointment]:
    """Read a JSON array of appointments (or an object with an ``appointments`` key)."""
    if not path.exists():
        console.print(f"[red]Appointments file not found: {path}[/red]")
        raise typer.Exit(1)
    try:
        data = json.loads(path.read_text())
        if isinstance(data, dict):
            data = data.get("appointments", [])
        return [Appointment.model_validate(item) for item in data]
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON in {path}: {e}[/red]")
        raise typer.Exit(1)
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Invalid appointment data in {path}: {e}[/red]")
        raise typer.Exit(1)


def _print_json(text: str) -> None:
    """Print machine-readable output without markup, highlighting or wrapping."""
    console.print(text, markup=False, highlight=False, soft_wrap=True)


def _run_with_provider(work: Callable[[TravelTimeProvider], Awaitable[T]]) -> T:
    """Run *work* with a settings-configured provider and close it afterwards."""
    from groom_route.scheduling.travel import create_travel_provider_from_settings

    async def runner() -> T:
        provider = create_travel_provider_from_settings()
        try:
            return await work(provider)
        finally:
            if provider.client is not None:
                await provider.client.aclose()

    return asyncio.run(runner())


@app.command("travel-time")
def travel_time(
    origin: str = typer.Argument(..., help="Origin address"),
    destination: str = typer.Argument(..., help="Destination address"),
    live_only: bool = typer.Option(
        False, "--live-only", help="Do not fall back; report when no live estimate exists"
    ),
):
    """Estimate driving minutes between two addresses."""
    from groom_route.scheduling.travel import describe_travel_minutes

    async def work(provider: TravelTimeProvider):
        if live_only:
            return await provider.estimate_live_or_unknown(origin, destination), "live"
        estimate = await provider.estimate_detailed(origin, destination)
        return estimate.minutes, estimate.source.value

    minutes, source = _run_with_provider(work)
    console.print(f"{origin} -> {destination}: [bold]{describe_travel_minutes(minutes)}[/bold] ({source})")


@app.command()
def route(
    appointments_file: Path = typer.Argument(..., help="JSON file with the day's appointments"),
    base: Optional[str] = typer.Option(None, "--base", "-b", help="Base location (default from settings)"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
    export: Optional[Path] = typer.Option(None, "--export", "-e", help="Write the route summary to a file"),
):
    """Build the day's route in chronological order."""
    from groom_route.scheduling.optimizer import RouteOptimizer
    from groom_route.scheduling.route import create_route_model_from_settings, route_summary

    appointments = load_appointments(appointments_file)
    base_location = base or get_settings().base_location

    async def work(provider: TravelTimeProvider) -> Route:
        route_model = create_route_model_from_settings(provider)
        return await route_model.build_day(appointments, base_location)

    built = _run_with_provider(work)
    summary = route_summary(built)

    if export:
        export.write_text(json.dumps(summary, indent=2))
        console.print(f"[green]Route exported to {export}[/green]")

    if output_json:
        _print_json(json.dumps(summary, indent=2))
        return

    _display_route(built, summary)
    for warning in RouteOptimizer.flag_long_legs(built):
        console.print(f"[yellow]Warning: {warning}[/yellow]")


def _display_route(built: Route, summary: dict) -> None:
    """Display a route in rich format."""
    from groom_route.scheduling.timeutils import format_duration

    table = Table(title=f"Route from {built.base_location}")
    table.add_column("#", justify="right")
    table.add_column("Appointment")
    table.add_column("Address")
    table.add_column("Travel", justify="right")
    table.add_column("Service", justify="right")

    for stop in summary["stops"]:
        table.add_row(
            str(stop["sequence"]),
            stop["appointment_id"],
            stop["address"],
            f"{stop['travel_minutes_from_previous']} min",
            format_duration(stop["estimated_duration_minutes"]),
        )
    console.print(table)

    if built.unrouted_stops:
        ids = ", ".join(s.appointment_id for s in built.unrouted_stops)
        console.print(f"[yellow]No address (not routed): {ids}[/yellow]")

    console.print(
        Panel.fit(
            f"Travel: {built.total_travel_minutes} min\n"
            f"Distance: {built.total_distance_miles:.1f} mi\n"
            f"Fuel: ${built.estimated_fuel_cost:.2f}\n"
            f"Day total: {format_duration(summary['total_day_minutes'])}",
            title="Totals",
        )
    )
    if summary["directions_url"]:
        console.print(f"Directions: {summary['directions_url']}")
    if built.best_effort:
        console.print("[yellow]Some start times were unreadable; order is best-effort.[/yellow]")


@app.command()
def optimize(
    appointments_file: Path = typer.Argument(..., help="JSON file with the day's appointments"),
    base: Optional[str] = typer.Option(None, "--base", "-b", help="Base location (default from settings)"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Compare the current visiting order with the optimized one."""
    from groom_route.scheduling.optimizer import create_optimizer_from_settings
    from groom_route.scheduling.route import sort_chronologically, stops_from_appointments

    appointments = load_appointments(appointments_file)
    base_location = base or get_settings().base_location
    stops = stops_from_appointments(sort_chronologically(appointments))

    async def work(provider: TravelTimeProvider):
        return await create_optimizer_from_settings(provider).evaluate(stops, base_location)

    if output_json:
        result = _run_with_provider(work)
        _print_json(result.model_dump_json(indent=2))
        return

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Optimizing route...", total=None)
        result = _run_with_provider(work)
        progress.update(task, completed=True)

    console.print(f"Current order:   {' -> '.join(result.original_route.stop_ids) or '(none)'}")
    console.print(f"Optimized order: {' -> '.join(result.optimized_route.stop_ids) or '(none)'}")
    console.print(
        f"Travel: {result.original_route.total_travel_minutes} min -> "
        f"{result.optimized_route.total_travel_minutes} min"
    )
    if result.available:
        console.print(
            f"[green]Optimization available: saves {result.time_saved_minutes} min "
            f"and {result.distance_saved_miles:.1f} mi[/green]"
        )
    else:
        console.print(
            f"[green]Route is already optimal (within {result.threshold_minutes} min).[/green]"
        )


@app.command("auto-schedule")
def auto_schedule(
    appointments_file: Path = typer.Argument(..., help="JSON file with the day's appointments"),
    base: Optional[str] = typer.Option(None, "--base", "-b", help="Base location (default from settings)"),
    optimized: bool = typer.Option(False, "--optimized", help="Reorder by the optimizer first"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Recompute start and end times from durations plus travel (nothing is saved)."""
    from groom_route.scheduling.optimizer import create_optimizer_from_settings
    from groom_route.scheduling.scheduler import AutoScheduler

    appointments = load_appointments(appointments_file)
    base_location = base or get_settings().base_location

    async def work(provider: TravelTimeProvider) -> RescheduleResult:
        scheduler = AutoScheduler(
            provider,
            optimizer=create_optimizer_from_settings(provider),
            day_end_minutes=get_settings().day_end_minutes,
        )
        if optimized:
            return await scheduler.apply_optimized_order(appointments, base_location)
        return await scheduler.auto_schedule(appointments, base_location)

    result = _run_with_provider(work)

    if output_json:
        _print_json(result.model_dump_json(indent=2, by_alias=True))
        return

    changed = {c.appointment_id: c for c in result.changes}
    table = Table(title="Proposed schedule")
    table.add_column("Appointment")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Duration", justify="right")
    table.add_column("Travel before", justify="right")
    table.add_column("Was")

    for appt in result.proposed:
        change = changed.get(appt.id)
        table.add_row(
            appt.id,
            appt.time,
            appt.end_time or "",
            f"{appt.duration} min",
            f"{change.travel_minutes_before} min" if change else "",
            f"{change.old_time}" if change else "[dim]unchanged[/dim]",
        )
    console.print(table)

    for note in result.notes:
        console.print(f"[yellow]{note}[/yellow]")


@app.command()
def health():
    """Check travel-time sources."""
    console.print("[bold]GroomRoute Health Check[/bold]\n")

    async def work(provider: TravelTimeProvider):
        return await provider.health_check()

    health_status = _run_with_provider(work)

    table = Table(title="Travel-time sources")
    table.add_column("Source")
    table.add_column("Status")
    for source, status in health_status.items():
        status_str = "[green]OK[/green]" if status else "[red]UNAVAILABLE[/red]"
        table.add_row(source, status_str)
    console.print(table)


@app.command()
def stats():
    """Show routing and scheduling telemetry."""
    from groom_route.observability import get_observability_logger

    obs = get_observability_logger()

    table = Table(title="Observability")
    table.add_column("Log")
    table.add_column("Events", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Avg ms", justify="right")

    for log_type in ("travel", "routes", "schedule", "gestures"):
        s = obs.get_stats(log_type)
        table.add_row(
            log_type,
            str(s["total"]),
            str(s.get("errors", 0)),
            f"{s.get('avg_duration_ms', 0):.1f}",
        )
    console.print(table)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(f"Starting GroomRoute API server on {host}:{port}")
    uvicorn.run(
        "groom_route.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command()
def version():
    """Show version information."""
    from groom_route import __version__

    console.print(f"GroomRoute v{__version__}")


if __name__ == "__main__":
    app()
