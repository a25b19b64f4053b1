"""
Main CLI application using Typer.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..api.app import create_app
from ..bootstrap import ServiceContainer, build_container
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import AgendaError
from ..domain.validation import BookingRequest, parse_date
from ..presentation.formatter import format_time_12h

app = typer.Typer(
    name="clinicagenda",
    help="Clinic appointment booking: availability, bookings and reminders",
    add_completion=False,
)

console = Console()

ConfigOption = Annotated[
    Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")
]
MockOption = Annotated[bool, typer.Option("--mock", help="Use the in-memory calendar instead of Microsoft Graph.")]
MockDataOption = Annotated[
    Optional[Path], typer.Option("--mock-data", help="JSON file with events to seed the mock calendar.")
]


def configure_logging() -> None:
    """Route all logging through rich; the level comes from ``LOG_LEVEL``."""
    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path], mock: bool) -> AppConfig:
    config_path = config_file or get_default_config_path()
    try:
        config = AppConfig.load_from_yaml(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if mock:
        config.use_mock_calendar = True
        console.print("[yellow]⚠  MOCK MODE: using the in-memory calendar[/yellow]")
    return config


def _container(config_file: Optional[Path], mock: bool, mock_data: Optional[Path] = None) -> ServiceContainer:
    configure_logging()
    return build_container(_load_config(config_file, mock), mock_data=mock_data)


def _run(container: ServiceContainer, coroutine):
    """Run a service call; domain errors are shown with the same text the API returns."""
    try:
        return asyncio.run(coroutine)
    except AgendaError as e:
        console.print(Panel(container.formatter().error(e), title="No se pudo completar", border_style="red"))
        raise typer.Exit(1)


@app.command()
def serve(
    config_file: ConfigOption = None,
    mock: MockOption = False,
    mock_data: MockDataOption = None,
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "0.0.0.0",
    port: Annotated[int, typer.Option("--port", "-p", help="Port")] = 3000,
):
    """
    Start the HTTP API with uvicorn.
    """
    container = _container(config_file, mock, mock_data)
    console.print(f"[bold cyan]🩺 Clinic Agenda API[/bold cyan] on http://{host}:{port}")
    uvicorn.run(create_app(container), host=host, port=port, log_config=None)


@app.command()
def availability(
    date: Annotated[str, typer.Argument(help="Date to check (YYYY-MM-DD)")],
    service: Annotated[str, typer.Option("--service", "-s", help="Service number")] = "1",
    calendar: Annotated[Optional[str], typer.Option("--calendar", help="Calendar number")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    mock_data: MockDataOption = None,
):
    """
    Show free hours for a date and the days around it.

    Examples:

        clinicagenda availability 2025-03-04

        clinicagenda availability 2025-03-04 --calendar 2 --mock
    """
    container = _container(config_file, mock, mock_data)
    calendar_id = calendar or container.config.default_calendar

    async def query():
        target = parse_date(date, container.config.timezone)
        return await container.availability.query(calendar_id, service, target)

    result = _run(container, query())
    formatter = container.formatter()

    if not result.days:
        text, _ = formatter.availability(result)
        console.print(Panel(text, title="Disponibilidad", border_style="yellow"))
        return

    _, mapping = formatter.slot_menu(result.days)
    table = Table(title=f"Disponibilidad calendario {calendar_id}", show_header=True, header_style="bold cyan")
    table.add_column("Opción", style="bold yellow")
    table.add_column("Día")
    table.add_column("Hora")
    for letter, option in mapping.items():
        table.add_row(letter, f"{option['dayName']} ({option['date']})", format_time_12h(option["time"]))

    console.print()
    console.print(table)
    for day in result.days:
        console.print(
            f"  {day.date.isoformat()}: {day.available_count}/{day.total_possible_slots} libres, "
            f"{day.occupation_percentage}% ocupación [dim]({day.data_source.value})[/dim]"
        )
    console.print()


@app.command()
def book(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    time: Annotated[str, typer.Argument(help="Hour (HH:MM)")],
    name: Annotated[str, typer.Option("--name", "-n", help="Client name")] = "",
    phone: Annotated[str, typer.Option("--phone", help="Client phone")] = "",
    email: Annotated[str, typer.Option("--email", "-e", help="Client email")] = "",
    service: Annotated[str, typer.Option("--service", "-s", help="Service number")] = "1",
    calendar: Annotated[Optional[str], typer.Option("--calendar", help="Calendar number")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    mock_data: MockDataOption = None,
):
    """
    Book an appointment.
    """
    container = _container(config_file, mock, mock_data)
    request = BookingRequest(
        client_name=name,
        client_phone=phone,
        client_email=email,
        calendar=calendar or container.config.default_calendar,
        service=service,
        date=date,
        time=time,
    )
    outcome = _run(container, container.booking.create(request))
    console.print(Panel(container.formatter().booking_confirmed(outcome), border_style="green"))


@app.command()
def cancel(
    code: Annotated[str, typer.Argument(help="Reservation code")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
    mock_data: MockDataOption = None,
):
    """
    Cancel an appointment by reservation code.
    """
    container = _container(config_file, mock, mock_data)
    outcome = _run(container, container.booking.cancel(code))
    style = "green" if outcome.cancelled else "yellow"
    console.print(Panel(container.formatter().cancelled(outcome), border_style=style))


@app.command()
def reschedule(
    code: Annotated[str, typer.Argument(help="Reservation code")],
    date: Annotated[str, typer.Argument(help="New date (YYYY-MM-DD)")],
    time: Annotated[str, typer.Argument(help="New hour (HH:MM)")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
    mock_data: MockDataOption = None,
):
    """
    Move an appointment to another date and hour.
    """
    container = _container(config_file, mock, mock_data)
    outcome = _run(container, container.booking.reschedule(code, date, time))
    console.print(Panel(container.formatter().rescheduled(outcome), border_style="green"))


@app.command()
def confirm(
    code: Annotated[str, typer.Argument(help="Reservation code")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
    mock_data: MockDataOption = None,
):
    """
    Confirm attendance for an appointment.
    """
    container = _container(config_file, mock, mock_data)
    outcome = _run(container, container.booking.confirm(code))
    console.print(Panel(container.formatter().confirmed(outcome), border_style="green"))


@app.command()
def remind(
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Send 24-hour reminders. Schedule it daily at 09:00 (cron or similar).
    """
    container = _container(config_file, mock)
    report = _run(container, container.reminders.run(container.now()))

    table = Table(title="Recordatorios", show_header=True, header_style="bold cyan")
    table.add_column("Revisadas", justify="right")
    table.add_column("Enviadas", justify="right", style="green")
    table.add_column("Fallidas", justify="right", style="red")
    table.add_row(str(report.checked), str(len(report.sent)), str(len(report.failed)))
    console.print(table)
    if report.failed:
        console.print(f"[yellow]Sin WhatsApp: {', '.join(report.failed)}[/yellow]")


@app.command()
def diagnose(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    calendar: Annotated[Optional[str], typer.Option("--calendar", help="Calendar number")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    mock_data: MockDataOption = None,
):
    """
    Explain hour by hour why each slot is or is not offered.
    """
    container = _container(config_file, mock, mock_data)
    calendar_id = calendar or container.config.default_calendar

    async def run():
        day = parse_date(date, container.config.timezone)
        return await container.availability.diagnose_day(calendar_id, day)

    diagnosis = _run(container, run())
    policy = diagnosis.policy

    if policy.is_closed:
        console.print(f"[yellow]{policy.date.isoformat()}: cerrado[/yellow]")
        return

    table = Table(
        title=f"{policy.date.isoformat()} calendario {calendar_id} ({diagnosis.data_source.value})",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Hora", style="bold")
    table.add_column("Estado")
    table.add_column("Motivo")
    table.add_column("Eventos", style="dim")
    for evaluation in diagnosis.evaluations:
        style = "green" if evaluation.is_free else "red"
        table.add_row(
            f"{evaluation.hour:02d}:00",
            f"[{style}]{evaluation.decision.value}[/{style}]",
            diagnosis.reason_for(evaluation),
            "; ".join(str(interval) for interval in evaluation.blocking),
        )
    console.print(table)

    for hour, count in diagnosis.simultaneous.items():
        console.print(f"[yellow]⚠ {count} eventos simultáneos a las {hour:02d}:00[/yellow]")


@app.command()
def version():
    """
    Show version information.
    """
    console.print(f"[bold cyan]clinicagenda[/bold cyan] version [yellow]{__version__}[/yellow]")
    console.print(f"[dim]{pendulum.now().format('YYYY-MM-DD HH:mm')}[/dim]")


if __name__ == "__main__":
    app()
