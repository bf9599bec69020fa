"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Optional, Annotated

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.memory_repository import InMemoryScheduleRepository
from ..adapters.postgrest_repository import PostgrestScheduleRepository
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import SlotEngineError
from ..domain.models import (
    Caller,
    CallerRole,
    ScheduleOverride,
    TimelineKind,
    format_clock,
    parse_date,
    parse_optional_clock,
)
from ..services.booking_service import BookingService

app = typer.Typer(
    name="slotengine",
    help="Offer, book and manage appointment slots",
    add_completion=False
)

console = Console()

WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
DateOption = Annotated[
    Optional[str],
    typer.Option("--date", help="Date (YYYY-MM-DD). Defaults to today."),
]


class Context:
    """Config, repository and service for one command invocation."""

    def __init__(self, config: AppConfig):
        self.config = config
        if config.postgrest is not None:
            self.repository = PostgrestScheduleRepository(
                base_url=config.postgrest.url,
                api_key=config.postgrest.api_key,
                timeout_seconds=config.postgrest.timeout_seconds,
            )
        else:
            self.repository = InMemoryScheduleRepository.from_config(config)
        self.service = BookingService(self.repository, enforce_alignment=config.enforce_alignment)

    def business_id(self, identifier: str) -> str:
        """Resolve a slug or id; unknown ids pass through in PostgREST mode."""
        business = self.config.find_business(identifier)
        if business is not None:
            return business.id
        if self.config.postgrest is not None:
            return identifier
        return self.config.resolve_business(identifier).id

    def local_repository(self) -> InMemoryScheduleRepository:
        if not isinstance(self.repository, InMemoryScheduleRepository):
            raise ValueError("This command is only available with the local data file backend.")
        return self.repository

    def day(self, value: Optional[str]):
        if value:
            return parse_date(value)
        return pendulum.now(self.config.timezone).date()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load(config_file: Optional[Path]) -> Context:
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)
    _configure_logging(config.log_level)
    return Context(config)


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


def _build_caller(role: CallerRole, business_id: str, customer_id: Optional[str]) -> Caller:
    if role == CallerRole.PLATFORM_ADMIN:
        return Caller.platform_admin()
    if role == CallerRole.BUSINESS_ADMIN:
        return Caller.business_admin(business_id)
    if not customer_id:
        raise ValueError("--customer is required when acting as a customer")
    return Caller.customer(business_id, customer_id)


@app.command()
def slots(
    business: Annotated[str, typer.Argument(help="Business slug or id")],
    service: Annotated[str, typer.Option("--service", "-s", help="Service id")],
    date: DateOption = None,
    show_all: Annotated[bool, typer.Option("--all", help="Also list unavailable times")] = False,
    config_file: ConfigOption = None,
):
    """
    List bookable start times for a service on a date.

    Examples:

        slotengine slots shabat-barber --service s1
        slotengine slots shabat-barber --service s2 --date 2024-11-25 --all
    """
    try:
        ctx = _load(config_file)
        business_id = ctx.business_id(business)
        day = ctx.day(date)

        offered = ctx.service.available_slots(business_id=business_id, day=day, service_id=service)
        shown = offered if show_all else [slot for slot in offered if slot.available]

        console.print()
        if not shown:
            console.print(f"[yellow]⚠ No available times on {day.isoformat()}.[/yellow]\n")
            return

        table = Table(
            title=f"{business} · {WEEKDAY_NAMES[day.isoweekday() % 7]} {day.isoformat()}",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Time", style="bold")
        table.add_column("Status")

        for slot in shown:
            if slot.available:
                table.add_row(slot.time, "[green]available[/green]")
            else:
                table.add_row(slot.time, f"[dim]{slot.reason.message}[/dim]")

        console.print(table)
        console.print()

    except (FileNotFoundError, SlotEngineError, ValueError) as e:
        _fail(e)


@app.command()
def book(
    business: Annotated[str, typer.Argument(help="Business slug or id")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    service: Annotated[str, typer.Option("--service", "-s", help="Service id")],
    customer: Annotated[str, typer.Option("--customer", help="Customer id")],
    notes: Annotated[Optional[str], typer.Option("--notes", help="Free-text notes")] = None,
    role: Annotated[CallerRole, typer.Option("--as", help="Who is booking")] = CallerRole.CUSTOMER,
    config_file: ConfigOption = None,
):
    """
    Book an appointment after validating it against the schedule.
    """
    try:
        ctx = _load(config_file)
        business_id = ctx.business_id(business)
        caller = _build_caller(role, business_id, customer)

        outcome = ctx.service.book(
            caller,
            business_id=business_id,
            customer_id=customer,
            service_id=service,
            day=date,
            start=time,
            notes=notes,
        )

        if not outcome.ok:
            console.print(f"[bold red]✗ Not booked:[/bold red] {outcome.message}")
            raise typer.Exit(1)

        appointment = outcome.appointment
        console.print(Panel.fit(
            f"[bold green]✓ {outcome.message}[/bold green]\n\n"
            f"[bold]Date:[/bold] {appointment.date.isoformat()}\n"
            f"[bold]Time:[/bold] {format_clock(appointment.start)} - {format_clock(appointment.end)}\n"
            f"[bold]Id:[/bold] {appointment.id}",
            title="Appointment"
        ))

    except (FileNotFoundError, SlotEngineError, ValueError) as e:
        _fail(e)


@app.command()
def cancel(
    business: Annotated[str, typer.Argument(help="Business slug or id")],
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    customer: Annotated[Optional[str], typer.Option("--customer", help="Customer id")] = None,
    role: Annotated[CallerRole, typer.Option("--as", help="Who is cancelling")] = CallerRole.CUSTOMER,
    config_file: ConfigOption = None,
):
    """
    Cancel an appointment and free its time.
    """
    try:
        ctx = _load(config_file)
        caller = _build_caller(role, ctx.business_id(business), customer)
        appointment = ctx.service.cancel(caller, appointment_id)
        console.print(
            f"\n[green]✓ Cancelled {appointment.date.isoformat()} "
            f"{format_clock(appointment.start)}-{format_clock(appointment.end)}.[/green]\n"
        )

    except (FileNotFoundError, SlotEngineError, ValueError) as e:
        _fail(e)


@app.command()
def timeline(
    business: Annotated[str, typer.Argument(help="Business slug or id")],
    date: DateOption = None,
    config_file: ConfigOption = None,
):
    """
    Show the admin view of a day: free times, bookings and the break.
    """
    try:
        ctx = _load(config_file)
        business_id = ctx.business_id(business)
        day = ctx.day(date)

        entries = ctx.service.timeline(Caller.business_admin(business_id), business_id=business_id, day=day)

        if not entries:
            console.print(f"\n[yellow]Closed on {day.isoformat()}.[/yellow]\n")
            return

        table = Table(title=f"{business} · {day.isoformat()}", show_header=True, header_style="bold cyan")
        table.add_column("Time", style="bold")
        table.add_column("")

        for entry in entries:
            if entry.kind == TimelineKind.BREAK:
                table.add_row(entry.time, "[orange3]break[/orange3]")
            elif entry.kind == TimelineKind.APPOINTMENT:
                interval = entry.interval
                table.add_row(
                    entry.time,
                    f"[blue]booked until {format_clock(interval.end)}[/blue] [dim]{interval.appointment_id or ''}[/dim]",
                )
            else:
                table.add_row(entry.time, "[green]free[/green]")

        free = sum(1 for entry in entries if entry.kind == TimelineKind.FREE)
        booked = sum(1 for entry in entries if entry.kind == TimelineKind.APPOINTMENT)

        console.print()
        console.print(table)
        console.print(f"  {booked} booked · {free} free\n")

    except (FileNotFoundError, SlotEngineError, ValueError) as e:
        _fail(e)


@app.command()
def appointments(
    business: Annotated[str, typer.Argument(help="Business slug or id")],
    from_date: Annotated[Optional[str], typer.Option("--from", help="First date (YYYY-MM-DD). Defaults to today.")] = None,
    config_file: ConfigOption = None,
):
    """
    List upcoming appointments of a business.
    """
    try:
        ctx = _load(config_file)
        repository = ctx.local_repository()
        found = repository.list_appointments(ctx.business_id(business), from_day=ctx.day(from_date))

        if not found:
            console.print("\n[yellow]No upcoming appointments.[/yellow]\n")
            return

        table = Table(title="Appointments", show_header=True, header_style="bold cyan")
        table.add_column("Date", style="bold")
        table.add_column("Time")
        table.add_column("Service")
        table.add_column("Customer", style="dim")
        table.add_column("Id", style="dim")

        for appointment in found:
            table.add_row(
                appointment.date.isoformat(),
                f"{format_clock(appointment.start)} - {format_clock(appointment.end)}",
                appointment.service_id or "",
                appointment.customer_id,
                appointment.id,
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, SlotEngineError, ValueError) as e:
        _fail(e)


@app.command()
def hours(
    business: Annotated[str, typer.Argument(help="Business slug or id")],
    config_file: ConfigOption = None,
):
    """
    Show weekly opening hours and upcoming schedule overrides.
    """
    try:
        ctx = _load(config_file)
        repository = ctx.local_repository()
        business_id = ctx.business_id(business)
        schedule = repository.get_weekly_schedule(business_id)

        table = Table(title="Opening hours", show_header=True, header_style="bold cyan")
        table.add_column("Day", style="bold yellow")
        table.add_column("Hours")
        table.add_column("Break", style="dim")

        for weekday, name in enumerate(WEEKDAY_NAMES):
            window = schedule.windows.get(weekday)
            if window is None or window.hours is None:
                table.add_row(name, "[dim]closed[/dim]", "")
                continue
            lunch = window.break_range
            table.add_row(name, str(window.hours), str(lunch) if lunch else "")

        console.print()
        console.print(table)

        overrides = repository.list_overrides(business_id, from_day=ctx.day(None))
        if overrides:
            special = Table(title="Special dates", show_header=True, header_style="bold cyan")
            special.add_column("Date", style="bold")
            special.add_column("Hours")
            special.add_column("Reason", style="dim")
            for override in overrides:
                window = override.to_window()
                special.add_row(
                    override.date.isoformat(),
                    str(window.hours) if window.hours else "closed",
                    override.reason or "",
                )
            console.print(special)

        console.print()

    except (FileNotFoundError, SlotEngineError, ValueError) as e:
        _fail(e)


@app.command()
def override(
    business: Annotated[str, typer.Argument(help="Business slug or id")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    open_time: Annotated[Optional[str], typer.Option("--open", help="Opening time (HH:MM)")] = None,
    close_time: Annotated[Optional[str], typer.Option("--close", help="Closing time (HH:MM)")] = None,
    closed: Annotated[bool, typer.Option("--closed", help="Closed all day")] = False,
    reason: Annotated[Optional[str], typer.Option("--reason", help="Shown to the admin")] = None,
    clear: Annotated[bool, typer.Option("--clear", help="Remove the override for this date")] = False,
    config_file: ConfigOption = None,
):
    """
    Set or clear special hours for one date.

    Examples:

        slotengine override shabat-barber 2024-12-25 --closed --reason Holiday
        slotengine override shabat-barber 2024-12-24 --open 09:00 --close 13:00
        slotengine override shabat-barber 2024-12-24 --clear
    """
    try:
        ctx = _load(config_file)
        repository = ctx.local_repository()
        business_id = ctx.business_id(business)
        day = parse_date(date)

        if clear:
            if repository.delete_override(business_id, day):
                console.print(f"\n[green]✓ Override for {day.isoformat()} removed.[/green]\n")
            else:
                console.print(f"\n[yellow]No override for {day.isoformat()}.[/yellow]\n")
            return

        if not closed and (open_time is None or close_time is None):
            raise ValueError("Provide --open and --close, or --closed")

        saved = repository.upsert_override(
            business_id,
            ScheduleOverride(
                date=day,
                open_time=parse_optional_clock(open_time),
                close_time=parse_optional_clock(close_time, end_of_day=True),
                is_closed=closed,
                reason=reason,
            ),
        )
        window = saved.to_window()
        console.print(
            f"\n[green]✓ {day.isoformat()}: {str(window.hours) if window.hours else 'closed'}[/green]\n"
        )

    except (FileNotFoundError, SlotEngineError, ValueError) as e:
        _fail(e)


@app.command()
def businesses(config_file: ConfigOption = None):
    """
    List all configured businesses.
    """
    try:
        config_path = config_file or get_default_config_path()
        config = AppConfig.load_from_yaml(config_path)

        if not config.businesses:
            console.print("[yellow]No businesses defined in the config file.[/yellow]")
            return

        table = Table(
            title="Configured businesses",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Slug", style="bold yellow")
        table.add_column("Name")
        table.add_column("Slot interval", justify="right")
        table.add_column("Services", style="dim")

        for business in config.businesses:
            table.add_row(
                business.slug,
                business.name if business.is_active else f"{business.name} [red](paused)[/red]",
                f"{business.slot_interval or config.default_slot_interval} min",
                ", ".join(f"{s.id} ({s.duration} min)" for s in business.services if s.is_active),
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotengine[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
