# src/pyairtouch5/cli.py
import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import settings
from .core.constants import CONTROLLABLE_FAN_SPEEDS, CONTROLLABLE_MODES, AcMode, FanSpeed
from .core.controller import Controller
from .core.discovery import discover_controllers
from .core.events import ControllerListener
from .core.models import AcAbility, AcErrorInfo, AcStatus, DiscoveredController, ZoneStatus
from .core.state import ControllerSnapshot
from .manager import static_controller

app = typer.Typer(
    name="cli",
    help="Command-Line Interface for interacting with AirTouch 5 controllers.",
    no_args_is_help=True,
)
console = Console()

READY_TIMEOUT = 15.0


def run_async(coro):
    """Helper to run an async function from a sync Typer command."""
    return asyncio.run(coro)


async def find_controllers(timeout: float) -> list[DiscoveredController]:
    found: dict[str, DiscoveredController] = {}

    def _on_found(controller: DiscoveredController) -> None:
        found.setdefault(controller.controller_id, controller)

    await discover_controllers(
        _on_found, port=settings.AT5_DISCOVERY_PORT, timeout=timeout
    )
    return list(found.values())


async def resolve_controller(host: Optional[str]) -> DiscoveredController:
    """--host, else the first configured controller, else the first one discovered."""
    if host:
        return static_controller(host)
    if settings.AT5_CONTROLLERS:
        return static_controller(settings.AT5_CONTROLLERS[0])
    found = await find_controllers(settings.AT5_DISCOVERY_TIMEOUT)
    if not found:
        console.print("[red]Error:[/] No controller found. Use --host or AT5_CONTROLLERS.")
        raise typer.Exit(code=1)
    return found[0]


async def get_controller(host: Optional[str]) -> Controller:
    """Async factory for a controller."""
    info = await resolve_controller(host)
    return Controller(info, **settings.session_options())


def parse_mode(value: str) -> AcMode:
    try:
        mode = AcMode[value.upper()]
    except KeyError:
        mode = None
    if mode not in CONTROLLABLE_MODES:
        names = ", ".join(m.name.lower() for m in CONTROLLABLE_MODES)
        raise typer.BadParameter(f"'{value}' is not one of {names}")
    return mode


def parse_fan_speed(value: str) -> FanSpeed:
    try:
        speed = FanSpeed[value.upper()]
    except KeyError:
        speed = None
    if speed not in CONTROLLABLE_FAN_SPEEDS:
        names = ", ".join(s.name.lower() for s in CONTROLLABLE_FAN_SPEEDS)
        raise typer.BadParameter(f"'{value}' is not one of {names}")
    return speed


def _fmt(value, suffix: str = "") -> str:
    return "-" if value is None else f"{value}{suffix}"


def print_snapshot(snapshot: ControllerSnapshot):
    """Prints units and zones in a human-readable format."""
    units = Table(show_header=True, header_style="bold magenta", title="AC Units")
    units.add_column("Unit", style="dim")
    units.add_column("Name")
    units.add_column("Power")
    units.add_column("Mode")
    units.add_column("Fan")
    units.add_column("Temp (°C)")
    units.add_column("Setpoint (°C)")
    units.add_column("State")
    units.add_column("Zones")

    for unit in snapshot.units:
        status = unit.status
        error = f" [red]{unit.error_message}[/]" if unit.error_message else ""
        units.add_row(
            str(unit.unit_number),
            unit.name + error,
            status.power_state.name if status else "-",
            status.mode.name if status else "-",
            str(status.fan_speed) if status else "-",
            _fmt(status.temperature if status else None),
            _fmt(status.setpoint if status else None),
            unit.current_state.value if unit.current_state else "-",
            ", ".join(str(z) for z in unit.zones),
        )
    console.print(units)

    zones = Table(show_header=True, header_style="bold magenta", title="Zones")
    zones.add_column("Zone", style="dim")
    zones.add_column("Name")
    zones.add_column("Unit")
    zones.add_column("Power")
    zones.add_column("Damper (%)")
    zones.add_column("Temp (°C)")
    zones.add_column("Setpoint (°C)")
    zones.add_column("State")

    for zone in snapshot.zones:
        flags = ""
        if zone.status is not None:
            if zone.status.spill:
                flags += " [SPILL]"
            if zone.status.battery_low:
                flags += " [BATTERY]"
        zones.add_row(
            str(zone.zone_number),
            (zone.name or f"Zone {zone.zone_number}") + flags,
            str(zone.unit_number),
            zone.status.power_state.name if zone.status else "-",
            _fmt(zone.damper_percent),
            _fmt(zone.current_temperature),
            _fmt(zone.target_temperature),
            zone.current_state.value if zone.current_state else "-",
        )
    console.print(zones)


class MonitorPrinter(ControllerListener):
    """Prints every event as it arrives."""

    def unit_ability_discovered(self, ability: AcAbility) -> None:
        console.print(
            f"[bold cyan]ABILITY[/] AC {ability.unit_number} '{ability.name}' "
            f"zones {list(ability.zone_numbers)}"
        )

    def unit_status_updated(self, status: AcStatus) -> None:
        console.print(
            f"[bold green]AC     [/] {status.unit_number} {status.power_state.name} "
            f"{status.mode.name} fan {status.fan_speed} "
            f"{status.temperature}°C -> {status.setpoint}°C"
        )

    def unit_error_reported(self, error: AcErrorInfo) -> None:
        console.print(f"[bold red]ERROR  [/] AC {error.unit_number}: {error.message}")

    def zone_status_updated(self, status: ZoneStatus) -> None:
        console.print(
            f"[bold yellow]ZONE   [/] {status.zone_number} {status.power_state.name} "
            f"{status.damper_percent}% {status.temperature}°C -> {status.setpoint}°C"
        )

    def zone_name_updated(self, zone_number: int, name: str) -> None:
        console.print(f"[bold magenta]NAME   [/] {zone_number} '{name}'")

    def reconnecting(self) -> None:
        console.print("[dim]Reconnecting...[/]")


@app.command()
def discover(
    timeout: float = typer.Option(5.0, "--timeout", help="Seconds to listen for replies."),
):
    """Broadcast a discovery request and list the controllers that answer."""

    async def _discover():
        found = await find_controllers(timeout)
        if not found:
            console.print("[yellow]No controllers found.[/]")
            return
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("IP")
        table.add_column("Controller ID")
        table.add_column("Console ID")
        table.add_column("Name")
        for c in found:
            table.add_row(c.ip, c.controller_id, c.console_id, c.name)
        console.print(table)

    run_async(_discover())


@app.command()
def status(
    host: Optional[str] = typer.Option(None, "--host", help="Controller address."),
    as_json: bool = typer.Option(False, "--json", help="Print the status as JSON."),
):
    """Print an overview of all AC units and zones."""

    async def _status():
        controller = await get_controller(host)
        try:
            if not await controller.start():
                console.print("[red]Error:[/] Could not connect to the controller.")
                raise typer.Exit(code=1)
            if not await controller.wait_ready(READY_TIMEOUT):
                console.print("[yellow]Timed out waiting for zone names, showing partial status.[/]")
            snapshot = controller.state.snapshot()
        finally:
            await controller.stop()
        if as_json:
            console.print_json(snapshot.model_dump_json(indent=2))
        else:
            print_snapshot(snapshot)

    run_async(_status())


@app.command()
def monitor(
    host: Optional[str] = typer.Option(None, "--host", help="Controller address."),
):
    """Stay connected and print every status update pushed by the controller."""

    async def _monitor():
        controller = await get_controller(host)
        controller.add_listener(MonitorPrinter())
        console.print(f"Monitoring {controller.info.ip}... Press Ctrl+C to stop.")
        try:
            await controller.start()
            await asyncio.Event().wait()
        finally:
            await controller.stop()

    try:
        run_async(_monitor())
    except KeyboardInterrupt:
        console.print("Stopped.")


@app.command()
def set_unit(
    unit: int = typer.Argument(..., min=0, max=7, help="AC unit number (0-7)."),
    power: Optional[bool] = typer.Option(None, "--power/--no-power", help="Switch the unit on or off."),
    mode: Optional[str] = typer.Option(None, "--mode", help="auto, heat, dry, fan or cool."),
    fan: Optional[str] = typer.Option(None, "--fan", help="auto, quiet, low, medium, high, powerful or turbo."),
    temp: Optional[float] = typer.Option(None, "--temp", min=10.0, max=35.0, help="Setpoint (10-35 °C)."),
    host: Optional[str] = typer.Option(None, "--host", help="Controller address."),
):
    """Change the power, mode, fan speed or setpoint of an AC unit."""
    if all(v is None for v in [power, mode, fan, temp]):
        console.print("[red]Error:[/] No options specified. Use --help for info.")
        raise typer.Exit(code=1)
    ac_mode = parse_mode(mode) if mode is not None else None
    fan_speed = parse_fan_speed(fan) if fan is not None else None

    async def _set_unit():
        controller = await get_controller(host)
        try:
            if not await controller.start():
                console.print("[red]Error:[/] Could not connect to the controller.")
                raise typer.Exit(code=1)
            session = controller.session
            if power is not None:
                await session.set_unit_power(unit, power)
            if ac_mode is not None:
                await session.set_unit_target_mode(unit, ac_mode)
            if fan_speed is not None:
                await session.set_unit_fan_speed(unit, fan_speed)
            if temp is not None:
                await session.set_unit_target_temperature(unit, temp)
        finally:
            await controller.stop()
        console.print(f"[green]AC {unit} settings sent.[/]")

    run_async(_set_unit())


@app.command()
def set_zone(
    zone: int = typer.Argument(..., min=0, max=15, help="Zone number (0-15)."),
    power: Optional[bool] = typer.Option(None, "--power/--no-power", help="Switch the zone on or off."),
    damper: Optional[int] = typer.Option(None, "--damper", min=0, max=100, help="Damper opening (0-100 %)."),
    temp: Optional[float] = typer.Option(None, "--temp", min=10.0, max=35.0, help="Setpoint (10-35 °C)."),
    host: Optional[str] = typer.Option(None, "--host", help="Controller address."),
):
    """Change the power, damper opening or setpoint of a zone."""
    if all(v is None for v in [power, damper, temp]):
        console.print("[red]Error:[/] No options specified. Use --help for info.")
        raise typer.Exit(code=1)

    async def _set_zone():
        controller = await get_controller(host)
        try:
            if not await controller.start():
                console.print("[red]Error:[/] Could not connect to the controller.")
                raise typer.Exit(code=1)
            session = controller.session
            if power is not None:
                await session.set_zone_power(zone, power)
            if damper is not None:
                await session.set_zone_damper_percent(zone, damper)
            if temp is not None:
                # Sensorless zones take the AC setpoint, known once zone status arrived
                await controller.wait_ready(READY_TIMEOUT)
                await controller.set_zone_target_temperature(zone, temp)
        finally:
            await controller.stop()
        console.print(f"[green]Zone {zone} settings sent.[/]")

    run_async(_set_zone())
