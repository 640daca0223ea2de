"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import typer

from streetlight.core.errors import StreetlightError
from streetlight.core.model import DeviceParameters, Mode, TimeSlot
from streetlight.core.service import StreetlightService

app = typer.Typer(help="Configure a Bluetooth streetlight controller over a serial link")


@dataclass
class ConnectionOptions:
    profile: str | None = None
    mac: str | None = None
    channel: int | None = None
    port: str | None = None
    timeout: float | None = None


def _build_service(ctx: typer.Context) -> StreetlightService:
    options: ConnectionOptions = ctx.obj or ConnectionOptions()
    service = StreetlightService(
        options.profile,
        mac=options.mac,
        channel=options.channel,
        port=options.port,
        timeout_s=options.timeout,
    )
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    for warning in getattr(service, "runtime_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _parse_clock_time(text: str) -> tuple[int, int]:
    parts = text.strip().split(":")
    if len(parts) != 2 or not all(part.isdecimal() for part in parts):
        raise typer.BadParameter(f"'{text}' is not a HH:MM time")
    return int(parts[0]), int(parts[1])


def _print_parameters(parameters: DeviceParameters) -> None:
    mode = parameters.mode_name or "unknown"
    slot = parameters.time_slot
    typer.echo(f"mode: {parameters.mode} ({mode})")
    typer.echo(f"time_slot_start: {slot.start_hour:02d}:{slot.start_minute:02d}")
    typer.echo(f"time_slot_end: {slot.end_hour:02d}:{slot.end_minute:02d}")
    typer.echo(f"luminosity: {parameters.luminosity}")
    typer.echo(f"alive_time: {parameters.alive_time}")


def _report(success: bool, ok_message: str, error_message: str) -> None:
    if success:
        typer.echo(ok_message)
        return
    typer.echo(error_message, err=True)
    raise typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    profile: str | None = typer.Option(None, "--profile", help="Device profile ID"),
    mac: str | None = typer.Option(None, "--mac", help="Bluetooth address of the controller"),
    channel: int | None = typer.Option(None, "--channel", help="RFCOMM channel"),
    port: str | None = typer.Option(None, "--port", help="Serial port, e.g. /dev/rfcomm0"),
    timeout: float | None = typer.Option(None, "--timeout", help="Response timeout in seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log protocol traffic"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = ConnectionOptions(profile=profile, mac=mac, channel=channel, port=port, timeout=timeout)


@app.command("profiles")
def list_profiles(ctx: typer.Context) -> None:
    """List available device profiles."""
    try:
        service = _build_service(ctx)
        for profile in service.list_profiles():
            spec = profile.transport
            where = spec.port if spec.type == "serial" else f"{spec.mac or '<no-mac>'} ch{spec.channel}"
            typer.echo(f"{profile.id}: {profile.name} [{spec.type} {where}]")
    except StreetlightError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("params")
def show_parameters(ctx: typer.Context) -> None:
    """Retrieve and print the controller's current parameters."""
    try:
        with _build_service(ctx) as service:
            _print_parameters(service.get_parameters())
    except StreetlightError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("mode")
def set_mode(
    ctx: typer.Context,
    mode: str = typer.Argument(..., help="off, on, auto, or a numeric index"),
) -> None:
    """Set the operating mode."""
    try:
        index = Mode.parse(mode)
        with _build_service(ctx) as service:
            success = service.set_mode(index)
    except StreetlightError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    _report(success, "Mode set", "Error setting mode")


@app.command("timeslot")
def set_time_slot(
    ctx: typer.Context,
    start: str = typer.Argument(..., help="Start time HH:MM"),
    end: str = typer.Argument(..., help="End time HH:MM"),
) -> None:
    """Set the daily active window."""
    start_hour, start_minute = _parse_clock_time(start)
    end_hour, end_minute = _parse_clock_time(end)
    time_slot = TimeSlot(start_hour, start_minute, end_hour, end_minute)
    try:
        time_slot.validate()
        with _build_service(ctx) as service:
            success = service.set_time_slot(time_slot)
    except StreetlightError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    _report(success, f"Time Slot set ({time_slot.format()})", "Error setting time slot")


@app.command("luminosity")
def set_luminosity(
    ctx: typer.Context,
    level: int = typer.Argument(..., help="Threshold 0-255"),
) -> None:
    """Set the luminosity threshold."""
    try:
        with _build_service(ctx) as service:
            success = service.set_luminosity(level)
    except StreetlightError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    _report(success, "Luminosity threshold set", "Error setting luminosity threshold")


@app.command("alive-time")
def set_alive_time(
    ctx: typer.Context,
    minutes: int = typer.Argument(..., help="Minutes of inactivity before switching off, 0-240"),
) -> None:
    """Set the inactivity timeout."""
    try:
        with _build_service(ctx) as service:
            success = service.set_alive_time(minutes)
    except StreetlightError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    _report(success, "Alive time set", "Error setting luminosity alive time")


@app.command("clock")
def set_clock(
    ctx: typer.Context,
    utc: bool = typer.Option(False, "--utc", help="Send UTC instead of local time"),
) -> None:
    """Push the host's current time to the controller clock."""
    try:
        with _build_service(ctx) as service:
            success = service.set_clock(utc=utc)
    except StreetlightError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    _report(success, "Clock set", "Error setting GMT time")


@app.command("sync")
def sync(
    ctx: typer.Context,
    utc: bool = typer.Option(False, "--utc", help="Send UTC instead of local time"),
) -> None:
    """Set the clock, then print the current parameters."""
    try:
        with _build_service(ctx) as service:
            clock_ok, parameters = service.sync(utc=utc)
    except StreetlightError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    if not clock_ok:
        typer.echo("Error setting GMT time", err=True)
    _print_parameters(parameters)


@app.command("reset")
def reset(ctx: typer.Context) -> None:
    """Discard unread bytes on the link after a timed-out exchange."""
    try:
        with _build_service(ctx) as service:
            service.resynchronize()
    except StreetlightError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    typer.echo("Input buffer flushed")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
