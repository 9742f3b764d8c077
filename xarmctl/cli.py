"""
xarmctl command-line interface.

Usage:
    xarmctl battery                             # print battery voltage
    xarmctl positions                           # print all servo angles
    xarmctl move shoulder_tilt 30               # move one servo (name or id)
    xarmctl look 30 45                          # point the claw (elevation, azimuth)
    xarmctl look -- -20 -45                     # negative values after --
    xarmctl off                                 # power off every servo
    xarmctl off 6                               # power off one servo
    xarmctl calibrate --rounds 3                # learn movement corrections
    xarmctl --backend mock positions            # simulated arm, no hardware
    xarmctl --verbose look 0 0                  # debug logging
"""

import asyncio
import logging
import math
from typing import Awaitable, Callable, Optional

import typer

from xarmctl.constants import (
    BLE_DEVICE_NAME,
    BLE_SCAN_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TOLERANCE,
)
from xarmctl.controller import Controller
from xarmctl.errors import ArmError
from xarmctl.types import Servo

app = typer.Typer(
    name="xarmctl",
    help="xArm robotic arm control",
    add_completion=False,
)

# Tilt sweep used by `calibrate`, in degrees
_CALIBRATION_SWEEP = (-40.0, 40.0, -20.0, 20.0, 0.0)


@app.callback()
def main_options(
    ctx: typer.Context,
    backend: str = typer.Option(
        "auto",
        help="Backend: 'auto' (USB HID, then Bluetooth) or 'mock' (simulated arm)",
    ),
    ble_name: str = typer.Option(BLE_DEVICE_NAME, help="Bluetooth device name to scan for"),
    scan_timeout: float = typer.Option(BLE_SCAN_TIMEOUT, help="Bluetooth scan timeout in seconds"),
    max_retries: int = typer.Option(DEFAULT_MAX_RETRIES, help="Retry rounds per movement"),
    tolerance: float = typer.Option(DEFAULT_TOLERANCE, help="Arrival tolerance in degrees"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Control an xArm over USB HID or Bluetooth."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    if backend not in ("auto", "mock"):
        typer.echo(f"Unknown backend '{backend}'. Choose: auto, mock", err=True)
        raise typer.Exit(1)
    ctx.obj = {
        "backend": backend,
        "ble_name": ble_name,
        "scan_timeout": scan_timeout,
        "max_retries": max_retries,
        "tolerance": tolerance,
    }


def _build_controller(options: dict) -> Controller:
    from xarmctl.transport import Transport

    if options["backend"] == "mock":
        from xarmctl.backends.mock import SimulatedArm
        transport = Transport.from_hid_device(SimulatedArm())
    else:
        transport = Transport(
            ble_name=options["ble_name"],
            ble_scan_timeout=options["scan_timeout"],
        )
    return Controller(
        transport,
        max_retries=options["max_retries"],
        tolerance=options["tolerance"],
    )


def _run(ctx: typer.Context, action: Callable[[Controller], Awaitable[None]]) -> None:
    async def _session() -> None:
        async with _build_controller(ctx.obj) as arm:
            await action(arm)

    try:
        asyncio.run(_session())
    except ArmError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        pass


def _parse_servo(value: str) -> Servo:
    try:
        return Servo.parse(value)
    except (KeyError, ValueError):
        names = ", ".join(s.name.lower() for s in Servo)
        raise typer.BadParameter(f"'{value}' is not a servo. Use 1-6 or one of: {names}")


@app.command()
def battery(ctx: typer.Context) -> None:
    """Print the battery voltage."""

    async def _battery(arm: Controller) -> None:
        voltage = await arm.get_battery_voltage()
        typer.echo(f"Battery voltage: {voltage:.2f}V")

    _run(ctx, _battery)


@app.command()
def positions(ctx: typer.Context) -> None:
    """Print the current angle of every servo."""

    async def _positions(arm: Controller) -> None:
        angles = await arm.get_positions(list(Servo))
        for servo in Servo:
            angle = angles.get(servo)
            shown = f"{angle:7.2f}" if angle is not None else "    n/a"
            typer.echo(f"  {servo.name.lower():<14}{shown}")

    _run(ctx, _positions)


@app.command()
def move(
    ctx: typer.Context,
    servo: str = typer.Argument(..., help="Servo id (1-6) or name"),
    angle: float = typer.Argument(..., help="Target angle in degrees [-125, 125]"),
) -> None:
    """Move one servo to an angle."""
    target = _parse_servo(servo)

    async def _move(arm: Controller) -> None:
        retries = await arm.set_position(target, angle)
        _report(arm, retries)

    _run(ctx, _move)


@app.command()
def look(
    ctx: typer.Context,
    elevation: float = typer.Argument(..., help="Claw elevation in degrees [-60, 90]"),
    azimuth: float = typer.Argument(0.0, help="Base rotation in degrees [-125, 125]"),
) -> None:
    """Point the claw at an elevation and azimuth."""

    async def _look(arm: Controller) -> None:
        angles = arm.calculate_joint_angles(elevation)
        typer.echo(f"Shoulder {angles.shoulder}°, elbow {angles.elbow}°, wrist {angles.wrist}°")
        retries = await arm.set_look(elevation, azimuth)
        _report(arm, retries)

    _run(ctx, _look)


@app.command()
def off(
    ctx: typer.Context,
    servo: Optional[str] = typer.Argument(None, help="Servo id or name (default: all)"),
) -> None:
    """Power off one servo or all of them."""
    target = _parse_servo(servo) if servo is not None else None

    async def _off(arm: Controller) -> None:
        await arm.servo_off(target)
        typer.echo(f"Powered off {target.name.lower() if target else 'all servos'}")

    _run(ctx, _off)


@app.command()
def calibrate(
    ctx: typer.Context,
    rounds: int = typer.Option(2, help="Times to repeat the tilt sweep"),
) -> None:
    """Sweep the tilt joints, then print the learned corrections."""
    tilt = (Servo.WRIST_TILT, Servo.ELBOW_TILT, Servo.SHOULDER_TILT)

    async def _calibrate(arm: Controller) -> None:
        arm.start_collecting_data()
        for _ in range(rounds):
            for angle in _CALIBRATION_SWEEP:
                await arm.set_multiple_positions([(servo, angle) for servo in tilt])
        arm.calculate_calibration()
        typer.echo(arm.format_calibration_status())

    _run(ctx, _calibrate)


def _report(arm: Controller, retries: int) -> None:
    typer.echo(f"Done ({retries} {'retry' if retries == 1 else 'retries'})")
    for servo, error in arm.unconverged.items():
        if math.isnan(error):
            typer.echo(f"  {servo.name.lower()} did not report its position", err=True)
        else:
            typer.echo(f"  {servo.name.lower()} did not converge (off by {error:.2f}°)", err=True)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
