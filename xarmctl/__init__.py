"""
xarmctl — asyncio control of the xArm six-servo robotic arm.

Quick start (USB HID, falling back to Bluetooth):

    import asyncio
    from xarmctl import Controller, Servo

    async def main():
        async with Controller() as arm:
            print(f"Battery: {await arm.get_battery_voltage():.2f}V")
            retries = await arm.set_multiple_positions([
                (Servo.BASE_SPIN, 45.0),
                (Servo.SHOULDER_TILT, -20.0),
            ])
            await arm.set_look(elevation=30.0, azimuth=0.0)
            await arm.servo_off()

    asyncio.run(main())

No hardware (simulated arm):

    from xarmctl import Controller, Transport
    from xarmctl.backends.mock import SimulatedArm

    arm = Controller(Transport.from_hid_device(SimulatedArm()))

Calibration:

    arm.start_collecting_data()
    ...                                 # issue a spread of movements
    arm.calculate_calibration()
    print(arm.format_calibration_status())

CLI:
    xarmctl battery                     # print battery voltage
    xarmctl look 30 45                  # point the claw
    xarmctl --backend mock positions    # no hardware needed
"""

from xarmctl.controller import Controller
from xarmctl.errors import (
    AngleOutOfRange,
    ArmError,
    CommandMismatch,
    DeviceError,
    FramingError,
    InvalidPayload,
    NoDeviceFound,
    ProtocolError,
    ResponseTimeout,
    SignatureMismatch,
    TransportError,
    TruncatedFrame,
)
from xarmctl.transport import Transport, TransportKind
from xarmctl.types import JointAngles, MovementObservation, Servo, ServoCalibration

__version__ = "0.1.0"

__all__ = [
    "Controller",
    "Transport",
    "TransportKind",
    "Servo",
    "JointAngles",
    "ServoCalibration",
    "MovementObservation",
    "ArmError",
    "ProtocolError",
    "FramingError",
    "TruncatedFrame",
    "SignatureMismatch",
    "CommandMismatch",
    "InvalidPayload",
    "TransportError",
    "ResponseTimeout",
    "NoDeviceFound",
    "DeviceError",
    "AngleOutOfRange",
]
