"""
Exception hierarchy for xarmctl.

Codec errors (ProtocolError) and link errors (TransportError) propagate
unchanged through the Controller. A servo that does not converge is not an
error; see Controller.unconverged.
"""

from __future__ import annotations


class ArmError(Exception):
    """Base class for everything raised by xarmctl."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class ProtocolError(ArmError):
    """A reply could not be decoded."""


class FramingError(ProtocolError):
    """Malformed frame: too short, or a nonsensical length byte."""


class TruncatedFrame(FramingError):
    """The declared frame length exceeds the bytes actually received."""

    def __init__(self, declared: int, available: int) -> None:
        super().__init__(
            f"Frame declares {declared} payload bytes but only {available} were received"
        )
        self.declared = declared
        self.available = available


class SignatureMismatch(ProtocolError):
    def __init__(self, first: int, second: int) -> None:
        super().__init__(f"Invalid signature: {first:02x} {second:02x}")
        self.first = first
        self.second = second


class CommandMismatch(ProtocolError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Expected reply to command {expected:#04x}, got {actual:#04x}")
        self.expected = expected
        self.actual = actual


class InvalidPayload(ProtocolError):
    """The payload is too short for the fields the command returns."""


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class TransportError(ArmError):
    """The physical link failed."""


class ResponseTimeout(TransportError):
    """No reply arrived within the receive window."""


class NoDeviceFound(TransportError):
    """Neither the USB HID nor the Bluetooth link could be opened."""


class DeviceError(TransportError):
    """The underlying driver (hidapi, bleak) reported an error."""


# ---------------------------------------------------------------------------
# Movement
# ---------------------------------------------------------------------------

class AngleOutOfRange(ArmError, ValueError):
    def __init__(self, servo: object, angle: float) -> None:
        super().__init__(f"Angle for {servo} must be between -125.0 and 125.0 degrees, got {angle}")
        self.servo = servo
        self.angle = angle
