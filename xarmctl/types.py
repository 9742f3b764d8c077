"""
Core data types for xarmctl.

These are the contracts that flow between the codec, the transport, the
calibration engine and the controller. Everything is kept in plain
dataclasses and enums so there are no circular imports.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import NamedTuple

from xarmctl.constants import MAX_ANGLE, MIN_ANGLE


class Servo(IntEnum):
    """Arm joints. The value is the id used on the wire."""

    CLAW_GRIP = 1
    CLAW_TWIST = 2
    WRIST_TILT = 3      # -125 to 125 up to down
    ELBOW_TILT = 4      # -125 to 125 up to down
    SHOULDER_TILT = 5   # -125 to 125 up to down
    BASE_SPIN = 6       # -125 to 125 clockwise

    @classmethod
    def parse(cls, value: str) -> "Servo":
        """Accept a wire id ("5") or a name ("shoulder_tilt", "SHOULDER-TILT")."""
        value = value.strip()
        if value.isdigit():
            return cls(int(value))
        return cls[value.upper().replace("-", "_")]


@dataclass(frozen=True)
class JointAngles:
    """
    Angles for the three tilt joints, in degrees, as sent to the servos.

    The elbow is sign-inverted relative to the geometric angle (the servo is
    mounted the other way round).
    """

    shoulder: float
    elbow: float
    wrist: float


@dataclass
class ServoCalibration:
    """Signed percentage corrections applied to future movement magnitude."""

    positive_adjustment_pct: float = 0.0
    negative_adjustment_pct: float = 0.0

    def for_movement(self, movement_size: float) -> float:
        if movement_size > 0:
            return self.positive_adjustment_pct
        return self.negative_adjustment_pct


class MovementObservation(NamedTuple):
    movement_size: float    # magnitude, always >= 0
    signed_error: float     # achieved - requested, degrees


def clamp_angle(angle: float) -> float:
    return max(MIN_ANGLE, min(MAX_ANGLE, angle))
