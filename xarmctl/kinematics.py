"""
Elevation decomposition for the three tilt joints.

Angles are measured from vertical. The claw points at elevation E when
shoulder + elbow + wrist = 90 - E (geometric angles). The split is fixed:
shoulder takes -40% of the total, elbow 80%, wrist the remainder. This
assumes the arm's link-length ratio and is not a general IK solve.
"""

from __future__ import annotations

import math

import numpy as np

from xarmctl.constants import MAX_ELEVATION, MIN_ELEVATION
from xarmctl.types import JointAngles, clamp_angle

SEGMENT_LENGTH = 100.0
CLAW_LENGTH = 170.0

_SHOULDER_SHARE = 0.4
_ELBOW_SHARE = 0.8


def calculate_joint_angles(target_elevation: float) -> JointAngles:
    """Joint angles (servo convention, elbow inverted) for a claw elevation."""
    elevation = max(MIN_ELEVATION, min(MAX_ELEVATION, target_elevation))
    total = 90.0 - elevation
    shoulder = clamp_angle(-total * _SHOULDER_SHARE)
    elbow = clamp_angle(total * _ELBOW_SHARE)
    wrist = clamp_angle(total - shoulder - elbow)

    return JointAngles(
        shoulder=_round1(shoulder),
        elbow=_round1(-elbow),
        wrist=_round1(wrist),
    )


def joint_positions(
    angles: JointAngles,
    segment_length: float = SEGMENT_LENGTH,
    claw_length: float = CLAW_LENGTH,
) -> dict[str, np.ndarray]:
    """
    Planar forward kinematics: (x, z) of the elbow, wrist and claw tip.

    The shoulder pivot is the origin, z points up, x points forward.
    """
    shoulder = math.radians(angles.shoulder)
    elbow = math.radians(-angles.elbow)
    wrist = math.radians(angles.wrist)

    def _segment(length: float, heading: float) -> np.ndarray:
        return length * np.array([math.sin(heading), math.cos(heading)])

    elbow_pt = _segment(segment_length, shoulder)
    wrist_pt = elbow_pt + _segment(segment_length, shoulder + elbow)
    claw_pt = wrist_pt + _segment(claw_length, shoulder + elbow + wrist)
    return {"elbow": elbow_pt, "wrist": wrist_pt, "claw": claw_pt}


def claw_elevation(angles: JointAngles) -> float:
    """Elevation the claw points at for the given (servo convention) angles."""
    return 90.0 - (angles.shoulder - angles.elbow + angles.wrist)


def _round1(value: float) -> float:
    # Half away from zero, not banker's rounding; + 0.0 folds -0.0 into 0.0
    return math.copysign(math.floor(abs(value) * 10.0 + 0.5), value) / 10.0 + 0.0
