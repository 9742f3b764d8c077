"""
Adaptive per-servo movement calibration.

While collecting, every commanded movement records (size, error) for its
servo and direction. When calibration is finalised, each direction's
error/size ratios are outlier-filtered (2 standard deviations), averaged and
scaled into a percentage that the Controller adds to future movements:

  adjusted_target = target + movement_size * pct / 100

Large average errors get a smaller scale factor so a correction does not
overshoot. Nothing is persisted; a new Controller starts at 0%.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from xarmctl.types import MovementObservation, Servo, ServoCalibration

logger = logging.getLogger(__name__)

_OUTLIER_SIGMA = 2.0


def filter_outliers(ratios: Sequence[float]) -> np.ndarray:
    """Drop ratios further than 2 population standard deviations from the mean."""
    values = np.asarray(ratios, dtype=float)
    if values.size == 0:
        return values
    mean = values.mean()
    std = values.std()
    return values[np.abs(values - mean) <= _OUTLIER_SIGMA * std]


def scaling_factor(avg_ratio: float) -> float:
    # Smaller corrections for larger errors to prevent overshooting
    magnitude = abs(avg_ratio)
    if magnitude > 0.5:
        return 5.0
    if magnitude > 0.2:
        return 7.0
    return 10.0


def derive_direction(observations: Sequence[MovementObservation]) -> float:
    """Percentage adjustment for one direction; 0.0 without usable data."""
    ratios = [obs.signed_error / obs.movement_size for obs in observations if obs.movement_size > 0]
    kept = filter_outliers(ratios)
    if kept.size == 0:
        return 0.0
    avg = float(kept.mean())
    return avg * scaling_factor(avg)


def derive(
    positive: Sequence[MovementObservation],
    negative: Sequence[MovementObservation],
) -> ServoCalibration:
    return ServoCalibration(
        positive_adjustment_pct=derive_direction(positive),
        negative_adjustment_pct=derive_direction(negative),
    )


class CalibrationData:
    """Collection mode flag, recorded observations and the current table."""

    def __init__(self) -> None:
        self.collecting = False
        self.observations: dict[Servo, tuple[list[MovementObservation], list[MovementObservation]]] = {
            servo: ([], []) for servo in Servo
        }
        self.calibrations: dict[Servo, ServoCalibration] = {
            servo: ServoCalibration() for servo in Servo
        }

    def start_collecting(self) -> None:
        self.collecting = True
        for servo in Servo:
            self.observations[servo] = ([], [])
        logger.info("Started collecting calibration data")

    def collect(self, servo: Servo, movement_size: float, signed_error: float) -> None:
        if not self.collecting:
            return
        positive, negative = self.observations[servo]
        if movement_size > 0:
            positive.append(MovementObservation(movement_size, signed_error))
        else:
            negative.append(MovementObservation(abs(movement_size), signed_error))

    def finish(self) -> dict[Servo, ServoCalibration]:
        """Stop collecting and recompute every servo's calibration."""
        self.collecting = False
        for servo in Servo:
            positive, negative = self.observations[servo]
            self.calibrations[servo] = derive(positive, negative)
        logger.info("Calibration calculated from collected data")
        for line in self.status_lines():
            logger.info(line)
        return dict(self.calibrations)

    def adjust_target(self, servo: Servo, target: float, movement_size: float) -> float:
        if self.collecting:
            return target
        pct = self.calibrations[servo].for_movement(movement_size)
        return target + movement_size * pct / 100.0

    def status_lines(self) -> list[str]:
        lines = ["Servo Calibration Status:"]
        for servo in Servo:
            cal = self.calibrations[servo]
            positive, negative = self.observations[servo]
            lines.append(f"{servo.name}:")
            lines.append(
                f"  Positive movements: {cal.positive_adjustment_pct:.2f}% adjustment"
                f" ({len(positive)} samples)"
            )
            lines.append(
                f"  Negative movements: {cal.negative_adjustment_pct:.2f}% adjustment"
                f" ({len(negative)} samples)"
            )
        return lines
