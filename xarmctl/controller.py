"""
Controller — the public API of xarmctl.

Owns one Transport and one CalibrationData. Every device operation is a
coroutine; one request/response exchange is in flight at a time.

Movement runs a convergence loop:

  1. read current positions of all servos involved (one batched query)
  2. send one multi-servo move frame, calibrated unless collecting
  3. wait for the longest movement's duration
  4. re-read positions and compare with the requested targets
  5. retry the servos still off by more than the tolerance, but only
     those that actually moved (a stuck servo is never retried)

Usage:

  from xarmctl import Controller, Servo

  async def main():
      async with Controller() as arm:
          print(await arm.get_battery_voltage())
          await arm.set_look(elevation=30.0, azimuth=-45.0)
          await arm.servo_off()

  asyncio.run(main())
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union

from xarmctl import kinematics
from xarmctl.calibration import CalibrationData
from xarmctl.codec import angle_to_raw, raw_to_angle, split_u16, u16_le
from xarmctl.constants import (
    CMD_GET_BATTERY_VOLTAGE,
    CMD_GET_SERVO_POSITION,
    CMD_SERVO_MOVE,
    CMD_SERVO_STOP,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MIN_DURATION_MS,
    DEFAULT_MS_PER_DEGREE,
    DEFAULT_TOLERANCE,
    MAX_ANGLE,
    MIN_ANGLE,
)
from xarmctl.errors import AngleOutOfRange, InvalidPayload
from xarmctl.transport import Transport
from xarmctl.types import JointAngles, Servo, ServoCalibration, clamp_angle

logger = logging.getLogger(__name__)

ServoLike = Union[Servo, int]

_MAX_DURATION_MS = 0xFFFF


@dataclass
class _PlannedMove:
    servo: Servo
    target: float           # requested, before calibration
    start: float
    movement_size: float
    raw_position: int
    duration_ms: int


class Controller:
    """
    Args:
        transport:        A Transport. Defaults to a fresh one that probes
                          USB HID, then Bluetooth, on connect().
        max_retries:      Upper bound on retry rounds per movement call.
        tolerance:        Degrees within which a servo counts as arrived.
                          Movements smaller than this are not sent at all.
        ms_per_degree:    Movement duration per degree travelled.
        min_duration_ms:  Floor for any movement's duration.
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        tolerance: float = DEFAULT_TOLERANCE,
        ms_per_degree: float = DEFAULT_MS_PER_DEGREE,
        min_duration_ms: int = DEFAULT_MIN_DURATION_MS,
    ) -> None:
        self.transport = transport if transport is not None else Transport()
        self.max_retries = max_retries
        self.tolerance = tolerance
        self.ms_per_degree = ms_per_degree
        self.min_duration_ms = min_duration_ms

        self.calibration = CalibrationData()
        # Servos left outside tolerance by the last movement call
        self._unconverged: dict[Servo, float] = {}

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the link. Raises NoDeviceFound when no arm is reachable."""
        await self.transport.connect()

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> "Controller":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_battery_voltage(self) -> float:
        data = await self.transport.request(CMD_GET_BATTERY_VOLTAGE)
        if len(data) < 2:
            raise InvalidPayload(f"Invalid battery voltage data: {data.hex(' ')}")
        return u16_le(data[0], data[1]) / 1000.0

    async def get_position(self, servo: ServoLike) -> float:
        servo = Servo(servo)
        positions = await self.get_positions([servo])
        if servo not in positions:
            raise InvalidPayload(f"No position reported for {servo.name}")
        return positions[servo]

    async def get_positions(self, servos: Iterable[ServoLike]) -> dict[Servo, float]:
        """
        Read several servos in one exchange.

        Reply layout: [count, (id, pos_lo, pos_hi) * count]. Ids that were
        not asked for are ignored; servos missing from the reply are left
        out of the result with a warning.
        """
        requested = list(dict.fromkeys(Servo(s) for s in servos))
        data = await self.transport.request(
            CMD_GET_SERVO_POSITION, bytes([len(requested)] + [int(s) for s in requested])
        )
        if not data:
            raise InvalidPayload("Empty servo position reply")

        wanted = set(requested)
        count = min(data[0], (len(data) - 1) // 3)
        positions: dict[Servo, float] = {}
        for i in range(count):
            sid, lo, hi = data[1 + i * 3: 4 + i * 3]
            if sid in wanted:
                positions[Servo(sid)] = raw_to_angle(u16_le(lo, hi))

        if len(positions) < len(requested):
            missing = [s.name for s in requested if s not in positions]
            logger.warning(
                "Expected %d servo positions, got %d (missing: %s)",
                len(requested), len(positions), ", ".join(missing),
            )
        return positions

    # ------------------------------------------------------------------
    # Movement
    # ------------------------------------------------------------------

    @property
    def unconverged(self) -> dict[Servo, float]:
        """Residual error of servos the last movement call could not settle."""
        return dict(self._unconverged)

    async def set_position(self, servo: ServoLike, angle: float) -> int:
        return await self.set_multiple_positions([(servo, angle)])

    async def set_multiple_positions(self, movements: Sequence[tuple[ServoLike, float]]) -> int:
        """
        Move several servos together and return the number of retry rounds.

        Raises AngleOutOfRange before anything is sent if a target lies
        outside [-125, 125]. Servos that cannot reach their target are not
        an error; they end up in `unconverged`, with NaN as the error of a
        servo that did not report its position.
        """
        targets: dict[Servo, float] = {}
        for servo, angle in movements:
            servo = Servo(servo)
            angle = float(angle)
            if not MIN_ANGLE <= angle <= MAX_ANGLE:
                raise AngleOutOfRange(servo.name, angle)
            targets[servo] = angle

        self._unconverged = {}
        retries = 0
        pending = targets
        while pending:
            outcome = await self._move_once(pending, is_retry=retries > 0)

            retry: dict[Servo, float] = {}
            for servo, (error, moved) in outcome.items():
                if math.isnan(error):
                    logger.warning("%s did not report its position; not retrying", servo.name)
                    self._unconverged[servo] = error
                    continue
                if abs(error) <= self.tolerance:
                    continue
                if moved:
                    retry[servo] = pending[servo]
                else:
                    logger.warning("%s did not move, off by %.2f; not retrying", servo.name, error)
                    self._unconverged[servo] = error

            if not retry:
                break
            if retries >= self.max_retries:
                logger.warning(
                    "Giving up after %d retries: %s", retries,
                    ", ".join(f"{s.name} off by {outcome[s][0]:.2f}" for s in retry),
                )
                self._unconverged.update({s: outcome[s][0] for s in retry})
                break

            retries += 1
            logger.info("Retrying move for %s", ", ".join(s.name for s in retry))
            pending = retry

        return retries

    async def set_look(self, elevation: float, azimuth: float) -> int:
        """Point the claw at (elevation, azimuth) in one batched movement."""
        angles = self.calculate_joint_angles(elevation)
        return await self.set_multiple_positions([
            (Servo.WRIST_TILT, angles.wrist),
            (Servo.ELBOW_TILT, angles.elbow),
            (Servo.SHOULDER_TILT, angles.shoulder),
            (Servo.BASE_SPIN, azimuth),
        ])

    def calculate_joint_angles(self, target_elevation: float) -> JointAngles:
        return kinematics.calculate_joint_angles(target_elevation)

    async def servo_off(self, servo: Optional[ServoLike] = None) -> None:
        """Cut power to one servo, or to all six when servo is None."""
        if servo is not None:
            ids = [int(Servo(servo))]
        else:
            ids = [int(s) for s in Servo]
        await self.transport.post(CMD_SERVO_STOP, bytes([len(ids)] + ids))

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def start_collecting_data(self) -> None:
        self.calibration.start_collecting()

    def calculate_calibration(self) -> dict[Servo, ServoCalibration]:
        return self.calibration.finish()

    def calibration_status(self) -> dict[Servo, ServoCalibration]:
        return dict(self.calibration.calibrations)

    def format_calibration_status(self) -> str:
        return "\n".join(self.calibration.status_lines())

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _move_once(
        self, targets: dict[Servo, float], is_retry: bool = False
    ) -> dict[Servo, tuple[float, bool]]:
        """
        One attempt. Returns {servo: (error, position_changed)} for servos
        commanded, and (NaN, False) for servos missing from a position reply.
        Observations are collected on the first attempt only.
        """
        current = await self.get_positions(targets)

        outcome: dict[Servo, tuple[float, bool]] = {}
        plan: list[_PlannedMove] = []
        for servo, target in targets.items():
            if servo not in current:
                outcome[servo] = (math.nan, False)
                continue
            start = current[servo]
            movement_size = target - start
            if abs(movement_size) < self.tolerance:
                continue
            adjusted = clamp_angle(self.calibration.adjust_target(servo, target, movement_size))
            duration = min(
                max(int(abs(movement_size) * self.ms_per_degree + 0.5), self.min_duration_ms),
                _MAX_DURATION_MS,
            )
            plan.append(_PlannedMove(
                servo=servo,
                target=target,
                start=start,
                movement_size=movement_size,
                raw_position=angle_to_raw(adjusted),
                duration_ms=duration,
            ))
            logger.debug(
                "Moving %s from %.2f to %.2f (sent %.2f, %d ms)",
                servo.name, start, target, adjusted, duration,
            )

        if not plan:
            return outcome

        batch_ms = max([self.min_duration_ms] + [m.duration_ms for m in plan])
        payload = [len(plan), *split_u16(batch_ms)]
        for move in plan:
            payload.extend([int(move.servo), *split_u16(move.raw_position)])

        await self.transport.post(CMD_SERVO_MOVE, bytes(payload))
        await asyncio.sleep(batch_ms / 1000.0)

        achieved = await self.get_positions([m.servo for m in plan])
        for move in plan:
            if move.servo not in achieved:
                outcome[move.servo] = (math.nan, False)
                continue
            position = achieved[move.servo]
            error = position - move.target
            logger.debug("%s is off by %.2f", move.servo.name, error)
            if not is_retry:
                self.calibration.collect(move.servo, move.movement_size, error)
            outcome[move.servo] = (error, position != move.start)
        return outcome
