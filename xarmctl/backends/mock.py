"""
SimulatedArm — run xarmctl with no arm connected.

A stand-in for a hidapi device handle: it accepts the same write()/read()
calls and answers with correctly framed replies, so the whole stack
(Transport, codec, Controller) runs exactly as it would against the board.

  arm = SimulatedArm()
  controller = Controller(Transport.from_hid_device(arm))

Behaviour knobs, all keyed by servo id:

  offsets       Degrees added to successive moves of a servo, consumed one
                per move (then 0). {5: [2.0]} makes the first shoulder move
                overshoot by 2°.
  frozen_after  Number of moves a servo accepts before it stops responding
                to move commands. {5: 0} is a servo that never moves.
  silent        Servos left out of position replies.

Moves complete instantly; durations are ignored.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Iterable, Optional, Sequence

from xarmctl.codec import angle_to_raw, split_u16, u16_le
from xarmctl.constants import (
    CMD_GET_BATTERY_VOLTAGE,
    CMD_GET_SERVO_POSITION,
    CMD_SERVO_MOVE,
    CMD_SERVO_STOP,
    RAW_MAX,
    REPORT_ID,
    SIGNATURE,
)

_REPORT_SIZE = 64


class SimulatedArm:
    """
    Args:
        positions:     Initial angle per servo id (default 0° for ids 1-6).
        voltage:       Battery voltage reported, in volts.
        offsets:       See module docstring.
        frozen_after:  See module docstring.
        silent:        See module docstring.
        pad_reports:   Pad replies to 64 bytes like a real HID report.
    """

    def __init__(
        self,
        positions: Optional[dict[int, float]] = None,
        voltage: float = 7.4,
        offsets: Optional[dict[int, Sequence[float]]] = None,
        frozen_after: Optional[dict[int, int]] = None,
        silent: Iterable[int] = (),
        pad_reports: bool = True,
    ) -> None:
        initial = {sid: 0.0 for sid in range(1, 7)}
        initial.update(positions or {})
        self.raw_positions: dict[int, int] = {
            sid: angle_to_raw(angle) for sid, angle in initial.items()
        }
        self.voltage = voltage
        self.offsets: dict[int, deque] = {
            sid: deque(values) for sid, values in (offsets or {}).items()
        }
        self.frozen_after = dict(frozen_after or {})
        self.silent = set(silent)
        self.pad_reports = pad_reports

        self.move_counts: dict[int, int] = {}
        self.powered_off: set = set()
        # Every frame received, without the report id
        self.frames: list[bytes] = []
        self.closed = False

        self._replies: deque = deque()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # hidapi device interface
    # ------------------------------------------------------------------

    def write(self, data: list[int]) -> int:
        report = bytes(data)
        frame = report[1:] if report[:1] == bytes([REPORT_ID]) else report
        with self._lock:
            self.frames.append(frame)
            self._handle(frame)
        return len(report)

    def read(self, max_length: int, timeout_ms: int = 0) -> list[int]:
        with self._lock:
            if not self._replies:
                return []
            reply = self._replies.popleft()
        if self.pad_reports:
            reply = reply + bytes(_REPORT_SIZE - len(reply))
        return list(reply[:max_length])

    def close(self) -> None:
        self.closed = True

    # ------------------------------------------------------------------
    # Helpers for tests and the CLI
    # ------------------------------------------------------------------

    def commands(self, command: int) -> list[bytes]:
        """Payloads of every received frame with the given command byte."""
        return [f[4:] for f in self.frames if f[3] == command]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _handle(self, frame: bytes) -> None:
        if len(frame) < 4 or frame[0] != SIGNATURE or frame[1] != SIGNATURE:
            return
        command = frame[3]
        payload = frame[4:4 + frame[2] - 2]

        if command == CMD_GET_BATTERY_VOLTAGE:
            lo, hi = split_u16(int(round(self.voltage * 1000)))
            self._reply(command, [lo, hi])
        elif command == CMD_GET_SERVO_POSITION:
            self._reply_positions(payload)
        elif command == CMD_SERVO_MOVE:
            self._move(payload)
        elif command == CMD_SERVO_STOP:
            self.powered_off.update(payload[1:1 + payload[0]])

    def _reply_positions(self, payload: bytes) -> None:
        ids = [sid for sid in payload[1:1 + payload[0]] if sid not in self.silent]
        body = [len(ids)]
        for sid in ids:
            lo, hi = split_u16(self.raw_positions.get(sid, RAW_MAX // 2))
            body.extend([sid, lo, hi])
        self._reply(CMD_GET_SERVO_POSITION, body)

    def _move(self, payload: bytes) -> None:
        count = payload[0]
        for i in range(count):
            sid, lo, hi = payload[3 + i * 3: 6 + i * 3]
            moves = self.move_counts.get(sid, 0)
            self.move_counts[sid] = moves + 1
            if sid in self.frozen_after and moves >= self.frozen_after[sid]:
                continue
            raw = u16_le(lo, hi)
            pending = self.offsets.get(sid)
            if pending:
                raw += angle_to_raw(pending.popleft()) - angle_to_raw(0.0)
            self.raw_positions[sid] = max(0, min(RAW_MAX, raw))
            self.powered_off.discard(sid)

    def _reply(self, command: int, body: list[int]) -> None:
        self._replies.append(bytes([SIGNATURE, SIGNATURE, len(body) + 2, command] + body))
