"""
Wire codec for the xArm controller board.

FRAME
  [0x55, 0x55, length, command, payload...]      length = len(payload) + 2

  The USB HID link prefixes every outgoing frame with a 0x00 report id;
  the Bluetooth link sends the bare frame. Replies never carry the report
  id. HID replies arrive padded to the 64-byte report size, so bytes past
  the declared length are ignored.

POSITIONS
  Servo positions are unsigned 16-bit little-endian values in [0, 1000]
  covering -125°..125°. Encoding truncates, so a round trip can lose up to
  one raw step (0.25°). Callers clamp angles before encoding.
"""

from __future__ import annotations

from typing import Sequence, Union

from xarmctl.constants import ANGLE_SPAN, MIN_ANGLE, RAW_MAX, REPORT_ID, SIGNATURE
from xarmctl.errors import CommandMismatch, FramingError, SignatureMismatch, TruncatedFrame

_HEADER_LEN = 4
_MAX_PAYLOAD = 0xFF - 2

Buffer = Union[bytes, bytearray, Sequence[int]]


def encode_request(command: int, payload: Buffer = b"", report_id: bool = True) -> bytes:
    """Build an outgoing frame. report_id=False for the Bluetooth link."""
    payload = bytes(payload)
    if len(payload) > _MAX_PAYLOAD:
        raise ValueError(f"Payload of {len(payload)} bytes does not fit in one frame")
    header = [SIGNATURE, SIGNATURE, len(payload) + 2, command]
    if report_id:
        header.insert(0, REPORT_ID)
    return bytes(header) + payload


def decode_response(buffer: Buffer, expected_command: int) -> bytes:
    """Validate a reply frame and return its payload."""
    buf = bytes(buffer)
    if len(buf) < _HEADER_LEN:
        raise FramingError(f"Reply too short: {len(buf)} bytes ({buf.hex(' ')})")
    if buf[0] != SIGNATURE or buf[1] != SIGNATURE:
        raise SignatureMismatch(buf[0], buf[1])

    length = buf[2]
    if length < 2:
        raise FramingError(f"Invalid length byte {length}")
    if buf[3] != expected_command:
        raise CommandMismatch(expected_command, buf[3])

    declared = length - 2
    available = len(buf) - _HEADER_LEN
    if declared > available:
        raise TruncatedFrame(declared, available)
    return buf[_HEADER_LEN:_HEADER_LEN + declared]


def angle_to_raw(angle: float) -> int:
    return int((angle - MIN_ANGLE) * RAW_MAX / ANGLE_SPAN)


def raw_to_angle(raw: int) -> float:
    return raw * ANGLE_SPAN / RAW_MAX + MIN_ANGLE


def split_u16(value: int) -> tuple[int, int]:
    """Little-endian (lo, hi) bytes of a 16-bit value."""
    return value & 0xFF, (value >> 8) & 0xFF


def u16_le(lo: int, hi: int) -> int:
    return lo | (hi << 8)
