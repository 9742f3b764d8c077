"""
Unit Tests for the wire codec

Tests frame encoding/decoding and the angle <-> raw position mapping:
- Frame layout with and without the HID report id
- Rejection of short, mis-signed, mismatched and truncated replies
- Quantization bound and monotonicity of the position mapping
"""

import os
import sys
import unittest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from xarmctl.codec import (
    angle_to_raw,
    decode_response,
    encode_request,
    raw_to_angle,
    split_u16,
    u16_le,
)
from xarmctl.constants import CMD_GET_BATTERY_VOLTAGE, CMD_GET_SERVO_POSITION, CMD_SERVO_MOVE
from xarmctl.errors import (
    CommandMismatch,
    FramingError,
    ProtocolError,
    SignatureMismatch,
    TruncatedFrame,
)


class TestEncodeRequest(unittest.TestCase):

    def test_hid_frame_has_report_id(self):
        frame = encode_request(CMD_GET_SERVO_POSITION, bytes([1, 5]))
        self.assertEqual(frame, bytes([0x00, 0x55, 0x55, 0x04, 0x15, 0x01, 0x05]))

    def test_ble_frame_omits_report_id(self):
        frame = encode_request(CMD_GET_SERVO_POSITION, bytes([1, 5]), report_id=False)
        self.assertEqual(frame, bytes([0x55, 0x55, 0x04, 0x15, 0x01, 0x05]))

    def test_empty_payload_length_is_two(self):
        frame = encode_request(CMD_GET_BATTERY_VOLTAGE)
        self.assertEqual(frame, bytes([0x00, 0x55, 0x55, 0x02, 0x0F]))

    def test_oversized_payload_rejected(self):
        with self.assertRaises(ValueError):
            encode_request(CMD_SERVO_MOVE, bytes(254))


class TestDecodeResponse(unittest.TestCase):

    def test_returns_exact_payload(self):
        buf = bytes([0x55, 0x55, 0x04, 0x0F, 0xE8, 0x1C])
        self.assertEqual(decode_response(buf, CMD_GET_BATTERY_VOLTAGE), bytes([0xE8, 0x1C]))

    def test_ignores_report_padding(self):
        """HID reports are padded to 64 bytes; only the declared payload is returned."""
        buf = bytes([0x55, 0x55, 0x04, 0x0F, 0xE8, 0x1C]) + bytes(58)
        self.assertEqual(decode_response(buf, CMD_GET_BATTERY_VOLTAGE), bytes([0xE8, 0x1C]))

    def test_accepts_list_of_ints(self):
        self.assertEqual(decode_response([0x55, 0x55, 0x02, 0x0F], CMD_GET_BATTERY_VOLTAGE), b"")

    def test_rejects_short_buffers(self):
        for buf in (b"", b"\x55", b"\x55\x55", b"\x55\x55\x02"):
            with self.subTest(buf=buf):
                with self.assertRaises(FramingError):
                    decode_response(buf, CMD_GET_BATTERY_VOLTAGE)

    def test_rejects_bad_signature(self):
        for buf in (b"\x54\x55\x02\x0f", b"\x55\x54\x02\x0f", b"\x00\x55\x55\x02\x0f"):
            with self.subTest(buf=buf):
                with self.assertRaises(SignatureMismatch):
                    decode_response(buf, CMD_GET_BATTERY_VOLTAGE)

    def test_rejects_other_command(self):
        with self.assertRaises(CommandMismatch) as cm:
            decode_response(b"\x55\x55\x02\x15", CMD_GET_BATTERY_VOLTAGE)
        self.assertEqual(cm.exception.expected, CMD_GET_BATTERY_VOLTAGE)
        self.assertEqual(cm.exception.actual, CMD_GET_SERVO_POSITION)

    def test_rejects_truncated_frame(self):
        buf = bytes([0x55, 0x55, 0x08, 0x15, 0x02, 0x05, 0xF4])
        with self.assertRaises(TruncatedFrame) as cm:
            decode_response(buf, CMD_GET_SERVO_POSITION)
        self.assertEqual(cm.exception.declared, 6)
        self.assertEqual(cm.exception.available, 3)
        self.assertIsInstance(cm.exception, FramingError)

    def test_rejects_length_below_header(self):
        with self.assertRaises(FramingError):
            decode_response(b"\x55\x55\x01\x0f", CMD_GET_BATTERY_VOLTAGE)

    def test_all_errors_are_protocol_errors(self):
        for exc in (FramingError, TruncatedFrame, SignatureMismatch, CommandMismatch):
            self.assertTrue(issubclass(exc, ProtocolError))


class TestPositionMapping(unittest.TestCase):

    def test_endpoints(self):
        self.assertEqual(angle_to_raw(-125.0), 0)
        self.assertEqual(angle_to_raw(0.0), 500)
        self.assertEqual(angle_to_raw(125.0), 1000)
        self.assertEqual(raw_to_angle(0), -125.0)
        self.assertEqual(raw_to_angle(500), 0.0)
        self.assertEqual(raw_to_angle(1000), 125.0)

    def test_truncates(self):
        self.assertEqual(angle_to_raw(0.2), 500)
        self.assertEqual(angle_to_raw(0.26), 501)

    def test_round_trip_within_one_step(self):
        """Round trip error stays below one raw step (0.25°) across the domain."""
        previous_raw = -1
        angle = -125.0
        while angle <= 125.0:
            raw = angle_to_raw(angle)
            self.assertLess(abs(raw_to_angle(raw) - angle), 0.26)
            self.assertGreaterEqual(raw, previous_raw)
            previous_raw = raw
            angle += 0.07

    def test_u16_helpers(self):
        self.assertEqual(split_u16(0x1CE8), (0xE8, 0x1C))
        self.assertEqual(u16_le(0xE8, 0x1C), 7400)
        self.assertEqual(u16_le(*split_u16(1000)), 1000)


if __name__ == "__main__":
    unittest.main()
