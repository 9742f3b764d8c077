"""
Unit Tests for Transport and the two links

Tests:
- HID exchange through a simulated board (report id, padding, timeout)
- Connection order: USB HID first, then Bluetooth, else NoDeviceFound
- Bluetooth notification and direct-read reply paths
"""

import asyncio
import os
import sys
import unittest
from unittest import mock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from xarmctl.backends.ble import BleLink
from xarmctl.backends.hid import HidLink
from xarmctl.backends.mock import SimulatedArm
from xarmctl.constants import (
    BLE_CHARACTERISTIC_UUID,
    BLE_SERVICE_UUID,
    CMD_GET_BATTERY_VOLTAGE,
    CMD_GET_SERVO_POSITION,
    CMD_SERVO_STOP,
)
from xarmctl.errors import (
    CommandMismatch,
    DeviceError,
    NoDeviceFound,
    ResponseTimeout,
    SignatureMismatch,
)
from xarmctl.transport import Transport, TransportKind


class _ScriptedDevice:
    """hidapi-like handle that replays canned reports."""

    def __init__(self, reports):
        self.reports = list(reports)
        self.written = []

    def write(self, data):
        self.written.append(bytes(data))
        return len(data)

    def read(self, max_length, timeout_ms=0):
        return list(self.reports.pop(0)) if self.reports else []

    def close(self):
        pass


class TestHidExchange(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.arm = SimulatedArm(voltage=7.4)
        self.transport = Transport.from_hid_device(self.arm)

    async def asyncTearDown(self):
        await self.transport.close()

    async def test_request_round_trip(self):
        payload = await self.transport.request(CMD_GET_BATTERY_VOLTAGE)
        self.assertEqual(payload, bytes([0xE8, 0x1C]))
        self.assertEqual(self.transport.kind, TransportKind.HID)

    async def test_hid_write_carries_report_id(self):
        device = _ScriptedDevice([b"\x55\x55\x02\x0f"])
        transport = Transport.from_hid_device(device)
        await transport.request(CMD_GET_BATTERY_VOLTAGE)
        self.assertEqual(device.written, [bytes([0x00, 0x55, 0x55, 0x02, 0x0F])])
        await transport.close()

    async def test_empty_read_is_timeout(self):
        await self.transport.send(CMD_SERVO_STOP, bytes([1, 1]))
        with self.assertRaises(ResponseTimeout):
            await self.transport.receive(CMD_SERVO_STOP)

    async def test_command_mismatch_propagates(self):
        transport = Transport.from_hid_device(_ScriptedDevice([b"\x55\x55\x02\x15"]))
        with self.assertRaises(CommandMismatch):
            await transport.request(CMD_GET_BATTERY_VOLTAGE)
        await transport.close()

    async def test_bad_signature_propagates(self):
        transport = Transport.from_hid_device(_ScriptedDevice([b"\xaa\x55\x02\x0f"]))
        with self.assertRaises(SignatureMismatch):
            await transport.request(CMD_GET_BATTERY_VOLTAGE)
        await transport.close()

    async def test_concurrent_requests_do_not_interleave(self):
        results = await asyncio.gather(
            self.transport.request(CMD_GET_SERVO_POSITION, bytes([1, 1])),
            self.transport.request(CMD_GET_SERVO_POSITION, bytes([1, 2])),
            self.transport.request(CMD_GET_BATTERY_VOLTAGE),
        )
        self.assertEqual(results[0][1], 1)
        self.assertEqual(results[1][1], 2)
        self.assertEqual(results[2], bytes([0xE8, 0x1C]))

    async def test_send_after_close_fails(self):
        await self.transport.close()
        self.assertTrue(self.arm.closed)
        with self.assertRaises(DeviceError):
            await self.transport.send(CMD_GET_BATTERY_VOLTAGE)

    async def test_driver_error_is_wrapped(self):
        device = mock.Mock()
        device.write.side_effect = OSError("pipe broken")
        link = HidLink(device)
        with self.assertRaises(DeviceError):
            await link.write(b"\x00\x55\x55\x02\x0f")
        await link.close()


class TestConnect(unittest.IsolatedAsyncioTestCase):

    async def test_prefers_hid(self):
        transport = Transport()
        with mock.patch.object(HidLink, "open", new=mock.AsyncMock()) as hid_open, \
                mock.patch.object(BleLink, "open", new=mock.AsyncMock()) as ble_open:
            kind = await transport.connect()
        self.assertEqual(kind, TransportKind.HID)
        hid_open.assert_awaited_once()
        ble_open.assert_not_awaited()

    async def test_falls_back_to_ble(self):
        transport = Transport()
        with mock.patch.object(HidLink, "open", new=mock.AsyncMock(side_effect=DeviceError("no usb"))), \
                mock.patch.object(BleLink, "open", new=mock.AsyncMock()) as ble_open:
            kind = await transport.connect()
        self.assertEqual(kind, TransportKind.BLE)
        ble_open.assert_awaited_once()

    async def test_no_device_found(self):
        transport = Transport()
        with mock.patch.object(HidLink, "open", new=mock.AsyncMock(side_effect=DeviceError("no usb"))), \
                mock.patch.object(BleLink, "open", new=mock.AsyncMock(side_effect=DeviceError("no ble"))):
            with self.assertRaises(NoDeviceFound):
                await transport.connect()
        self.assertFalse(transport.is_connected)

    async def test_ble_can_be_disabled(self):
        transport = Transport(allow_ble=False)
        with mock.patch.object(HidLink, "open", new=mock.AsyncMock(side_effect=DeviceError("no usb"))), \
                mock.patch.object(BleLink, "open", new=mock.AsyncMock()) as ble_open:
            with self.assertRaises(NoDeviceFound):
                await transport.connect()
        ble_open.assert_not_awaited()


def _fake_client(properties):
    characteristic = mock.Mock(properties=properties)
    service = mock.Mock()
    service.get_characteristic.return_value = characteristic
    client = mock.AsyncMock()
    client.services = mock.Mock()
    client.services.get_service.return_value = service
    return client, service, characteristic


class TestBleLink(unittest.IsolatedAsyncioTestCase):

    async def _open(self, properties):
        client, service, characteristic = _fake_client(properties)
        with mock.patch("xarmctl.backends.ble.BleakScanner.find_device_by_name",
                        new=mock.AsyncMock(return_value=object())), \
                mock.patch("xarmctl.backends.ble.BleakClient", return_value=client):
            link = BleLink()
            await link.open()
        return link, client, service, characteristic

    async def test_open_looks_up_characteristic_and_subscribes(self):
        link, client, service, characteristic = await self._open(["read", "write", "notify"])
        client.services.get_service.assert_called_once_with(BLE_SERVICE_UUID)
        service.get_characteristic.assert_called_once_with(BLE_CHARACTERISTIC_UUID)
        client.start_notify.assert_awaited_once()
        self.assertTrue(link.notifying)

    async def test_device_not_found(self):
        with mock.patch("xarmctl.backends.ble.BleakScanner.find_device_by_name",
                        new=mock.AsyncMock(return_value=None)):
            with self.assertRaises(DeviceError):
                await BleLink(scan_timeout=0.1).open()

    async def test_notification_reply(self):
        link, client, _, characteristic = await self._open(["write", "notify"])
        transport = Transport()
        transport._ble = link
        transport.kind = TransportKind.BLE

        async def _write(char, data, response):
            self.assertTrue(response)
            self.assertEqual(bytes(data), bytes([0x55, 0x55, 0x02, 0x0F]))
            link._on_notify(char, bytearray([0x55, 0x55, 0x04, 0x0F, 0xE8, 0x1C]))

        client.write_gatt_char.side_effect = _write
        payload = await transport.request(CMD_GET_BATTERY_VOLTAGE)
        self.assertEqual(payload, bytes([0xE8, 0x1C]))

    async def test_stale_notification_is_discarded(self):
        link, client, _, _ = await self._open(["write", "notify"])
        link._on_notify(None, bytearray([0x55, 0x55, 0x02, 0x15]))
        await link.write(b"\x55\x55\x02\x0f")
        with self.assertRaises(ResponseTimeout):
            await link.read(timeout=0.05)

    async def test_direct_read_without_notify(self):
        link, client, _, characteristic = await self._open(["read", "write"])
        client.read_gatt_char.return_value = bytearray([0x55, 0x55, 0x04, 0x0F, 0xE8, 0x1C])
        self.assertFalse(link.notifying)
        client.start_notify.assert_not_awaited()
        data = await link.read()
        client.read_gatt_char.assert_awaited_once_with(characteristic)
        self.assertEqual(data, bytes([0x55, 0x55, 0x04, 0x0F, 0xE8, 0x1C]))

    async def test_close_disconnects(self):
        link, client, _, _ = await self._open(["notify"])
        await link.close()
        client.stop_notify.assert_awaited_once()
        client.disconnect.assert_awaited_once()
        self.assertFalse(link.is_open)


if __name__ == "__main__":
    unittest.main()
