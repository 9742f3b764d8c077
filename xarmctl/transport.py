"""
Transport — one request/response channel to the arm, over USB HID or Bluetooth.

Transport is a tagged variant: `kind` says which link is live and every
operation dispatches on it. Both links speak the same frame format; only
the HID link prefixes a report id.

  transport = Transport()
  await transport.connect()          # HID first, then Bluetooth
  payload = await transport.request(CMD_GET_BATTERY_VOLTAGE)

Timeouts, malformed frames and command mismatches are raised as distinct
exceptions and never retried here. Retry policy belongs to the Controller.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Optional

from xarmctl.backends.ble import BleLink
from xarmctl.backends.hid import HidLink
from xarmctl.codec import Buffer, decode_response, encode_request
from xarmctl.constants import BLE_DEVICE_NAME, BLE_SCAN_TIMEOUT
from xarmctl.errors import DeviceError, NoDeviceFound

logger = logging.getLogger(__name__)


class TransportKind(enum.Enum):
    HID = "hid"
    BLE = "ble"


class Transport:
    """
    Args:
        ble_name:          Advertised Bluetooth name to scan for.
        ble_scan_timeout:  Seconds to scan before declaring the arm absent.
        allow_ble:         Set False to only try the USB link.
    """

    def __init__(
        self,
        ble_name: str = BLE_DEVICE_NAME,
        ble_scan_timeout: float = BLE_SCAN_TIMEOUT,
        allow_ble: bool = True,
    ) -> None:
        self.ble_name = ble_name
        self.ble_scan_timeout = ble_scan_timeout
        self.allow_ble = allow_ble

        self.kind: Optional[TransportKind] = None
        self._hid: Optional[HidLink] = None
        self._ble: Optional[BleLink] = None
        # One exchange at a time: the board has no request multiplexing
        self._exchange_lock = asyncio.Lock()

    @classmethod
    def from_hid_device(cls, device: Any) -> "Transport":
        """Wrap an already-open hidapi-compatible handle (e.g. SimulatedArm)."""
        transport = cls(allow_ble=False)
        transport._hid = HidLink(device)
        transport.kind = TransportKind.HID
        return transport

    @property
    def is_connected(self) -> bool:
        return self.kind is not None

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> TransportKind:
        if self.kind is not None:
            return self.kind

        hid_link = HidLink()
        try:
            await hid_link.open()
        except DeviceError as e:
            await hid_link.close()
            logger.warning("Failed to connect via USB HID: %s", e)
        else:
            self._hid = hid_link
            self.kind = TransportKind.HID
            logger.info("Connected via USB HID")
            return self.kind

        if not self.allow_ble:
            raise NoDeviceFound("No xArm found on USB")

        ble_link = BleLink(device_name=self.ble_name, scan_timeout=self.ble_scan_timeout)
        try:
            await ble_link.open()
        except DeviceError as e:
            logger.warning("Failed to connect via Bluetooth: %s", e)
            raise NoDeviceFound("No xArm found on USB or Bluetooth") from e

        self._ble = ble_link
        self.kind = TransportKind.BLE
        logger.info("Connected via Bluetooth")
        return self.kind

    async def close(self) -> None:
        if self._hid is not None:
            await self._hid.close()
            self._hid = None
        if self._ble is not None:
            await self._ble.close()
            self._ble = None
        self.kind = None

    # ------------------------------------------------------------------
    # Exchange
    # ------------------------------------------------------------------

    async def send(self, command: int, payload: Buffer = b"") -> None:
        if self.kind is TransportKind.HID:
            await self._hid.write(encode_request(command, payload, report_id=True))
        elif self.kind is TransportKind.BLE:
            await self._ble.write(encode_request(command, payload, report_id=False))
        else:
            raise DeviceError("Transport is not connected")

    async def receive(self, command: int) -> bytes:
        if self.kind is TransportKind.HID:
            buf = await self._hid.read()
        elif self.kind is TransportKind.BLE:
            buf = await self._ble.read()
        else:
            raise DeviceError("Transport is not connected")
        return decode_response(buf, command)

    async def request(self, command: int, payload: Buffer = b"") -> bytes:
        """Send a command and return the payload of its reply."""
        async with self._exchange_lock:
            await self.send(command, payload)
            return await self.receive(command)

    async def post(self, command: int, payload: Buffer = b"") -> None:
        """Send a command that has no reply, without interleaving an exchange."""
        async with self._exchange_lock:
            await self.send(command, payload)
