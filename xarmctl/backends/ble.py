"""
BleLink — the wireless link to the xArm controller board.

Uses bleak, which is natively asyncio, so no worker thread is involved.

DISCOVERY
  Scan for a peripheral advertising the name "xArm" (5 s), connect, and look
  up characteristic 0000ffe1-... inside service 0000ffe0-...

REPLIES
  If the characteristic supports notifications the link subscribes once and
  every notification is pushed onto an asyncio.Queue; read() waits for the
  next one (1 s). Otherwise read() issues a direct GATT read.
  Frames on this link carry no report-id byte.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from xarmctl.constants import (
    BLE_CHARACTERISTIC_UUID,
    BLE_DEVICE_NAME,
    BLE_NOTIFY_TIMEOUT,
    BLE_SCAN_TIMEOUT,
    BLE_SERVICE_UUID,
)
from xarmctl.errors import DeviceError, ResponseTimeout

logger = logging.getLogger(__name__)


class BleLink:
    """
    Owns one BleakClient and the communication characteristic.

    Args:
        device_name:   Advertised name to match during the scan.
        scan_timeout:  Seconds to scan before giving up.
    """

    def __init__(
        self,
        device_name: str = BLE_DEVICE_NAME,
        scan_timeout: float = BLE_SCAN_TIMEOUT,
    ) -> None:
        self.device_name = device_name
        self.scan_timeout = scan_timeout

        self._client: Optional[BleakClient] = None
        self._characteristic = None
        self._notifications: asyncio.Queue[bytes] = asyncio.Queue()
        self._notifying = False

    @property
    def is_open(self) -> bool:
        return self._client is not None

    @property
    def notifying(self) -> bool:
        return self._notifying

    async def open(self) -> None:
        """Scan, connect and locate the characteristic. Raises DeviceError."""
        logger.info("Scanning for %s (%.0fs)...", self.device_name, self.scan_timeout)
        try:
            device = await BleakScanner.find_device_by_name(
                self.device_name, timeout=self.scan_timeout
            )
        except BleakError as e:
            raise DeviceError(f"Bluetooth scan failed: {e}") from e
        if device is None:
            raise DeviceError(f"{self.device_name} not found")

        client = BleakClient(device)
        try:
            await client.connect()
            characteristic = self._find_characteristic(client)
            if "notify" in characteristic.properties:
                await client.start_notify(characteristic, self._on_notify)
                self._notifying = True
        except BleakError as e:
            await self._safe_disconnect(client)
            raise DeviceError(f"Bluetooth connection to {self.device_name} failed: {e}") from e
        except DeviceError:
            await self._safe_disconnect(client)
            raise

        self._client = client
        self._characteristic = characteristic
        logger.info(
            "Connected to %s over Bluetooth (notifications %s)",
            self.device_name, "on" if self._notifying else "off",
        )

    async def write(self, frame: bytes) -> None:
        client = self._require_open()
        # A late notification from an earlier exchange must not be taken as this reply
        self._drain()
        try:
            await client.write_gatt_char(self._characteristic, frame, response=True)
        except BleakError as e:
            raise DeviceError(f"Bluetooth write failed: {e}") from e

    async def read(self, timeout: float = BLE_NOTIFY_TIMEOUT) -> bytes:
        client = self._require_open()
        if self._notifying:
            try:
                return await asyncio.wait_for(self._notifications.get(), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise ResponseTimeout(f"No notification within {timeout:.1f} s") from e
        try:
            return bytes(await client.read_gatt_char(self._characteristic))
        except BleakError as e:
            raise DeviceError(f"Bluetooth read failed: {e}") from e

    async def close(self) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        if self._notifying:
            try:
                await client.stop_notify(self._characteristic)
            except BleakError as e:
                logger.debug("stop_notify failed: %s", e)
            self._notifying = False
        await self._safe_disconnect(client)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _find_characteristic(self, client: BleakClient):
        service = client.services.get_service(BLE_SERVICE_UUID)
        if service is None:
            raise DeviceError(f"Service {BLE_SERVICE_UUID} not found")
        characteristic = service.get_characteristic(BLE_CHARACTERISTIC_UUID)
        if characteristic is None:
            raise DeviceError("Communication characteristic not found")
        return characteristic

    def _on_notify(self, _sender, data: bytearray) -> None:
        self._notifications.put_nowait(bytes(data))

    def _drain(self) -> None:
        while not self._notifications.empty():
            self._notifications.get_nowait()

    def _require_open(self) -> BleakClient:
        if self._client is None:
            raise DeviceError("Bluetooth link is not open")
        return self._client

    @staticmethod
    async def _safe_disconnect(client: BleakClient) -> None:
        try:
            await client.disconnect()
        except BleakError as e:
            logger.debug("Bluetooth disconnect failed: %s", e)
