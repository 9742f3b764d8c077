"""
HidLink — the wired USB link to the xArm controller board.

Uses hidapi (``import hid``) as the transport layer. hidapi is synchronous,
so every call runs in a single background thread via ThreadPoolExecutor and
is awaited from the event loop. The device handle is additionally guarded by
a threading.Lock that is held for exactly one write or one read.

REPORTS
  Outgoing: [0x00 report id, 0x55, 0x55, len, cmd, payload...]
  Incoming: up to 64 bytes, [0x55, 0x55, len, cmd, payload..., padding]
  An empty read means the 1000 ms read timeout expired.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

import hid

from xarmctl.constants import HID_READ_SIZE, HID_READ_TIMEOUT_MS, PRODUCT_ID, VENDOR_ID
from xarmctl.errors import DeviceError, ResponseTimeout

logger = logging.getLogger(__name__)

# Slack on top of the driver's own read timeout before giving up on the worker
_EXECUTOR_GRACE = 1.0


class HidLink:
    """
    Owns one hidapi device handle.

    Args:
        device:  An already-open handle exposing write(list[int]) -> int,
                 read(size, timeout_ms) -> list[int] and close(). When None,
                 open() creates a hid.device for the board's vendor/product id.
    """

    def __init__(self, device: Optional[Any] = None) -> None:
        self._device = device
        self._lock = threading.Lock()
        # Single-worker executor: serializes all blocking driver calls
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="xarm-hid")

    @property
    def is_open(self) -> bool:
        return self._device is not None

    async def open(self, vendor_id: int = VENDOR_ID, product_id: int = PRODUCT_ID) -> None:
        """Open the board by vendor/product id. Raises DeviceError."""

        def _open():
            device = hid.device()
            device.open(vendor_id, product_id)
            return device

        try:
            self._device = await self._run(_open)
        except (OSError, IOError) as e:
            raise DeviceError(f"Could not open HID device {vendor_id:04x}:{product_id:04x}: {e}") from e
        logger.info("Opened HID device %04x:%04x", vendor_id, product_id)

    async def write(self, report: bytes) -> None:
        device = self._require_open()

        def _write() -> int:
            with self._lock:
                return device.write(list(report))

        try:
            written = await self._run(_write)
        except (OSError, ValueError) as e:
            raise DeviceError(f"HID write failed: {e}") from e
        if written is not None and written < 0:
            raise DeviceError("HID write failed")

    async def read(self, timeout_ms: int = HID_READ_TIMEOUT_MS) -> bytes:
        """Read one report. Raises ResponseTimeout when nothing arrives."""
        device = self._require_open()

        def _read():
            with self._lock:
                return device.read(HID_READ_SIZE, timeout_ms)

        try:
            data = await asyncio.wait_for(
                self._run(_read),
                timeout=timeout_ms / 1000.0 + _EXECUTOR_GRACE,
            )
        except asyncio.TimeoutError as e:
            raise ResponseTimeout(f"HID read stalled for more than {timeout_ms} ms") from e
        except (OSError, ValueError) as e:
            raise DeviceError(f"HID read failed: {e}") from e

        if not data:
            raise ResponseTimeout(f"No HID report within {timeout_ms} ms")
        return bytes(data)

    async def close(self) -> None:
        device = self._device
        self._device = None

        def _close() -> None:
            with self._lock:
                device.close()

        try:
            if device is not None:
                await self._run(_close)
        finally:
            self._executor.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require_open(self) -> Any:
        if self._device is None:
            raise DeviceError("HID device is not open")
        return self._device

    async def _run(self, fn):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn)
