"""
Wakegate - Device Directory
=============================
Read-only access to the list of wakeable devices in devices.json.

The file is read on every request so edits show up without a restart.
It is never written by the server.

File format:
    [
        {"name": "NAS", "mac": "AA:BB:CC:DD:EE:FF", "ip": "192.168.1.20"},
        ...
    ]
"""

import asyncio
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


class DeviceDirectory:
    """
    Loads the device list from a JSON file.

    Attributes:
        path: Absolute path to devices.json.
    """

    def __init__(self, path: str):
        self.path = path

    async def load(self) -> list[dict[str, Any]]:
        """
        Read the device list.

        A missing, unreadable or malformed file is logged and yields an
        empty list rather than an error response.

        Returns:
            The list of device entries, in file order.
        """
        try:
            devices = await asyncio.to_thread(self._read)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Cannot read device list %s: %s", self.path, e)
            return []

        if not isinstance(devices, list):
            logger.error("Device list %s must be a JSON array", self.path)
            return []
        return [d for d in devices if isinstance(d, dict)]

    def _read(self) -> Any:
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)
