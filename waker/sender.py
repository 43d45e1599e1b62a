"""
Wakegate - Wake Signal Sender
===============================
Sends exactly one Wake-on-LAN magic packet per call.

The packet itself (6 x 0xFF followed by the MAC repeated 16 times) is
built and broadcast by the `wakeonlan` library. The blocking socket
call runs in a worker thread so the event loop stays free.

Any failure is raised as SendError; the orchestrator turns it into a
failed run instead of retrying.
"""

import asyncio
import logging
import re

from wakeonlan import send_magic_packet

logger = logging.getLogger(__name__)

# 12 hex digits, optionally grouped as AA:BB:.., AA-BB-.. or AABB.CCDD.EEFF
_MAC_PATTERN = re.compile(
    r"^(?:[0-9A-Fa-f]{2}([:-]?)(?:[0-9A-Fa-f]{2}\1){4}[0-9A-Fa-f]{2}"
    r"|[0-9A-Fa-f]{4}\.[0-9A-Fa-f]{4}\.[0-9A-Fa-f]{4})$"
)


class SendError(Exception):
    """The magic packet could not be sent (bad address or socket failure)."""


def normalize_mac(mac: str) -> str:
    """
    Validate a MAC address and return it as AA:BB:CC:DD:EE:FF.

    Raises:
        SendError: If the value is not a 48-bit hardware address.
    """
    if not isinstance(mac, str) or not _MAC_PATTERN.match(mac.strip()):
        raise SendError(f"Invalid MAC address: {mac!r}")
    digits = re.sub(r"[^0-9A-Fa-f]", "", mac).upper()
    return ":".join(digits[i:i + 2] for i in range(0, 12, 2))


class MagicPacketSender:
    """
    Broadcasts magic packets with the wakeonlan library.

    Attributes:
        broadcast_ip: Destination broadcast address.
        port:         Destination UDP port (usually 9 or 7).
        interface:    Optional local address to send from.
    """

    def __init__(
        self,
        broadcast_ip: str = "255.255.255.255",
        port: int = 9,
        interface: str | None = None,
    ):
        self.broadcast_ip = broadcast_ip
        self.port = port
        self.interface = interface

    async def send(self, mac: str) -> None:
        """
        Send one magic packet to the given hardware address.

        Args:
            mac: Target MAC address.

        Raises:
            SendError: On a malformed address or a socket error.
        """
        target = normalize_mac(mac)
        kwargs = {"ip_address": self.broadcast_ip, "port": self.port}
        if self.interface:
            kwargs["interface"] = self.interface

        try:
            await asyncio.to_thread(send_magic_packet, target, **kwargs)
        except OSError as e:
            raise SendError(f"Broadcast to {self.broadcast_ip}:{self.port} failed: {e}") from e

        logger.info("Magic packet sent to %s via %s:%d", target, self.broadcast_ip, self.port)
