"""
Wakegate - Reachability Prober
================================
One ICMP echo request against a host, with a bounded wait.

The system `ping` binary is used instead of raw sockets so the server
does not need CAP_NET_RAW. A probe never raises for network trouble:
timeouts, unreachable hosts and a missing `ping` binary all mean
"not alive". Retry policy belongs to the orchestrator, not here.
"""

import asyncio
import logging
import math
import sys

logger = logging.getLogger(__name__)

# Extra seconds allowed for the ping process itself to start and exit.
PROCESS_GRACE_SECONDS = 1.0


class PingProber:
    """
    Async reachability check backed by the system ping command.

    Attributes:
        binary:   Name or path of the ping executable.
        platform: sys.platform value used to pick the ping flags.
    """

    def __init__(self, binary: str = "ping", platform: str | None = None):
        self.binary = binary
        self.platform = platform or sys.platform

    def build_command(self, address: str, timeout: float) -> list[str]:
        """
        Build the argument list for a single echo request.

        Args:
            address: Host name or IP address to probe.
            timeout: Seconds to wait for the reply.

        Returns:
            The argv list for asyncio.create_subprocess_exec.
        """
        if self.platform.startswith("win"):
            return [self.binary, "-n", "1", "-w", str(int(timeout * 1000)), address]
        if self.platform == "darwin":
            # macOS: -W is in milliseconds, -t bounds the whole run.
            seconds = max(1, math.ceil(timeout))
            return [self.binary, "-c", "1", "-W", str(int(timeout * 1000)), "-t", str(seconds), address]
        return [self.binary, "-c", "1", "-W", str(max(1, math.ceil(timeout))), address]

    async def probe(self, address: str, timeout: float = 2.0) -> bool:
        """
        Ping the address once.

        Args:
            address: Host name or IP address to probe.
            timeout: Seconds to wait for an echo reply.

        Returns:
            True if the host answered, False on timeout or any error.
        """
        if not address or address.startswith("-"):
            # Never let the address be parsed as a ping option.
            return False

        try:
            proc = await asyncio.create_subprocess_exec(
                *self.build_command(address, timeout),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except (OSError, ValueError) as e:
            logger.error("Cannot run %s: %s", self.binary, e)
            return False

        try:
            returncode = await asyncio.wait_for(
                proc.wait(), timeout + PROCESS_GRACE_SECONDS
            )
        except asyncio.TimeoutError:
            logger.debug("Ping to %s timed out", address)
            _kill(proc)
            return False
        except asyncio.CancelledError:
            _kill(proc)
            raise

        return returncode == 0


def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill a ping process that is still running."""
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
