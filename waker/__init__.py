"""
Wakegate - Waker Package
==========================
The wake-on-LAN engine: everything needed to power on one device and
watch it come online, with no dependency on the web layer.

This package contains:
    - models.py       : Device identity, progress events, run states
    - prober.py       : Single-shot ping reachability check
    - sender.py       : Magic packet sender (wakeonlan library)
    - orchestrator.py : The wake state machine (probe -> send -> poll)

Usage:
    from waker import WakeOrchestrator, PingProber, MagicPacketSender

    orchestrator = WakeOrchestrator(PingProber(), MagicPacketSender())
    async for event in orchestrator.run(device):
        await websocket.send_json(event.to_message())
"""

from waker.models import DeviceIdentity, DoneEvent, LogEvent, RunState
from waker.orchestrator import WakeOrchestrator
from waker.prober import PingProber
from waker.sender import MagicPacketSender, SendError

__all__ = [
    "DeviceIdentity",
    "DoneEvent",
    "LogEvent",
    "MagicPacketSender",
    "PingProber",
    "RunState",
    "SendError",
    "WakeOrchestrator",
]
