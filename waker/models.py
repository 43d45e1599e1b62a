"""
Wakegate - Wake Data Model
============================
Plain value types shared by the orchestrator and the web gateway.

Progress events map one-to-one onto the outbound WebSocket messages:

    LogEvent("...")   -> {"type": "log", "message": "..."}
    DoneEvent(True)   -> {"type": "done", "success": true}
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceIdentity:
    """
    The device a wake request targets.

    Attributes:
        name: Display name, used only in progress messages.
        mac:  Hardware address the magic packet is built from.
        ip:   Network address probed for reachability.
    """

    name: str
    mac: str
    ip: str

    @property
    def label(self) -> str:
        """Name for messages, falling back to the IP when no name is given."""
        return self.name or self.ip or "device"

    def missing_fields(self) -> list[str]:
        """Return the names of address fields that are empty."""
        return [name for name in ("mac", "ip") if not getattr(self, name)]


@dataclass(frozen=True)
class LogEvent:
    """A human-readable progress line."""

    message: str

    def to_message(self) -> dict[str, Any]:
        return {"type": "log", "message": self.message}


@dataclass(frozen=True)
class DoneEvent:
    """Terminal outcome of a run. Emitted exactly once, always last."""

    success: bool

    def to_message(self) -> dict[str, Any]:
        return {"type": "done", "success": self.success}


ProgressEvent = Union[LogEvent, DoneEvent]


class RunState(str, Enum):
    """States of the wake state machine."""

    IDLE = "idle"
    CHECKING_INITIAL = "checking_initial"
    SENDING = "sending"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.SUCCEEDED, RunState.FAILED)


@dataclass
class OrchestrationRun:
    """
    Mutable state of one wake run.

    Created by WakeOrchestrator.run() and never shared: two runs against
    the same device each get their own attempt counter.
    """

    device: DeviceIdentity
    state: RunState = RunState.IDLE
    attempt: int = 0
    alive: bool = False

    def transition(self, state: RunState) -> None:
        logger.debug("%s: %s -> %s", self.device.label, self.state.value, state.value)
        self.state = state
