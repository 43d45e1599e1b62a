"""
Wakegate - Wake Orchestrator
==============================
The wake state machine. One call to run() wakes one device and yields
progress events until exactly one DoneEvent ends the stream.

States:
    idle -> checking_initial -> sending -> polling -> succeeded | failed

    checking_initial : probe once; an already-awake device succeeds
                       immediately and no packet is sent
    sending          : one magic packet; a SendError fails the run
    polling          : up to poll_attempts rounds of (sleep, probe);
                       the first alive probe succeeds the run

Worst-case run length is bounded by poll_attempts x poll_interval
(15 x 6 s by default). Every await is a cancellation point, so a
session that goes away can stop its run at any time.

Usage:
    orchestrator = WakeOrchestrator(PingProber(), MagicPacketSender())
    async for event in orchestrator.run(DeviceIdentity("nas", mac, ip)):
        print(event.to_message())
"""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Protocol

from waker.models import (
    DeviceIdentity,
    DoneEvent,
    LogEvent,
    OrchestrationRun,
    ProgressEvent,
    RunState,
)
from waker.sender import SendError

logger = logging.getLogger(__name__)

INITIAL_PROBE_TIMEOUT = 2
PROBE_TIMEOUT = 2
POLL_INTERVAL = 6
POLL_ATTEMPTS = 15


class Prober(Protocol):
    async def probe(self, address: str, timeout: float) -> bool: ...


class Sender(Protocol):
    async def send(self, mac: str) -> None: ...


class WakeOrchestrator:
    """
    Drives the wake state machine for any number of independent runs.

    The orchestrator itself holds only collaborators and timing settings;
    all per-run state lives in an OrchestrationRun local to run(), so a
    single instance is shared by every session.

    Attributes:
        prober:                Reachability check (PingProber in production).
        sender:                Magic packet sender (MagicPacketSender).
        sleep:                 Coroutine used for the inter-poll wait.
        initial_probe_timeout: Timeout of the probe before sending.
        probe_timeout:         Timeout of each polling probe.
        poll_interval:         Seconds to wait before each polling probe.
        poll_attempts:         Maximum number of polling probes.
    """

    def __init__(
        self,
        prober: Prober,
        sender: Sender,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        initial_probe_timeout: float = INITIAL_PROBE_TIMEOUT,
        probe_timeout: float = PROBE_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        poll_attempts: int = POLL_ATTEMPTS,
    ):
        if poll_attempts < 1:
            raise ValueError("poll_attempts must be at least 1")
        self.prober = prober
        self.sender = sender
        self.sleep = sleep
        self.initial_probe_timeout = initial_probe_timeout
        self.probe_timeout = probe_timeout
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts

        self._steps = {
            RunState.CHECKING_INITIAL: self._check_initial,
            RunState.SENDING: self._send,
            RunState.POLLING: self._poll,
        }

    @classmethod
    def from_config(cls, wake_config: dict, prober: Prober, sender: Sender) -> "WakeOrchestrator":
        """
        Build an orchestrator from the 'wake' section of config.yaml.

        Args:
            wake_config: The merged 'wake' config section.
            prober:      Reachability prober to use.
            sender:      Wake signal sender to use.
        """
        return cls(
            prober,
            sender,
            initial_probe_timeout=float(wake_config.get("initial_probe_timeout", INITIAL_PROBE_TIMEOUT)),
            probe_timeout=float(wake_config.get("probe_timeout", PROBE_TIMEOUT)),
            poll_interval=float(wake_config.get("poll_interval", POLL_INTERVAL)),
            poll_attempts=int(wake_config.get("poll_attempts", POLL_ATTEMPTS)),
        )

    async def run(self, device: DeviceIdentity) -> AsyncIterator[ProgressEvent]:
        """
        Wake one device, yielding progress as it happens.

        The stream always ends with exactly one DoneEvent. Errors of the
        run (bad input, send failure, timeout) are reported as events,
        never raised. Cancellation propagates unchanged.

        Args:
            device: The device to wake.

        Yields:
            LogEvent lines, then one DoneEvent.
        """
        run = OrchestrationRun(device=device)

        missing = device.missing_fields()
        if missing:
            logger.warning("Rejected wake request for %s: missing %s", device.label, ", ".join(missing))
            yield LogEvent(f"Invalid wake request: missing {', '.join(missing)}")
            yield DoneEvent(False)
            return

        logger.info("Wake run started for %s (%s / %s)", device.label, device.mac, device.ip)
        run.transition(RunState.CHECKING_INITIAL)
        while not run.state.is_terminal:
            async for event in self._steps[run.state](run):
                yield event

        success = run.state is RunState.SUCCEEDED
        logger.info(
            "Wake run for %s finished: %s after %d poll(s)",
            device.label, run.state.value, run.attempt,
        )
        yield DoneEvent(success)

    # -- States ----------------------------------------------------------------

    async def _check_initial(self, run: OrchestrationRun) -> AsyncIterator[ProgressEvent]:
        run.alive = await self._probe(run.device.ip, self.initial_probe_timeout)
        if run.alive:
            yield LogEvent(f"{run.device.label} is already awake")
            run.transition(RunState.SUCCEEDED)
        else:
            run.transition(RunState.SENDING)

    async def _send(self, run: OrchestrationRun) -> AsyncIterator[ProgressEvent]:
        try:
            await self.sender.send(run.device.mac)
        except SendError as e:
            logger.error("Wake signal to %s failed: %s", run.device.label, e)
            yield LogEvent(f"Failed to send wake signal to {run.device.label}: {e}")
            run.transition(RunState.FAILED)
            return

        yield LogEvent(f"Wake signal sent, awaiting response from {run.device.label}...")
        run.transition(RunState.POLLING)

    async def _poll(self, run: OrchestrationRun) -> AsyncIterator[ProgressEvent]:
        """One polling attempt: wait, probe, then decide whether to go on."""
        run.attempt += 1
        await self.sleep(self.poll_interval)
        run.alive = await self._probe(run.device.ip, self.probe_timeout)

        if run.alive:
            yield LogEvent(f"Probe {run.attempt}...awake")
            run.transition(RunState.SUCCEEDED)
            return

        yield LogEvent(f"Probe {run.attempt}...still asleep")
        if run.attempt >= self.poll_attempts:
            yield LogEvent(f"{run.device.label} did not respond in time")
            run.transition(RunState.FAILED)

    async def _probe(self, address: str, timeout: float) -> bool:
        """Probe once, treating any prober error as 'not alive'."""
        try:
            return bool(await self.prober.probe(address, timeout))
        except Exception as e:
            logger.debug("Probe of %s raised %r, treating as asleep", address, e)
            return False
