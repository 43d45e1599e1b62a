"""
Wakegate - WebSocket Session Gateway
======================================
One WakeSession per WebSocket connection. The session receives wake
requests, checks the password, runs the wake orchestrator and relays
every progress event to the browser in order.

Message types (client -> server):
    - "wakeup" : {"type": "wakeup",
                  "payload": {"password", "mac", "ip", "name"}}

Message types (server -> client):
    - "log"  : {"type": "log", "message": "..."}
    - "done" : {"type": "done", "success": true | false}

Every accepted wakeup request ends with exactly one "done" message.
Bad input never closes the connection: it is answered with a log line
and a failed "done". When the browser disconnects, the run in flight
is cancelled so no polling loop outlives its session.

Usage:
    sessions = SessionManager(gate, orchestrator)

    @app.websocket("/ws")
    async def ws_endpoint(websocket: WebSocket):
        await sessions.handle(websocket)
"""

import asyncio
import json
import logging
from contextlib import aclosing

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from gateway.auth import CredentialGate
from waker.models import DeviceIdentity, DoneEvent, LogEvent, ProgressEvent
from waker.orchestrator import WakeOrchestrator

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "Error: unauthorized operation!"
INTERNAL_ERROR_MESSAGE = "Internal server error."
BUSY_MESSAGE = "A wake request is already running in this session."


class WakeRequest(BaseModel):
    """Payload of an inbound 'wakeup' message."""
    password: str = ""
    mac: str = ""
    ip: str = ""
    name: str | None = ""


class SessionClosed(Exception):
    """The peer is gone; nothing more can be sent."""


class WakeSession:
    """
    Owns one WebSocket connection and at most one wake run at a time.

    Attributes:
        websocket:    The accepted WebSocket connection.
        gate:         Password checker.
        orchestrator: Shared wake state machine.
    """

    def __init__(self, websocket: WebSocket, gate: CredentialGate, orchestrator: WakeOrchestrator):
        self.websocket = websocket
        self.gate = gate
        self.orchestrator = orchestrator
        self._run_task: asyncio.Task | None = None

    @property
    def busy(self) -> bool:
        """True while a wake run is in flight."""
        return self._run_task is not None and not self._run_task.done()

    async def serve(self) -> None:
        """
        Receive messages until the peer disconnects.

        The in-flight run, if any, is cancelled before returning.
        """
        try:
            while True:
                message = await self.websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                await self._dispatch(raw)
        except WebSocketDisconnect:
            pass
        finally:
            await self.cancel()

    async def cancel(self) -> None:
        """Cancel the in-flight run and wait for it to unwind."""
        task = self._run_task
        if task is not None and not task.done():
            logger.info("Cancelling wake run: session closed")
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _dispatch(self, raw: str | bytes) -> None:
        """Parse one inbound message and start a run if it is a wake request."""
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            message = json.loads(raw)
            if not isinstance(message, dict):
                raise ValueError("message is not a JSON object")
            msg_type = message.get("type")
            if msg_type != "wakeup":
                logger.warning("Ignoring unsupported message type %r", msg_type)
                return
            request = WakeRequest.model_validate(message.get("payload"))
        except (ValueError, ValidationError) as e:
            logger.warning("Malformed WebSocket message: %s", e)
            await self._reply_safely(INTERNAL_ERROR_MESSAGE, finish=not self.busy)
            return

        if self.busy:
            await self._reply_safely(BUSY_MESSAGE, finish=False)
            return

        self._run_task = asyncio.create_task(self._run(request))

    async def _run(self, request: WakeRequest) -> None:
        """Authorize, then forward orchestrator events until 'done'."""
        done_sent = False
        try:
            if not await self.gate.authorize(request.password):
                logger.warning("Unauthorized wake request for %s", request.name or request.ip)
                await self._send(LogEvent(UNAUTHORIZED_MESSAGE))
                await self._send(DoneEvent(False))
                return

            device = DeviceIdentity(name=request.name or "", mac=request.mac, ip=request.ip)
            async with aclosing(self.orchestrator.run(device)) as events:
                async for event in events:
                    await self._send(event)
                    if isinstance(event, DoneEvent):
                        done_sent = True
        except SessionClosed:
            logger.info("Peer left before the wake run finished")
        except Exception:
            logger.exception("Wake run crashed")
            if not done_sent:
                await self._reply_safely(INTERNAL_ERROR_MESSAGE, finish=True)

    async def _reply_safely(self, message: str, finish: bool) -> None:
        """Send a log line (and a failed 'done' if finish), ignoring a closed peer."""
        try:
            await self._send(LogEvent(message))
            if finish:
                await self._send(DoneEvent(False))
        except SessionClosed:
            pass

    async def _send(self, event: ProgressEvent) -> None:
        try:
            await self.websocket.send_text(json.dumps(event.to_message(), ensure_ascii=False))
        except (WebSocketDisconnect, RuntimeError) as e:
            raise SessionClosed() from e


class SessionManager:
    """
    Tracks live WebSocket sessions.

    This is a simple in-memory manager suitable for single-server
    deployment. Sessions share nothing but the read-only gate and the
    stateless orchestrator.

    Attributes:
        active_sessions: Set of currently connected sessions.
    """

    def __init__(self, gate: CredentialGate, orchestrator: WakeOrchestrator):
        self.gate = gate
        self.orchestrator = orchestrator
        self.active_sessions: set[WakeSession] = set()

    async def handle(self, websocket: WebSocket) -> None:
        """
        Accept a connection and serve it until it closes.

        Args:
            websocket: The incoming WebSocket connection.
        """
        await websocket.accept()
        session = WakeSession(websocket, self.gate, self.orchestrator)
        self.active_sessions.add(session)
        logger.info("WebSocket client connected (%d active)", self.client_count)
        try:
            await session.serve()
        finally:
            self.active_sessions.discard(session)
            logger.info("WebSocket client disconnected (%d active)", self.client_count)

    async def shutdown(self) -> None:
        """Cancel every in-flight run. Called when the server stops."""
        for session in list(self.active_sessions):
            await session.cancel()

    @property
    def client_count(self) -> int:
        """Return the number of currently connected clients."""
        return len(self.active_sessions)
