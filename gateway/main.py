"""
Wakegate - FastAPI Application
================================
Creates and configures the FastAPI web application.

Responsibilities:
    - Load configuration and the password hash (fatal if missing)
    - Build the wake engine (prober, sender, orchestrator) from config
    - Register the REST API and the WebSocket endpoint
    - Mount the static frontend (public/) when present
    - Cancel in-flight wake runs on shutdown

Endpoints:
    POST /api/devices -> device list (password required)
    WS   /ws          -> wake requests and live progress
    GET  /            -> static frontend
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.staticfiles import StaticFiles

from gateway.auth import CredentialGate, load_credential_store
from gateway.config import ConfigManager
from gateway.devices import DeviceDirectory
from gateway.routes import create_router
from gateway.websocket import SessionManager
from waker.orchestrator import WakeOrchestrator
from waker.prober import PingProber
from waker.sender import MagicPacketSender


def build_orchestrator(config: dict) -> WakeOrchestrator:
    """Create the production wake engine from the 'wake' config section."""
    wake = config["wake"]
    sender = MagicPacketSender(
        broadcast_ip=wake["broadcast_ip"],
        port=int(wake["port"]),
        interface=wake.get("interface"),
    )
    return WakeOrchestrator.from_config(wake, PingProber(), sender)


def create_app(
    project_dir: str | None = None,
    orchestrator: WakeOrchestrator | None = None,
) -> FastAPI:
    """
    Application factory: create and configure the FastAPI instance.

    Args:
        project_dir:  Root directory of the Wakegate project.
                      If None, auto-detected from this file's location.
        orchestrator: Wake engine to use. Built from config.yaml if None.

    Returns:
        Configured FastAPI application ready to run with uvicorn.

    Raises:
        ConfigError: If the configuration or password hash is unusable.
    """
    # -- Resolve directories ---------------------------------------------------
    if project_dir is None:
        project_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

    # -- Load configuration (fatal on error) -----------------------------------
    config_manager = ConfigManager(project_dir)
    config = config_manager.load()
    store = load_credential_store(config, config_manager.load_env())

    # -- Initialize components -------------------------------------------------
    gate = CredentialGate(store)
    directory = DeviceDirectory(config_manager.devices_path(config))
    if orchestrator is None:
        orchestrator = build_orchestrator(config)
    sessions = SessionManager(gate, orchestrator)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await sessions.shutdown()

    # -- Create FastAPI app ----------------------------------------------------
    app = FastAPI(
        title="Wakegate",
        description="Wake-on-LAN console with live wake progress",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )

    # -- Store components on app state -----------------------------------------
    app.state.config = config
    app.state.gate = gate
    app.state.sessions = sessions

    # -- Register API routes ---------------------------------------------------
    app.include_router(create_router(gate=gate, directory=directory))

    # -- WebSocket endpoint ----------------------------------------------------
    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        Wake requests come in here; progress events go back out on the
        same connection until the run is done.
        """
        await sessions.handle(websocket)

    # -- Mount static frontend -------------------------------------------------
    # Mounted last so /api and /ws take precedence.
    static_dir = config_manager.static_dir(config)
    if static_dir and os.path.isdir(static_dir):
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")

    return app
