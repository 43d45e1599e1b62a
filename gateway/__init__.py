"""
Wakegate - Gateway Package
============================
The web server in front of the wake engine.

This package provides:
- FastAPI web application serving the static console
- REST endpoint for the password-protected device list
- WebSocket endpoint that runs wake requests and streams their progress
- Shared-secret authentication against a bcrypt hash

Architecture:
    main.py      -> FastAPI app creation, static file serving, lifespan
    auth.py      -> Password hashing and the credential gate
    config.py    -> Read config.yaml and .env, startup validation
    devices.py   -> Read-only device list (devices.json)
    routes.py    -> REST API endpoint handlers
    websocket.py -> Per-connection wake sessions
"""
