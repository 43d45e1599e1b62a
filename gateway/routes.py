"""
Wakegate - REST API Routes
============================
HTTP API endpoints for the wake console.

Route groups:
    /api/devices - Device list (password checked on every call)

The wake flow itself runs over the WebSocket at /ws, see websocket.py.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from gateway.auth import CredentialGate
from gateway.devices import DeviceDirectory


# =============================================================================
# Request/Response Models (Pydantic)
# =============================================================================

class DevicesRequest(BaseModel):
    """Fetch the device list with the admin password."""
    password: str | None = Field(None, description="Admin password")

class DevicesResponse(BaseModel):
    """Device list returned after a successful password check."""
    success: bool = True
    devices: list[dict] = Field(default_factory=list)

class ErrorResponse(BaseModel):
    success: bool = False
    message: str


# =============================================================================
# Router Factory
# =============================================================================

def create_router(gate: CredentialGate, directory: DeviceDirectory) -> APIRouter:
    """
    Create and configure the API router.

    Args:
        gate:      Checks the password sent with each request.
        directory: Source of the device list.

    Returns:
        Configured APIRouter with all endpoints registered.
    """
    router = APIRouter(prefix="/api")

    @router.post(
        "/devices",
        response_model=DevicesResponse,
        responses={401: {"model": ErrorResponse}},
    )
    async def list_devices(req: DevicesRequest):
        """
        Return the configured devices. 401 if the password is wrong.
        """
        if not await gate.authorize(req.password):
            return JSONResponse(
                status_code=401,
                content=ErrorResponse(message="Incorrect password!").model_dump(),
            )
        return DevicesResponse(devices=await directory.load())

    return router
