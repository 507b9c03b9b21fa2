from datetime import datetime

from fastapi import APIRouter, Request

from logging_config import get_logger
from schemas.signaling import HealthResponse

logger = get_logger(__name__)

status_router = APIRouter(tags=["status"])


@status_router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Liveness probe with current room and connection counts."""
    hub = request.app.state.hub
    registry = request.app.state.room_registry
    return HealthResponse(
        status="ok",
        rooms=registry.room_count(),
        connections=hub.connection_count(),
        timestamp=datetime.now().isoformat(),
    )
