"""
Health and Status Endpoints for ArchGen Server.

- GET /api/health - liveness plus whether an OpenAI key is configured
- GET /api/status - session slots and per-session progress
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from archgen import __version__
from archgen.core.settings import SettingsManager
from archgen.server.models import SessionInfo
from archgen.server.routes.stream import get_settings
from archgen.server.session import get_session_manager

router = APIRouter()


class HealthResponse(BaseModel):
    """``degraded`` means the server is up but cannot reach the model."""

    status: str
    version: str
    model: str
    api_key_configured: bool


class StatusResponse(BaseModel):
    version: str
    uptime_seconds: Optional[float] = None
    max_sessions: int
    active_sessions: int
    active_runs: int
    sessions: List[SessionInfo]


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: SettingsManager = Depends(get_settings)) -> HealthResponse:
    has_key = bool(settings.get_api_key("openai"))
    return HealthResponse(
        status="healthy" if has_key else "degraded",
        version=__version__,
        model=settings.get_model("architecture_agent"),
        api_key_configured=has_key,
    )


@router.get("/status", response_model=StatusResponse)
async def server_status(request: Request) -> StatusResponse:
    """
    Session slots and the progress of every live session.

    Uptime comes from ``app.state.started_at``, set by the lifespan handler;
    it is None when the app runs without lifespan events.
    """
    manager = get_session_manager()
    sessions = await manager.get_all_sessions()

    started_at = getattr(request.app.state, "started_at", None)
    uptime = (datetime.now() - started_at).total_seconds() if started_at else None

    return StatusResponse(
        version=__version__,
        uptime_seconds=uptime,
        max_sessions=manager.max_sessions,
        active_sessions=len(sessions),
        active_runs=await manager.get_active_run_count(),
        sessions=[SessionInfo.from_session(session) for session in sessions.values()],
    )


__all__ = ["router"]
