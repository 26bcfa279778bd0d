"""
FastAPI dependencies

Long-lived services are created in the application lifespan and kept on
app.state; routes receive them through these providers.
"""
from fastapi import HTTPException, Request

from tvcast.services.refresh_service import RefreshService
from tvcast.services.scheduler_service import RefreshScheduler
from tvcast.streaming.session_manager import SessionManager


def get_refresh_service(request: Request) -> RefreshService:
    return request.app.state.refresh_service


def get_scheduler(request: Request) -> RefreshScheduler:
    return request.app.state.scheduler


def get_session_manager(request: Request) -> SessionManager:
    """Session manager, 503 when no voice transport is configured."""
    session_manager = getattr(request.app.state, "session_manager", None)
    if session_manager is None:
        raise HTTPException(status_code=503, detail="Streaming is not configured")
    return session_manager
