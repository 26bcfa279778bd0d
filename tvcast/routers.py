from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from tvcast.dependencies import get_refresh_service, get_scheduler, get_session_manager
from tvcast.schemas import (
    ChannelListResponse,
    ChannelResponse,
    CommandResponse,
    ProgrammeInfoResponse,
    StreamStartRequest,
    StreamStatusResponse,
)
from tvcast.services import commands
from tvcast.services.refresh_service import REFRESH_KINDS, RefreshService
from tvcast.services.scheduler_service import RefreshScheduler
from tvcast.streaming.session_manager import SessionManager


logger = logging.getLogger(__name__)

main_router = APIRouter()


@main_router.get("/")
async def root(scheduler: Annotated[RefreshScheduler, Depends(get_scheduler)]) -> dict:
    """Root endpoint with service information"""
    next_run = scheduler.get_next_run_time()

    return {
        "service": "tvcast",
        "version": "0.1.0",
        "next_scheduled_refresh": next_run.isoformat() if next_run else None,
        "endpoints": {
            "channels": "/channels - List channels (paged)",
            "programmes": "/channels/{name}/programmes - Current and upcoming programmes",
            "refresh": f"/refresh/{{kind}} - Force a refresh ({', '.join(REFRESH_KINDS)})",
            "stream": "/stream - Stream status, /stream/start, /stream/stop, /stream/leave",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check(scheduler: Annotated[RefreshScheduler, Depends(get_scheduler)]) -> dict:
    """Health check endpoint"""
    next_run = scheduler.get_next_run_time()
    return {
        "status": "ok",
        "scheduler_running": scheduler.scheduler.running if scheduler.scheduler else False,
        "next_refresh": next_run.isoformat() if next_run else None
    }


@main_router.get("/channels", response_model=ChannelListResponse)
async def get_channels(page: Annotated[int, Query(ge=1)] = 1) -> ChannelListResponse:
    return await commands.list_channels(page)


@main_router.get("/channels/{name}", response_model=ChannelResponse)
async def get_channel(name: str) -> ChannelResponse:
    channel = await commands.lookup_channel(name)
    if channel is None:
        raise HTTPException(status_code=404, detail=f"Channel not found: {name}")
    return channel


@main_router.get("/channels/{name}/programmes", response_model=ProgrammeInfoResponse)
async def get_programmes(name: str) -> ProgrammeInfoResponse:
    """Programme currently airing on a channel and what follows"""
    info = await commands.get_programme_info(name)
    if info is None:
        raise HTTPException(status_code=404, detail=f"Channel not found: {name}")
    return info


@main_router.post("/refresh/{kind}", response_model=CommandResponse)
async def trigger_refresh(
    kind: str,
    refresh_service: Annotated[RefreshService, Depends(get_refresh_service)]
) -> CommandResponse:
    """
    Manually trigger a forced refresh

    kind is 'all', 'channels' (playlist only) or 'programme' (guide only)
    """
    logger.info(f"Manual refresh triggered via API: {kind}")
    result = await commands.execute_refresh(refresh_service, kind)

    if not result.success:
        status_code = 400 if kind not in REFRESH_KINDS else 500
        raise HTTPException(status_code=status_code, detail=result.message)

    return CommandResponse(**result.to_dict())


@main_router.get("/stream", response_model=StreamStatusResponse)
async def stream_status(
    session_manager: Annotated[SessionManager, Depends(get_session_manager)]
) -> StreamStatusResponse:
    return StreamStatusResponse(**session_manager.status())


@main_router.post("/stream/start", response_model=CommandResponse)
async def start_stream(
    request: StreamStartRequest,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)]
) -> CommandResponse:
    result = await commands.execute_stream_channel(session_manager, request.channel, request.voice_channel_id)
    return CommandResponse(**result.to_dict())


@main_router.post("/stream/stop", response_model=CommandResponse)
async def stop_stream(
    session_manager: Annotated[SessionManager, Depends(get_session_manager)]
) -> CommandResponse:
    result = await commands.execute_stop_stream(session_manager)
    return CommandResponse(**result.to_dict())


@main_router.post("/stream/leave", response_model=CommandResponse)
async def leave_voice(
    session_manager: Annotated[SessionManager, Depends(get_session_manager)]
) -> CommandResponse:
    result = await commands.execute_leave(session_manager)
    return CommandResponse(**result.to_dict())
