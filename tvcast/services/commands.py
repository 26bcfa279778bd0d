"""
Command layer

User-facing operations shared by the HTTP surface and any chat front end.
Every function returns a structured result and logs failures instead of
raising them.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from tvcast.database import session_scope
from tvcast.schemas import ChannelListResponse, ChannelResponse, ProgrammeInfoResponse
from tvcast.services import channel_query_service, db_service
from tvcast.services.fetch_types import CommandResult
from tvcast.services.refresh_service import RefreshService
from tvcast.streaming.session_manager import SessionManager


logger = logging.getLogger(__name__)


async def execute_stream_channel(
    session_manager: SessionManager,
    name: str,
    voice_target: int,
) -> CommandResult:
    """Resolve a channel by name and stream it into the voice channel."""
    logger.info(f"Stream requested: {name} -> voice channel {voice_target}")
    try:
        async with session_scope() as db:
            channel = await db_service.find_channel_by_name(db, name)
    except (SQLAlchemyError, RuntimeError) as e:
        logger.error(f"Channel lookup failed: {e}", exc_info=True)
        return CommandResult(False, f"Channel lookup failed: {e}")

    if channel is None:
        return CommandResult(False, f"Channel not found: {name}")

    return await session_manager.start(channel, voice_target)


async def execute_stop_stream(session_manager: SessionManager) -> CommandResult:
    return await session_manager.stop()


async def execute_leave(session_manager: SessionManager) -> CommandResult:
    return await session_manager.leave()


async def execute_refresh(refresh_service: RefreshService, kind: str) -> CommandResult:
    """Forced refresh of 'all', 'channels' or 'programme'."""
    return await refresh_service.execute_refresh(kind)


async def list_channels(page: int = 1) -> ChannelListResponse:
    try:
        async with session_scope() as db:
            return await channel_query_service.list_channels(db, page)
    except (SQLAlchemyError, RuntimeError) as e:
        logger.error(f"Channel listing failed: {e}", exc_info=True)
        return ChannelListResponse(page=1, total_pages=1, total_channels=0, channels=[])


async def lookup_channel(name: str) -> ChannelResponse | None:
    try:
        async with session_scope() as db:
            return await channel_query_service.get_channel(db, name)
    except (SQLAlchemyError, RuntimeError) as e:
        logger.error(f"Channel lookup failed: {e}", exc_info=True)
        return None


async def get_programme_info(name: str) -> ProgrammeInfoResponse | None:
    try:
        async with session_scope() as db:
            return await channel_query_service.get_programme_info(db, name)
    except (SQLAlchemyError, RuntimeError) as e:
        logger.error(f"Programme lookup failed: {e}", exc_info=True)
        return None
