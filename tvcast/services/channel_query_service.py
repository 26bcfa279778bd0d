"""
Channel Query Service

Read operations over the stored catalog, shaped for API responses.
"""
import logging
import math

from sqlalchemy.ext.asyncio import AsyncSession

from tvcast.schemas import ChannelListResponse, ChannelResponse, ProgrammeInfoResponse, ProgrammeResponse
from tvcast.services import db_service
from tvcast.utils.timezone import to_epoch_seconds, utc_now

logger = logging.getLogger(__name__)

PAGE_SIZE = 25
UPCOMING_LIMIT = 5


async def list_channels(db: AsyncSession, page: int = 1, page_size: int = PAGE_SIZE) -> ChannelListResponse:
    """
    One page of channels, ordered by channel number then name.

    Pages are 1-based; out-of-range pages are clamped.
    """
    channels = await db_service.get_channels(db)
    total_pages = max(1, math.ceil(len(channels) / page_size))
    page = min(max(page, 1), total_pages)
    offset = (page - 1) * page_size

    logger.debug(f"Listing channels page {page}/{total_pages}")
    return ChannelListResponse(
        page=page,
        total_pages=total_pages,
        total_channels=len(channels),
        channels=[ChannelResponse.from_payload(c) for c in channels[offset:offset + page_size]],
    )


async def get_channel(db: AsyncSession, name: str) -> ChannelResponse | None:
    channel = await db_service.find_channel_by_name(db, name)
    return ChannelResponse.from_payload(channel) if channel else None


async def get_programme_info(db: AsyncSession, name: str) -> ProgrammeInfoResponse | None:
    """
    What is on now and next for a channel.

    Returns:
        None if the channel is unknown
    """
    channel = await db_service.find_channel_by_name(db, name)
    if channel is None:
        return None

    now = to_epoch_seconds(utc_now())
    programmes = []
    if channel.tvg_id:
        programmes = await db_service.get_programmes(
            db,
            channel.tvg_id,
            ending_after=now,
            limit=UPCOMING_LIMIT + 1,
        )

    current = None
    if programmes and programmes[0].start_timestamp <= now:
        current = ProgrammeResponse.from_payload(programmes.pop(0))

    return ProgrammeInfoResponse(
        channel=ChannelResponse.from_payload(channel),
        current=current,
        upcoming=[ProgrammeResponse.from_payload(p) for p in programmes[:UPCOMING_LIMIT]],
    )
