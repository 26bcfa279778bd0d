"""
Database operations for channel and programme records

Both collections are flat and replaced wholesale on every successful refresh.
"""
import logging
from collections.abc import Sequence
from datetime import datetime
from time import perf_counter

from sqlalchemy import delete, func, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tvcast.models import Channel, Programme
from tvcast.services.fetch_types import ChannelPayload, ProgrammePayload
from tvcast.utils.timezone import ensure_utc, from_epoch_seconds, utc_now


logger = logging.getLogger(__name__)

CHUNK_SIZE = 5000


def _channel_row(channel: ChannelPayload, now: datetime) -> dict[str, object]:
    return {
        "key": channel.storage_key,
        "tvg_id": channel.tvg_id or None,
        "display_name": channel.display_name,
        "channel_number": channel.channel_number,
        "logo_url": channel.logo_url,
        "group_title": channel.group_title,
        "country": channel.country,
        "stream_url": channel.stream_url,
        "created_at": channel.created_at or now,
    }


def _programme_row(programme: ProgrammePayload, now: datetime) -> dict[str, object]:
    return {
        "id": programme.id,
        "channel_id": programme.channel_id,
        "start": programme.start_iso,
        "stop": programme.stop_iso,
        "start_timestamp": programme.start_timestamp,
        "stop_timestamp": programme.stop_timestamp,
        "title": programme.title,
        "description": programme.description,
        "category": programme.category,
        "subtitle": programme.subtitle,
        "episode_num": programme.episode_num,
        "season": programme.season,
        "episode": programme.episode,
        "icon": programme.icon,
        "image": programme.image,
        "air_date": programme.air_date,
        "previously_shown": programme.previously_shown,
        "created_at": programme.created_at or now,
    }


def _to_channel_payload(row: Channel) -> ChannelPayload:
    return ChannelPayload(
        tvg_id=row.tvg_id or "",
        display_name=row.display_name,
        logo_url=row.logo_url,
        group_title=row.group_title,
        country=row.country,
        stream_url=row.stream_url,
        channel_number=row.channel_number,
        created_at=ensure_utc(row.created_at) if row.created_at else None,
        key=row.key,
    )


def _to_programme_payload(row: Programme) -> ProgrammePayload:
    return ProgrammePayload(
        id=row.id,
        channel_id=row.channel_id,
        start=from_epoch_seconds(row.start_timestamp),
        stop=from_epoch_seconds(row.stop_timestamp),
        title=row.title,
        description=row.description,
        category=row.category,
        subtitle=row.subtitle,
        episode_num=row.episode_num,
        season=row.season,
        episode=row.episode,
        icon=row.icon,
        image=row.image,
        air_date=row.air_date,
        previously_shown=row.previously_shown,
        created_at=ensure_utc(row.created_at) if row.created_at else None,
    )


async def _bulk_insert(db: AsyncSession, model, rows: list[dict[str, object]]) -> None:
    for start_index in range(0, len(rows), CHUNK_SIZE):
        await db.execute(insert(model), rows[start_index:start_index + CHUNK_SIZE])


async def replace_channels(db: AsyncSession, channels: Sequence[ChannelPayload]) -> int:
    """
    Replace the whole channel set.

    Duplicate keys keep their last occurrence.

    Returns:
        Number of channels stored
    """
    now = utc_now()
    deduped: dict[str, ChannelPayload] = {}
    for channel in channels:
        if not channel.storage_key:
            logger.warning("Skipping channel without id or key: %s", channel.display_name)
            continue
        deduped[channel.storage_key] = channel

    await db.execute(delete(Channel))
    await _bulk_insert(db, Channel, [_channel_row(c, now) for c in deduped.values()])

    logger.info("Stored %s channels", len(deduped))
    return len(deduped)


async def replace_programmes(db: AsyncSession, programmes: Sequence[ProgrammePayload]) -> int:
    """
    Replace the whole programme set.

    Returns:
        Number of programmes stored
    """
    loop_start = perf_counter()
    now = utc_now()
    rows = [_programme_row(p, now) for p in programmes]

    await db.execute(delete(Programme))
    await _bulk_insert(db, Programme, rows)

    logger.info("Stored %s programmes in %.2fs", len(rows), perf_counter() - loop_start)
    return len(rows)


async def get_channels(db: AsyncSession) -> list[ChannelPayload]:
    """All channels ordered by channel number, then display name."""
    result = await db.execute(
        select(Channel).order_by(Channel.channel_number, Channel.display_name, Channel.key)
    )
    return [_to_channel_payload(row) for row in result.scalars()]


async def find_channel_by_name(db: AsyncSession, name: str) -> ChannelPayload | None:
    """
    Look up a channel by display name, falling back to its id or key.

    Matching is case-insensitive and exact.
    """
    needle = name.strip().lower()
    if not needle:
        return None

    result = await db.execute(
        select(Channel)
        .where(func.lower(Channel.display_name) == needle)
        .order_by(Channel.channel_number, Channel.key)
        .limit(1)
    )
    row = result.scalars().first()
    if row is None:
        result = await db.execute(
            select(Channel)
            .where(or_(func.lower(Channel.tvg_id) == needle, func.lower(Channel.key) == needle))
            .limit(1)
        )
        row = result.scalars().first()

    return _to_channel_payload(row) if row is not None else None


async def get_programmes(
    db: AsyncSession,
    channel_id: str | None = None,
    *,
    ending_after: int | None = None,
    limit: int | None = None,
) -> list[ProgrammePayload]:
    """
    Programmes ordered by start time.

    Args:
        db: Database session
        channel_id: Restrict to one channel
        ending_after: Only programmes with stop_timestamp >= this epoch value
        limit: Maximum number of rows
    """
    stmt = select(Programme)
    if channel_id is not None:
        stmt = stmt.where(Programme.channel_id == channel_id)
    if ending_after is not None:
        stmt = stmt.where(Programme.stop_timestamp >= ending_after)
    stmt = stmt.order_by(Programme.start_timestamp, Programme.channel_id)
    if limit is not None:
        stmt = stmt.limit(limit)

    result = await db.execute(stmt)
    return [_to_programme_payload(row) for row in result.scalars()]


async def get_latest_programme_created_at(db: AsyncSession) -> datetime | None:
    """Creation time of the newest programme, None when there are none."""
    result = await db.execute(select(func.max(Programme.created_at)))
    value = result.scalar_one_or_none()
    if value is None:
        return None
    return ensure_utc(value)


async def has_programmes_ending_after(db: AsyncSession, timestamp: int) -> bool:
    """True if at least one programme is still airing or upcoming at the given epoch second."""
    result = await db.execute(
        select(Programme.id).where(Programme.stop_timestamp >= timestamp).limit(1)
    )
    return result.first() is not None
