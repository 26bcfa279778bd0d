"""
Refresh Service

Coordinates fetching, parsing, merging and persistence of the channel catalog.
Both the scheduler and manual refresh requests go through the same two steps:

- guide step: XMLTV -> channels + programmes (full replace)
- playlist step: M3U -> stream URLs merged into the stored channel set
"""
from __future__ import annotations

import asyncio
import logging
import warnings
from dataclasses import replace

from sqlalchemy.exc import SQLAlchemyError

from tvcast.config import settings
from tvcast.database import session_scope
from tvcast.errors import DataIntegrityWarning, FetchError, ParseError
from tvcast.services import db_service
from tvcast.services.cache_store import PLAYLIST_CACHE_KEY, XMLTV_CACHE_KEY, CacheStore
from tvcast.services.fetch_types import ChannelPayload, CommandResult
from tvcast.services.fetcher import Fetcher
from tvcast.services.playlist_parser_service import parse_playlist
from tvcast.services.staleness import StalenessPolicy
from tvcast.services.xmltv_parser_service import parse_guide_async
from tvcast.utils.data_merging import merge_playlist_channels
from tvcast.utils.logging_helpers import (
    log_merge_summary,
    log_section_end,
    log_section_start,
    sanitize_url_for_logging,
)


logger = logging.getLogger(__name__)

REFRESH_ALL = "all"
REFRESH_CHANNELS = "channels"
REFRESH_PROGRAMME = "programme"
REFRESH_KINDS = (REFRESH_ALL, REFRESH_CHANNELS, REFRESH_PROGRAMME)

# Step failures that are reported instead of crashing the caller
STEP_ERRORS = (FetchError, ParseError, OSError, RuntimeError, SQLAlchemyError)


def _carry_playlist_fields(
    guide_channels: list[ChannelPayload],
    stored_channels: list[ChannelPayload],
) -> list[ChannelPayload]:
    """
    Keep stream data across a guide refresh.

    Guide channels get url/group/country from the stored channel with the same
    id; stored channels that only exist in the playlist are kept as they are.
    """
    stored_by_id = {c.tvg_id: c for c in stored_channels if c.tvg_id}
    guide_ids = {c.tvg_id for c in guide_channels}

    result = []
    for channel in guide_channels:
        stored = stored_by_id.get(channel.tvg_id)
        if stored is not None:
            channel = replace(
                channel,
                stream_url=stored.stream_url,
                group_title=stored.group_title,
                country=stored.country,
            )
        result.append(channel)

    for stored in stored_channels:
        if stored.stream_url and stored.tvg_id not in guide_ids:
            result.append(stored)

    return result


class RefreshService:
    """Guide and playlist refresh steps plus the combined cycle"""

    def __init__(
        self,
        fetcher: Fetcher,
        cache: CacheStore,
        *,
        playlist_url: str | None = None,
        xmltv_url: str | None = None,
        staleness: StalenessPolicy | None = None,
        parse_timeout_seconds: int | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache
        self.playlist_url = settings.playlist_url if playlist_url is None else playlist_url
        self.xmltv_url = settings.xmltv_url if xmltv_url is None else xmltv_url
        self.staleness = staleness or StalenessPolicy()
        self.parse_timeout_seconds = (
            settings.guide_parse_timeout_sec if parse_timeout_seconds is None else parse_timeout_seconds
        )
        # Guide and playlist steps both rewrite the channel set
        self._store_lock = asyncio.Lock()

    async def populate_from_guide(self, *, force: bool) -> bool:
        """
        Guide step: fetch, parse and store channels and programmes.

        Args:
            force: Skip the staleness check

        Returns:
            True if stored data was replaced

        Raises:
            FetchError: Download failed and nothing was cached
            ParseError: Parsing timed out
        """
        if not self.xmltv_url:
            logger.warning("XMLTV_URL not configured - skipping guide refresh")
            return False

        if not force and not await self.staleness.is_stale():
            logger.info("Guide data is fresh, skipping guide refresh")
            return False

        log_section_start(logger, "guide refresh")
        logger.info(f"Fetching guide from {sanitize_url_for_logging(self.xmltv_url)}")

        content = await self.fetcher.fetch(self.xmltv_url, XMLTV_CACHE_KEY)
        guide_path = await self.cache.path(XMLTV_CACHE_KEY)
        if guide_path is None:
            guide_path = await self.cache.put(XMLTV_CACHE_KEY, content)

        guide = await parse_guide_async(guide_path, parse_timeout_seconds=self.parse_timeout_seconds)
        if not guide.channels and not guide.programmes:
            logger.warning("Guide contained no channels or programmes, keeping stored data")
            return False

        known_ids = {channel.tvg_id for channel in guide.channels}
        orphans = {p.channel_id for p in guide.programmes if p.channel_id not in known_ids}
        if orphans:
            message = f"{len(orphans)} channel id(s) referenced by programmes are not in the guide"
            logger.warning(message)
            warnings.warn(message, DataIntegrityWarning, stacklevel=2)

        async with self._store_lock:
            async with session_scope() as db:
                channels = _carry_playlist_fields(guide.channels, await db_service.get_channels(db))
                channel_count = await db_service.replace_channels(db, channels)
                programme_count = await db_service.replace_programmes(db, guide.programmes)

        logger.info(f"Guide refresh stored {channel_count} channels and {programme_count} programmes")
        log_section_end(logger, "guide refresh")
        return True

    async def sync_playlist_channels(self, *, use_cache: bool = False) -> bool:
        """
        Playlist step: fetch, parse and merge playlist channels into the stored set.

        Args:
            use_cache: Read the cached playlist when present instead of downloading

        Returns:
            True if the channel set was replaced

        Raises:
            FetchError: Download failed and nothing was cached
        """
        if not self.playlist_url:
            logger.warning("PLAYLIST_URL not configured - skipping playlist refresh")
            return False

        log_section_start(logger, "playlist refresh")

        content = await self.cache.get(PLAYLIST_CACHE_KEY) if use_cache else None
        if content is not None:
            logger.info(f"Using cached playlist ({len(content)} bytes)")
        else:
            logger.info(f"Fetching playlist from {sanitize_url_for_logging(self.playlist_url)}")
            content = await self.fetcher.fetch(self.playlist_url, PLAYLIST_CACHE_KEY)

        playlist_channels = parse_playlist(content)
        if not playlist_channels:
            logger.warning("Playlist contained no channels, keeping stored data")
            return False

        async with self._store_lock:
            async with session_scope() as db:
                existing = await db_service.get_channels(db)
                merged, added, updated = merge_playlist_channels(existing, playlist_channels)
                await db_service.replace_channels(db, merged)

        log_merge_summary(logger, len(merged), added, updated)
        log_section_end(logger, "playlist refresh")
        return True

    async def refresh_all(self) -> list[str]:
        """
        Forced guide step, forced playlist step, then cache cleared.

        Each step runs even if the other failed.

        Returns:
            Error messages of failed steps (empty on full success)
        """
        errors = []

        try:
            await self.populate_from_guide(force=True)
        except STEP_ERRORS as e:
            logger.error(f"Guide refresh failed: {e}", exc_info=True)
            errors.append(f"guide: {e}")

        try:
            await self.sync_playlist_channels()
        except STEP_ERRORS as e:
            logger.error(f"Playlist refresh failed: {e}", exc_info=True)
            errors.append(f"playlist: {e}")

        await self.cache.clear()
        return errors

    async def run_cycle(self) -> None:
        """Scheduled refresh tick"""
        logger.info("Refresh cycle started")
        errors = await self.refresh_all()
        if errors:
            logger.error(f"Refresh cycle finished with errors: {'; '.join(errors)}")
        else:
            logger.info("Refresh cycle completed successfully")

    async def initial_refresh(self) -> None:
        """Startup refresh: guide only when stale, playlist from cache when possible"""
        log_section_start(logger, "initial refresh")
        try:
            await self.populate_from_guide(force=False)
        except STEP_ERRORS as e:
            logger.error(f"Initial guide refresh failed: {e}", exc_info=True)

        try:
            await self.sync_playlist_channels(use_cache=True)
        except STEP_ERRORS as e:
            logger.error(f"Initial playlist refresh failed: {e}", exc_info=True)

        await self.cache.clear()
        log_section_end(logger, "initial refresh")

    async def execute_refresh(self, kind: str) -> CommandResult:
        """
        Manual forced refresh.

        Args:
            kind: 'all', 'channels' or 'programme'
        """
        logger.info(f"Manual refresh requested: {kind}")

        if kind == REFRESH_ALL:
            errors = await self.refresh_all()
            if errors:
                return CommandResult(False, f"Refresh failed: {'; '.join(errors)}")
            return CommandResult(True, "Refreshed channels and programme guide")

        if kind == REFRESH_CHANNELS:
            try:
                await self.sync_playlist_channels()
            except STEP_ERRORS as e:
                logger.error(f"Playlist refresh failed: {e}", exc_info=True)
                return CommandResult(False, f"Refresh failed: {e}")
            return CommandResult(True, "Refreshed channels")

        if kind == REFRESH_PROGRAMME:
            try:
                await self.populate_from_guide(force=True)
            except STEP_ERRORS as e:
                logger.error(f"Guide refresh failed: {e}", exc_info=True)
                return CommandResult(False, f"Refresh failed: {e}")
            return CommandResult(True, "Refreshed programme guide")

        return CommandResult(False, f"Unknown refresh type: {kind}")
