"""
Data merging utilities

This module reconciles playlist channels with the guide-sourced channel set.
"""
import logging
from collections.abc import Sequence
from dataclasses import replace

from tvcast.services.fetch_types import ChannelPayload

logger = logging.getLogger(__name__)

PLAYLIST_KEY_PREFIX = "playlist_"


def merge_playlist_channels(
    existing_channels: Sequence[ChannelPayload],
    playlist_channels: Sequence[ChannelPayload]
) -> tuple[list[ChannelPayload], int, int]:
    """
    Merge playlist channels into the existing channel set.

    A playlist channel matching an existing one by id only contributes its
    stream URL, plus group title and logo when non-empty. The guide name and
    id are kept. Unmatched channels are appended, keyed by their id or by
    their playlist position.

    Args:
        existing_channels: Channels currently stored (usually guide-sourced)
        playlist_channels: Channels parsed from the playlist, in playlist order

    Returns:
        Tuple of (merged_channels, count_added, count_updated)
    """
    merged: dict[str, ChannelPayload] = {}
    for channel in existing_channels:
        merged[channel.storage_key] = replace(channel)

    added = 0
    updated = 0

    for index, channel in enumerate(playlist_channels):
        current = merged.get(channel.tvg_id) if channel.tvg_id else None
        if current is not None:
            current.stream_url = channel.stream_url
            if channel.group_title:
                current.group_title = channel.group_title
                current.country = channel.country or current.country
            if channel.logo_url:
                current.logo_url = channel.logo_url
            if not current.display_name and channel.display_name:
                current.display_name = channel.display_name
            updated += 1
            logger.debug("Updated channel %s with playlist data", channel.tvg_id)
            continue

        key = channel.tvg_id or f"{PLAYLIST_KEY_PREFIX}{index}"
        if key in merged:
            logger.debug("Playlist key %s seen before, replacing entry", key)
        else:
            added += 1
        merged[key] = replace(channel, key=key)

    return list(merged.values()), added, updated
