"""
Shared dataclasses used across the ingestion pipeline and the streaming session.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from tvcast.utils.timezone import format_utc, to_epoch_seconds


@dataclass(slots=True)
class ChannelPayload:
    """In-memory representation of a channel row before persistence."""
    tvg_id: str = ""
    display_name: str = ""
    logo_url: str = ""
    group_title: str = ""
    country: str = ""
    stream_url: str = ""
    channel_number: int = 0
    created_at: datetime | None = None
    key: str = ""

    @property
    def storage_key(self) -> str:
        """Stable record key: the source id, else the generated positional key."""
        return self.tvg_id or self.key


@dataclass(slots=True)
class ProgrammePayload:
    """In-memory representation of a programme row before persistence."""
    id: str
    channel_id: str
    start: datetime
    stop: datetime
    title: str
    description: str = ""
    category: str = ""
    subtitle: str | None = None
    episode_num: str | None = None
    season: int | None = None
    episode: int | None = None
    icon: str | None = None
    image: str | None = None
    air_date: str | None = None
    previously_shown: bool = False
    created_at: datetime | None = None

    @property
    def start_timestamp(self) -> int:
        return to_epoch_seconds(self.start)

    @property
    def stop_timestamp(self) -> int:
        return to_epoch_seconds(self.stop)

    @property
    def start_iso(self) -> str:
        return format_utc(self.start)

    @property
    def stop_iso(self) -> str:
        return format_utc(self.stop)


@dataclass(slots=True)
class GuideData:
    """Channels and programmes extracted from one XMLTV document."""
    channels: list[ChannelPayload] = field(default_factory=list)
    programmes: list[ProgrammePayload] = field(default_factory=list)


@dataclass(slots=True)
class CommandResult:
    """Outcome of a user-facing operation; core calls never raise to the caller."""
    success: bool
    message: str = ""

    def to_dict(self) -> dict:
        return {"success": self.success, "message": self.message}


__all__ = ["ChannelPayload", "ProgrammePayload", "GuideData", "CommandResult"]
