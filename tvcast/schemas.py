from pydantic import BaseModel, Field, field_validator

from tvcast.services.fetch_types import ChannelPayload, ProgrammePayload


class ChannelResponse(BaseModel):
    """Channel data model"""
    key: str = Field(..., description="Storage key (tvg-id, or playlist_<index> for playlist-only channels)")
    tvg_id: str | None = Field(None, description="Source channel id")
    display_name: str = Field(..., description="Display name of the channel")
    channel_number: int = Field(0, description="Channel number, 0 when unknown")
    logo_url: str = ""
    group_title: str = ""
    country: str = ""
    playable: bool = Field(..., description="Whether a stream URL is known")

    @classmethod
    def from_payload(cls, channel: ChannelPayload) -> "ChannelResponse":
        return cls(
            key=channel.storage_key,
            tvg_id=channel.tvg_id or None,
            display_name=channel.display_name,
            channel_number=channel.channel_number,
            logo_url=channel.logo_url,
            group_title=channel.group_title,
            country=channel.country,
            playable=bool(channel.stream_url),
        )


class ProgrammeResponse(BaseModel):
    """Single programme data"""
    channel_id: str
    start: str = Field(..., description="ISO8601 UTC start time")
    stop: str = Field(..., description="ISO8601 UTC stop time")
    start_timestamp: int
    stop_timestamp: int
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

    @classmethod
    def from_payload(cls, programme: ProgrammePayload) -> "ProgrammeResponse":
        return cls(
            channel_id=programme.channel_id,
            start=programme.start_iso,
            stop=programme.stop_iso,
            start_timestamp=programme.start_timestamp,
            stop_timestamp=programme.stop_timestamp,
            title=programme.title,
            description=programme.description,
            category=programme.category,
            subtitle=programme.subtitle,
            episode_num=programme.episode_num,
            season=programme.season,
            episode=programme.episode,
            icon=programme.icon,
            image=programme.image,
            air_date=programme.air_date,
            previously_shown=programme.previously_shown,
        )


class ChannelListResponse(BaseModel):
    """One page of the channel catalog"""
    page: int
    total_pages: int
    total_channels: int
    channels: list[ChannelResponse]


class ProgrammeInfoResponse(BaseModel):
    """Current and upcoming programmes of a channel"""
    channel: ChannelResponse
    current: ProgrammeResponse | None = None
    upcoming: list[ProgrammeResponse] = Field(default_factory=list)


class CommandResponse(BaseModel):
    """Outcome of a command"""
    success: bool
    message: str = ""


class StreamStartRequest(BaseModel):
    """Stream request"""
    channel: str = Field(..., min_length=1, description="Channel display name, tvg-id or key")
    voice_channel_id: int = Field(..., gt=0, description="Discord voice channel id")

    @field_validator("channel")
    @classmethod
    def strip_channel(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("channel must not be blank")
        return v


class StreamStatusResponse(BaseModel):
    """Current session state"""
    state: str
    voice_channel_id: int | None = None
    channel: str | None = None
    started_at: str | None = None
    idle_seconds: float | None = None
