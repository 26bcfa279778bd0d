from pathlib import Path
import logging

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tvcast.errors import ConfigurationError
from tvcast.utils.logging_helpers import obfuscate


logger = logging.getLogger(__name__)


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    # IPTV sources
    playlist_url: str = ""
    xmltv_url: str = ""
    refresh_iptv_minutes: int = 1440  # Daily

    # Cache
    ram_cache: bool = True
    cache_dir: str = "./cache"

    # Storage
    database_path: str = "./data/tvcast.db"

    # Discord
    discord_bot_token: str = ""
    discord_guild_id: int = 0

    # Streaming
    default_stream_timeout_minutes: int = 10
    transcode: bool = True
    minimize_latency: bool = True
    bitrate_video: int = 5000  # kbps
    bitrate_video_max: int = 7500  # kbps
    stream_liveness_timeout_sec: int = 0  # 0 disables the watchdog

    # Fetching and parsing
    fetch_timeout_sec: float = 30.0
    fetch_max_retries: int = 3
    fetch_retry_delay_sec: float = 5.0
    fetch_max_bytes: int = 50 * 1024 * 1024
    guide_parse_timeout_sec: int = 600  # 0 disables timeout

    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("playlist_url", "xmltv_url", mode="before")
    @classmethod
    def strip_url(cls, value):
        """Trim whitespace around source URLs."""
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("playlist_url", "xmltv_url", mode="after")
    @classmethod
    def validate_source_url(cls, value: str, info) -> str:
        """Validate source URLs are HTTP/HTTPS."""
        if value and not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"{info.field_name} must be HTTP/HTTPS: {value}")
        return value

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, value: str) -> str:
        """Validate database path is accessible."""
        path = Path(value)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access database path '{value}': {exc}") from exc

    @field_validator(
        "refresh_iptv_minutes",
        "default_stream_timeout_minutes",
        "bitrate_video",
        "bitrate_video_max",
        "fetch_max_retries",
        "fetch_max_bytes",
    )
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        """Ensure integer settings are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("fetch_timeout_sec", "fetch_retry_delay_sec")
    @classmethod
    def validate_positive_floats(cls, value: float, info) -> float:
        """Ensure floating-point settings are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("guide_parse_timeout_sec", "stream_liveness_timeout_sec", "discord_guild_id")
    @classmethod
    def validate_non_negative_ints(cls, value: int, info) -> int:
        """Ensure optional integer settings are non-negative."""
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @model_validator(mode="after")
    def validate_streaming_configuration(self):
        """Validate cross-field configuration."""
        if self.bitrate_video_max < self.bitrate_video:
            raise ValueError("bitrate_video_max must be >= bitrate_video")

        if not self.playlist_url and not self.xmltv_url:
            logger.warning(
                "Neither PLAYLIST_URL nor XMLTV_URL configured - refresh will not retrieve any data"
            )

        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Playlist: %s", obfuscate(self.playlist_url, full=True) or "not configured")
        logger.info("  XMLTV: %s", obfuscate(self.xmltv_url, full=True) or "not configured")
        logger.info("  Refresh Interval: %s minutes", self.refresh_iptv_minutes)
        logger.info("  Cache: %s", "RAM" if self.ram_cache else self.cache_dir)
        logger.info("  Database: %s", self.database_path)
        logger.info("  Discord Bot Token: %s", obfuscate(self.discord_bot_token) or "not configured")
        logger.info("  Discord Guild: %s", self.discord_guild_id)
        logger.info("  Stream Idle Timeout: %s minutes", self.default_stream_timeout_minutes)
        logger.info(
            "  Stream Output: %s (bitrate=%sk max=%sk, minimize_latency=%s)",
            "transcode" if self.transcode else "passthrough",
            self.bitrate_video,
            self.bitrate_video_max,
            self.minimize_latency,
        )
        logger.info(
            "  Stream Liveness Timeout: %s",
            f"{self.stream_liveness_timeout_sec}s" if self.stream_liveness_timeout_sec else "disabled",
        )
        logger.info("  Debug: %s", self.debug)

    def ensure_sources(self) -> None:
        """Fail fast when no ingestion endpoint is configured."""
        if not self.playlist_url and not self.xmltv_url:
            raise ConfigurationError("At least one of PLAYLIST_URL or XMLTV_URL must be configured")
        if self.discord_bot_token and not self.discord_guild_id:
            raise ConfigurationError("DISCORD_GUILD_ID must be set when DISCORD_BOT_TOKEN is configured")


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
