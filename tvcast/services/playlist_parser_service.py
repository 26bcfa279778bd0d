"""
Playlist parser

Extracts channel records from extended M3U playlists. Providers disagree on
attribute order and completeness, so every #EXTINF line is run through an
ordered list of independent strategies and the first match wins.
"""
import logging
import re
from collections.abc import Callable, Iterable

from tvcast.errors import ParseError
from tvcast.services.fetch_types import ChannelPayload
from tvcast.utils.timezone import utc_now


logger = logging.getLogger(__name__)

EXTINF_PREFIX = "#EXTINF:"

STRICT_PATTERN = re.compile(
    r'#EXTINF:.*\s*channelID="(?P<channel_id>.*?)"\s*tvg-chno="(?P<tvg_chno>.*?)"'
    r'\s*tvg-name="(?P<tvg_name>.*?)"\s*tvg-id="(?P<tvg_id>.*?)"'
    r'\s*tvg-logo="(?P<tvg_logo>.*?)"\s*group-title="(?P<group_title>.*?)"'
)

ATTRIBUTE_PATTERNS = {
    name: re.compile(rf'{name}="([^"]+)"')
    for name in ("tvg-id", "tvg-name", "tvg-chno", "tvg-logo", "group-title")
}

QUALITY_SUFFIX = re.compile(r"\s+\([^)]+\)\s*$")

COUNTRY_SEPARATOR = ": |"

ParseStrategy = Callable[[str], ChannelPayload | None]


def _country_from_group(group_title: str) -> str:
    return group_title.split(COUNTRY_SEPARATOR)[0] if group_title else ""


def _attributes(line: str) -> dict[str, str]:
    """Order-independent lookup of the known attributes (empty values ignored)."""
    values = {}
    for name, pattern in ATTRIBUTE_PATTERNS.items():
        match = pattern.search(line)
        values[name] = match.group(1) if match else ""
    return values


def _trailing_name(line: str) -> str:
    """Text after the last comma, which most providers use for the channel name."""
    index = line.rfind(",")
    if index == -1:
        return ""
    return line[index + 1:].strip()


def _to_int(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def parse_strict(line: str) -> ChannelPayload | None:
    """Fixed attribute order: channelID, tvg-chno, tvg-name, tvg-id, tvg-logo, group-title."""
    match = STRICT_PATTERN.search(line)
    if not match:
        return None

    group_title = match.group("group_title")
    return ChannelPayload(
        tvg_id=match.group("tvg_id"),
        display_name=match.group("tvg_name"),
        logo_url=match.group("tvg_logo"),
        group_title=group_title,
        country=_country_from_group(group_title),
        channel_number=_to_int(match.group("channel_id")),
    )


def parse_attributes(line: str) -> ChannelPayload | None:
    """Attributes in any order; name falls back to the trailing text, then to the id."""
    if not line.startswith(EXTINF_PREFIX):
        return None

    attrs = _attributes(line)
    tvg_id = attrs["tvg-id"]
    name = attrs["tvg-name"] or _trailing_name(line) or tvg_id
    if not tvg_id and not name:
        return None

    logger.debug(f"Parsed attribute format channel: {name}")
    group_title = attrs["group-title"]
    return ChannelPayload(
        tvg_id=tvg_id,
        display_name=name,
        logo_url=attrs["tvg-logo"],
        group_title=group_title,
        country=_country_from_group(group_title),
        channel_number=_to_int(attrs["tvg-chno"]),
    )


def parse_lenient(line: str) -> ChannelPayload | None:
    """Whatever is available; quality suffixes like ' (1080p)' are stripped from the name."""
    if not line.startswith(EXTINF_PREFIX):
        return None

    logger.debug(f"Trying lenient parsing for line: {line[:100]}...")
    attrs = _attributes(line)
    tvg_id = attrs["tvg-id"]
    name = QUALITY_SUFFIX.sub("", _trailing_name(line)) or tvg_id
    if not name:
        return None

    group_title = attrs["group-title"]
    return ChannelPayload(
        tvg_id=tvg_id,
        display_name=name,
        logo_url=attrs["tvg-logo"],
        group_title=group_title,
        country=_country_from_group(group_title),
        channel_number=_to_int(attrs["tvg-chno"]),
    )


STRATEGIES: tuple[ParseStrategy, ...] = (parse_strict, parse_attributes, parse_lenient)


def parse_playlist_line(
    line: str,
    strategies: Iterable[ParseStrategy] = STRATEGIES,
) -> ChannelPayload | None:
    """
    Parse one #EXTINF line

    Args:
        line: Playlist line starting with #EXTINF
        strategies: Ordered strategies, first non-None result wins

    Returns:
        Channel entry without a stream URL, or None if no strategy matched
    """
    for strategy in strategies:
        entry = strategy(line)
        if entry is not None:
            return entry
    return None


def parse_playlist(content: str | bytes) -> list[ChannelPayload]:
    """
    Extract channels from a whole playlist document

    Each #EXTINF line opens a pending entry; the next non-comment, non-blank
    line is its stream URL. Lines that fail to parse are logged and skipped.

    Args:
        content: Playlist text (bytes are decoded as UTF-8, invalid sequences replaced)

    Returns:
        Channels in playlist order
    """
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")

    channels: list[ChannelPayload] = []
    pending: ChannelPayload | None = None

    for line_number, raw_line in enumerate(content.splitlines(), start=1):
        line = raw_line.strip()
        if line.startswith(EXTINF_PREFIX):
            try:
                pending = parse_playlist_line(line)
                if pending is None:
                    raise ParseError("no strategy matched")
            except (ParseError, re.error) as e:
                logger.warning(f"Skipping playlist line {line_number}: {e}")
                pending = None
        elif pending is not None and line and not line.startswith("#"):
            pending.stream_url = line
            pending.created_at = utc_now()
            channels.append(pending)
            pending = None

    logger.info(f"Extracted {len(channels)} channels from playlist")
    return channels
