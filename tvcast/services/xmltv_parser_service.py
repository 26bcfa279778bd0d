import asyncio
from pathlib import Path
from typing import Optional
from uuid import uuid4
import logging
import re

from lxml import etree # type: ignore

from tvcast.errors import ParseError
from tvcast.services.fetch_types import ChannelPayload, GuideData, ProgrammePayload
from tvcast.utils.timezone import DateFormatError, format_utc, parse_xmltv_time, utc_now

logger = logging.getLogger(__name__)

NUMERIC_NAME = re.compile(r"^\d+$")
NUMBER_PREFIXED_NAME = re.compile(r"^\d+\s")
XMLTV_NS_SYSTEM = "xmltv_ns"


def parse_xmltv_file(file_path: str | Path) -> GuideData:
    """
    Parse an XMLTV file and return channels and programmes

    The document is streamed with iterparse so large guides never sit in memory
    as a full tree. Every channel/programme element is handled on its own: a
    malformed element is logged and skipped.

    Args:
        file_path: Path to XMLTV file

    Returns:
        GuideData with channels and programmes; empty when the document itself is malformed

    Raises:
        FileNotFoundError: If file doesn't exist
        OSError: If file can't be read
    """
    logger.debug(f"Parsing XMLTV file: {file_path}")

    output = GuideData()
    channel_names: dict[str, str] = {}
    skipped_channels = 0
    skipped_programmes = 0

    try:
        for _, element in etree.iterparse(
            str(file_path),
            events=("end",),
            tag=("channel", "programme"),
            recover=False,
            huge_tree=True,
        ):
            if element.tag == "channel":
                try:
                    channel = _parse_channel(element)
                except ParseError as e:
                    skipped_channels += 1
                    logger.error(f"Channel extraction failed for \"{element.get('id') or 'unknown'}\": {e}")
                else:
                    output.channels.append(channel)
                    if channel.tvg_id and channel.display_name:
                        channel_names[channel.tvg_id] = channel.display_name
            else:
                try:
                    output.programmes.append(_parse_programme(element, channel_names))
                except ParseError as e:
                    skipped_programmes += 1
                    logger.error(f"Programme extraction failed for \"{_get_text(element, 'title') or 'unknown'}\": {e}")

            _release(element)
    except etree.XMLSyntaxError as e:
        logger.error(f"XML parsing failed: {e}")
        return GuideData()

    if skipped_channels or skipped_programmes:
        logger.warning(f"Skipped {skipped_channels} channels and {skipped_programmes} programmes")

    logger.info(f"XMLTV parsing complete: {len(output.channels)} channels, {len(output.programmes)} programmes")
    if output.programmes:
        _log_programme_statistics(output.programmes)

    return output


def _parse_channel(channel: etree._Element) -> ChannelPayload:
    """Extract a channel; numeric display-names are channel numbers, not names"""
    channel_id = channel.get("id")
    if not channel_id:
        raise ParseError("channel element without id attribute")

    channel_name = ""
    channel_num = ""
    for name_elem in channel.findall("display-name"):
        display_name = (name_elem.text or "").strip()
        if NUMERIC_NAME.match(display_name) and not channel_num:
            channel_num = display_name
        # "1 One Piece" style names give way to a plain "One Piece"
        elif not channel_name or NUMBER_PREFIXED_NAME.match(channel_name):
            channel_name = display_name

    icon_url = ""
    icon_elem = channel.find("icon")
    if icon_elem is not None:
        icon_url = icon_elem.get("src") or ""

    logger.debug(f"Extracted channel: {channel_id} -> {channel_name}")

    return ChannelPayload(
        tvg_id=channel_id,
        display_name=channel_name,
        logo_url=icon_url,
        channel_number=int(channel_num) if channel_num else 0,
        created_at=utc_now(),
    )


def _parse_programme(programme: etree._Element, channel_names: dict[str, str]) -> ProgrammePayload:
    """Parse single programme element"""
    channel_id = programme.get("channel") or ""
    title = _get_text(programme, "title", default="")

    # "One Piece: One Piece: The Movie" -> "One Piece: The Movie"
    channel_name = channel_names.get(channel_id)
    if channel_name and title.startswith(f"{channel_name}: "):
        title = title[len(channel_name) + 2:]

    start_str = programme.get("start")
    stop_str = programme.get("stop")
    if not start_str or not stop_str:
        raise ParseError(f"Programme missing required start/stop times: {title}")

    try:
        start = parse_xmltv_time(start_str)
        stop = parse_xmltv_time(stop_str)
    except DateFormatError as e:
        raise ParseError(str(e)) from e

    if start == stop:
        logger.warning(f"Programme \"{title}\" has identical start and stop times: {start_str}")
    elif stop < start:
        raise ParseError(f"Programme \"{title}\" stops before it starts: {start_str} - {stop_str}")

    episode_num, season, episode = _extract_episode_info(programme)

    icon = None
    icon_elem = programme.find("icon")
    if icon_elem is not None:
        icon = icon_elem.get("src")

    return ProgrammePayload(
        id=str(uuid4()),
        channel_id=channel_id,
        start=start,
        stop=stop,
        title=title,
        description=_get_text(programme, "desc", default=""),
        category=_get_text(programme, "category", default=""),
        subtitle=_get_text(programme, "sub-title"),
        episode_num=episode_num,
        season=season,
        episode=episode,
        icon=icon,
        image=_get_text(programme, "image"),
        air_date=_get_text(programme, "date"),
        previously_shown=programme.find("previously-shown") is not None,
        created_at=utc_now(),
    )


def _extract_episode_info(programme: etree._Element) -> tuple[Optional[str], Optional[int], Optional[int]]:
    """
    Read episode-num elements

    The xmltv_ns system encodes "season.episode.part" with 0-based indices,
    so both numbers are shifted to 1-based.

    Returns:
        Tuple of (raw episode string, season, episode)
    """
    episode_num = None
    season = None
    episode = None

    for element in programme.findall("episode-num"):
        raw_value = (element.text or "").strip()
        if not raw_value:
            continue
        episode_num = raw_value

        if element.get("system") == XMLTV_NS_SYSTEM:
            segments = [segment.strip() for segment in raw_value.split(".")]
            if len(segments) >= 2 and segments[0] and segments[1]:
                season_index = _leading_int(segments[0])
                episode_index = _leading_int(segments[1])
                if season_index is not None:
                    season = season_index + 1
                if episode_index is not None:
                    episode = episode_index + 1

    return episode_num, season, episode


def _leading_int(value: str) -> Optional[int]:
    """'3/10' -> 3 (xmltv_ns allows a total after a slash)"""
    match = re.match(r"\d+", value)
    return int(match.group(0)) if match else None


def _get_text(element: etree._Element, tag: str, default: Optional[str] = None) -> Optional[str]:
    """Safely extract text from XML element"""
    child = element.find(tag)
    if child is None or not child.text:
        return default
    return child.text.strip()


def _release(element: etree._Element) -> None:
    """Free memory held by already-processed siblings"""
    element.clear()
    parent = element.getparent()
    if parent is not None:
        while element.getprevious() is not None:
            del parent[0]


def _log_programme_statistics(programmes: list[ProgrammePayload]) -> None:
    channels = len({p.channel_id for p in programmes})
    logger.info(f"Parsed {len(programmes)} programmes across {channels} channels from XMLTV file")
    first = min(p.start for p in programmes)
    last = max(p.start for p in programmes)
    logger.info(f"Programme date range: {format_utc(first)} to {format_utc(last)}")


async def parse_guide_async(
    file_path: Path | str,
    *,
    parse_timeout_seconds: int | None = None,
) -> GuideData:
    """
    Parse XMLTV file asynchronously with timeout protection.

    File parsing is offloaded to thread pool to avoid blocking event loop.

    Keyword Args:
        parse_timeout_seconds: Timeout in seconds for parsing (0/None disables timeout)

    Raises:
        ParseError: If parsing exceeds timeout
        OSError: If the file can't be read
    """
    if isinstance(file_path, str):
        file_path = Path(file_path)

    logger.info(f"Parsing XMLTV file: {file_path}")
    logger.debug(f"  File size: {file_path.stat().st_size / 1024 / 1024:.2f} MB")

    effective_timeout = parse_timeout_seconds if parse_timeout_seconds and parse_timeout_seconds > 0 else None
    timeout_display = f"{effective_timeout}s" if effective_timeout else "disabled"

    loop = asyncio.get_running_loop()
    logger.debug("Offloading XML parsing to thread pool executor (timeout: %s)...", timeout_display)
    parse_task = loop.run_in_executor(None, parse_xmltv_file, str(file_path))
    try:
        if effective_timeout:
            guide = await asyncio.wait_for(parse_task, timeout=effective_timeout)
        else:
            guide = await parse_task
    except asyncio.TimeoutError as e:
        logger.error("XML parsing timed out after %s for %s", timeout_display, file_path)
        raise ParseError("XML parsing timed out - file may be too large or malformed") from e

    if not guide.channels:
        logger.warning("No channels found in XMLTV file")
    if not guide.programmes:
        logger.warning("No programmes found in XMLTV file")

    return guide
