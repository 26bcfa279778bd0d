"""
Tests for the command layer over a populated catalog.
"""
from datetime import timedelta

import pytest

from tvcast.database import session_scope
from tvcast.services import commands, db_service
from tvcast.services.fetch_types import ChannelPayload, ProgrammePayload
from tvcast.streaming.pipeline import PipelineOptions
from tvcast.streaming.session_manager import SessionManager
from tvcast.utils.timezone import utc_now


@pytest.fixture
async def catalog(db):
    now = utc_now().replace(microsecond=0)
    channels = [
        ChannelPayload(tvg_id="news.one", display_name="News One", channel_number=101,
                       stream_url="http://streams.example.com/news-one.m3u8"),
        ChannelPayload(tvg_id="sport.hd", display_name="Sport HD", channel_number=102),
        ChannelPayload(key="playlist_2", display_name="Movies (1080p)",
                       stream_url="http://streams.example.com/movies"),
    ]
    programmes = [
        ProgrammePayload(id=f"news-{i}", channel_id="news.one",
                         start=now + timedelta(hours=i - 1), stop=now + timedelta(hours=i),
                         title=f"Bulletin {i}")
        for i in range(1, 8)
    ]
    programmes.append(ProgrammePayload(
        id="news-old", channel_id="news.one",
        start=now - timedelta(hours=3), stop=now - timedelta(hours=2), title="Yesterday",
    ))
    async with session_scope() as session:
        await db_service.replace_channels(session, channels)
        await db_service.replace_programmes(session, programmes)
    return channels


@pytest.fixture
def manager(fake_transport, pipeline_factory):
    return SessionManager(
        fake_transport,
        pipeline_factory=pipeline_factory,
        options=PipelineOptions(),
        settle_delay=0,
        stop_grace=0,
        idle_timeout=600,
        liveness_timeout=0,
    )


class TestChannelQueries:

    @pytest.mark.asyncio
    async def test_list_channels_orders_and_pages(self, catalog):
        listing = await commands.list_channels(page=1)

        assert listing.total_channels == 3
        assert listing.total_pages == 1
        assert [c.key for c in listing.channels] == ["playlist_2", "news.one", "sport.hd"]
        assert [c.playable for c in listing.channels] == [True, True, False]

    @pytest.mark.asyncio
    async def test_out_of_range_page_is_clamped(self, catalog):
        listing = await commands.list_channels(page=9)

        assert listing.page == 1

    @pytest.mark.asyncio
    async def test_lookup_is_case_insensitive(self, catalog):
        channel = await commands.lookup_channel("news ONE")

        assert channel.key == "news.one"

    @pytest.mark.asyncio
    async def test_lookup_falls_back_to_key(self, catalog):
        assert (await commands.lookup_channel("sport.hd")).display_name == "Sport HD"
        assert await commands.lookup_channel("Nope") is None

    @pytest.mark.asyncio
    async def test_programme_info_current_and_upcoming(self, catalog):
        info = await commands.get_programme_info("News One")

        assert info.current.title == "Bulletin 1"
        assert [p.title for p in info.upcoming] == [f"Bulletin {i}" for i in range(2, 7)]

    @pytest.mark.asyncio
    async def test_programme_info_without_guide(self, catalog):
        info = await commands.get_programme_info("Movies (1080p)")

        assert info.current is None
        assert info.upcoming == []


class TestStreamCommands:

    @pytest.mark.asyncio
    async def test_stream_known_channel(self, catalog, manager):
        result = await commands.execute_stream_channel(manager, "news one", 77)

        assert result.success
        assert result.message == "Streaming News One"
        await commands.execute_stop_stream(manager)

    @pytest.mark.asyncio
    async def test_stream_unknown_channel(self, catalog, manager, fake_transport):
        result = await commands.execute_stream_channel(manager, "Nope", 77)

        assert not result.success
        assert result.message == "Channel not found: Nope"
        assert fake_transport.joins == []

    @pytest.mark.asyncio
    async def test_stream_channel_without_url(self, catalog, manager):
        result = await commands.execute_stream_channel(manager, "Sport HD", 77)

        assert not result.success
        assert "no stream URL" in result.message

    @pytest.mark.asyncio
    async def test_stop_and_leave(self, catalog, manager):
        await commands.execute_stream_channel(manager, "News One", 77)

        stopped = await commands.execute_stop_stream(manager)
        left = await commands.execute_leave(manager)

        assert stopped.message == "Stopped streaming News One"
        assert left.message == "Left voice channel"
