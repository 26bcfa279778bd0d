"""
Pytest configuration and fixtures for tvcast tests.
"""
import asyncio
from pathlib import Path

import pytest

from tvcast.database import close_db, init_db
from tvcast.services.cache_store import CacheStore
from tvcast.services.fetch_types import ChannelPayload


@pytest.fixture
async def db(tmp_path):
    """Fresh SQLite database per test."""
    await init_db(str(tmp_path / "tvcast-test.db"))
    yield
    await close_db()


@pytest.fixture
def cache(tmp_path) -> CacheStore:
    return CacheStore(tmp_path / "cache")


@pytest.fixture
def sample_playlist():
    """Playlist exercising all three line formats."""
    return """#EXTM3U
#EXTINF:-1 channelID="101" tvg-chno="101" tvg-name="News One" tvg-id="news.one" tvg-logo="http://logo/news.png" group-title="US: | News",News One
http://streams.example.com/news-one.m3u8

#EXTINF:-1 tvg-logo="http://logo/sport.png" tvg-id="sport.hd" group-title="UK: | Sport",Sport HD
http://streams.example.com/sport
#EXTINF:-1,Movies (1080p)
# a comment between the entry and its URL
http://streams.example.com/movies
#EXTINF:-1
http://streams.example.com/broken
"""


@pytest.fixture
def sample_xmltv():
    """Sample XMLTV guide."""
    return """<?xml version="1.0" encoding="UTF-8"?>
<tv>
    <channel id="news.one">
        <display-name>101</display-name>
        <display-name>101 News One</display-name>
        <display-name>News One</display-name>
        <icon src="http://logo/news-guide.png"/>
    </channel>
    <channel id="sport.hd">
        <display-name>Sport HD</display-name>
    </channel>
    <programme start="20240101120000 +0200" stop="20240101130000 +0200" channel="news.one">
        <title>News One: Midday Report</title>
        <sub-title>Headlines</sub-title>
        <desc>Daily news broadcast</desc>
        <category>News</category>
        <episode-num system="xmltv_ns">2.9.0/1</episode-num>
        <episode-num system="onscreen">S03E10</episode-num>
        <icon src="http://img/report.png"/>
        <date>20240101</date>
        <previously-shown/>
    </programme>
    <programme start="20240101130000 +0000" stop="20240101140000 +0000" channel="sport.hd">
        <title>Match of the Day</title>
    </programme>
</tv>
"""


@pytest.fixture
def sample_xmltv_file(sample_xmltv, tmp_path) -> Path:
    guide = tmp_path / "guide.xml"
    guide.write_text(sample_xmltv, encoding="utf-8")
    return guide


@pytest.fixture
def playable_channel() -> ChannelPayload:
    return ChannelPayload(
        tvg_id="news.one",
        display_name="News One",
        stream_url="http://streams.example.com/news-one.m3u8",
    )


class FakePipeline:
    """Stands in for MediaPipeline without spawning ffmpeg."""

    instances: list["FakePipeline"] = []

    def __init__(self, url, options=None, events=None):
        self.url = url
        self.options = options
        self.events = events if events is not None else []
        self.started = False
        self.terminated = False
        self.last_output_at = None
        self._callbacks = []
        FakePipeline.instances.append(self)

    def on_exit(self, callback):
        self._callbacks.append(callback)

    async def start(self):
        self.started = True
        self.events.append(("start", self.url))

    async def read(self, size=8192):
        return b""

    async def terminate(self):
        self.terminated = True
        self.events.append(("terminate", self.url))

    def exit(self, returncode, stderr_tail=""):
        for callback in self._callbacks:
            callback(self, returncode, stderr_tail)


class FakeTransport:
    """Voice transport that records calls and plays until cancelled."""

    carries_video = True

    def __init__(self, spectators=1):
        self.channel_id = None
        self.spectators = spectators
        self.joins = []
        self.leaves = 0
        self.played = []
        self.play_error = None

    @property
    def connected_channel_id(self):
        return self.channel_id

    async def join(self, voice_target):
        self.joins.append(voice_target)
        self.channel_id = voice_target
        return True

    async def leave(self):
        self.leaves += 1
        self.channel_id = None

    def count_spectators(self, voice_target):
        return self.spectators

    async def play(self, pipeline, cancel_event: asyncio.Event):
        self.played.append(pipeline)
        if self.play_error is not None:
            raise self.play_error
        await cancel_event.wait()


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def pipeline_events():
    FakePipeline.instances = []
    return []


@pytest.fixture
def pipeline_factory(pipeline_events):
    def factory(url, options):
        return FakePipeline(url, options, pipeline_events)
    return factory
