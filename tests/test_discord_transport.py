"""
Tests for the discord.py voice transport.
"""
import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock

import discord
import pytest

from tvcast.streaming.discord_transport import DiscordVoiceTransport, PipelineReader


GUILD_ID = 555
VOICE_CHANNEL = 4242
BOT_USER_ID = 1


def member(member_id, bot=False):
    return SimpleNamespace(id=member_id, bot=bot)


def make_client(channels):
    guild = SimpleNamespace(get_channel=channels.get, voice_client=None)
    return SimpleNamespace(
        user=SimpleNamespace(id=BOT_USER_ID),
        get_guild=lambda guild_id: guild if guild_id == GUILD_ID else None,
    )


def voice_channel(members):
    channel = MagicMock(spec=discord.VoiceChannel)
    channel.id = VOICE_CHANNEL
    channel.members = members
    return channel


class StalledPipeline:
    async def read(self, size=8192):
        await asyncio.Event().wait()


class ChunkPipeline:
    async def read(self, size=8192):
        return b"chunk"


class TestCountSpectators:

    def test_excludes_bots_and_own_account(self):
        channel = voice_channel([member(BOT_USER_ID, bot=True), member(2, bot=True), member(3)])
        transport = DiscordVoiceTransport(make_client({VOICE_CHANNEL: channel}), GUILD_ID)

        assert transport.count_spectators(VOICE_CHANNEL) == 1

    def test_empty_channel(self):
        channel = voice_channel([member(BOT_USER_ID, bot=True)])
        transport = DiscordVoiceTransport(make_client({VOICE_CHANNEL: channel}), GUILD_ID)

        assert transport.count_spectators(VOICE_CHANNEL) == 0

    def test_unknown_when_guild_missing(self):
        transport = DiscordVoiceTransport(make_client({}), GUILD_ID + 1)

        assert transport.count_spectators(VOICE_CHANNEL) is None

    def test_unknown_when_not_a_voice_channel(self):
        text_channel = MagicMock(spec=discord.TextChannel)
        transport = DiscordVoiceTransport(make_client({VOICE_CHANNEL: text_channel}), GUILD_ID)

        assert transport.count_spectators(VOICE_CHANNEL) is None

    def test_transport_requests_audio_only(self):
        assert DiscordVoiceTransport.carries_video is False


class TestPipelineReader:

    @pytest.mark.asyncio
    async def test_read_returns_pipeline_data(self):
        reader = PipelineReader(ChunkPipeline(), asyncio.get_running_loop())

        assert await asyncio.to_thread(reader.read) == b"chunk"

    @pytest.mark.asyncio
    async def test_stalled_read_waits_until_closed(self):
        reader = PipelineReader(StalledPipeline(), asyncio.get_running_loop())
        read_task = asyncio.create_task(asyncio.to_thread(reader.read))

        await asyncio.sleep(0.3)
        assert not read_task.done()

        reader.close()
        assert await asyncio.wait_for(read_task, timeout=5) == b""
        assert reader.read() == b""
