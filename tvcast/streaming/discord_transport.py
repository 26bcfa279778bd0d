"""
Discord voice transport

discord.py implementation of the voice transport. Bot accounts cannot publish
video, so the transport asks for audio-only pipelines and feeds their MPEG-TS
output into FFmpegOpusAudio, which encodes the audio for the voice connection.
"""
import asyncio
import concurrent.futures
import logging

import discord

from tvcast.streaming.pipeline import READ_CHUNK_SIZE, MediaPipeline


logger = logging.getLogger(__name__)


class PipelineReader:
    """
    Blocking file-like view of a pipeline's stdout.

    FFmpegOpusAudio reads its pipe source from a worker thread, so each read
    is marshalled onto the event loop that owns the pipeline. A read blocks
    until data arrives or the reader is closed; stalled sources are handled by
    the session liveness watchdog.
    """

    def __init__(self, pipeline: MediaPipeline, loop: asyncio.AbstractEventLoop):
        self.pipeline = pipeline
        self.loop = loop
        self.closed = False
        self._pending: concurrent.futures.Future | None = None

    def read(self, size: int = READ_CHUNK_SIZE) -> bytes:
        if self.closed:
            return b""
        try:
            future = asyncio.run_coroutine_threadsafe(self.pipeline.read(size), self.loop)
            self._pending = future
            if self.closed:
                future.cancel()
            return future.result()
        except (concurrent.futures.CancelledError, RuntimeError) as e:
            logger.debug(f"Pipeline read ended: {e!r}")
            self.closed = True
            return b""
        finally:
            self._pending = None

    def close(self) -> None:
        self.closed = True
        pending = self._pending
        if pending is not None:
            pending.cancel()


class DiscordVoiceTransport:
    """Voice connection management for one guild"""

    carries_video = False

    def __init__(self, client: discord.Client, guild_id: int):
        self.client = client
        self.guild_id = guild_id

    @property
    def guild(self) -> discord.Guild | None:
        return self.client.get_guild(self.guild_id)

    @property
    def voice_client(self) -> discord.VoiceClient | None:
        guild = self.guild
        if guild is None:
            return None
        return guild.voice_client  # type: ignore[return-value]

    @property
    def connected_channel_id(self) -> int | None:
        vc = self.voice_client
        if vc is None or not vc.is_connected() or vc.channel is None:
            return None
        return vc.channel.id

    def _voice_channel(self, voice_target: int) -> discord.VoiceChannel | None:
        guild = self.guild
        if guild is None:
            logger.error(f"Guild {self.guild_id} not available")
            return None
        channel = guild.get_channel(voice_target)
        if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
            logger.error(f"Channel {voice_target} is not a voice channel")
            return None
        return channel

    async def join(self, voice_target: int) -> bool:
        channel = self._voice_channel(voice_target)
        if channel is None:
            return False

        vc = self.voice_client
        if vc is not None and vc.is_connected():
            if vc.channel is not None and vc.channel.id == channel.id:
                return True
            logger.info(f"Moving to voice channel {channel.name}")
            await vc.move_to(channel)
            return True

        logger.info(f"Joining voice channel {channel.name}")
        await channel.connect(self_deaf=True)
        return True

    async def leave(self) -> None:
        vc = self.voice_client
        if vc is None:
            return
        logger.info("Leaving voice channel")
        await vc.disconnect(force=True)

    def count_spectators(self, voice_target: int) -> int | None:
        channel = self._voice_channel(voice_target)
        if channel is None:
            return None
        own_id = self.client.user.id if self.client.user else None
        return sum(1 for member in channel.members if not member.bot and member.id != own_id)

    async def play(self, pipeline: MediaPipeline, cancel_event: asyncio.Event) -> None:
        vc = self.voice_client
        if vc is None or not vc.is_connected():
            raise RuntimeError("Not connected to a voice channel")

        loop = asyncio.get_running_loop()
        reader = PipelineReader(pipeline, loop)
        source = discord.FFmpegOpusAudio(
            reader,
            pipe=True,
            before_options="-f mpegts",
            options="-vn",
        )

        finished = loop.create_future()

        def _after_playback(error: Exception | None) -> None:
            def _resolve() -> None:
                if finished.done():
                    return
                if error is not None:
                    finished.set_exception(error)
                else:
                    finished.set_result(None)
            loop.call_soon_threadsafe(_resolve)

        vc.play(source, after=_after_playback)
        cancel_wait = asyncio.create_task(cancel_event.wait())
        try:
            await asyncio.wait({finished, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_wait.cancel()
            reader.close()
            if vc.is_playing():
                vc.stop()

        if finished.done():
            finished.result()
