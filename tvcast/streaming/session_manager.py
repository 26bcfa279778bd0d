"""
Session Manager

Owns the single active streaming session: voice channel membership, the ffmpeg
pipeline, the spectator monitor and the optional liveness watchdog.

States: IDLE -> JOINING -> STREAMING -> STOPPING -> IDLE
"""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from tvcast.config import settings
from tvcast.errors import StreamPipelineError
from tvcast.services.fetch_types import ChannelPayload, CommandResult
from tvcast.streaming.pipeline import MediaPipeline, PipelineOptions
from tvcast.streaming.spectator_monitor import POLL_INTERVAL_SECONDS, SpectatorMonitor
from tvcast.streaming.transport import VoiceTransport
from tvcast.utils.timezone import format_utc, utc_now


logger = logging.getLogger(__name__)

VOICE_SETTLE_SECONDS = 0.75
STOP_GRACE_SECONDS = 1.0
# ffmpeg's exit status after SIGTERM/SIGINT
FORCED_EXIT_CODE = 255

PipelineFactory = Callable[[str, PipelineOptions], MediaPipeline]


class SessionState(str, enum.Enum):
    IDLE = "idle"
    JOINING = "joining"
    STREAMING = "streaming"
    STOPPING = "stopping"


@dataclass(slots=True)
class StreamSession:
    channel: ChannelPayload
    voice_target: int
    pipeline: MediaPipeline
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    started_at: datetime = field(default_factory=utc_now)
    monitor: SpectatorMonitor | None = None
    play_task: asyncio.Task | None = None
    watchdog: asyncio.Task | None = None


def _is_forced_exit(returncode: int | None) -> bool:
    return returncode == FORCED_EXIT_CODE or (returncode is not None and returncode < 0)


class SessionManager:
    """Single-session streaming state machine"""

    def __init__(
        self,
        transport: VoiceTransport,
        *,
        pipeline_factory: PipelineFactory = MediaPipeline,
        options: PipelineOptions | None = None,
        settle_delay: float = VOICE_SETTLE_SECONDS,
        stop_grace: float = STOP_GRACE_SECONDS,
        monitor_interval: float = POLL_INTERVAL_SECONDS,
        idle_timeout: float | None = None,
        liveness_timeout: float | None = None,
    ):
        self.transport = transport
        self.pipeline_factory = pipeline_factory
        options = options or PipelineOptions.from_settings()
        if not transport.carries_video:
            options = replace(options, audio_only=True)
        self.options = options
        self.settle_delay = settle_delay
        self.stop_grace = stop_grace
        self.monitor_interval = monitor_interval
        self.idle_timeout = (
            idle_timeout if idle_timeout is not None else settings.default_stream_timeout_minutes * 60
        )
        self.liveness_timeout = (
            liveness_timeout if liveness_timeout is not None else settings.stream_liveness_timeout_sec
        )
        self.state = SessionState.IDLE
        self._session: StreamSession | None = None
        self._start_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    @property
    def session(self) -> StreamSession | None:
        return self._session

    @property
    def current_channel(self) -> ChannelPayload | None:
        return self._session.channel if self._session else None

    def status(self) -> dict:
        session = self._session
        payload: dict[str, Any] = {
            "state": self.state.value,
            "voice_channel_id": self.transport.connected_channel_id,
            "channel": None,
        }
        if session is not None:
            payload["channel"] = session.channel.display_name or session.channel.storage_key
            payload["started_at"] = format_utc(session.started_at)
            if session.monitor is not None:
                payload["idle_seconds"] = session.monitor.idle_seconds
        return payload

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def start(self, channel: ChannelPayload, voice_target: int) -> CommandResult:
        """
        Stream a channel into a voice channel, replacing any running session.
        """
        name = channel.display_name or channel.storage_key
        if not channel.stream_url:
            logger.error(f"Channel {name} has no stream URL")
            return CommandResult(False, f"Channel {name} has no stream URL")

        async with self._start_lock:
            self.state = SessionState.JOINING
            try:
                if self.transport.connected_channel_id != voice_target:
                    if not await self.transport.join(voice_target):
                        self.state = SessionState.IDLE if self._session is None else SessionState.STREAMING
                        return CommandResult(False, "Could not join voice channel")
                    await asyncio.sleep(self.settle_delay)

                logger.info("Stopping any possible existing stream.")
                await self._stop_session()
                self.state = SessionState.JOINING

                pipeline = self.pipeline_factory(channel.stream_url, self.options)
                session = StreamSession(channel=channel, voice_target=voice_target, pipeline=pipeline)
                pipeline.on_exit(self._on_pipeline_exit)
                await pipeline.start()
            except Exception as e:
                logger.error(f"Error starting stream: {e}", exc_info=True)
                self.state = SessionState.IDLE
                return CommandResult(False, f"Error starting stream: {e}")

            self._session = session
            session.monitor = SpectatorMonitor(
                lambda: self.transport.count_spectators(voice_target),
                self._on_idle,
                interval=self.monitor_interval,
                idle_timeout=self.idle_timeout,
            )
            session.play_task = asyncio.create_task(self._play(session), name="stream-play")
            session.monitor.start()
            if self.liveness_timeout and self.liveness_timeout > 0:
                session.watchdog = asyncio.create_task(self._watch_liveness(session), name="stream-liveness")

            self.state = SessionState.STREAMING
            logger.info(f"Streaming channel: {name}.")
            return CommandResult(True, f"Streaming {name}")

    async def stop(self) -> CommandResult:
        """Stop the active session; safe to call repeatedly or concurrently."""
        session = self._session
        if session is None:
            return CommandResult(False, "No active stream")

        name = session.channel.display_name or session.channel.storage_key
        if not await self._stop_session():
            return CommandResult(False, "No active stream")
        return CommandResult(True, f"Stopped streaming {name}")

    async def leave(self) -> CommandResult:
        """Stop if active, then disconnect from voice."""
        stopped = await self._stop_session()
        if self.transport.connected_channel_id is None and not stopped:
            return CommandResult(False, "Not connected to a voice channel")
        await self.transport.leave()
        return CommandResult(True, "Left voice channel")

    async def shutdown(self) -> None:
        await self.leave()
        for task in list(self._tasks):
            task.cancel()

    async def _stop_session(self) -> bool:
        """
        Claim and tear down the current session.

        Returns:
            False if there was nothing to stop
        """
        session = self._session
        if session is None:
            return False
        self._session = None
        self.state = SessionState.STOPPING

        logger.info(f"Stopping stream of {session.channel.display_name or session.channel.storage_key}")
        session.cancel_event.set()

        if session.monitor is not None:
            await session.monitor.stop()
        current = asyncio.current_task()
        if session.watchdog is not None and session.watchdog is not current:
            session.watchdog.cancel()

        try:
            await session.pipeline.terminate()
        except Exception as e:
            logger.error(f"Error terminating pipeline: {e}", exc_info=True)

        if session.play_task is not None and session.play_task is not current and not session.play_task.done():
            try:
                await asyncio.wait_for(session.play_task, timeout=self.stop_grace + 1)
            except asyncio.TimeoutError:
                logger.warning("Transport did not stop in time")
            except Exception as e:
                logger.error(f"Error while stopping playback: {e}", exc_info=True)

        await asyncio.sleep(self.stop_grace)

        if self._session is None and self.state is SessionState.STOPPING:
            self.state = SessionState.IDLE
        logger.info("Stream stopped")
        return True

    async def _teardown(self, session: StreamSession) -> None:
        if self._session is session:
            await self._stop_session()

    async def _on_idle(self) -> None:
        await self.stop()
        await self.leave()

    def _on_pipeline_exit(self, pipeline: MediaPipeline, returncode: int | None, stderr_tail: str) -> None:
        session = self._session
        if session is None or session.pipeline is not pipeline:
            logger.debug(f"Ignoring exit of a previous pipeline (code {returncode})")
            return
        if session.cancel_event.is_set():
            return

        if returncode == 0:
            logger.info("FFmpeg process ended")
        elif _is_forced_exit(returncode):
            logger.debug(f"FFmpeg terminated (code {returncode}), ignoring")
            return
        else:
            error = StreamPipelineError(returncode, stderr_tail)
            logger.error(f"FFmpeg {error}")
            if stderr_tail:
                logger.error(f"FFmpeg stderr: {stderr_tail}")

        self._spawn(self._teardown(session), name="stream-teardown")

    async def _play(self, session: StreamSession) -> None:
        try:
            await self.transport.play(session.pipeline, session.cancel_event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error while streaming: {e}", exc_info=True)

        if self._session is session and not session.cancel_event.is_set():
            logger.info("Playback ended, tearing down session")
            self._spawn(self._teardown(session), name="stream-teardown")

    async def _watch_liveness(self, session: StreamSession) -> None:
        check_interval = min(self.liveness_timeout, 5.0)
        while not session.cancel_event.is_set():
            await asyncio.sleep(check_interval)
            last_output = session.pipeline.last_output_at
            if last_output is None:
                continue
            silent_for = time.monotonic() - last_output
            if silent_for >= self.liveness_timeout:
                logger.warning(f"No stream output for {silent_for:.0f}s, stopping stream")
                self._spawn(self._teardown(session), name="stream-teardown")
                return
