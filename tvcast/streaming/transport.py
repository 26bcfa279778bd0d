"""
Voice transport boundary

The session manager only talks to the voice platform through this protocol,
so the Discord implementation can be swapped for a fake in tests.
"""
import asyncio
from typing import Protocol, runtime_checkable

from tvcast.streaming.pipeline import MediaPipeline


@runtime_checkable
class VoiceTransport(Protocol):
    # False when the platform only relays audio; pipelines then skip video
    carries_video: bool

    @property
    def connected_channel_id(self) -> int | None:
        """Voice channel the transport is currently connected to."""
        ...

    async def join(self, voice_target: int) -> bool:
        """Connect to (or move to) a voice channel; False if it can't be resolved."""
        ...

    async def leave(self) -> None:
        ...

    def count_spectators(self, voice_target: int) -> int | None:
        """Human members in the channel other than the streaming account, None when unknown."""
        ...

    async def play(self, pipeline: MediaPipeline, cancel_event: asyncio.Event) -> None:
        """Relay pipeline output until it ends or cancel_event is set."""
        ...
