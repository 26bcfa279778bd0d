"""
Streaming package

Single-session media relay into a voice channel.
"""
from tvcast.streaming.pipeline import MediaPipeline, PipelineOptions
from tvcast.streaming.session_manager import SessionManager, SessionState
from tvcast.streaming.spectator_monitor import SpectatorMonitor
from tvcast.streaming.transport import VoiceTransport

__all__ = [
    'MediaPipeline',
    'PipelineOptions',
    'SessionManager',
    'SessionState',
    'SpectatorMonitor',
    'VoiceTransport',
]
