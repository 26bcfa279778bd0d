"""
Media pipeline

Wraps one ffmpeg process that reads a channel stream and writes MPEG-TS to
stdout for the voice transport to consume.
"""
import asyncio
import logging
import signal
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from tvcast.config import settings
from tvcast.utils.logging_helpers import sanitize_url_for_logging


logger = logging.getLogger(__name__)

FFMPEG_BINARY = "ffmpeg"
HLS_MARKERS = ("streamMode=hls", ".m3u8")
HLS_INPUT_FLAGS = [
    "-protocol_whitelist", "file,http,https,tcp,tls,crypto",
    "-fflags", "+genpts",
    "-re",
]
LOW_LATENCY_INPUT_FLAGS = ["-fflags", "nobuffer", "-flags", "low_delay", "-analyzeduration", "0"]
H264_PRESET = "veryfast"
TERMINATE_GRACE_SECONDS = 2.0
STDERR_TAIL_LINES = 20
READ_CHUNK_SIZE = 8192

ExitCallback = Callable[["MediaPipeline", int | None, str], None]


@dataclass(slots=True)
class PipelineOptions:
    transcode: bool = True
    minimize_latency: bool = True
    bitrate_video: int = 5000
    bitrate_video_max: int = 7500
    audio_only: bool = False

    @classmethod
    def from_settings(cls) -> "PipelineOptions":
        return cls(
            transcode=settings.transcode,
            minimize_latency=settings.minimize_latency,
            bitrate_video=settings.bitrate_video,
            bitrate_video_max=settings.bitrate_video_max,
        )


def is_hls_url(url: str) -> bool:
    return any(marker in url for marker in HLS_MARKERS)


def build_ffmpeg_command(url: str, options: PipelineOptions) -> list[str]:
    """
    Build the ffmpeg argument list for a stream URL.

    Input flags come first (latency, HLS), then either an H.264/AAC transcode
    capped at the configured bitrates or a stream copy. Audio-only output drops
    the video stream before any encoding.
    """
    cmd = [FFMPEG_BINARY, "-hide_banner", "-loglevel", "warning", "-nostdin"]

    if options.minimize_latency:
        cmd += LOW_LATENCY_INPUT_FLAGS
    if is_hls_url(url):
        cmd += HLS_INPUT_FLAGS

    cmd += ["-i", url]

    if options.audio_only:
        cmd += ["-vn"]

    if options.transcode:
        if not options.audio_only:
            cmd += [
                "-c:v", "libx264",
                "-preset", H264_PRESET,
                "-b:v", f"{options.bitrate_video}k",
                "-maxrate", f"{options.bitrate_video_max}k",
                "-bufsize", f"{options.bitrate_video_max * 2}k",
                "-pix_fmt", "yuv420p",
            ]
            if options.minimize_latency:
                cmd += ["-tune", "zerolatency"]
        cmd += ["-c:a", "aac", "-b:a", "128k"]
    else:
        cmd += ["-c", "copy"]

    cmd += ["-f", "mpegts", "pipe:1"]
    return cmd


class MediaPipeline:
    """One ffmpeg process for one channel"""

    def __init__(self, url: str, options: PipelineOptions | None = None):
        self.url = url
        self.options = options or PipelineOptions.from_settings()
        self.process: asyncio.subprocess.Process | None = None
        self.last_output_at: float | None = None
        self._stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        self._exit_callbacks: list[ExitCallback] = []
        self._watcher: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_tail)

    def on_exit(self, callback: ExitCallback) -> None:
        """Register a callback invoked with (pipeline, returncode, stderr_tail) once the process ends."""
        self._exit_callbacks.append(callback)

    async def start(self) -> None:
        cmd = build_ffmpeg_command(self.url, self.options)
        logger.info(f"Starting ffmpeg for {sanitize_url_for_logging(self.url)}")
        logger.debug("ffmpeg arguments: %s", " ".join(cmd[:-1]))

        self.process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        self.last_output_at = time.monotonic()
        self._watcher = asyncio.create_task(self._watch(), name="ffmpeg-watch")

    async def read(self, size: int = READ_CHUNK_SIZE) -> bytes:
        """Next chunk of stdout, empty once the process has closed it."""
        if self.process is None or self.process.stdout is None:
            return b""
        data = await self.process.stdout.read(size)
        if data:
            self.last_output_at = time.monotonic()
        return data

    async def _watch(self) -> None:
        process = self.process
        assert process is not None and process.stderr is not None

        async for raw_line in process.stderr:
            line = raw_line.decode("utf-8", errors="replace").rstrip()
            if line:
                self._stderr_tail.append(line)
                logger.debug(f"ffmpeg: {line}")

        returncode = await process.wait()
        logger.debug(f"ffmpeg process ended with code {returncode}")
        for callback in self._exit_callbacks:
            try:
                callback(self, returncode, self.stderr_tail)
            except Exception as e:
                logger.error(f"Pipeline exit callback failed: {e}", exc_info=True)

    async def terminate(self) -> None:
        """SIGTERM, then SIGKILL after the grace period."""
        process = self.process
        if process is None:
            return

        if process.returncode is None:
            try:
                process.send_signal(signal.SIGTERM)
                try:
                    await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
                except asyncio.TimeoutError:
                    logger.warning("ffmpeg did not exit after SIGTERM, killing it")
                    process.kill()
                    await process.wait()
            except ProcessLookupError:
                pass

        watcher = self._watcher
        if watcher is not None and watcher is not asyncio.current_task() and not watcher.done():
            try:
                await asyncio.wait_for(asyncio.shield(watcher), timeout=TERMINATE_GRACE_SECONDS)
            except asyncio.TimeoutError:
                watcher.cancel()
