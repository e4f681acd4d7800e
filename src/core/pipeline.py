"""
Transcode/transport pipeline.

FFmpeg (through discord.py's Opus source) turns a prepared input into audio
for the voice sink. Each streaming attempt gets its own CancelToken; skip and
stop cancel it, and the pipeline stops the sink when that happens.

The voice transport carries audio only, so the resolution and frame rate in
StreamOptions are logged with each stream but do not change FFmpeg's output.
"""

import asyncio
import json
import logging
import os
import shlex
import subprocess
import tempfile
from dataclasses import dataclass, field, replace
from typing import IO, Any, Callable, Dict, List, Optional, Tuple, Union

import discord

from utils.constants import (
    DEFAULT_FPS,
    DEFAULT_HEIGHT,
    DEFAULT_USER_AGENT,
    DEFAULT_WIDTH,
    FFMPEG_OPTIONS,
    UNREADABLE_INPUT_ERRORS,
)
from utils.exceptions import PipelineError, ProtectedContentError

logger = logging.getLogger(__name__)


class CancelToken:
    """
    Cancellation signal for one streaming attempt.

    cancel() runs the registered callbacks exactly once; later calls are
    no-ops. Tokens are never reused across attempts.
    """

    def __init__(self):
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, callback: Callable[[], None]) -> None:
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def cancel(self) -> bool:
        """Cancel the attempt. Returns False if it was already cancelled."""
        if self._cancelled:
            return False
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Cancel callback failed: {e}")
        return True


@dataclass
class PreparedInput:
    """What FFmpeg reads: a local path, a remote URL, or a pipe from a live process."""
    source: Union[str, IO[bytes]]
    is_remote: bool = False
    is_pipe: bool = False
    headers: Optional[Dict[str, str]] = None
    temp_path: Optional[str] = None
    process: Optional[subprocess.Popen] = field(default=None, repr=False)

    def release(self) -> None:
        """Kill the live process and delete the temporary download, if any."""
        if self.process is not None:
            if self.process.poll() is None:
                self.process.kill()
            self.process = None
        if self.temp_path:
            try:
                os.remove(self.temp_path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error(f"Failed to delete temp file {self.temp_path}: {e}")
            self.temp_path = None


@dataclass
class VideoParameters:
    width: int
    height: int
    fps: Optional[float] = None


@dataclass
class StreamOptions:
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    fps: float = DEFAULT_FPS
    bitrate_kbps: int = 128
    seek_seconds: float = 0
    headers: Optional[Dict[str, str]] = None

    def with_video(self, params: Optional[VideoParameters]) -> "StreamOptions":
        """Copy of these options using the probed size and frame rate where known."""
        if params is None:
            return self
        return replace(
            self,
            width=params.width or self.width,
            height=params.height or self.height,
            fps=params.fps or self.fps,
        )


def parse_frame_rate(rate: Optional[str]) -> Optional[float]:
    """'30000/1001' -> 29.97; None for missing rates or zero denominators."""
    if not rate:
        return None
    numerator, _, denominator = rate.partition('/')
    try:
        if not denominator:
            return float(numerator) or None
        if float(denominator) == 0:
            return None
        return float(numerator) / float(denominator) or None
    except ValueError:
        return None


def parse_video_parameters(probe: Dict[str, Any]) -> Optional[VideoParameters]:
    for stream in probe.get('streams') or []:
        if stream.get('codec_type') != 'video':
            continue
        if not stream.get('width') or not stream.get('height'):
            return None
        fps = parse_frame_rate(stream.get('r_frame_rate') or stream.get('avg_frame_rate'))
        return VideoParameters(width=int(stream['width']), height=int(stream['height']), fps=fps)
    return None


def find_unreadable_input(log: str) -> Optional[str]:
    """Return the FFmpeg error line saying the input could not be read, if any."""
    for line in log.splitlines():
        if any(marker in line for marker in UNREADABLE_INPUT_ERRORS):
            return line.strip()
    return None


class FFmpegPipeline:
    """Runs one prepared input through FFmpeg into the voice sink."""

    def __init__(self, sink, ffmpeg_path: str = 'ffmpeg', ffprobe_path: str = 'ffprobe'):
        self.sink = sink
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path

    def _probe_blocking(self, source: str) -> Optional[Dict[str, Any]]:
        command = [
            self.ffprobe_path, '-v', 'error',
            '-show_entries', 'stream=codec_type,width,height,r_frame_rate,avg_frame_rate',
            '-of', 'json', source,
        ]
        try:
            result = subprocess.run(command, capture_output=True, text=True, timeout=15)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.error(f"ffprobe failed for {source}: {e}")
            return None
        if result.returncode != 0:
            logger.error(f"ffprobe error for {source}: {result.stderr.strip()}")
            return None
        try:
            return json.loads(result.stdout)
        except ValueError:
            return None

    async def probe(self, prepared: PreparedInput) -> Optional[VideoParameters]:
        """
        Read the resolution and frame rate of the input with ffprobe.

        Returns:
            Optional[VideoParameters]: None for pipes or when probing fails
        """
        if prepared.is_pipe or not isinstance(prepared.source, str):
            return None
        loop = asyncio.get_running_loop()
        probe = await loop.run_in_executor(None, self._probe_blocking, prepared.source)
        params = parse_video_parameters(probe) if probe else None
        if params is not None:
            logger.info(f"Video parameters: {params.width}x{params.height}, FPS: {params.fps or 'unknown'}")
        return params

    def build_arguments(self, prepared: PreparedInput, options: StreamOptions) -> Tuple[str, str]:
        """
        Build FFmpeg's before_options and options strings.

        Custom headers are passed through verbatim; a browser User-Agent is
        added only when the headers do not carry one.
        """
        before = [FFMPEG_OPTIONS['before_options']]

        if options.seek_seconds and not prepared.is_pipe:
            before.append(f"-ss {int(options.seek_seconds)}")

        if prepared.is_remote and isinstance(prepared.source, str):
            before.append(FFMPEG_OPTIONS['remote_options'])
            headers = dict(options.headers or {})
            if not any(key.lower() == 'user-agent' for key in headers):
                headers['User-Agent'] = DEFAULT_USER_AGENT
            header_blob = "".join(f"{key}: {value}\r\n" for key, value in headers.items())
            before.append(f"-headers {shlex.quote(header_blob)}")
            if '.m3u8' in prepared.source:
                before.append('-f hls')

        return " ".join(before), FFMPEG_OPTIONS['options']

    def create_audio(self, prepared: PreparedInput, options: StreamOptions,
                     stderr: Optional[IO[bytes]] = None) -> discord.AudioSource:
        before_options, ffmpeg_options = self.build_arguments(prepared, options)
        logger.debug(f"FFmpeg before_options: {before_options} "
                     f"({options.width}x{options.height}@{options.fps}, {options.bitrate_kbps}kbps)")
        return discord.FFmpegOpusAudio(
            prepared.source,
            bitrate=options.bitrate_kbps,
            executable=self.ffmpeg_path,
            pipe=prepared.is_pipe,
            before_options=before_options,
            options=ffmpeg_options,
            stderr=stderr,
        )

    async def run(self, prepared: PreparedInput, options: StreamOptions, token: CancelToken) -> None:
        """
        Play the input until it ends or the token is cancelled.

        Raises:
            ProtectedContentError: If FFmpeg could not read the input at all
            PipelineError: If FFmpeg or the transport fails while the token is live
        """
        loop = asyncio.get_running_loop()
        finished: asyncio.Future = loop.create_future()

        def settle(error: Optional[Exception]) -> None:
            if not finished.done():
                finished.set_result(error)

        def after_playing(error: Optional[Exception]) -> None:
            # Called from discord.py's player thread
            loop.call_soon_threadsafe(settle, error)

        if token.cancelled:
            return

        with tempfile.TemporaryFile() as ffmpeg_log:
            try:
                audio = self.create_audio(prepared, options, stderr=ffmpeg_log)
            except Exception as e:
                raise PipelineError(f"Could not start FFmpeg: {e}")

            token.add_callback(self.sink.stop)
            token.add_callback(lambda: settle(None))

            try:
                self.sink.play(audio, after=after_playing)
            except Exception as e:
                audio.cleanup()
                raise PipelineError(f"Could not start playback: {e}")

            error = await finished
            if token.cancelled:
                return

            ffmpeg_log.seek(0)
            unreadable = find_unreadable_input(ffmpeg_log.read().decode('utf-8', errors='replace'))

        if unreadable:
            logger.warning(f"FFmpeg could not read {prepared.source}: {unreadable}")
            raise ProtectedContentError(unreadable)
        if error is not None:
            logger.error(f"An error happened with ffmpeg: {error}")
            raise PipelineError(str(error))
