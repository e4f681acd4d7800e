"""
Streaming orchestrator.

Plays the queue one item at a time into the voice sink:

    Idle -> Joining -> Preparing -> Streaming -> Idle
                                       |
                                       +-> Skipping -> Preparing

Stopping can interrupt any of these. A single control task runs the loop;
skip, stop and enqueue only touch state between awaits, so every
transition happens on the event loop in order. Background tasks (prefetch
downloads, the snapshot ticker, the idle timer) never mutate the queue or
the status flags.
"""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional, Set, Tuple

from core.interfaces import ChannelInfo, MediaSource, MediaType, PlaybackOutcome, PlayerState, StreamStatus
from core.pipeline import CancelToken, PreparedInput, StreamOptions
from core.queue_manager import QueueItem, QueueManager
from core.snapshot import PlaybackSnapshot
from utils.constants import (
    DEFAULT_FPS,
    DEFAULT_HEIGHT,
    DEFAULT_WIDTH,
    IDLE_DISCONNECT_SECONDS,
    MESSAGES,
    SNAPSHOT_INTERVAL_SECONDS,
    SNAPSHOT_MAX_AGE_SECONDS,
)
from utils.exceptions import (
    ProtectedContentError,
    QueueError,
    ResolutionError,
    SinkConnectionError,
)
from utils.url_utils import URLUtils

logger = logging.getLogger(__name__)


def format_position(seconds: float) -> str:
    seconds = int(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


class StreamOrchestrator:
    """
    Owns the queue, the stream status and every playback transition.

    Attributes:
        queue (QueueManager): Items waiting to be streamed
        status (StreamStatus): playing/joined/manual_stop flags and channels
        state (PlayerState): Current state machine state
        failed_sources (Set[str]): Inputs that failed to prepare or stream
    """

    def __init__(self, sink, pipeline, resolver, prefetcher, notifier, snapshots, youtube,
                 config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.sink = sink
        self.pipeline = pipeline
        self.resolver = resolver
        self.prefetcher = prefetcher
        self.notifier = notifier
        self.snapshots = snapshots
        self.youtube = youtube

        self.idle_disconnect_seconds = config.get('idle_disconnect_seconds', IDLE_DISCONNECT_SECONDS)
        self.snapshot_interval = config.get('snapshot_interval', SNAPSHOT_INTERVAL_SECONDS)
        self.snapshot_max_age = config.get('snapshot_max_age', SNAPSHOT_MAX_AGE_SECONDS)
        self.stream_options = StreamOptions(
            width=config.get('width', DEFAULT_WIDTH),
            height=config.get('height', DEFAULT_HEIGHT),
            fps=config.get('fps', DEFAULT_FPS),
            bitrate_kbps=config.get('bitrate_kbps', 128),
        )
        self.respect_video_params = config.get('respect_video_params', False)
        self.default_channel = ChannelInfo(
            guild_id=config.get('guild_id', 0),
            channel_id=config.get('video_channel_id', 0),
            cmd_channel_id=config.get('cmd_channel_id', 0),
        )

        self.queue = QueueManager()
        self.status = StreamStatus(channel=self.default_channel)
        self.state = PlayerState.IDLE
        self.failed_sources: Set[str] = set()

        self._token: Optional[CancelToken] = None
        self._skipping = False
        self._stop_requested = False
        self._prepared: Optional[PreparedInput] = None
        self._stream_started_at: Optional[float] = None
        self._seek_offset = 0.0

        self._control_task: Optional[asyncio.Task] = None
        self._disconnect_task: Optional[asyncio.Task] = None
        self._snapshot_task: Optional[asyncio.Task] = None

    # Notifications

    async def _notify(self, kind: str, *args, **kwargs) -> None:
        try:
            await getattr(self.notifier, kind)(*args, **kwargs)
        except Exception as e:
            logger.error(f"Notification '{kind}' failed: {e}")

    # Queue management

    async def enqueue(self, query: str, requested_by: str, title: Optional[str] = None) -> QueueItem:
        """
        Resolve an input and append it to the queue.

        An input that cannot be resolved is still queued as a plain URL item
        titled with the given title (or the raw input); it fails when its turn
        comes and the queue moves past it.
        """
        source = await self.resolver.resolve(query)
        if source is None:
            logger.warning(f"Could not resolve '{query}', queueing it as a direct URL")
            source = MediaSource(url=query, title=title or query, media_type=MediaType.URL)
        elif title:
            source.title = title

        item = self.queue.enqueue(source, requested_by, query)
        self.prefetcher.attach(item)
        await self._notify('added', item)
        return item

    async def remove(self, item_id: int) -> QueueItem:
        """
        Remove a queued item. Removing the item being streamed skips it.

        Raises:
            QueueError: If no item has that id
        """
        item = self.queue.get(item_id)
        if item is None:
            raise QueueError(MESSAGES['NOT_IN_QUEUE'].format(item_id=item_id))

        current = self.queue.current
        if self.status.playing and current is not None and current.id == item_id:
            await self.skip()
            return item

        self.queue.remove(item_id)
        self.prefetcher.discard(item)
        return item

    def queue_listing(self) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        current = self.queue.current
        return [item.to_dict() for item in self.queue.items()], (current.id if current else None)

    def _advance_past(self, finished: Optional[QueueItem]) -> Optional[QueueItem]:
        """Move the cursor to the next item and drop the finished one."""
        next_item = self.queue.advance_to_next()
        if finished is not None:
            self.queue.remove(finished.id)
            self.prefetcher.discard(finished)
        return next_item

    # Commands

    async def play(self, channel: Optional[ChannelInfo] = None, seek: float = 0) -> bool:
        """
        Start streaming the queue.

        Args:
            channel: Where to stream; defaults to the configured channels
            seek: Offset into the first item, in seconds

        Returns:
            bool: True if playback was started
        """
        if self.status.playing or (self._control_task and not self._control_task.done()):
            await self._notify('info', MESSAGES['ALREADY_PLAYING'])
            return False
        if self.queue.is_empty():
            await self._notify('info', MESSAGES['QUEUE_EMPTY'])
            return False

        if channel is not None:
            self.status.channel = channel
        elif not self.status.channel.channel_id:
            self.status.channel = self.default_channel

        self.status.playing = True
        self.status.manual_stop = False
        self.queue.set_playing(True)
        self._control_task = asyncio.create_task(self._control_loop(seek))
        return True

    async def skip(self) -> bool:
        """
        Skip the current item.

        Only one skip is processed at a time. A second skip goes through only
        when the one in flight left nothing under the cursor, i.e. it skipped
        the last item.
        """
        if not self.status.playing:
            await self._notify('info', MESSAGES['NOTHING_PLAYING'])
            return False
        if self._skipping and self.queue.current is not None:
            await self._notify('info', MESSAGES['SKIP_IN_PROGRESS'])
            return False

        self._skipping = True
        self.state = PlayerState.SKIPPING
        self.status.manual_stop = True
        if self._token is not None:
            self._token.cancel()
        self.sink.stop()

        current = self.queue.current
        if current is None:
            logger.info("Skip requested with nothing left under the cursor")
            return True

        next_item = self._advance_past(current)
        logger.info(f"Skipped #{current.id} {current.title}")
        if next_item is not None:
            await self._notify('info', MESSAGES['SKIPPING'].format(current=current.title, next=next_item.title))
        else:
            await self._notify('info', MESSAGES['NO_MORE_VIDEOS'])
        return True

    async def stop(self) -> None:
        """Stop streaming, clear the queue and leave the voice channel."""
        previous_state = self.state
        self.state = PlayerState.STOPPING
        self._stop_requested = True
        self.status.manual_stop = True
        if self._token is not None:
            self._token.cancel()
        self.sink.stop()
        self.prefetcher.discard_all(self.queue.clear())

        task = self._control_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            if previous_state in (PlayerState.JOINING, PlayerState.PREPARING):
                # Joins and downloads do not watch the token
                task.cancel()
            await asyncio.wait({task})
        self._control_task = None

        self._release_prepared()
        self._stop_snapshot_ticker()
        self._cancel_disconnect_timer()
        await self.sink.leave()

        self.status.reset(keep_joined=False)
        self.queue.set_playing(False)
        self._token = None
        self._skipping = False
        self._stop_requested = False
        self.state = PlayerState.IDLE
        await self.sink.set_activity(None)
        self.snapshots.delete()
        await self._notify('success', MESSAGES['STOPPED'])

    async def wait_until_idle(self) -> None:
        task = self._control_task
        if task is not None and not task.done():
            await asyncio.wait({task})

    # Control loop

    async def _control_loop(self, seek: float) -> None:
        item = self.queue.current or self.queue.advance_to_next()
        join_failed = False
        try:
            while item is not None and not self._stop_requested:
                self._skipping = False
                outcome = await self._play_item(item, seek)
                seek = 0

                if self._stop_requested:
                    return
                if outcome is PlaybackOutcome.JOIN_FAILED:
                    join_failed = True
                    break
                if outcome is PlaybackOutcome.INTERRUPTED:
                    # skip() already moved the queue on
                    self.status.manual_stop = False
                    item = self.queue.current
                    continue

                item = self._advance_past(item)
                if item is None and outcome is PlaybackOutcome.FINISHED:
                    await self._notify('info', MESSAGES['STREAM_ENDED'])
        except asyncio.CancelledError:
            if not self._stop_requested:
                raise
            return
        except Exception as e:
            logger.exception(f"Unexpected error in the playback loop: {e}")
            await self._notify('error', str(e))

        if not self._stop_requested:
            await self._enter_idle(start_timer=not join_failed)

    async def _play_item(self, item: QueueItem, seek: float) -> PlaybackOutcome:
        token = CancelToken()
        self._token = token

        self.state = PlayerState.JOINING
        self._cancel_disconnect_timer()
        try:
            await self.sink.join(self.status.channel.guild_id, self.status.channel.channel_id)
            self.status.joined = True
        except SinkConnectionError as e:
            logger.error(f"Failed to join voice channel: {e}")
            await self._notify('error', MESSAGES['JOIN_FAILED'].format(error=e.message))
            return PlaybackOutcome.JOIN_FAILED
        if token.cancelled:
            return PlaybackOutcome.INTERRUPTED

        self.state = PlayerState.PREPARING
        try:
            prepared = await self._prepare(item)
        except ProtectedContentError as e:
            self._mark_failed(item, e)
            await self._notify('protected')
            return PlaybackOutcome.FAILED
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if token.cancelled:
                return PlaybackOutcome.INTERRUPTED
            self._mark_failed(item, e)
            await self._notify('error', MESSAGES['RESOLVE_FAILED'].format(title=item.title, error=e))
            return PlaybackOutcome.FAILED
        if token.cancelled:
            prepared.release()
            return PlaybackOutcome.INTERRUPTED

        return await self._stream(item, prepared, seek, token)

    async def _stream(self, item: QueueItem, prepared: PreparedInput, seek: float,
                      token: CancelToken) -> PlaybackOutcome:
        self.state = PlayerState.STREAMING
        self._prepared = prepared
        self._seek_offset = 0 if item.is_live else seek
        self._stream_started_at = time.monotonic()

        await self.sink.set_activity(item.title)
        await self._notify('now_streaming', item)
        await self.save_snapshot()
        self._start_snapshot_ticker()

        options = replace(self.stream_options, seek_seconds=self._seek_offset, headers=prepared.headers)
        try:
            if self.respect_video_params:
                options = options.with_video(await self.pipeline.probe(prepared))
            await self.pipeline.run(prepared, options, token)
            outcome = PlaybackOutcome.INTERRUPTED if token.cancelled else PlaybackOutcome.FINISHED
        except ProtectedContentError as e:
            if token.cancelled or self.status.manual_stop:
                outcome = PlaybackOutcome.INTERRUPTED
            else:
                self._mark_failed(item, e)
                await self._notify('protected')
                outcome = PlaybackOutcome.FAILED
        except Exception as e:
            if token.cancelled or self.status.manual_stop:
                outcome = PlaybackOutcome.INTERRUPTED
            else:
                self._mark_failed(item, e)
                await self._notify('error', MESSAGES['PLAYBACK_FAILED'].format(title=item.title, error=e))
                outcome = PlaybackOutcome.FAILED
        finally:
            self._stop_snapshot_ticker()
            self._release_prepared()
            self._stream_started_at = None

        logger.info(f"Stream of #{item.id} {item.title} ended: {outcome.value}")
        return outcome

    async def _prepare(self, item: QueueItem) -> PreparedInput:
        """
        Turn a queue item into something FFmpeg can read.

        Raises:
            ResolutionError: If the item cannot be made playable
            ProtectedContentError: If the item's URL serves a webpage
        """
        if item.is_live:
            # Live URLs expire, resolve again from what the user typed
            source = await self.resolver.resolve(item.original_input)
            if source is None:
                raise ResolutionError(f"Could not refresh live source {item.original_input}")
            item.apply_source(source)

        if item.media_type == MediaType.TWITCH:
            try:
                process = self.youtube.create_live_pipe(item.original_input)
            except OSError as e:
                raise ResolutionError(f"Could not start yt-dlp: {e}")
            return PreparedInput(source=process.stdout, is_pipe=True, process=process)

        if item.media_type == MediaType.YOUTUBE and not item.is_live:
            path = await self.prefetcher.obtain(item)
            return PreparedInput(source=path, temp_path=path)

        if item.media_type == MediaType.LOCAL:
            if not URLUtils.is_local_file(item.resolved_url):
                raise ResolutionError(f"File not found: {item.resolved_url}")
            return PreparedInput(source=item.resolved_url)

        if not URLUtils.is_valid_url(item.resolved_url):
            raise ResolutionError(f"Not a playable URL: {item.resolved_url}")
        await self.resolver.check_playable(item.resolved_url, item.headers)
        return PreparedInput(source=item.resolved_url, is_remote=True, headers=item.headers)

    def _mark_failed(self, item: QueueItem, error: Exception) -> None:
        logger.error(f"Failed to play #{item.id} {item.original_input}: {error}")
        self.failed_sources.add(item.original_input)

    def _release_prepared(self) -> None:
        prepared, self._prepared = self._prepared, None
        if prepared is not None:
            prepared.release()

    async def _enter_idle(self, start_timer: bool) -> None:
        self.state = PlayerState.IDLE
        self._token = None
        self._skipping = False
        self.status.reset(keep_joined=True)
        self.queue.set_playing(False)
        await self.sink.set_activity(None)
        self.snapshots.delete()
        if start_timer:
            self._start_disconnect_timer()
        logger.info("Playback is idle")

    # Idle disconnect

    def _start_disconnect_timer(self) -> None:
        self._cancel_disconnect_timer()
        self._disconnect_task = asyncio.create_task(self._delayed_disconnect())

    def _cancel_disconnect_timer(self) -> None:
        task, self._disconnect_task = self._disconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _delayed_disconnect(self) -> None:
        await asyncio.sleep(self.idle_disconnect_seconds)
        if self.status.playing:
            return
        logger.info(f"Idle for {self.idle_disconnect_seconds}s, leaving the voice channel")
        self._disconnect_task = None
        await self._leave_idle_channel()

    async def _leave_idle_channel(self) -> None:
        """Idle-timeout transition; the timer task only triggers it."""
        await self._notify('info', MESSAGES['GOODBYE'])
        await self.sink.leave()
        if not self.status.playing:
            self.status.reset(keep_joined=False)

    # Snapshots

    def elapsed_seconds(self) -> float:
        if self._stream_started_at is None:
            return 0.0
        return self._seek_offset + (time.monotonic() - self._stream_started_at)

    def build_snapshot(self) -> PlaybackSnapshot:
        return PlaybackSnapshot(
            items=[item.to_dict() for item in self.queue.items()],
            cursor=self.queue.cursor,
            last_active_at=time.time(),
            elapsed_seconds=self.elapsed_seconds(),
            channel=self.status.channel.to_dict(),
        )

    async def save_snapshot(self) -> None:
        try:
            await self.snapshots.save(self.build_snapshot())
        except Exception as e:
            logger.error(f"Failed to save playback snapshot: {e}")

    def _start_snapshot_ticker(self) -> None:
        self._stop_snapshot_ticker()
        self._snapshot_task = asyncio.create_task(self._snapshot_loop())

    def _stop_snapshot_ticker(self) -> None:
        task, self._snapshot_task = self._snapshot_task, None
        if task is not None and not task.done():
            task.cancel()

    async def _snapshot_loop(self) -> None:
        while True:
            await asyncio.sleep(self.snapshot_interval)
            await self.save_snapshot()

    async def restore_from_snapshot(self) -> Optional[Tuple[QueueItem, float]]:
        """
        Rebuild a one-item queue from a fresh snapshot.

        Returns:
            Optional[Tuple[QueueItem, float]]: The item and the offset to seek
            to, or None when there is no fresh snapshot
        """
        snapshot = await self.snapshots.load_fresh(self.snapshot_max_age)
        if snapshot is None:
            return None

        entry = snapshot.current
        if entry is None:
            logger.info("Snapshot has no current item, nothing to resume")
            self.snapshots.delete()
            return None

        try:
            source = MediaSource(
                url=entry['resolved_url'],
                title=entry['title'],
                media_type=MediaType(entry['media_type']),
                is_live=bool(entry.get('is_live')),
                headers=entry.get('headers'),
            )
            original_input = entry['original_input']
        except (KeyError, ValueError) as e:
            logger.error(f"Snapshot entry is malformed: {e}")
            self.snapshots.delete()
            return None

        item = self.queue.enqueue(source, entry.get('requested_by') or 'Unknown', original_input)
        self.prefetcher.attach(item)
        if snapshot.channel:
            self.status.channel = ChannelInfo.from_dict(snapshot.channel)

        seek = 0.0 if item.is_live else snapshot.elapsed_seconds
        logger.info(f"Restored #{item.id} {item.title} from snapshot at {seek:.0f}s")
        return item, seek

    async def resume(self) -> bool:
        """Resume the stream that was running when the process last stopped."""
        restored = await self.restore_from_snapshot()
        if restored is None:
            return False

        item, seek = restored
        await self._notify('info', MESSAGES['RESUMING'].format(title=item.title, position=format_position(seek)))
        channel = self.status.channel if self.status.channel.channel_id else None
        return await self.play(channel, seek=seek)

    async def shutdown(self) -> None:
        """Release tasks and processes on exit. The snapshot is kept for resume."""
        self._stop_requested = True
        if self._token is not None:
            self._token.cancel()
        self._stop_snapshot_ticker()
        self._cancel_disconnect_timer()
        task = self._control_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        self._release_prepared()
        self.prefetcher.discard_all(self.queue.clear())
        await self.sink.leave()
