"""
Background downloads for queued videos.

A download starts the moment an eligible item is enqueued so that, by the
time the queue reaches it, the local copy is usually ready.
"""

import asyncio
import logging
import os

from core.interfaces import MediaType
from core.queue_manager import PrefetchHandle, QueueItem
from utils.exceptions import ResolutionError

logger = logging.getLogger(__name__)


class Prefetcher:
    def __init__(self, youtube):
        self.youtube = youtube

    @staticmethod
    def is_eligible(item: QueueItem) -> bool:
        return item.media_type == MediaType.YOUTUBE and not item.is_live

    def attach(self, item: QueueItem) -> bool:
        """
        Start a background download for the item.

        Returns:
            bool: True if a download was started, False if the item is not
            eligible or already has one
        """
        if not self.is_eligible(item) or item.prefetch is not None:
            return False

        handle = PrefetchHandle()
        handle.task = asyncio.create_task(self.youtube.download(item.resolved_url))
        handle.task.add_done_callback(lambda task: self._record(item, handle, task))
        item.prefetch = handle
        logger.info(f"Started prefetch for #{item.id} {item.title}")
        return True

    @staticmethod
    def _record(item: QueueItem, handle: PrefetchHandle, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            handle.error = error
            logger.warning(f"Prefetch failed for #{item.id} {item.title}: {error}")
        else:
            handle.path = task.result()
            logger.info(f"Prefetch ready for #{item.id} {item.title}")

    async def obtain(self, item: QueueItem) -> str:
        """
        Get a local file for the item.

        Uses the finished prefetch if there is one, waits for a pending one,
        and downloads synchronously if the prefetch failed or never started.
        The handle is cleared; the caller owns the returned file.

        Raises:
            ResolutionError: If the synchronous download fails
        """
        handle, item.prefetch = item.prefetch, None

        if handle is not None:
            if handle.ready and os.path.exists(handle.path):
                return handle.path
            if handle.pending:
                try:
                    return await handle.task
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.info(f"Prefetch for #{item.id} failed ({e}), downloading again")

        return await self.youtube.download(item.resolved_url)

    def discard(self, item: QueueItem) -> None:
        """Cancel a pending download or delete an unused one."""
        handle, item.prefetch = item.prefetch, None
        if handle is None:
            return
        if handle.pending:
            handle.task.cancel()
            # The file may still land after cancellation
            handle.task.add_done_callback(self._delete_result)
        elif handle.path:
            self._delete_file(handle.path)

    def discard_all(self, items) -> None:
        for item in items:
            self.discard(item)

    def _delete_result(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is None:
            self._delete_file(task.result())

    @staticmethod
    def _delete_file(path: str) -> None:
        try:
            os.remove(path)
            logger.debug(f"Deleted unused download {path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to delete {path}: {e}")
