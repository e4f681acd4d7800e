"""
Playback queue for the streaming bot.

Ordered, in-memory and synchronous: the queue knows nothing about playback.
The orchestrator owns it and is the only caller that mutates it.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional

from core.interfaces import MediaSource, MediaType

logger = logging.getLogger(__name__)


@dataclass
class PrefetchHandle:
    """Background download attached to a queue item."""
    task: Optional[asyncio.Task] = None
    path: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def ready(self) -> bool:
        return self.path is not None

    @property
    def pending(self) -> bool:
        return self.task is not None and not self.task.done()


@dataclass
class QueueItem:
    """One requested playback unit."""
    id: int
    original_input: str
    resolved_url: str
    title: str
    media_type: MediaType
    requested_by: str
    is_live: bool = False
    headers: Optional[Dict[str, str]] = None
    added_at: datetime = field(default_factory=datetime.now)
    prefetch: Optional[PrefetchHandle] = field(default=None, repr=False, compare=False)

    def apply_source(self, source: MediaSource) -> None:
        """Refresh the resolved fields, e.g. after re-resolving a live stream."""
        self.resolved_url = source.url
        self.title = source.title or self.title
        self.media_type = source.media_type
        self.is_live = source.is_live
        self.headers = dict(source.headers) if source.headers else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'original_input': self.original_input,
            'resolved_url': self.resolved_url,
            'title': self.title,
            'media_type': self.media_type.value,
            'requested_by': self.requested_by,
            'is_live': self.is_live,
            'headers': self.headers,
            'added_at': self.added_at.isoformat(),
        }


class QueueManager:
    """
    Thread-safe ordered queue with a cursor on the current item.

    The cursor is None until playback starts and whenever the queue has been
    exhausted or cleared. Item ids come from a counter that is never reset, so
    an id is never handed out twice during the process lifetime.
    """

    def __init__(self):
        self._items: List[QueueItem] = []
        self._cursor: Optional[int] = None
        self._playing = False
        self._ids = itertools.count(1)
        self._lock = Lock()

    @property
    def cursor(self) -> Optional[int]:
        with self._lock:
            return self._cursor

    @property
    def current(self) -> Optional[QueueItem]:
        """Get the item under the cursor."""
        with self._lock:
            if self._cursor is None:
                return None
            return self._items[self._cursor]

    @property
    def playing(self) -> bool:
        return self._playing

    def set_playing(self, value: bool) -> None:
        self._playing = value

    def enqueue(self, source: MediaSource, requested_by: str, original_input: str) -> QueueItem:
        """Append a resolved source and return the new queue item."""
        with self._lock:
            item = QueueItem(
                id=next(self._ids),
                original_input=original_input,
                resolved_url=source.url,
                title=source.title or original_input,
                media_type=source.media_type,
                requested_by=requested_by,
                is_live=source.is_live,
                headers=dict(source.headers) if source.headers else None,
            )
            self._items.append(item)
            logger.info(f"[QUEUE] Added #{item.id} {item.title} | Queue size now: {len(self._items)}")
            return item

    def peek_next(self) -> Optional[QueueItem]:
        """Get the item after the cursor without moving it."""
        with self._lock:
            index = 0 if self._cursor is None else self._cursor + 1
            if index < len(self._items):
                return self._items[index]
            return None

    def advance_to_next(self) -> Optional[QueueItem]:
        """
        Move the cursor forward one position.

        Returns:
            Optional[QueueItem]: The new current item, or None once the end of
            the queue has been passed (the cursor is then cleared)
        """
        with self._lock:
            index = 0 if self._cursor is None else self._cursor + 1
            if index < len(self._items):
                self._cursor = index
                return self._items[index]
            self._cursor = None
            logger.info("[QUEUE] Reached the end of the queue")
            return None

    def remove(self, item_id: int) -> Optional[QueueItem]:
        """
        Remove an item by id, wherever it sits.

        Removing the current item leaves the cursor on the item that followed
        it, or clears the cursor when nothing followed.
        """
        with self._lock:
            index = self._index_of(item_id)
            if index is None:
                return None

            item = self._items.pop(index)
            if self._cursor is not None:
                if index < self._cursor:
                    self._cursor -= 1
                elif index == self._cursor and self._cursor >= len(self._items):
                    self._cursor = None
            logger.info(f"[QUEUE] Removed #{item.id} {item.title} | Queue size now: {len(self._items)}")
            return item

    def clear(self) -> List[QueueItem]:
        """Drop every item and reset the cursor. Playback is not touched."""
        with self._lock:
            removed = self._items
            self._items = []
            self._cursor = None
            return removed

    def reset_cursor(self) -> None:
        with self._lock:
            self._cursor = None

    def get(self, item_id: int) -> Optional[QueueItem]:
        with self._lock:
            index = self._index_of(item_id)
            return None if index is None else self._items[index]

    def position(self, item_id: int) -> Optional[int]:
        with self._lock:
            return self._index_of(item_id)

    def items(self) -> List[QueueItem]:
        """Get a copy of the queued items in order."""
        with self._lock:
            return list(self._items)

    def is_empty(self) -> bool:
        with self._lock:
            return not self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _index_of(self, item_id: int) -> Optional[int]:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                return index
        return None
