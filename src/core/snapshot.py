"""
Crash-resume snapshot.

One JSON file describing what was streaming, where, and how far in. It is
rewritten wholesale while streaming and read once when the bot starts.
"""

import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiofiles

logger = logging.getLogger(__name__)


@dataclass
class PlaybackSnapshot:
    items: List[Dict[str, Any]] = field(default_factory=list)
    cursor: Optional[int] = None
    last_active_at: float = 0.0
    elapsed_seconds: float = 0.0
    channel: Dict[str, int] = field(default_factory=dict)

    @property
    def current(self) -> Optional[Dict[str, Any]]:
        if self.cursor is None or not 0 <= self.cursor < len(self.items):
            return None
        return self.items[self.cursor]

    def age(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.last_active_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'items': self.items,
            'cursor': self.cursor,
            'last_active_at': self.last_active_at,
            'elapsed_seconds': self.elapsed_seconds,
            'channel': self.channel,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlaybackSnapshot":
        return cls(
            items=list(data.get('items') or []),
            cursor=data.get('cursor'),
            last_active_at=float(data.get('last_active_at') or 0),
            elapsed_seconds=float(data.get('elapsed_seconds') or 0),
            channel=dict(data.get('channel') or {}),
        )


class SnapshotStore:
    """Reads and writes the snapshot file."""

    def __init__(self, path: str = 'data/playback_snapshot.json'):
        self.path = path

    async def save(self, snapshot: PlaybackSnapshot) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        async with aiofiles.open(tmp_path, 'w') as f:
            await f.write(json.dumps(snapshot.to_dict()))
        os.replace(tmp_path, self.path)
        logger.debug(f"Snapshot saved at {snapshot.elapsed_seconds:.0f}s")

    async def load(self) -> Optional[PlaybackSnapshot]:
        if not os.path.exists(self.path):
            return None
        try:
            async with aiofiles.open(self.path, 'r') as f:
                data = json.loads(await f.read())
            return PlaybackSnapshot.from_dict(data)
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Failed to read snapshot {self.path}: {e}")
            return None

    async def load_fresh(self, max_age: float, now: Optional[float] = None) -> Optional[PlaybackSnapshot]:
        """
        Load the snapshot if it is younger than max_age seconds.

        A stale or unreadable snapshot is deleted.
        """
        if not os.path.exists(self.path):
            return None

        snapshot = await self.load()
        if snapshot is None:
            self.delete()
            return None

        if snapshot.age(now) > max_age:
            logger.info(f"Discarding stale snapshot ({snapshot.age(now):.0f}s old)")
            self.delete()
            return None
        return snapshot

    def delete(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to delete snapshot {self.path}: {e}")
