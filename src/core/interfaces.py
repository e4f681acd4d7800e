"""
Interfaces and data structures shared by the streaming components
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any

class MediaType(Enum):
    YOUTUBE = "youtube"
    TWITCH = "twitch"
    LOCAL = "local"
    URL = "url"

class PlayerState(Enum):
    IDLE = "idle"
    JOINING = "joining"
    PREPARING = "preparing"
    STREAMING = "streaming"
    SKIPPING = "skipping"
    STOPPING = "stopping"

class PlaybackOutcome(Enum):
    FINISHED = "finished"
    FAILED = "failed"
    INTERRUPTED = "interrupted"
    JOIN_FAILED = "join_failed"

@dataclass
class MediaSource:
    """Playable descriptor produced by the resolver."""
    url: str
    title: str
    media_type: MediaType
    is_live: bool = False
    headers: Optional[Dict[str, str]] = None

@dataclass
class ChannelInfo:
    guild_id: int = 0
    channel_id: int = 0
    cmd_channel_id: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'guild_id': self.guild_id,
            'channel_id': self.channel_id,
            'cmd_channel_id': self.cmd_channel_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChannelInfo":
        return cls(
            guild_id=int(data.get('guild_id') or 0),
            channel_id=int(data.get('channel_id') or 0),
            cmd_channel_id=int(data.get('cmd_channel_id') or 0),
        )

@dataclass
class StreamStatus:
    """
    Process-wide streaming flags, mutated only by the orchestrator.

    manual_stop marks a deliberate stop or skip: while it is set, the end of
    the pipeline is neither reported as an error nor followed by auto-advance.
    """
    playing: bool = False
    joined: bool = False
    manual_stop: bool = False
    channel: ChannelInfo = field(default_factory=ChannelInfo)

    def reset(self, keep_joined: bool = True) -> None:
        self.playing = False
        self.manual_stop = False
        if not keep_joined:
            self.joined = False
            self.channel = ChannelInfo()
