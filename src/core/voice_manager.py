"""
Voice sink for the streaming bot.

Owns the single voice connection shared by every queue item. The connection
is established with retry and backoff and is only torn down on an explicit
stop or when the idle-disconnect timer fires.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

import discord
from discord.ext import commands

from utils.exceptions import SinkConnectionError

logger = logging.getLogger(__name__)


@dataclass
class SinkState:
    guild_id: Optional[int] = None
    channel_id: Optional[int] = None
    connect_attempts: int = 0
    last_success_at: float = 0.0
    last_failure_at: float = 0.0
    last_error: Optional[str] = None


class VoiceSink:
    """
    Handles the voice connection that FFmpeg output is played into.
    """

    def __init__(self, bot: commands.Bot, *, max_connect_attempts: int = 3,
                 reconnect_delay_base: float = 2, idle_activity: str = "!play"):
        self.bot = bot
        self.voice_client: Optional[discord.VoiceClient] = None
        self.state = SinkState()
        self.max_connect_attempts = max_connect_attempts
        self.reconnect_delay_base = reconnect_delay_base
        self.max_reconnect_delay = 30
        self.idle_activity = idle_activity

    def is_connected(self) -> bool:
        return self.voice_client is not None and self.voice_client.is_connected()

    async def _resolve_channel(self, channel_id: int):
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(channel_id)
            except discord.DiscordException as e:
                raise SinkConnectionError(f"Voice channel {channel_id} is not reachable: {e}")
        if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
            raise SinkConnectionError(f"Channel {channel_id} is not a voice channel")
        return channel

    async def join(self, guild_id: int, channel_id: int, *, timeout: float = 30.0) -> discord.VoiceClient:
        """
        Ensures the bot is connected to the voice channel, reusing a live connection.

        Args:
            guild_id: Guild owning the channel
            channel_id: The voice channel to connect to
            timeout: Connection timeout in seconds

        Returns:
            discord.VoiceClient: Valid and connected voice client

        Raises:
            SinkConnectionError: If connection fails after all retry attempts
        """
        channel = await self._resolve_channel(channel_id)

        if self.is_connected():
            if self.voice_client.channel and self.voice_client.channel.id == channel.id:
                logger.debug(f"Voice connection reused for channel {channel.id}")
                return self.voice_client
            logger.info(f"Moving voice connection to {channel.name}")
            await self.voice_client.move_to(channel)
            self.state.channel_id = channel.id
            return self.voice_client

        lingering = channel.guild.voice_client
        if lingering:
            logger.warning(f"Found lingering voice client for guild {guild_id}, cleaning up")
            try:
                await lingering.disconnect(force=True)
            except Exception as e:
                logger.error(f"Error disconnecting lingering voice client: {e}")
            await asyncio.sleep(0.5)

        attempt = 0
        while True:
            try:
                logger.info(f"Attempting to connect to voice channel {channel.name} (attempt {attempt + 1})")
                voice_client = await channel.connect(timeout=timeout, reconnect=True)
                if not voice_client.is_connected():
                    raise discord.DiscordException("Connection validation failed")

                self.voice_client = voice_client
                self.state.guild_id = guild_id
                self.state.channel_id = channel.id
                self.state.connect_attempts = 0
                self.state.last_success_at = time.monotonic()
                self.state.last_error = None
                logger.info(f"Successfully connected to voice channel {channel.name}")
                return voice_client

            except Exception as e:
                attempt += 1
                self.state.connect_attempts = attempt
                self.state.last_failure_at = time.monotonic()
                self.state.last_error = str(e)
                logger.warning(
                    "Voice connection attempt failed",
                    extra={
                        "guild_id": guild_id,
                        "channel_id": channel.id,
                        "attempt": attempt,
                        "max_attempts": self.max_connect_attempts,
                        "error": str(e),
                    },
                )
                if attempt >= self.max_connect_attempts:
                    await self._cleanup_connection()
                    raise SinkConnectionError(
                        f"Failed to connect after {self.max_connect_attempts} attempts: {e}"
                    )
                await asyncio.sleep(self._calculate_backoff(attempt))

    def _calculate_backoff(self, attempts: int) -> float:
        base_delay = min(self.reconnect_delay_base ** attempts, self.max_reconnect_delay)
        return base_delay * random.uniform(0.7, 1.3)

    def play(self, audio: discord.AudioSource, after: Callable[[Optional[Exception]], None]) -> None:
        if not self.is_connected():
            raise SinkConnectionError("Voice connection is not established")
        self.voice_client.play(audio, after=after)

    def stop(self) -> None:
        """Stop whatever is playing; safe to call when idle."""
        if self.voice_client and (self.voice_client.is_playing() or self.voice_client.is_paused()):
            self.voice_client.stop()

    async def leave(self) -> None:
        self.stop()
        await self._cleanup_connection()
        logger.info("Left voice channel")

    async def set_activity(self, title: Optional[str]) -> None:
        """Show 'Watching <title>' while streaming, the idle status otherwise."""
        if title:
            activity = discord.Activity(type=discord.ActivityType.watching, name=title)
        else:
            activity = discord.Streaming(name=self.idle_activity, url="https://www.twitch.tv/")
        try:
            await self.bot.change_presence(activity=activity)
        except Exception as e:
            logger.warning(f"Failed to update presence: {e}")

    async def _cleanup_connection(self) -> None:
        voice_client = self.voice_client
        self.voice_client = None
        self.state.channel_id = None
        if voice_client is not None:
            try:
                await voice_client.disconnect(force=True)
            except Exception as e:
                logger.error(f"Error disconnecting voice client: {e}")
