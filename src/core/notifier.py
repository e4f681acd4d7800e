"""
User-facing notifications.

The orchestrator reports every outcome through a Notifier; the Discord
implementation posts embeds in the command channel. Sending never raises.
"""

import logging
from typing import Callable, Optional

import discord

from utils import embeds
from utils.constants import MESSAGES

logger = logging.getLogger(__name__)


class ChannelNotifier:
    def __init__(self, bot, channel_id: Callable[[], int]):
        self.bot = bot
        self._channel_id = channel_id

    async def _channel(self) -> Optional[discord.abc.Messageable]:
        channel_id = self._channel_id()
        if not channel_id:
            return None
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            channel = await self.bot.fetch_channel(channel_id)
        return channel

    async def send(self, embed: discord.Embed) -> None:
        try:
            channel = await self._channel()
            if channel is None:
                logger.warning(f"No command channel to notify: {embed.title} {embed.description}")
                return
            await channel.send(embed=embed)
        except Exception as e:
            logger.error(f"Failed to send notification: {e}")

    async def info(self, message: str, title: Optional[str] = None) -> None:
        await self.send(embeds.info(message, title=title))

    async def success(self, message: str) -> None:
        await self.send(embeds.success(message))

    async def error(self, message: str) -> None:
        await self.send(embeds.error(message))

    async def added(self, item) -> None:
        await self.success(MESSAGES['ADDED_TO_QUEUE'].format(title=item.title))

    async def now_streaming(self, item) -> None:
        await self.send(embeds.create_streaming_embed(item.title, item.requested_by, item.original_input))

    async def protected(self) -> None:
        await self.send(embeds.create_error_embed(
            title=f"⚠️ {MESSAGES['PROTECTED_TITLE']}",
            description=MESSAGES['PROTECTED_CONTENT'],
        ))
