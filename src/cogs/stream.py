import logging
from typing import List, Optional, Tuple

import discord
from discord.ext import commands

from core.interfaces import ChannelInfo
from utils import tmdb
from utils.constants import MESSAGES
from utils.embeds import create_queue_embed, create_title_embed, error, info, success
from utils.exceptions import QueueError

logger = logging.getLogger(__name__)


def parse_tv_query(words: List[str]) -> Tuple[str, int, int]:
    """Split 'name [season] [episode]'; both numbers must be given to count."""
    season, episode = 1, 1
    if len(words) >= 3 and words[-1].isdigit() and words[-2].isdigit():
        season, episode = int(words[-2]), int(words[-1])
        words = words[:-2]
    return " ".join(words), season, episode


class Stream(commands.Cog):
    def __init__(self, bot):
        self.bot = bot

    @property
    def orchestrator(self):
        return self.bot.orchestrator

    def _channel_for(self, ctx) -> ChannelInfo:
        """Stream into the configured voice channel, or the caller's one if none is set."""
        voice_channel_id = self.bot.config.get('video_channel_id') or 0
        if not voice_channel_id:
            voice = getattr(ctx.author, 'voice', None)
            if voice and voice.channel:
                voice_channel_id = voice.channel.id
        return ChannelInfo(
            guild_id=ctx.guild.id,
            channel_id=voice_channel_id,
            cmd_channel_id=ctx.channel.id,
        )

    async def _enqueue_and_start(self, ctx, query: str, title: Optional[str] = None) -> bool:
        channel = self._channel_for(ctx)
        if not channel.channel_id:
            await ctx.send(embed=error(MESSAGES['VOICE_REQUIRED']))
            return False

        orchestrator = self.orchestrator
        if not orchestrator.status.playing:
            orchestrator.status.channel = channel

        await orchestrator.enqueue(query, ctx.author.display_name, title=title)
        if not orchestrator.status.playing:
            await orchestrator.play(channel)
        return True

    @commands.command(name="play", aliases=["p"])
    async def play(self, ctx, *, query: str):
        """Queue a link, a file or a YouTube search and start streaming if idle"""
        await self._enqueue_and_start(ctx, query)

    @commands.command(name="skip")
    async def skip(self, ctx):
        """Skip the current video"""
        await self.orchestrator.skip()

    @commands.command(name="stop")
    async def stop(self, ctx):
        """Stop streaming, clear the queue and leave the voice channel"""
        await self.orchestrator.stop()

    @commands.command(name="queue", aliases=["q"])
    async def queue(self, ctx):
        """Show the queue"""
        entries, current_id = self.orchestrator.queue_listing()
        await ctx.send(embed=create_queue_embed(entries, current_id))

    @commands.command(name="remove")
    async def remove(self, ctx, item_id: int):
        """Remove a queue item by id"""
        try:
            item = await self.orchestrator.remove(item_id)
        except QueueError as e:
            await ctx.send(embed=error(e.message))
            return
        await ctx.send(embed=success(MESSAGES['REMOVED'].format(title=item.title)))

    @commands.command(name="movie")
    async def movie(self, ctx, *, query: str):
        """Look a movie up on TMDB, post its watch links and stream it"""
        client = self.bot.tmdb
        if not client.configured:
            await ctx.send(embed=error(MESSAGES['NO_TMDB_KEY']))
            return

        await ctx.send(embed=info(MESSAGES['SEARCHING'].format(query=query)))
        match = await client.search_movie(query)
        if match is None:
            await ctx.send(embed=error(MESSAGES['NO_MOVIE'].format(query=query)))
            return

        links = {
            'VidKing': tmdb.vidking_movie_url(match.id),
            'CinemaOS': tmdb.cinemaos_movie_url(match.id),
            'VidSrc': tmdb.vidsrc_movie_url(match.id),
            'VidLink': tmdb.vidlink_movie_url(match.id),
        }
        year = match.date.split('-')[0] if match.date else 'Unknown'
        await ctx.send(embed=create_title_embed(
            f"🎬 {match.title} ({year})", match.overview, "Release Date", match.date, match.id, links
        ))
        await self._enqueue_and_start(ctx, tmdb.vidlink_movie_url(match.id, autoplay=True), title=match.title)

    @commands.command(name="tv")
    async def tv(self, ctx, *words: str):
        """Look a show up on TMDB: tv <name> [season] [episode]"""
        query, season, episode = parse_tv_query(list(words))
        if not query:
            await ctx.send(embed=error("Please provide a TV show name, e.g. `tv Breaking Bad 1 1`"))
            return

        client = self.bot.tmdb
        if not client.configured:
            await ctx.send(embed=error(MESSAGES['NO_TMDB_KEY']))
            return

        await ctx.send(embed=info(MESSAGES['SEARCHING'].format(query=f"{query} (S{season} E{episode})")))
        match = await client.search_tv(query)
        if match is None:
            await ctx.send(embed=error(MESSAGES['NO_SHOW'].format(query=query)))
            return

        links = {
            'CinemaOS': tmdb.cinemaos_tv_url(match.id, season, episode),
            'VidSrc': tmdb.vidsrc_tv_url(match.id, season, episode),
            'VidLink': tmdb.vidlink_tv_url(match.id, season, episode),
        }
        await ctx.send(embed=create_title_embed(
            f"📺 {match.title} - S{season} E{episode}", match.overview, "First Air Date", match.date,
            match.id, links, color=discord.Color.purple().value
        ))
        await self._enqueue_and_start(
            ctx,
            tmdb.vidlink_tv_url(match.id, season, episode, autoplay=True),
            title=f"{match.title} S{season}E{episode}",
        )

    @commands.Cog.listener()
    async def on_command_error(self, ctx, exc):
        if isinstance(exc, commands.MissingRequiredArgument):
            await ctx.send(embed=error(f"Missing argument: `{exc.param.name}`"))
        elif isinstance(exc, commands.BadArgument):
            await ctx.send(embed=error(str(exc)))
        elif isinstance(exc, commands.CommandNotFound):
            return
        else:
            logger.error(f"Command {ctx.command} failed: {exc}")
            await ctx.send(embed=error(str(exc)))


async def setup(bot):
    """Register the streaming commands"""
    await bot.add_cog(Stream(bot))
