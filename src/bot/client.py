import discord
from discord.ext import commands
import logging

from core.notifier import ChannelNotifier
from core.orchestrator import StreamOrchestrator
from core.pipeline import FFmpegPipeline
from core.prefetcher import Prefetcher
from core.resolver import MediaResolver
from core.snapshot import SnapshotStore
from core.voice_manager import VoiceSink
from utils.browser import EmbedExtractor
from utils.config import load_config
from utils.tmdb import TMDBClient
from utils.youtube import YouTubeUtils

logger = logging.getLogger(__name__)


class StreamBot(commands.Bot):
    """
    Discord bot that streams queued videos into a voice channel.

    Attributes:
        config (dict): Configuration loaded by load_config
        orchestrator (StreamOrchestrator): Queue and playback state machine
        tmdb (TMDBClient): Movie and TV lookups for the movie/tv commands
    """

    def __init__(self, config: dict = None):
        self.config = config or load_config()

        intents = discord.Intents.default()
        intents.message_content = True
        intents.voice_states = True

        super().__init__(
            command_prefix=self.config['command_prefix'],
            intents=intents,
            help_command=None
        )

        self.orchestrator = None
        self.tmdb = None
        self.youtube = None
        self.resolver = None
        self._resume_attempted = False

    def _notification_channel_id(self) -> int:
        channel = self.orchestrator.status.channel if self.orchestrator else None
        if channel and channel.cmd_channel_id:
            return channel.cmd_channel_id
        return self.config.get('cmd_channel_id') or 0

    async def setup_hook(self):
        """Build the streaming components and load the commands"""
        config = self.config
        self.youtube = YouTubeUtils(
            cookies_path=config.get('cookies_path'),
            download_dir=config.get('download_dir', 'cache/downloads'),
            ytdlp_path=config.get('ytdlp_path', 'yt-dlp'),
        )
        self.resolver = MediaResolver(
            self.youtube,
            embed_extractor=EmbedExtractor(timeout=config.get('embed_timeout', 15)),
            embed_domains=config.get('embed_domains'),
        )
        sink = VoiceSink(self, idle_activity=f"{config['command_prefix']}play")
        self.orchestrator = StreamOrchestrator(
            sink=sink,
            pipeline=FFmpegPipeline(
                sink,
                ffmpeg_path=config.get('ffmpeg_path', 'ffmpeg'),
                ffprobe_path=config.get('ffprobe_path', 'ffprobe'),
            ),
            resolver=self.resolver,
            prefetcher=Prefetcher(self.youtube),
            notifier=ChannelNotifier(self, self._notification_channel_id),
            snapshots=SnapshotStore(config.get('snapshot_path', 'data/playback_snapshot.json')),
            youtube=self.youtube,
            config=config,
        )
        self.tmdb = TMDBClient(config.get('tmdb_api_key'))

        await self.load_extension('cogs.stream')
        await self.load_extension('cogs.system')

    async def on_ready(self):
        """Called when the bot is ready and connected"""
        logger.info(f"Bot connected as {self.user}")
        logger.info(f"Bot ID: {self.user.id}")

        # on_ready fires again after every reconnect
        if self._resume_attempted:
            return
        self._resume_attempted = True

        await self.orchestrator.sink.set_activity(None)
        try:
            if await self.orchestrator.resume():
                logger.info("Resumed playback from snapshot")
        except Exception as e:
            logger.error(f"Failed to resume playback: {e}")

    async def close(self):
        """Clean shutdown of the bot"""
        logger.info("Bot shutdown initiated...")

        if self.orchestrator is not None:
            try:
                await self.orchestrator.shutdown()
            except Exception as e:
                logger.error(f"Error shutting down orchestrator: {e}")
        if self.resolver is not None:
            await self.resolver.close()
        if self.tmdb is not None:
            await self.tmdb.close()
        if self.youtube is not None:
            self.youtube.close()

        await super().close()
        logger.info("Bot shutdown completed")

    def run(self):
        """Run the bot with the configured token"""
        super().run(self.config['bot_token'], log_handler=None)
