"""
Configuration loading for the streaming bot.

Development reads everything from a .env file; production reads
config/config.yaml and falls back to environment variables for any key the
YAML file does not set.
"""

import logging
import os
import shutil

import yaml
from dotenv import load_dotenv

from utils.constants import (
    DEFAULT_EMBED_DOMAINS,
    DEFAULT_FPS,
    DEFAULT_HEIGHT,
    DEFAULT_WIDTH,
    EMBED_EXTRACTION_TIMEOUT,
    IDLE_DISCONNECT_SECONDS,
    SNAPSHOT_INTERVAL_SECONDS,
    SNAPSHOT_MAX_AGE_SECONDS,
)

logger = logging.getLogger(__name__)

SRC_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))


def _system_ffmpeg() -> str:
    return 'ffmpeg.exe' if os.name == 'nt' else 'ffmpeg'


def get_ffmpeg_path() -> str:
    """
    Locate FFmpeg: a bundled bin/ copy first, then FFMPEG_PATH, then the PATH.
    """
    bundled = os.path.join(SRC_DIR, '..', 'bin', _system_ffmpeg())
    candidates = [
        ('bin directory', os.path.abspath(bundled)),
        ('FFMPEG_PATH', os.getenv('FFMPEG_PATH')),
        ('PATH', shutil.which('ffmpeg')),
    ]
    for origin, candidate in candidates:
        if candidate and os.path.exists(candidate):
            logger.info(f"Using FFmpeg from {origin}: {candidate}")
            return candidate

    logger.warning("FFmpeg not found, relying on the system-wide executable name")
    return _system_ffmpeg()


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, default))


def _env_list(name: str, default: list) -> list:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [part.strip() for part in raw.split(',') if part.strip()]


def _read_yaml(path: str) -> dict:
    if not os.path.exists(path):
        return {}
    try:
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Ignoring unreadable {path}: {e}")
        return {}


def load_config() -> dict:
    """
    Build the bot configuration.

    Returns:
        dict: Settings for every component, keyed as documented in DESIGN.md

    Raises:
        ValueError: If no bot token is configured
    """
    env_path = os.path.join(SRC_DIR, '.env')
    if os.path.exists(env_path):
        load_dotenv(env_path)

    development = os.getenv('BOT_ENV', '').lower() == 'development'
    logger.info(f"Loading {'development' if development else 'production'} configuration")

    config = {
        'bot_token': os.getenv('DISCORD_TOKEN'),
        'command_prefix': os.getenv('BOT_PREFIX', '!'),
        'guild_id': _env_int('GUILD_ID', 0),
        'video_channel_id': _env_int('VIDEO_CHANNEL_ID', 0),
        'cmd_channel_id': _env_int('CMD_CHANNEL_ID', 0),
        'tmdb_api_key': os.getenv('TMDB_API_KEY'),
        'ffmpeg_path': get_ffmpeg_path(),
        'ffprobe_path': os.getenv('FFPROBE_PATH', 'ffprobe'),
        'ytdlp_path': os.getenv('YTDLP_PATH', 'yt-dlp'),
        'cookies_path': os.getenv('COOKIES_PATH', 'cookies.txt'),
        'download_dir': os.getenv('DOWNLOAD_DIR', 'cache/downloads'),
        'snapshot_path': os.getenv('SNAPSHOT_PATH', 'data/playback_snapshot.json'),
        'idle_disconnect_seconds': _env_int('IDLE_DISCONNECT_SECONDS', IDLE_DISCONNECT_SECONDS),
        'snapshot_interval': _env_int('SNAPSHOT_INTERVAL', SNAPSHOT_INTERVAL_SECONDS),
        'snapshot_max_age': _env_int('SNAPSHOT_MAX_AGE', SNAPSHOT_MAX_AGE_SECONDS),
        'width': _env_int('STREAM_WIDTH', DEFAULT_WIDTH),
        'height': _env_int('STREAM_HEIGHT', DEFAULT_HEIGHT),
        'fps': _env_int('STREAM_FPS', DEFAULT_FPS),
        'bitrate_kbps': _env_int('BITRATE_KBPS', 128),
        'respect_video_params': os.getenv('RESPECT_VIDEO_PARAMS', 'false').lower() == 'true',
        'embed_timeout': _env_int('EMBED_TIMEOUT', EMBED_EXTRACTION_TIMEOUT),
        'embed_domains': _env_list('EMBED_DOMAINS', DEFAULT_EMBED_DOMAINS),
        'log_level': os.getenv('LOG_LEVEL', 'INFO'),
    }

    if not development:
        config.update(_read_yaml(os.path.join(SRC_DIR, 'config', 'config.yaml')))

    if not config.get('bot_token'):
        raise ValueError("DISCORD_TOKEN is required")

    ffmpeg_path = config['ffmpeg_path']
    if ffmpeg_path != _system_ffmpeg() and not os.path.exists(ffmpeg_path):
        logger.warning(f"Configured FFmpeg {ffmpeg_path} does not exist, using the system one")
        config['ffmpeg_path'] = _system_ffmpeg()

    return config
