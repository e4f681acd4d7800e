DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)

# Configuration YT-DLP (metadata only)
YTDL_INFO_OPTIONS = {
    'format': 'best',
    'quiet': True,
    'no_warnings': True,
    'skip_download': True,
    'noplaylist': True,
    'nocheckcertificate': True,
    'socket_timeout': 15,
    'retries': 3,
    'cachedir': False,
    'no_color': True,
    'source_address': '0.0.0.0',
}

# Direct URL of a live broadcast (HLS first, then DASH)
YTDL_LIVE_OPTIONS = {
    **YTDL_INFO_OPTIONS,
    'format': 'best[protocol=m3u8_native]/best[protocol=http_dash_segments]/best',
}

# Configuration YT-DLP pour le téléchargement
YTDL_DOWNLOAD_OPTIONS = {
    'format': 'bestaudio[ext=m4a]/bestaudio/best',
    'quiet': True,
    'no_warnings': True,
    'noplaylist': True,
    'nocheckcertificate': True,
    'outtmpl': '%(id)s.%(ext)s',
    'retries': 3,
    'no_color': True,
}

YTDL_SEARCH_OPTIONS = {
    'quiet': True,
    'no_warnings': True,
    'skip_download': True,
    'extract_flat': 'in_playlist',
    'default_search': 'ytsearch',
    'noplaylist': True,
    'socket_timeout': 10,
    'ignoreerrors': True,
}

# Configuration FFMPEG
FFMPEG_OPTIONS = {
    'before_options': '-analyzeduration 10000000 -probesize 10000000 -fflags +igndts',
    'remote_options': (
        '-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5 '
        '-protocol_whitelist file,http,https,tcp,tls,crypto'
    ),
    'options': '-vn',
}

# FFmpeg stderr lines meaning the input is a webpage or otherwise unreadable
UNREADABLE_INPUT_ERRORS = (
    'Invalid data found when processing input',
    'Could not open source file',
)

DEFAULT_WIDTH = 1280
DEFAULT_HEIGHT = 720
DEFAULT_FPS = 30

DEFAULT_EMBED_DOMAINS = ['vidsrc.cc', 'vidlink.pro']

IDLE_DISCONNECT_SECONDS = 600
SNAPSHOT_INTERVAL_SECONDS = 10
SNAPSHOT_MAX_AGE_SECONDS = 3600
EMBED_EXTRACTION_TIMEOUT = 15

# Couleurs des Embeds Discord
COLORS = {
    'SUCCESS': 0x2ecc71,  # Vert
    'ERROR': 0xe74c3c,    # Rouge
    'INFO': 0x3498db,     # Bleu
    'STREAM': 0x9b59b6    # Mauve
}

MESSAGES = {
    'ADDED_TO_QUEUE': "Added to queue: `{title}`",
    'ALREADY_PLAYING': "Already playing a video. Use skip to move to the next one.",
    'QUEUE_EMPTY': "Queue is empty.",
    'NOTHING_PLAYING': "No video is currently playing.",
    'SKIP_IN_PROGRESS': "Skip already in progress.",
    'SKIPPING': "Skipping `{current}`. Playing next: `{next}`",
    'NO_MORE_VIDEOS': "No more videos in queue.",
    'NOW_STREAMING': "📽 Now streaming",
    'STREAM_ENDED': "Stream has ended.",
    'STOPPED': "Playback stopped and queue cleared.",
    'REMOVED': "Removed `{title}` from the queue.",
    'NOT_IN_QUEUE': "No queue item with id `{item_id}`.",
    'JOIN_FAILED': "Could not join the voice channel: {error}",
    'RESOLVE_FAILED': "Could not prepare `{title}`: {error}. Trying the next item.",
    'PLAYBACK_FAILED': "Playback of `{title}` failed: {error}. Trying the next item.",
    'PROTECTED_TITLE': "Stream Unavailable",
    'PROTECTED_CONTENT': (
        "The video source is a protected webpage and cannot be streamed directly to voice.\n\n"
        "**Please watch using the links provided above!** 🔗"
    ),
    'GOODBYE': "Nothing left to stream, leaving the channel. 👋",
    'RESUMING': "Resuming `{title}` at {position}",
    'SEARCHING': "Searching TMDB for `{query}`...",
    'NO_TMDB_KEY': "TMDB API key is not configured.",
    'NO_MOVIE': "No movie found for query: `{query}`",
    'NO_SHOW': "No TV show found for query: `{query}`",
    'VOICE_REQUIRED': "Join a voice channel to enable streaming.",
    'ERROR_TITLE': "❌ Error",
    'HELP_TITLE': "📽 **Available Commands**",
    'PINGING': "Pinging server...",
    'PONG': "🏓 {round_trip}ms (gateway {gateway}ms)",
}
