import os
import re
from typing import Iterable, Optional
from urllib.parse import unquote, urlparse, parse_qs

class URLUtils:
    """Utility class for classifying media inputs."""

    YOUTUBE_MARKERS = ('youtube.com/', 'youtu.be/')
    TWITCH_MARKERS = ('twitch.tv/',)

    YOUTUBE_ID_PATTERN = re.compile(r'^[\w-]{11}$')

    @classmethod
    def is_youtube_url(cls, url: str) -> bool:
        """
        Check if an input points at YouTube.

        Args:
            url: The input to check

        Returns:
            bool: True for youtube.com and youtu.be links
        """
        return any(marker in url for marker in cls.YOUTUBE_MARKERS)

    @classmethod
    def is_twitch_url(cls, url: str) -> bool:
        return any(marker in url for marker in cls.TWITCH_MARKERS)

    @classmethod
    def is_embed_url(cls, url: str, domains: Iterable[str]) -> bool:
        """
        Check if an input belongs to one of the embed hosting domains.

        Args:
            url: The input to check
            domains: Host names that need browser extraction

        Returns:
            bool: True if any domain appears in the input
        """
        return any(domain in url for domain in domains)

    @staticmethod
    def is_local_file(path: str) -> bool:
        try:
            return os.path.isfile(path)
        except (OSError, ValueError):
            return False

    @staticmethod
    def is_valid_url(url: str) -> bool:
        """Check if an input is an absolute http(s) URL."""
        if not url or not isinstance(url, str):
            return False
        parsed = urlparse(url)
        return parsed.scheme in ('http', 'https') and bool(parsed.netloc)

    @staticmethod
    def title_from_url(url: str) -> str:
        """
        Derive a display title from the last path segment of a URL.

        Args:
            url: The URL

        Returns:
            str: File name without extension, the last path segment, or "Direct URL"
        """
        try:
            pathname = urlparse(url).path
        except ValueError:
            return "Direct URL"

        segment = pathname.rstrip('/').split('/')[-1] if pathname else ''
        if not segment:
            return "Direct URL"
        if '.' in segment:
            segment = segment.rsplit('.', 1)[0]
        return unquote(segment) or "Direct URL"

    @staticmethod
    def title_from_path(path: str) -> str:
        return os.path.splitext(os.path.basename(path))[0]

    @classmethod
    def extract_video_id(cls, url: str) -> Optional[str]:
        """
        Extract the video ID from a YouTube URL.

        Args:
            url: The YouTube URL

        Returns:
            str: The video ID if found, None otherwise
        """
        if not cls.is_youtube_url(url):
            return None

        parsed_url = urlparse(url)
        hostname = (parsed_url.hostname or '').removeprefix('www.')

        if hostname == 'youtu.be':
            candidate = parsed_url.path.lstrip('/').split('/')[0]
        elif parsed_url.path.startswith(('/shorts/', '/live/', '/embed/')):
            candidate = parsed_url.path.split('/')[2]
        else:
            candidate = parse_qs(parsed_url.query).get('v', [None])[0]

        if candidate and cls.YOUTUBE_ID_PATTERN.match(candidate):
            return candidate
        return None

    @staticmethod
    def twitch_channel(url: str) -> str:
        parts = [p for p in urlparse(url).path.split('/') if p]
        return parts[0] if parts else url
