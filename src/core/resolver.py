"""
Turns whatever the user typed into a playable MediaSource.

Strategies are tried in a fixed order: YouTube, Twitch, embed hosts, local
files, direct URLs and finally a YouTube search. resolve() never raises; a
source that cannot be resolved comes back as None.
"""

import asyncio
import logging
from typing import Dict, Iterable, Optional

import aiohttp
import async_timeout

from core.interfaces import MediaSource, MediaType
from utils.constants import DEFAULT_EMBED_DOMAINS, DEFAULT_USER_AGENT, YTDL_LIVE_OPTIONS, YTDL_INFO_OPTIONS
from utils.exceptions import ProtectedContentError, ResolutionError
from utils.url_utils import URLUtils

logger = logging.getLogger(__name__)

TWITCH_REFERER = 'https://www.twitch.tv/'


def _format_score(fmt: Dict) -> float:
    has_video = 1 if fmt.get('vcodec') and fmt.get('vcodec') != 'none' else 0
    has_audio = 1 if fmt.get('acodec') and fmt.get('acodec') != 'none' else 0
    return has_video + has_audio + (fmt.get('height') or 0) / 1000


def best_direct_format(formats: Iterable[Dict]) -> Optional[Dict]:
    """Pick the best non-HLS format, preferring muxed audio+video then height."""
    candidates = [
        fmt for fmt in formats or []
        if fmt.get('url') and fmt.get('ext') != 'm3u8' and 'm3u8' not in (fmt.get('protocol') or '')
    ]
    if not candidates:
        return None
    return max(candidates, key=_format_score)


class MediaResolver:
    def __init__(self, youtube, embed_extractor=None, embed_domains: Optional[Iterable[str]] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.youtube = youtube
        self.embed_extractor = embed_extractor
        self.embed_domains = list(embed_domains or DEFAULT_EMBED_DOMAINS)
        self._session = session

    async def resolve(self, query: str) -> Optional[MediaSource]:
        """
        Resolve a link, path or search query.

        Args:
            query: Raw user input

        Returns:
            Optional[MediaSource]: The playable source, or None if nothing
            could be resolved
        """
        query = (query or '').strip()
        if not query:
            return None

        try:
            if URLUtils.is_youtube_url(query):
                return await self._resolve_youtube(query)
            if URLUtils.is_twitch_url(query):
                return await self._resolve_twitch(query)
            if URLUtils.is_embed_url(query, self.embed_domains):
                return await self._resolve_embed(query)
            if URLUtils.is_local_file(query):
                return MediaSource(url=query, title=URLUtils.title_from_path(query), media_type=MediaType.LOCAL)
            if URLUtils.is_valid_url(query):
                return await self._resolve_direct(query)
            return await self._resolve_search(query)
        except Exception as e:
            logger.error(f"Failed to resolve '{query}': {e}")
            return None

    async def _resolve_youtube(self, url: str) -> Optional[MediaSource]:
        info = await self.youtube.get_video_info(url)
        if not info:
            return None

        if info['is_live']:
            live_url = await self.youtube.get_live_stream_url(url)
            if not live_url:
                logger.error(f"No live stream URL for YouTube live: {url}")
                return None
            return MediaSource(url=live_url, title=info['title'], media_type=MediaType.YOUTUBE, is_live=True)

        return MediaSource(url=url, title=info['title'], media_type=MediaType.YOUTUBE)

    async def _resolve_twitch(self, url: str) -> Optional[MediaSource]:
        try:
            info = await self.youtube.extract_info(url, YTDL_LIVE_OPTIONS)
        except ResolutionError as e:
            logger.error(f"Failed to resolve Twitch stream {url}: {e}")
            return None

        stream_url = info.get('url')
        if not stream_url:
            logger.error(f"No stream URL found in Twitch metadata for {url}")
            return None

        headers = dict(info.get('http_headers') or {})
        headers['Referer'] = TWITCH_REFERER
        title = info.get('title') or f"{URLUtils.twitch_channel(url)}'s Twitch Stream"
        return MediaSource(url=stream_url, title=title, media_type=MediaType.TWITCH, is_live=True, headers=headers)

    async def _resolve_embed(self, url: str) -> Optional[MediaSource]:
        if self.embed_extractor is None:
            logger.warning(f"Embed extraction is not configured, cannot resolve {url}")
            return None
        return await self.embed_extractor.extract(url)

    async def _resolve_direct(self, url: str) -> MediaSource:
        try:
            async with async_timeout.timeout(30):
                info = await self.youtube.extract_info(url, YTDL_INFO_OPTIONS)
            if info.get('title'):
                best = best_direct_format(info.get('formats'))
                stream_url = best['url'] if best else (info.get('url') or url)
                return MediaSource(url=stream_url, title=info['title'], media_type=MediaType.URL)
        except (ResolutionError, asyncio.TimeoutError) as e:
            logger.debug(f"yt-dlp failed to extract metadata for URL {url}: {e}")

        return MediaSource(url=url, title=URLUtils.title_from_url(url), media_type=MediaType.URL)

    async def _resolve_search(self, query: str) -> Optional[MediaSource]:
        result = await self.youtube.search_first(query)
        if not result:
            return None
        return MediaSource(url=result['url'], title=result['title'], media_type=MediaType.YOUTUBE)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10))
        return self._session

    async def check_playable(self, url: str, headers: Optional[Dict[str, str]] = None) -> None:
        """
        Probe a remote input before handing it to FFmpeg.

        Only the response headers are read. Network trouble is logged and
        ignored since FFmpeg will report it anyway.

        Raises:
            ProtectedContentError: If the URL serves a webpage instead of media
        """
        if not url.startswith(('http://', 'https://')):
            return

        request_headers = dict(headers or {'User-Agent': DEFAULT_USER_AGENT})
        session = await self._get_session()
        try:
            async with async_timeout.timeout(10):
                async with session.get(url, headers=request_headers) as response:
                    if response.status >= 400:
                        logger.warning(f"URL validation failed: {response.status} {response.reason}")
                        return
                    content_type = response.headers.get('Content-Type', '')
                    logger.info(f"URL validation successful: {response.status}, Content-Type: {content_type}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"URL validation error for {url}: {e}")
            return

        if 'text/html' in content_type:
            raise ProtectedContentError("Source is a webpage, not a video stream")

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        if self.embed_extractor is not None:
            self.embed_extractor.close()
