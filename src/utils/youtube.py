import yt_dlp
import logging
import os
import subprocess
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Dict, Any
import asyncio
from functools import partial

from utils.constants import (
    YTDL_DOWNLOAD_OPTIONS,
    YTDL_INFO_OPTIONS,
    YTDL_LIVE_OPTIONS,
    YTDL_SEARCH_OPTIONS,
)
from utils.exceptions import ResolutionError

logger = logging.getLogger(__name__)

class YouTubeUtils:
    """
    Thin async wrapper around yt-dlp.

    yt-dlp is blocking and occasionally hangs or returns malformed data, so
    every call runs in a thread pool and any failure is turned into a
    ResolutionError (or None for the lookups that are allowed to miss).
    Downloads get their own pool so metadata lookups never queue behind them.
    """

    def __init__(self, cookies_path: Optional[str] = None, download_dir: str = 'cache/downloads',
                 ytdlp_path: str = 'yt-dlp', max_workers: int = 2,
                 download_workers: int = 2):
        self.cookies_path = cookies_path
        self.download_dir = download_dir
        self.ytdlp_path = ytdlp_path
        self.pool = ThreadPoolExecutor(max_workers=max_workers)
        self.download_pool = ThreadPoolExecutor(max_workers=download_workers)

    def _with_cookies(self, options: Dict[str, Any]) -> Dict[str, Any]:
        if self.cookies_path and os.path.exists(self.cookies_path):
            return {**options, 'cookiefile': self.cookies_path}
        return dict(options)

    async def _run(self, func, *args, pool: Optional[ThreadPoolExecutor] = None):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(pool or self.pool, partial(func, *args))

    def _extract_blocking(self, url: str, options: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with yt_dlp.YoutubeDL(self._with_cookies(options)) as ydl:
            info = ydl.extract_info(url, download=False)
            return ydl.sanitize_info(info) if info else None

    async def extract_info(self, url: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Extract metadata for a URL without downloading.

        Args:
            url: Page or media URL
            options: yt-dlp options, defaults to YTDL_INFO_OPTIONS

        Returns:
            Dict: The sanitized info dict

        Raises:
            ResolutionError: If yt-dlp fails or returns nothing usable
        """
        try:
            info = await self._run(self._extract_blocking, url, options or YTDL_INFO_OPTIONS)
        except Exception as e:
            logger.error(f"yt-dlp extraction failed for {url}: {e}")
            raise ResolutionError(f"Failed to extract info: {e}")

        if not isinstance(info, dict):
            raise ResolutionError(f"Could not extract info for URL: {url}")
        return info

    async def get_video_info(self, url: str) -> Optional[Dict[str, Any]]:
        """
        Get id, title and liveness of a YouTube video.

        Returns:
            Optional[Dict]: {'id', 'title', 'is_live'} or None on failure
        """
        try:
            info = await self.extract_info(url)
        except ResolutionError:
            return None

        if not isinstance(info.get('id'), str) or not isinstance(info.get('title'), str):
            logger.warning(f"Failed to parse video info from yt-dlp for URL: {url}")
            return None

        return {
            'id': info['id'],
            'title': info['title'],
            'is_live': info.get('is_live') is True or info.get('live_status') == 'is_live',
        }

    async def get_live_stream_url(self, url: str) -> Optional[str]:
        """Resolve the direct HLS/DASH URL of a live broadcast."""
        try:
            info = await self.extract_info(url, YTDL_LIVE_OPTIONS)
        except ResolutionError:
            return None

        stream_url = (info.get('url') or '').strip()
        if stream_url:
            logger.info(f"Got live stream URL for {url}")
            return stream_url
        logger.warning(f"yt-dlp did not return a live stream URL for: {url}")
        return None

    async def search_first(self, query: str) -> Optional[Dict[str, str]]:
        """
        Search YouTube and return the first result's watch page.

        Returns:
            Optional[Dict]: {'url', 'title'} or None if nothing was found
        """
        try:
            info = await self.extract_info(f"ytsearch1:{query}", YTDL_SEARCH_OPTIONS)
        except ResolutionError:
            return None

        entries = [e for e in info.get('entries') or [] if e]
        if not entries:
            logger.warning(f"No video found on YouTube for: \"{query}\"")
            return None

        entry = entries[0]
        video_id = entry.get('id')
        page_url = f"https://www.youtube.com/watch?v={video_id}" if video_id else entry.get('url')
        if not page_url:
            return None
        return {'url': page_url, 'title': entry.get('title') or query}

    def _download_blocking(self, url: str) -> str:
        os.makedirs(self.download_dir, exist_ok=True)
        options = self._with_cookies({
            **YTDL_DOWNLOAD_OPTIONS,
            'outtmpl': os.path.join(self.download_dir, f"{uuid.uuid4().hex}-%(id)s.%(ext)s"),
        })
        with yt_dlp.YoutubeDL(options) as ydl:
            info = ydl.extract_info(url, download=True)
            if not info:
                raise ResolutionError(f"Download returned no data for {url}")
            downloads = info.get('requested_downloads') or []
            path = downloads[0].get('filepath') if downloads else ydl.prepare_filename(info)

        if not path or not os.path.exists(path):
            raise ResolutionError(f"Download produced no file for {url}")
        return path

    async def download(self, url: str) -> str:
        """
        Download a video to a uniquely named temporary file.

        Raises:
            ResolutionError: If the download fails
        """
        try:
            logger.info(f"Downloading {url}...")
            path = await self._run(self._download_blocking, url, pool=self.download_pool)
        except ResolutionError:
            raise
        except Exception as e:
            logger.error(f"Failed to download {url}: {e}")
            raise ResolutionError(f"Download failed: {e}")
        logger.info(f"Finished downloading {url} -> {path}")
        return path

    def create_live_pipe(self, url: str) -> subprocess.Popen:
        """Start a yt-dlp process that writes the stream to stdout."""
        command = [self.ytdlp_path, '--quiet', '--no-warnings', '-o', '-']
        if self.cookies_path and os.path.exists(self.cookies_path):
            command += ['--cookies', self.cookies_path]
        command.append(url)
        logger.info(f"Piping live stream through yt-dlp: {url}")
        return subprocess.Popen(command, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL)

    def close(self) -> None:
        self.pool.shutdown(wait=False)
        self.download_pool.shutdown(wait=False)
