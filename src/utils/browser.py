"""
Headless browser extraction for embed hosting pages.

Some hosts only reveal the media URL after their player script runs. A
headless Chrome loads the page and its performance log is watched for the
first .m3u8 or .mp4 response.
"""

import asyncio
import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from selenium import webdriver
from selenium.webdriver.chrome.options import Options

from core.interfaces import MediaSource, MediaType
from utils.constants import DEFAULT_USER_AGENT, EMBED_EXTRACTION_TIMEOUT

logger = logging.getLogger(__name__)

IGNORED_RESOURCE_TYPES = {'Image', 'Stylesheet', 'Font'}


def _media_url_from_log(entry: dict) -> Optional[str]:
    """Return the response URL of a performance log entry if it looks like media."""
    try:
        message = json.loads(entry['message'])['message']
    except (KeyError, TypeError, ValueError):
        return None

    if message.get('method') != 'Network.responseReceived':
        return None

    params = message.get('params', {})
    if params.get('type') in IGNORED_RESOURCE_TYPES:
        return None

    url = params.get('response', {}).get('url', '')
    if 'ping.gif' in url:
        return None
    if '.m3u8' in url or '.mp4' in url:
        return url
    return None


class EmbedExtractor:
    """Finds the stream behind an embed page with a headless Chrome."""

    def __init__(self, timeout: float = EMBED_EXTRACTION_TIMEOUT, user_agent: str = DEFAULT_USER_AGENT):
        self.timeout = timeout
        self.user_agent = user_agent
        self.pool = ThreadPoolExecutor(max_workers=1)

    def _build_driver(self) -> webdriver.Chrome:
        chrome_options = Options()
        chrome_options.add_argument("--headless=new")
        chrome_options.add_argument("--no-sandbox")
        chrome_options.add_argument("--disable-dev-shm-usage")
        chrome_options.add_argument("--disable-gpu")
        chrome_options.add_argument("--no-first-run")
        chrome_options.add_argument("--no-zygote")
        chrome_options.add_argument(f"--user-agent={self.user_agent}")
        chrome_options.set_capability("goog:loggingPrefs", {"performance": "ALL"})
        return webdriver.Chrome(options=chrome_options)

    def _extract_blocking(self, page_url: str) -> Optional[str]:
        driver = None
        try:
            logger.info(f"Launching headless Chrome to resolve stream from: {page_url}")
            driver = self._build_driver()
            driver.set_page_load_timeout(self.timeout)
            deadline = time.monotonic() + self.timeout
            try:
                driver.get(page_url)
            except Exception as e:
                # Slow pages still fire their media requests
                logger.debug(f"Page load did not complete for {page_url}: {e}")

            while time.monotonic() < deadline:
                for entry in driver.get_log("performance"):
                    media_url = _media_url_from_log(entry)
                    if media_url:
                        logger.info(f"Intercepted stream URL: {media_url}")
                        return media_url
                time.sleep(0.25)

            logger.warning(f"Timeout waiting for stream URL on {page_url}")
            return None
        finally:
            if driver is not None:
                try:
                    driver.quit()
                except Exception as e:
                    logger.error(f"Failed to close browser: {e}")

    async def extract(self, page_url: str) -> Optional[MediaSource]:
        """
        Resolve an embed page into a stream source.

        Args:
            page_url: The embed page

        Returns:
            Optional[MediaSource]: The intercepted stream with the Referer and
            User-Agent it must be fetched with, or None
        """
        loop = asyncio.get_running_loop()
        try:
            stream_url = await loop.run_in_executor(self.pool, self._extract_blocking, page_url)
        except Exception as e:
            logger.error(f"Failed to resolve embed source for {page_url}: {e}")
            return None

        if not stream_url:
            return None

        return MediaSource(
            url=stream_url,
            title='Extracted Stream',
            media_type=MediaType.URL,
            headers={
                'Referer': page_url,
                'User-Agent': self.user_agent,
            },
        )

    def close(self) -> None:
        self.pool.shutdown(wait=False)
