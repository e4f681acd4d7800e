"""
TMDB lookups and embed link builders used by the movie and tv commands.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any

import aiohttp

logger = logging.getLogger(__name__)

TMDB_API_URL = "https://api.themoviedb.org/3"


@dataclass
class TitleMatch:
    id: int
    title: str
    date: str
    overview: str


class TMDBClient:
    """Best-match search against TMDB's movie and tv endpoints."""

    def __init__(self, api_key: Optional[str], session: Optional[aiohttp.ClientSession] = None):
        self.api_key = api_key
        self._session = session

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10))
        return self._session

    async def _search(self, kind: str, query: str) -> Optional[Dict[str, Any]]:
        if not self.configured:
            logger.error("TMDB API key is not configured.")
            return None

        session = await self._get_session()
        try:
            async with session.get(
                f"{TMDB_API_URL}/search/{kind}",
                params={'api_key': self.api_key, 'query': query},
            ) as response:
                response.raise_for_status()
                data = await response.json()
        except (aiohttp.ClientError, ValueError) as e:
            logger.error(f"Failed to search TMDB ({kind}) for '{query}': {e}")
            return None

        results = data.get('results') or []
        return results[0] if results else None

    async def search_movie(self, query: str) -> Optional[TitleMatch]:
        movie = await self._search('movie', query)
        if not movie:
            return None
        return TitleMatch(
            id=movie['id'],
            title=movie.get('title', query),
            date=movie.get('release_date') or 'Unknown',
            overview=movie.get('overview') or '',
        )

    async def search_tv(self, query: str) -> Optional[TitleMatch]:
        show = await self._search('tv', query)
        if not show:
            return None
        return TitleMatch(
            id=show['id'],
            title=show.get('name', query),
            date=show.get('first_air_date') or 'Unknown',
            overview=show.get('overview') or '',
        )

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()


def vidking_movie_url(tmdb_id: int) -> str:
    return f"https://www.vidking.net/embed/movie/{tmdb_id}"


def cinemaos_movie_url(tmdb_id: int) -> str:
    return f"https://cinemaos.tech/player/{tmdb_id}"


def cinemaos_tv_url(tmdb_id: int, season: int, episode: int) -> str:
    return f"https://cinemaos.tech/player/{tmdb_id}/{season}/{episode}"


def vidsrc_movie_url(tmdb_id: int) -> str:
    return f"https://vidsrc.cc/v2/embed/movie/{tmdb_id}"


def vidsrc_tv_url(tmdb_id: int, season: int, episode: int) -> str:
    return f"https://vidsrc.cc/v2/embed/tv/{tmdb_id}/{season}/{episode}"


def vidlink_movie_url(tmdb_id: int, autoplay: bool = False, primary_color: Optional[str] = None) -> str:
    return _with_player_params(f"https://vidlink.pro/movie/{tmdb_id}", autoplay, primary_color)


def vidlink_tv_url(tmdb_id: int, season: int, episode: int,
                   autoplay: bool = False, primary_color: Optional[str] = None) -> str:
    return _with_player_params(f"https://vidlink.pro/tv/{tmdb_id}/{season}/{episode}", autoplay, primary_color)


def _with_player_params(url: str, autoplay: bool, primary_color: Optional[str]) -> str:
    params = []
    if autoplay:
        params.append('autoplay=true')
    if primary_color:
        params.append(f'primaryColor={primary_color}')
    return f"{url}?{'&'.join(params)}" if params else url
