import types

import pytest

from cogs.stream import Stream, parse_tv_query
from core.interfaces import ChannelInfo
from utils.constants import MESSAGES
from utils.exceptions import QueueError
from utils.tmdb import TitleMatch


class FakeContext:
    def __init__(self, voice_channel_id=None):
        voice = types.SimpleNamespace(channel=types.SimpleNamespace(id=voice_channel_id)) if voice_channel_id else None
        self.author = types.SimpleNamespace(display_name="alice", voice=voice)
        self.guild = types.SimpleNamespace(id=1)
        self.channel = types.SimpleNamespace(id=10)
        self.sent = []

    async def send(self, embed=None, **kwargs):
        self.sent.append(embed)


class FakeOrchestrator:
    def __init__(self, playing=False):
        self.status = types.SimpleNamespace(playing=playing, channel=ChannelInfo())
        self.enqueued = []
        self.played = []

    async def enqueue(self, query, requested_by, title=None):
        self.enqueued.append((query, requested_by, title))

    async def play(self, channel=None, seek=0):
        self.played.append(channel)
        return True

    async def remove(self, item_id):
        if item_id != 1:
            raise QueueError(MESSAGES['NOT_IN_QUEUE'].format(item_id=item_id))
        return types.SimpleNamespace(id=1, title="First")

    def queue_listing(self):
        return [{'id': 1, 'title': "First", 'requested_by': "alice"}], 1


class FakeTMDB:
    configured = True

    async def search_movie(self, query):
        return TitleMatch(id=603, title="The Matrix", date="1999-03-30", overview="Neo.")

    async def search_tv(self, query):
        return None


def make_cog(orchestrator, video_channel_id=0, tmdb=None):
    bot = types.SimpleNamespace(
        config={'video_channel_id': video_channel_id},
        orchestrator=orchestrator,
        tmdb=tmdb or FakeTMDB(),
    )
    return Stream(bot)


@pytest.mark.asyncio
async def test_play_enqueues_and_starts_when_idle():
    orchestrator = FakeOrchestrator()
    cog = make_cog(orchestrator)
    ctx = FakeContext(voice_channel_id=20)

    await Stream.play.callback(cog, ctx, query="https://example.com/a.mp4")

    assert orchestrator.enqueued == [("https://example.com/a.mp4", "alice", None)]
    assert orchestrator.played == [ChannelInfo(guild_id=1, channel_id=20, cmd_channel_id=10)]


@pytest.mark.asyncio
async def test_play_only_enqueues_while_streaming():
    orchestrator = FakeOrchestrator(playing=True)
    cog = make_cog(orchestrator, video_channel_id=30)

    await Stream.play.callback(cog, FakeContext(), query="lofi")

    assert len(orchestrator.enqueued) == 1
    assert orchestrator.played == []


@pytest.mark.asyncio
async def test_play_requires_a_voice_channel():
    orchestrator = FakeOrchestrator()
    cog = make_cog(orchestrator)
    ctx = FakeContext()

    await Stream.play.callback(cog, ctx, query="lofi")

    assert orchestrator.enqueued == []
    assert ctx.sent[0].description == MESSAGES['VOICE_REQUIRED']


@pytest.mark.asyncio
async def test_queue_lists_items():
    cog = make_cog(FakeOrchestrator())
    ctx = FakeContext()

    await Stream.queue.callback(cog, ctx)

    assert "First" in ctx.sent[0].description


@pytest.mark.asyncio
async def test_remove_unknown_id_reports_error():
    cog = make_cog(FakeOrchestrator())
    ctx = FakeContext()

    await Stream.remove.callback(cog, ctx, 5)
    await Stream.remove.callback(cog, ctx, 1)

    assert ctx.sent[0].description == MESSAGES['NOT_IN_QUEUE'].format(item_id=5)
    assert ctx.sent[1].description == MESSAGES['REMOVED'].format(title="First")


@pytest.mark.asyncio
async def test_movie_posts_links_and_queues_vidlink():
    orchestrator = FakeOrchestrator()
    cog = make_cog(orchestrator, video_channel_id=30)
    ctx = FakeContext()

    await Stream.movie.callback(cog, ctx, query="matrix")

    card = ctx.sent[1]
    assert card.title == "🎬 The Matrix (1999)"
    links = card.fields[2].value
    assert "https://www.vidking.net/embed/movie/603" in links
    assert "https://vidlink.pro/movie/603" in links
    assert orchestrator.enqueued == [("https://vidlink.pro/movie/603?autoplay=true", "alice", "The Matrix")]


@pytest.mark.asyncio
async def test_tv_reports_missing_show():
    orchestrator = FakeOrchestrator()
    cog = make_cog(orchestrator, video_channel_id=30)
    ctx = FakeContext()

    await Stream.tv.callback(cog, ctx, "Nowhere", "Show", "2", "3")

    assert ctx.sent[-1].description == MESSAGES['NO_SHOW'].format(query="Nowhere Show")
    assert orchestrator.enqueued == []


@pytest.mark.asyncio
async def test_movie_without_tmdb_key():
    tmdb = FakeTMDB()
    tmdb.configured = False
    cog = make_cog(FakeOrchestrator(), tmdb=tmdb)
    ctx = FakeContext()

    await Stream.movie.callback(cog, ctx, query="matrix")

    assert ctx.sent[0].description == MESSAGES['NO_TMDB_KEY']


@pytest.mark.parametrize("words,expected", [
    (["Breaking", "Bad", "2", "5"], ("Breaking Bad", 2, 5)),
    (["Breaking", "Bad"], ("Breaking Bad", 1, 1)),
    (["Dark", "3"], ("Dark 3", 1, 1)),
    (["24", "1", "2"], ("24", 1, 2)),
])
def test_parse_tv_query(words, expected):
    assert parse_tv_query(words) == expected
