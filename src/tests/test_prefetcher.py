import asyncio
import os

import pytest

from core.interfaces import MediaSource, MediaType
from core.prefetcher import Prefetcher
from core.queue_manager import QueueManager
from utils.exceptions import ResolutionError


class FakeYouTube:
    def __init__(self, directory, failures=0, gate=None):
        self.directory = directory
        self.failures = failures
        self.gate = gate
        self.calls = []

    async def download(self, url):
        self.calls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            self.failures -= 1
            raise ResolutionError("download failed")
        path = os.path.join(self.directory, f"{len(self.calls)}.m4a")
        with open(path, 'w') as f:
            f.write("audio")
        return path


def youtube_item(is_live=False, media_type=MediaType.YOUTUBE):
    queue = QueueManager()
    source = MediaSource(url="https://www.youtube.com/watch?v=dQw4w9WgXcQ", title="Video",
                         media_type=media_type, is_live=is_live)
    return queue.enqueue(source, "alice", source.url)


@pytest.mark.asyncio
async def test_attach_is_idempotent(tmp_path):
    youtube = FakeYouTube(str(tmp_path))
    prefetcher = Prefetcher(youtube)
    item = youtube_item()

    assert prefetcher.attach(item) is True
    assert prefetcher.attach(item) is False
    await asyncio.wait({item.prefetch.task})

    assert len(youtube.calls) == 1
    assert item.prefetch.ready


@pytest.mark.asyncio
@pytest.mark.parametrize("is_live,media_type", [
    (True, MediaType.YOUTUBE),
    (False, MediaType.URL),
    (False, MediaType.TWITCH),
])
async def test_only_recorded_videos_are_prefetched(tmp_path, is_live, media_type):
    prefetcher = Prefetcher(FakeYouTube(str(tmp_path)))
    item = youtube_item(is_live=is_live, media_type=media_type)

    assert prefetcher.attach(item) is False
    assert item.prefetch is None


@pytest.mark.asyncio
async def test_obtain_uses_finished_download(tmp_path):
    youtube = FakeYouTube(str(tmp_path))
    prefetcher = Prefetcher(youtube)
    item = youtube_item()
    prefetcher.attach(item)
    await asyncio.wait({item.prefetch.task})

    path = await prefetcher.obtain(item)

    assert os.path.exists(path)
    assert len(youtube.calls) == 1
    assert item.prefetch is None


@pytest.mark.asyncio
async def test_obtain_waits_for_pending_download(tmp_path):
    gate = asyncio.Event()
    youtube = FakeYouTube(str(tmp_path), gate=gate)
    prefetcher = Prefetcher(youtube)
    item = youtube_item()
    prefetcher.attach(item)

    waiter = asyncio.create_task(prefetcher.obtain(item))
    await asyncio.sleep(0.01)
    assert not waiter.done()

    gate.set()
    path = await asyncio.wait_for(waiter, 1)

    assert os.path.exists(path)
    assert len(youtube.calls) == 1


@pytest.mark.asyncio
async def test_obtain_downloads_again_after_background_failure(tmp_path):
    youtube = FakeYouTube(str(tmp_path), failures=1)
    prefetcher = Prefetcher(youtube)
    item = youtube_item()
    prefetcher.attach(item)
    await asyncio.wait({item.prefetch.task})
    assert item.prefetch.error is not None

    path = await prefetcher.obtain(item)

    assert os.path.exists(path)
    assert len(youtube.calls) == 2


@pytest.mark.asyncio
async def test_obtain_without_prefetch_downloads(tmp_path):
    youtube = FakeYouTube(str(tmp_path))
    prefetcher = Prefetcher(youtube)
    item = youtube_item()

    path = await prefetcher.obtain(item)

    assert os.path.exists(path)
    assert len(youtube.calls) == 1


@pytest.mark.asyncio
async def test_obtain_raises_when_fallback_fails(tmp_path):
    youtube = FakeYouTube(str(tmp_path), failures=2)
    prefetcher = Prefetcher(youtube)
    item = youtube_item()
    prefetcher.attach(item)
    await asyncio.wait({item.prefetch.task})

    with pytest.raises(ResolutionError):
        await prefetcher.obtain(item)
    assert item.prefetch is None


@pytest.mark.asyncio
async def test_discard_deletes_unused_download(tmp_path):
    youtube = FakeYouTube(str(tmp_path))
    prefetcher = Prefetcher(youtube)
    item = youtube_item()
    prefetcher.attach(item)
    await asyncio.wait({item.prefetch.task})
    path = item.prefetch.path

    prefetcher.discard(item)

    assert not os.path.exists(path)
    assert item.prefetch is None


@pytest.mark.asyncio
async def test_discard_cancels_pending_download(tmp_path):
    gate = asyncio.Event()
    prefetcher = Prefetcher(FakeYouTube(str(tmp_path), gate=gate))
    item = youtube_item()
    prefetcher.attach(item)
    task = item.prefetch.task

    prefetcher.discard(item)
    await asyncio.wait({task})

    assert task.cancelled()
    assert item.prefetch is None
