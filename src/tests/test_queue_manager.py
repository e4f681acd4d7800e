import random

import pytest

from core.interfaces import MediaSource, MediaType
from core.queue_manager import QueueManager


def source(n):
    return MediaSource(url=f"https://example.com/{n}.mp4", title=f"Video {n}", media_type=MediaType.URL)


def fill(queue, count):
    return [queue.enqueue(source(n), "alice", f"input-{n}") for n in range(count)]


def test_enqueue_keeps_insertion_order():
    queue = QueueManager()
    items = fill(queue, 5)

    assert len(queue) == 5
    assert [i.id for i in queue.items()] == [i.id for i in items]
    assert [i.original_input for i in queue.items()] == [f"input-{n}" for n in range(5)]
    assert queue.cursor is None
    assert queue.current is None


def test_length_tracks_enqueues_minus_removals():
    rng = random.Random(1234)
    for _ in range(50):
        queue = QueueManager()
        expected = []
        for step in range(rng.randint(0, 30)):
            if expected and rng.random() < 0.3:
                victim = rng.choice(expected)
                assert queue.remove(victim.id) is victim
                expected.remove(victim)
            else:
                expected.append(queue.enqueue(source(step), "bob", str(step)))
            assert len(queue) == len(expected)
        assert queue.items() == expected


@pytest.mark.parametrize("size", range(0, 7))
def test_advance_visits_each_item_once(size):
    queue = QueueManager()
    items = fill(queue, size)

    visited = []
    item = queue.advance_to_next()
    while item is not None:
        visited.append(item.id)
        item = queue.advance_to_next()

    assert visited == [i.id for i in items]
    assert queue.cursor is None


def test_removing_current_item_moves_cursor_to_following_item():
    queue = QueueManager()
    first, second, third = fill(queue, 3)
    queue.advance_to_next()
    queue.advance_to_next()
    assert queue.cursor == 1

    removed = queue.remove(second.id)

    assert removed is second
    assert queue.cursor == 1
    assert queue.current is third
    assert queue.items() == [first, third]


def test_removing_last_current_item_clears_cursor():
    queue = QueueManager()
    first, second = fill(queue, 2)
    queue.advance_to_next()
    queue.advance_to_next()

    queue.remove(second.id)

    assert queue.cursor is None
    assert queue.current is None
    assert queue.items() == [first]


def test_removing_item_before_cursor_keeps_current():
    queue = QueueManager()
    first, second, third = fill(queue, 3)
    queue.advance_to_next()
    queue.advance_to_next()

    queue.remove(first.id)

    assert queue.current is second
    assert queue.cursor == 0
    assert queue.peek_next() is third


def test_remove_unknown_id_returns_none():
    queue = QueueManager()
    fill(queue, 2)
    assert queue.remove(999) is None
    assert len(queue) == 2


def test_peek_next_does_not_move_cursor():
    queue = QueueManager()
    first, second = fill(queue, 2)

    assert queue.peek_next() is first
    assert queue.cursor is None
    queue.advance_to_next()
    assert queue.peek_next() is second
    queue.advance_to_next()
    assert queue.peek_next() is None


def test_ids_are_never_reused_after_clear():
    queue = QueueManager()
    before = fill(queue, 3)
    removed = queue.clear()

    assert removed == before
    assert queue.is_empty()
    assert queue.cursor is None

    after = fill(queue, 2)
    assert min(i.id for i in after) > max(i.id for i in before)


def test_item_serializes_for_snapshots():
    queue = QueueManager()
    item = queue.enqueue(
        MediaSource(url="https://cdn.example/live.m3u8", title="Live", media_type=MediaType.TWITCH,
                    is_live=True, headers={'Referer': 'https://www.twitch.tv/'}),
        "carol",
        "https://twitch.tv/somebody",
    )
    data = item.to_dict()

    assert data['media_type'] == 'twitch'
    assert data['original_input'] == "https://twitch.tv/somebody"
    assert data['headers'] == {'Referer': 'https://www.twitch.tv/'}
    assert data['is_live'] is True
