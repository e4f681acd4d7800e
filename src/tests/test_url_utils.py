import pytest

from utils.url_utils import URLUtils


@pytest.mark.parametrize("url,expected", [
    ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", True),
    ("https://youtu.be/dQw4w9WgXcQ", True),
    ("https://www.twitch.tv/somebody", False),
    ("lofi hip hop", False),
])
def test_is_youtube_url(url, expected):
    assert URLUtils.is_youtube_url(url) is expected


def test_is_embed_url():
    domains = ['vidsrc.cc', 'vidlink.pro']
    assert URLUtils.is_embed_url("https://vidlink.pro/movie/603", domains)
    assert URLUtils.is_embed_url("https://vidsrc.cc/v2/embed/tv/1/1/1", domains)
    assert not URLUtils.is_embed_url("https://example.com/video.mp4", domains)


@pytest.mark.parametrize("url,expected", [
    ("https://example.com/video.mp4", True),
    ("http://example.com", True),
    ("ftp://example.com/video.mp4", False),
    ("example.com/video.mp4", False),
    ("", False),
])
def test_is_valid_url(url, expected):
    assert URLUtils.is_valid_url(url) is expected


@pytest.mark.parametrize("url,expected", [
    ("https://files.example/videos/My%20Movie.mp4", "My Movie"),
    ("https://files.example/videos/trailer", "trailer"),
    ("https://files.example/archive.tar.gz", "archive.tar"),
    ("https://files.example/", "Direct URL"),
])
def test_title_from_url(url, expected):
    assert URLUtils.title_from_url(url) == expected


def test_local_file_detection(tmp_path):
    video = tmp_path / "clip.mkv"
    video.write_bytes(b"\x00")

    assert URLUtils.is_local_file(str(video))
    assert not URLUtils.is_local_file(str(tmp_path))
    assert not URLUtils.is_local_file(str(tmp_path / "missing.mkv"))
    assert URLUtils.title_from_path(str(video)) == "clip"


@pytest.mark.parametrize("url,expected", [
    ("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=42", "dQw4w9WgXcQ"),
    ("https://youtu.be/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
    ("https://www.youtube.com/live/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
    ("https://www.youtube.com/watch?v=short", None),
    ("https://example.com/watch?v=dQw4w9WgXcQ", None),
])
def test_extract_video_id(url, expected):
    assert URLUtils.extract_video_id(url) == expected


def test_twitch_channel():
    assert URLUtils.twitch_channel("https://www.twitch.tv/somebody") == "somebody"
