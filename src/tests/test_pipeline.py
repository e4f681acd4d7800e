import asyncio
import shlex
import threading
import types

import pytest

from core.pipeline import (
    CancelToken,
    FFmpegPipeline,
    PreparedInput,
    StreamOptions,
    VideoParameters,
    parse_frame_rate,
    parse_video_parameters,
)
from utils.exceptions import PipelineError, ProtectedContentError


class FakeSink:
    def __init__(self):
        self.after = None
        self.played = []
        self.stops = 0

    def play(self, audio, after):
        self.played.append(audio)
        self.after = after

    def stop(self):
        self.stops += 1


def make_pipeline(sink, ffmpeg_output=b""):
    pipeline = FFmpegPipeline(sink)
    audio = types.SimpleNamespace(cleaned=False)
    audio.cleanup = lambda: setattr(audio, 'cleaned', True)

    def create_audio(prepared, options, stderr=None):
        if stderr is not None:
            stderr.write(ffmpeg_output)
        return audio

    pipeline.create_audio = create_audio
    return pipeline


def finish_from_player_thread(sink, error=None):
    thread = threading.Thread(target=sink.after, args=(error,))
    thread.start()
    thread.join()


def test_cancel_runs_callbacks_once():
    token = CancelToken()
    calls = []
    token.add_callback(lambda: calls.append('stop'))

    assert token.cancel() is True
    assert token.cancel() is False
    assert calls == ['stop']
    assert token.cancelled is True


def test_callback_added_after_cancel_runs_immediately():
    token = CancelToken()
    token.cancel()
    calls = []

    token.add_callback(lambda: calls.append('late'))

    assert calls == ['late']


def test_failing_callback_does_not_block_the_rest():
    token = CancelToken()
    calls = []

    def broken():
        raise RuntimeError("boom")

    token.add_callback(broken)
    token.add_callback(lambda: calls.append('ok'))
    token.cancel()

    assert calls == ['ok']


def test_remote_arguments_carry_headers_and_hls():
    pipeline = FFmpegPipeline(FakeSink())
    prepared = PreparedInput(source="https://cdn.example/master.m3u8", is_remote=True)
    options = StreamOptions(headers={'Referer': 'https://vidlink.pro/', 'User-Agent': 'Agent/1.0'})

    before, after = pipeline.build_arguments(prepared, options)
    args = shlex.split(before)

    assert '-reconnect' in args
    assert args[args.index('-headers') + 1] == "Referer: https://vidlink.pro/\r\nUser-Agent: Agent/1.0\r\n"
    assert args[-2:] == ['-f', 'hls']
    assert after == '-vn'


def test_remote_arguments_add_default_user_agent():
    pipeline = FFmpegPipeline(FakeSink())
    prepared = PreparedInput(source="https://cdn.example/video.mp4", is_remote=True)

    before, _ = pipeline.build_arguments(prepared, StreamOptions())
    args = shlex.split(before)

    assert args[args.index('-headers') + 1].startswith("User-Agent: Mozilla/5.0")
    assert '-f' not in args


def test_seek_applies_to_files_but_not_pipes():
    pipeline = FFmpegPipeline(FakeSink())

    file_args, _ = pipeline.build_arguments(PreparedInput(source="/tmp/a.m4a"), StreamOptions(seek_seconds=90.6))
    pipe_args, _ = pipeline.build_arguments(
        PreparedInput(source=object(), is_pipe=True), StreamOptions(seek_seconds=90)
    )

    assert '-ss 90' in file_args
    assert '-headers' not in file_args
    assert '-ss' not in pipe_args


@pytest.mark.asyncio
async def test_run_returns_when_playback_ends():
    sink = FakeSink()
    pipeline = make_pipeline(sink)
    token = CancelToken()

    runner = asyncio.create_task(pipeline.run(PreparedInput(source="/tmp/a.m4a"), StreamOptions(), token))
    await asyncio.sleep(0)
    assert len(sink.played) == 1

    finish_from_player_thread(sink)
    await asyncio.wait_for(runner, 1)


@pytest.mark.asyncio
async def test_run_raises_on_transport_error():
    sink = FakeSink()
    pipeline = make_pipeline(sink)

    runner = asyncio.create_task(pipeline.run(PreparedInput(source="/tmp/a.m4a"), StreamOptions(), CancelToken()))
    await asyncio.sleep(0)
    finish_from_player_thread(sink, RuntimeError("ffmpeg exited with status 1"))

    with pytest.raises(PipelineError):
        await asyncio.wait_for(runner, 1)


@pytest.mark.asyncio
@pytest.mark.parametrize("line", [
    b"https://vidlink.pro/movie/603: Invalid data found when processing input\n",
    b"[in#0 @ 0x55d] Error opening input: Could not open source file\n",
])
async def test_unreadable_input_is_raised_as_protected(line):
    sink = FakeSink()
    pipeline = make_pipeline(sink, ffmpeg_output=b"ffmpeg version 6.1\n" + line)
    prepared = PreparedInput(source="https://vidlink.pro/movie/603", is_remote=True)

    runner = asyncio.create_task(pipeline.run(prepared, StreamOptions(), CancelToken()))
    await asyncio.sleep(0)
    finish_from_player_thread(sink)

    with pytest.raises(ProtectedContentError):
        await asyncio.wait_for(runner, 1)


@pytest.mark.asyncio
async def test_unrelated_ffmpeg_output_is_not_an_error():
    sink = FakeSink()
    pipeline = make_pipeline(sink, ffmpeg_output=b"[aac @ 0x1] Queue input is backward in time\n")

    runner = asyncio.create_task(pipeline.run(PreparedInput(source="/tmp/a.m4a"), StreamOptions(), CancelToken()))
    await asyncio.sleep(0)
    finish_from_player_thread(sink)

    await asyncio.wait_for(runner, 1)


@pytest.mark.parametrize("rate,expected", [
    ("30/1", 30.0),
    ("24000/1001", 24000 / 1001),
    ("0/0", None),
    ("25", 25.0),
    (None, None),
    ("n/a", None),
])
def test_parse_frame_rate(rate, expected):
    assert parse_frame_rate(rate) == expected


def test_parse_video_parameters_uses_first_video_stream():
    probe = {'streams': [
        {'codec_type': 'audio'},
        {'codec_type': 'video', 'width': 1920, 'height': 1080, 'r_frame_rate': '60/1'},
    ]}

    assert parse_video_parameters(probe) == VideoParameters(width=1920, height=1080, fps=60.0)
    assert parse_video_parameters({'streams': [{'codec_type': 'audio'}]}) is None


def test_probed_parameters_fill_only_known_values():
    options = StreamOptions(bitrate_kbps=96, seek_seconds=12)

    merged = options.with_video(VideoParameters(width=640, height=360))

    assert (merged.width, merged.height, merged.fps) == (640, 360, 30)
    assert (merged.bitrate_kbps, merged.seek_seconds) == (96, 12)
    assert options.with_video(None) is options


@pytest.mark.asyncio
async def test_pipes_are_not_probed():
    pipeline = FFmpegPipeline(FakeSink())

    assert await pipeline.probe(PreparedInput(source=object(), is_pipe=True)) is None


@pytest.mark.asyncio
async def test_cancel_stops_the_sink_and_ignores_late_errors():
    sink = FakeSink()
    pipeline = make_pipeline(sink)
    token = CancelToken()

    runner = asyncio.create_task(pipeline.run(PreparedInput(source="/tmp/a.m4a"), StreamOptions(), token))
    await asyncio.sleep(0)
    token.cancel()
    token.cancel()
    finish_from_player_thread(sink, RuntimeError("broken pipe"))

    await asyncio.wait_for(runner, 1)
    assert sink.stops == 1


@pytest.mark.asyncio
async def test_run_with_cancelled_token_does_nothing():
    sink = FakeSink()
    pipeline = make_pipeline(sink)
    token = CancelToken()
    token.cancel()

    await pipeline.run(PreparedInput(source="/tmp/a.m4a"), StreamOptions(), token)

    assert sink.played == []


def test_release_deletes_temp_file(tmp_path):
    path = tmp_path / "download.m4a"
    path.write_bytes(b"audio")
    prepared = PreparedInput(source=str(path), temp_path=str(path))

    prepared.release()
    prepared.release()

    assert not path.exists()


def test_release_kills_live_process():
    class FakeProcess:
        killed = False

        def poll(self):
            return None

        def kill(self):
            self.killed = True

    process = FakeProcess()
    prepared = PreparedInput(source=object(), is_pipe=True, process=process)

    prepared.release()

    assert process.killed is True
    assert prepared.process is None
