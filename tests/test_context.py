import aiohttp
import pytest

from clip_media.core.config import DictSettings, MediaServerConfig
from clip_media.core.context import MediaContext
from clip_media.core.errors import WorkerChannelError
from clip_media.core.dto import VideoRequest
from clip_media.media.transcoder import ImageTranscoder


def test_context_wires_config_through(tmp_path) -> None:
    settings = DictSettings({
        "worker_count": "3",
        "initial_chunk_size": "4096",
        "thumbnail_max_age_s": "60",
        "base_dir": str(tmp_path),
    })
    context = MediaContext(settings=settings, transcoder=ImageTranscoder("JPEG"))
    assert context.pool.worker_count == 3
    assert context.handler.transcoder.output_format == "JPEG"
    assert context.config.in_flight_limit == 48
    assert not context.started


async def test_served_over_http(tmp_path, make_video) -> None:
    video = make_video(10_000)
    data = video.read_bytes()
    config = MediaServerConfig(worker_count=2, base_dir=tmp_path)

    with MediaContext(config) as context:
        assert context.started
        assert context.server.is_running()
        assert context.server.port > 0
        url = context.server.video_url(str(video))
        async with aiohttp.ClientSession() as session:
            async with session.get(url, headers={"Range": "bytes=100-199"}) as resp:
                assert resp.status == 206
                assert await resp.read() == data[100:200]
            async with session.get(context.server.http_url_for(f"clip-video:///{video.as_posix()}")) as resp:
                assert resp.status == 200
                assert await resp.read() == data

    assert not context.server.is_running()
    assert context.dispatcher.closed


async def test_closed_context_rejects_requests(tmp_path) -> None:
    context = MediaContext(MediaServerConfig(worker_count=1, base_dir=tmp_path))
    context.start(serve=False)
    context.close()
    with pytest.raises(WorkerChannelError):
        await context.dispatcher.submit(VideoRequest("/clips/a.mp4"))
