import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from fc2rec.hls import HlsDownloader, SegmentForbiddenError
from fc2rec.utils import AsyncHttpClient, HttpRequestError


class BytesWriter:
    def __init__(self):
        self.data = b""

    async def write(self, data: bytes):
        self.data += data


class FakeHls:
    def __init__(self, names: list[str], segment_status: dict[str, int] | None = None, playlist_status: int = 200):
        self.names = names
        self.segment_status = segment_status if segment_status is not None else {}
        self.playlist_status = playlist_status
        self.playlist_hits = 0
        app = web.Application()
        app.router.add_get("/live/playlist.m3u8", self.playlist)
        app.router.add_get("/live/{name}", self.segment)
        self.server = TestServer(app)

    async def __aenter__(self):
        await self.server.start_server()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.server.close()

    @property
    def url(self) -> str:
        return str(self.server.make_url("/live/playlist.m3u8"))

    async def playlist(self, request: web.Request):
        self.playlist_hits += 1
        if self.playlist_status != 200:
            return web.Response(status=self.playlist_status)
        lines = ["#EXTM3U", "#EXT-X-TARGETDURATION:1"]
        for name in self.names:
            lines.append("#EXTINF:1.0,")
            lines.append(f"{name}?time={1700000000 + int(name.split('.')[0])}")
        return web.Response(text="\n".join(lines), content_type="application/vnd.apple.mpegurl")

    async def segment(self, request: web.Request):
        name = request.match_info["name"]
        status = self.segment_status.get(name, 200)
        if status != 200:
            return web.Response(status=status)
        return web.Response(body=name.split(".")[0].encode())


def new_downloader(http: AsyncHttpClient, url: str, packet_loss_max: int = 20) -> HlsDownloader:
    return HlsDownloader(http, url, packet_loss_max, stall_timeout_sec=0.1, poll_interval_sec=0.01)


@pytest.mark.asyncio
async def test_read_until_stall():
    async with FakeHls(["1.ts", "2.ts", "3.ts"]) as hls, AsyncHttpClient() as http:
        writer = BytesWriter()
        checkpoint = await new_downloader(http, hls.url).read(writer)
        assert writer.data == b"123"
        assert checkpoint.last_fragment_name == "3.ts"
        assert checkpoint.last_fragment_time == 1700000003
        assert hls.playlist_hits > 1


@pytest.mark.asyncio
async def test_resume_from_checkpoint():
    async with FakeHls(["1.ts", "2.ts", "3.ts"]) as hls, AsyncHttpClient() as http:
        first = BytesWriter()
        checkpoint = await new_downloader(http, hls.url).read(first)

        hls.names = ["2.ts", "3.ts", "4.ts"]
        second = BytesWriter()
        await new_downloader(http, hls.url).read(second, checkpoint)
        assert first.data + second.data == b"1234"


@pytest.mark.asyncio
async def test_segment_loss_within_limit():
    status = {"2.ts": 500, "4.ts": 500}
    async with FakeHls(["1.ts", "2.ts", "3.ts", "4.ts"], status) as hls, AsyncHttpClient() as http:
        writer = BytesWriter()
        await new_downloader(http, hls.url, packet_loss_max=2).read(writer)
        assert writer.data == b"13"


@pytest.mark.asyncio
async def test_segment_loss_over_limit():
    status = {"2.ts": 500, "4.ts": 500}
    async with FakeHls(["1.ts", "2.ts", "3.ts", "4.ts"], status) as hls, AsyncHttpClient() as http:
        writer = BytesWriter()
        with pytest.raises(HttpRequestError):
            await new_downloader(http, hls.url, packet_loss_max=1).read(writer)
        assert writer.data == b"13"


@pytest.mark.asyncio
async def test_forbidden_segment():
    async with FakeHls(["1.ts", "2.ts"], {"2.ts": 403}) as hls, AsyncHttpClient() as http:
        with pytest.raises(SegmentForbiddenError):
            await new_downloader(http, hls.url).read(BytesWriter())


@pytest.mark.asyncio
async def test_too_many_playlist_errors():
    async with FakeHls([], playlist_status=500) as hls, AsyncHttpClient() as http:
        queue: asyncio.Queue[str | None] = asyncio.Queue()
        with pytest.raises(HttpRequestError):
            await new_downloader(http, hls.url, packet_loss_max=2).fill_queue(queue)
        assert hls.playlist_hits == 3
        assert queue.empty()


@pytest.mark.asyncio
async def test_probe():
    async with FakeHls(["1.ts"]) as hls, AsyncHttpClient() as http:
        assert await new_downloader(http, hls.url).probe()
        hls.playlist_status = 404
        assert not await new_downloader(http, hls.url).probe()


@pytest.mark.asyncio
async def test_forbidden_playlist():
    async with FakeHls(["1.ts"], playlist_status=403) as hls, AsyncHttpClient() as http:
        queue: asyncio.Queue[str | None] = asyncio.Queue()
        with pytest.raises(SegmentForbiddenError):
            await new_downloader(http, hls.url).fill_queue(queue)
        assert hls.playlist_hits == 1
        assert queue.empty()


@pytest.mark.asyncio
async def test_missing_playlist_stalls_without_errors():
    async with FakeHls(["1.ts"], playlist_status=404) as hls, AsyncHttpClient() as http:
        queue: asyncio.Queue[str | None] = asyncio.Queue()
        await new_downloader(http, hls.url, packet_loss_max=0).fill_queue(queue)
        assert hls.playlist_hits > 1
        assert queue.empty()


@pytest.mark.asyncio
async def test_playlist_gone_after_segments():
    async with FakeHls(["1.ts", "2.ts"]) as hls, AsyncHttpClient() as http:
        downloader = new_downloader(http, hls.url, packet_loss_max=0)
        downloader.stall_timeout_sec = 0.3
        writer = BytesWriter()
        task = asyncio.create_task(downloader.read(writer))
        async with asyncio.timeout(5):
            while writer.data != b"12":
                await asyncio.sleep(0.01)
        hls.playlist_status = 404
        checkpoint = await asyncio.wait_for(task, timeout=5)
        assert checkpoint.last_fragment_name == "2.ts"
