import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from fc2rec.notify import BaseNotifier, FormattedNotifier
from fc2rec.utils import AsyncHttpClient
from fc2rec.watch.version import check_version, is_same_version


class RecordingNotifier(BaseNotifier):
    def __init__(self):
        self.sent: list[tuple[str, str, int]] = []

    async def notify(self, title: str, message: str, priority: int):
        self.sent.append((title, message, priority))


class FakeReleases:
    def __init__(self, tag_name: str, status: int = 200):
        self.tag_name = tag_name
        self.status = status
        self.accept: list[str] = []
        app = web.Application()
        app.router.add_get("/releases/latest", self.handle)
        self.server = TestServer(app)

    async def __aenter__(self):
        await self.server.start_server()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.server.close()

    @property
    def url(self) -> str:
        return str(self.server.make_url("/releases/latest"))

    async def handle(self, request: web.Request):
        self.accept.append(request.headers.get("Accept", ""))
        if self.status != 200:
            return web.Response(status=self.status)
        return web.json_response({"tag_name": self.tag_name, "name": "release"})


def test_is_same_version():
    assert is_same_version("v1.2.0", "1.2.0")
    assert is_same_version("1.2.0", "v1.2.0")
    assert not is_same_version("v1.3.0", "1.2.0")


@pytest.mark.asyncio
async def test_update_available():
    sink = RecordingNotifier()
    async with FakeReleases("v1.3.0") as releases, AsyncHttpClient() as http:
        latest = await check_version(http, FormattedNotifier(sink), releases.url, "1.2.0")

    assert latest == "v1.3.0"
    assert releases.accept == ["application/vnd.github.v3+json"]
    assert sink.sent == [
        ("update available (v1.3.0)", "A new version (v1.3.0) of fc2rec is available. Please update.", 7),
    ]


@pytest.mark.asyncio
async def test_up_to_date():
    sink = RecordingNotifier()
    async with FakeReleases("v1.2.0") as releases, AsyncHttpClient() as http:
        latest = await check_version(http, FormattedNotifier(sink), releases.url, "1.2.0")

    assert latest is None
    assert sink.sent == []


@pytest.mark.asyncio
async def test_development_version_is_not_checked():
    sink = RecordingNotifier()
    async with FakeReleases("v1.3.0") as releases, AsyncHttpClient() as http:
        latest = await check_version(http, FormattedNotifier(sink), releases.url, "1.3.0-dev")

    assert latest is None
    assert releases.accept == []
    assert sink.sent == []


@pytest.mark.asyncio
async def test_failed_check_is_logged_only():
    sink = RecordingNotifier()
    async with FakeReleases("", status=500) as releases, AsyncHttpClient() as http:
        latest = await check_version(http, FormattedNotifier(sink), releases.url, "1.2.0")

    assert latest is None
    assert sink.sent == []
