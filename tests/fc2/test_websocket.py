import asyncio
import json

import pytest
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer

from fc2rec.fc2 import (
    Comment,
    EmptyPlaylistError,
    FC2WebSocket,
    LoginRequiredError,
    MultipleConnectionError,
    PaidProgramError,
    ServerDisconnectionError,
    StreamEndedError,
    WebSocketNotOpenError,
    WebSocketState,
    WebSocketTransportError,
    disconnection_error,
)
from fc2rec.fc2 import websocket as websocket_module
from fc2rec.utils import AsyncHttpClient


async def start_server(handler) -> TestServer:
    app = web.Application()
    app.router.add_get("/ws", handler)
    server = TestServer(app)
    await server.start_server()
    return server


async def echo_handler(request: web.Request) -> web.WebSocketResponse:
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    await ws.send_json({"name": "connect_complete", "arguments": {}})
    async for msg in ws:
        if msg.type != WSMsgType.TEXT:
            break
        req = json.loads(msg.data)
        if req["name"] == "heartbeat":
            continue
        if req["name"] == "get_hls_information":
            await ws.send_json({"name": "_response_", "id": req["id"], "arguments": {"status": 0}})
            continue
        # A response nobody waits for comes first.
        await ws.send_json({"name": "_response_", "id": 999, "arguments": {"stale": True}})
        await ws.send_json({"name": "_response_", "id": req["id"], "arguments": {"name": req["name"]}})
    return ws


def push_handler(*frames: dict, close: bool = False, close_code: int = 1000):
    async def handler(request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        for frame in frames:
            await ws.send_json(frame)
        if close:
            await ws.close(code=close_code, message=b"bye")
        else:
            await ws.receive()
        return ws

    return handler


async def run_loops(ws: FC2WebSocket, fn):
    listener = asyncio.create_task(ws.listen())
    dispatcher = asyncio.create_task(ws.dispatch())
    try:
        return await fn()
    finally:
        listener.cancel()
        dispatcher.cancel()
        await asyncio.gather(listener, dispatcher, return_exceptions=True)


@pytest.mark.asyncio
async def test_request_ids_and_stale_responses():
    server = await start_server(echo_handler)
    try:
        async with AsyncHttpClient() as http:
            async with FC2WebSocket(http, str(server.make_url("/ws"))) as ws:
                assert ws.state == WebSocketState.OPEN

                async def requests():
                    return [await ws.send(name) for name in ("first", "second", "third")]

                responses = await run_loops(ws, requests)
                assert [res.id for res in responses] == [2, 3, 4]
                assert [res.arguments["name"] for res in responses] == ["first", "second", "third"]
            assert ws.state == WebSocketState.CLOSED
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_empty_hls_information():
    server = await start_server(echo_handler)
    try:
        async with AsyncHttpClient() as http:
            async with FC2WebSocket(http, str(server.make_url("/ws"))) as ws:
                with pytest.raises(EmptyPlaylistError):
                    await run_loops(ws, ws.get_hls_information)
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_heartbeat_tolerates_missing_answers(monkeypatch):
    monkeypatch.setattr(websocket_module, "HEARTBEAT_TIMEOUT_SEC", 0.05)
    server = await start_server(echo_handler)
    try:
        async with AsyncHttpClient() as http:
            async with FC2WebSocket(http, str(server.make_url("/ws")), health_check_interval_sec=0.01) as ws:

                async def beat():
                    with pytest.raises(TimeoutError):
                        async with asyncio.timeout(0.5):
                            await ws.heartbeat_loop()

                await run_loops(ws, beat)
                assert ws.last_msg_id > 3
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_control_disconnection():
    frames = {"name": "control_disconnection", "arguments": {"code": 4507}}
    server = await start_server(push_handler(frames))
    try:
        async with AsyncHttpClient() as http:
            async with FC2WebSocket(http, str(server.make_url("/ws"))) as ws:
                with pytest.raises(LoginRequiredError) as info:
                    await ws.listen()
                assert info.value.code == 4507
                assert ws.state == WebSocketState.FAILING
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_publish_stop():
    server = await start_server(push_handler({"name": "publish_stop", "arguments": {}}))
    try:
        async with AsyncHttpClient() as http:
            async with FC2WebSocket(http, str(server.make_url("/ws"))) as ws:
                with pytest.raises(StreamEndedError):
                    await ws.listen()
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_comments_are_forwarded_until_close():
    frame = {
        "name": "comment",
        "arguments": {
            "comments": [
                {"user_name": "a", "comment": "hello", "timestamp": 1},
                {"user_name": "b", "comment": "world", "timestamp": 2},
            ],
        },
    }
    server = await start_server(push_handler(frame, close=True))
    try:
        async with AsyncHttpClient() as http:
            async with FC2WebSocket(http, str(server.make_url("/ws"))) as ws:
                queue: asyncio.Queue[Comment | None] = asyncio.Queue(maxsize=10)
                await ws.listen(queue)
                assert (await queue.get()).comment == "hello"
                assert (await queue.get()).comment == "world"
                assert await queue.get() is None
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_abnormal_close_code():
    frame = {"name": "comment", "arguments": {"comments": []}}
    server = await start_server(push_handler(frame, close=True, close_code=4000))
    try:
        async with AsyncHttpClient() as http:
            async with FC2WebSocket(http, str(server.make_url("/ws"))) as ws:
                with pytest.raises(WebSocketTransportError) as info:
                    await ws.listen()
                assert "4000" in str(info.value)
                assert ws.state == WebSocketState.FAILING
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_send_before_dial():
    async with AsyncHttpClient() as http:
        ws = FC2WebSocket(http, "ws://127.0.0.1:1/ws")
        with pytest.raises(WebSocketNotOpenError):
            await ws.send("heartbeat")


def test_disconnection_codes():
    assert isinstance(disconnection_error(4101), PaidProgramError)
    assert isinstance(disconnection_error(4507), LoginRequiredError)
    assert isinstance(disconnection_error(4512), MultipleConnectionError)
    err = disconnection_error(9999)
    assert type(err) is ServerDisconnectionError
    assert err.code == 9999
