import asyncio
import json
from enum import Enum

import aiohttp
from aiohttp import WSCloseCode, WSMsgType
from pydantic import ValidationError

from .errors import (
    DecodeError,
    EmptyPlaylistError,
    StreamEndedError,
    WebSocketNotOpenError,
    WebSocketTransportError,
    disconnection_error,
)
from .objects import Comment, HLSInformation, WSResponse
from ..utils import AsyncHttpClient, log

READ_LIMIT = 10 * 1024 * 1024
WRITE_TIMEOUT_SEC = 15
HEARTBEAT_TIMEOUT_SEC = 15
HLS_INFO_TIMEOUT_SEC = 5
RESPONSE_BUF_MAX = 10


class WebSocketState(Enum):
    DIALING = "dialing"
    OPEN = "open"
    CLOSING_NORMAL = "closing_normal"
    FAILING = "failing"
    CLOSED = "closed"


class FC2WebSocket:
    """
    Signalling connection to the FC2 control server.

    Inbound frames are read by ``listen``; responses are queued on
    ``msg_queue`` and routed by ``dispatch`` to the request that is
    waiting for their id. Both loops, plus ``heartbeat_loop``, are meant
    to run as sibling tasks for the lifetime of the connection.
    """

    def __init__(
        self,
        http: AsyncHttpClient,
        url: str,
        health_check_interval_sec: float = 30,
        msg_buf_max: int = 100,
        channel_id: str | None = None,
    ):
        self.url = url
        self.health_check_interval_sec = health_check_interval_sec
        self.state = WebSocketState.DIALING
        self.msg_queue: asyncio.Queue[WSResponse] = asyncio.Queue(maxsize=msg_buf_max)
        self.__http = http
        self.__attr = {"channel_id": channel_id} if channel_id is not None else {}
        self.__conn: aiohttp.ClientWebSocketResponse | None = None
        self.__msg_id = 1
        self.__write_lock = asyncio.Lock()
        self.__subscribers: dict[int, asyncio.Queue[WSResponse]] = {}

    async def __aenter__(self):
        await self.dial()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def last_msg_id(self) -> int:
        return self.__msg_id

    async def dial(self):
        self.state = WebSocketState.DIALING
        try:
            self.__conn = await self.__http.ws_connect(self.url, max_msg_size=READ_LIMIT)
        except aiohttp.ClientError as ex:
            self.state = WebSocketState.CLOSED
            raise WebSocketTransportError(f"Failed to dial websocket: {ex}") from ex
        self.state = WebSocketState.OPEN
        log.debug("Websocket connected", self.__attr)

    async def close(self):
        if self.__conn is None:
            self.state = WebSocketState.CLOSED
            return
        if self.state == WebSocketState.OPEN:
            self.state = WebSocketState.CLOSING_NORMAL
        if not self.__conn.closed:
            await self.__conn.close()
        self.state = WebSocketState.CLOSED

    async def listen(self, comment_queue: asyncio.Queue[Comment | None] | None = None):
        """
        Read frames until the connection ends.

        Returns normally on a clean close. Raises StreamEndedError on
        ``publish_stop`` and a ServerDisconnectionError subclass on
        ``control_disconnection``.
        """
        conn = self.__get_conn()
        try:
            while True:
                msg = await conn.receive()
                if msg.type == WSMsgType.TEXT:
                    await self.__handle_text(msg.data, comment_queue)
                elif msg.type == WSMsgType.CLOSE:
                    if msg.data in (WSCloseCode.OK, None):
                        log.info("Websocket closed cleanly", self.__attr)
                        self.state = WebSocketState.CLOSING_NORMAL
                        return
                    raise WebSocketTransportError(f"Websocket closed with code {msg.data}: {msg.extra}")
                elif msg.type in (WSMsgType.CLOSING, WSMsgType.CLOSED):
                    log.info("Websocket closed", self.__attr)
                    self.state = WebSocketState.CLOSING_NORMAL
                    return
                elif msg.type == WSMsgType.ERROR:
                    raise WebSocketTransportError(f"Websocket read failed: {conn.exception()}")
        finally:
            if self.state == WebSocketState.OPEN:
                self.state = WebSocketState.FAILING
            if comment_queue is not None:
                try:
                    comment_queue.put_nowait(None)
                except asyncio.QueueFull:
                    pass

    async def __handle_text(self, data: str, comment_queue: asyncio.Queue[Comment | None] | None):
        try:
            msg = WSResponse.model_validate(json.loads(data))
        except (json.JSONDecodeError, ValidationError) as ex:
            raise DecodeError(f"Failed to decode websocket message: {data[:256]}") from ex

        if msg.name == "connect_complete":
            log.info("Websocket fully connected", self.__attr)
        elif msg.name == "_response_":
            await self.msg_queue.put(msg)
        elif msg.name == "control_disconnection":
            code = msg.arguments.get("code")
            if not isinstance(code, int):
                raise DecodeError(f"Invalid disconnection code: {code}")
            err = disconnection_error(code)
            log.info("Websocket disconnected by server", {**self.__attr, "code": code, "reason": str(err)})
            raise err
        elif msg.name == "publish_stop":
            log.info("Websocket stream ended", self.__attr)
            raise StreamEndedError()
        elif msg.name == "comment":
            if comment_queue is None:
                return
            for raw in msg.arguments.get("comments") or []:
                try:
                    comment = Comment.model_validate(raw)
                except ValidationError as ex:
                    raise DecodeError("Failed to decode comment") from ex
                await comment_queue.put(comment)

    async def dispatch(self):
        """Route responses from ``msg_queue`` to their waiter. Responses nobody waits for are dropped."""
        while True:
            msg = await self.msg_queue.get()
            subscriber = self.__subscribers.get(msg.id) if msg.id is not None else None
            if subscriber is None:
                log.debug("Dropped stale websocket response", {**self.__attr, "id": msg.id})
                continue
            try:
                subscriber.put_nowait(msg)
            except asyncio.QueueFull:
                log.warn("Response buffer is full, dropping response", {**self.__attr, "id": msg.id})

    async def send(self, name: str, arguments: dict | None = None, timeout_sec: float = 15) -> WSResponse:
        """Send a request and wait for the response carrying the same id. Raises TimeoutError on no answer."""
        conn = self.__get_conn()
        responses: asyncio.Queue[WSResponse] = asyncio.Queue(maxsize=RESPONSE_BUF_MAX)
        async with self.__write_lock:
            self.__msg_id += 1
            msg_id = self.__msg_id
            self.__subscribers[msg_id] = responses
            frame = {
                "name": name,
                "arguments": arguments if arguments is not None else {},
                "id": msg_id,
            }
            try:
                async with asyncio.timeout(WRITE_TIMEOUT_SEC):
                    await conn.send_str(json.dumps(frame))
            except TimeoutError as ex:
                del self.__subscribers[msg_id]
                raise WebSocketTransportError(f"Timed out writing websocket frame: {name}") from ex
            except BaseException:
                del self.__subscribers[msg_id]
                raise

        try:
            async with asyncio.timeout(timeout_sec):
                return await responses.get()
        except TimeoutError:
            log.warn("Timed out awaiting websocket response", {**self.__attr, "name": name, "id": msg_id})
            raise
        finally:
            self.__subscribers.pop(msg_id, None)

    async def heartbeat_loop(self):
        try:
            while True:
                await asyncio.sleep(self.health_check_interval_sec)
                try:
                    await self.send("heartbeat", timeout_sec=HEARTBEAT_TIMEOUT_SEC)
                except TimeoutError:
                    # The write keeps the link alive, a missing answer is tolerated.
                    continue
        finally:
            if self.state == WebSocketState.OPEN:
                self.state = WebSocketState.FAILING

    async def get_hls_information(self) -> HLSInformation:
        msg = await self.send("get_hls_information", timeout_sec=HLS_INFO_TIMEOUT_SEC)
        try:
            info = HLSInformation.model_validate(msg.arguments)
        except ValidationError as ex:
            raise DecodeError("Failed to decode hls information") from ex
        if len(info.playlists) == 0 and len(info.playlists_high_latency) == 0 and len(info.playlists_middle_latency) == 0:
            raise EmptyPlaylistError()
        return info

    def __get_conn(self) -> aiohttp.ClientWebSocketResponse:
        if self.__conn is None or self.state != WebSocketState.OPEN:
            raise WebSocketNotOpenError(f"Websocket is not open: {self.state.value}")
        return self.__conn
