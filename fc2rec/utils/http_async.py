import asyncio
import json
from enum import Enum
from typing import Any

import aiohttp
from aiohttp import ClientTimeout
from pydantic import BaseModel
from yarl import URL

from .errors import HttpRequestError, error_dict
from .logger import log

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:128.0) Gecko/20100101 Firefox/128.0"


class ReturnType(Enum):
    TEXT = "text"
    JSON = "json"
    RAW = "raw"


class HttpResponse(BaseModel):
    status: int
    url: str
    method: str
    headers: dict[str, str]
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def parse_json(self) -> Any:
        return json.loads(self.body)

    def to_error(self, message: str) -> HttpRequestError:
        return HttpRequestError(message, self.status, self.url, self.method)


class AsyncHttpClient:
    """
    HTTP transport shared by every component of a process.

    One aiohttp session and one cookie jar back all requests, so cookies
    imported or set by a login are visible to every channel.
    """

    def __init__(
        self,
        timeout_sec: float = 60,
        retry_limit: int = 0,
        retry_delay_sec: float = 0,
        use_backoff: bool = False,
        print_error: bool = True,
        cookie_jar: aiohttp.CookieJar | None = None,
    ):
        self.retry_limit = retry_limit
        self.retry_delay_sec = retry_delay_sec
        self.use_backoff = use_backoff
        self.timeout = ClientTimeout(total=timeout_sec)
        self.headers = {"User-Agent": USER_AGENT}
        self.print_error = print_error
        self.cookie_jar = cookie_jar if cookie_jar is not None else aiohttp.CookieJar(unsafe=True)
        self.__session: aiohttp.ClientSession | None = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def cookie(self, url: str, name: str) -> str | None:
        morsel = self.cookie_jar.filter_cookies(URL(url)).get(name)
        if morsel is None:
            return None
        return morsel.value

    async def close(self):
        if self.__session is not None and not self.__session.closed:
            await self.__session.close()
        self.__session = None

    def __get_session(self) -> aiohttp.ClientSession:
        if self.__session is None or self.__session.closed:
            # Requests carry their own timeout; the session has none so that websockets can live long.
            self.__session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=None, sock_connect=30),
                cookie_jar=self.cookie_jar,
            )
        return self.__session

    def __merge_headers(self, headers: dict | None) -> dict:
        if headers is None:
            return self.headers
        req_headers = self.headers.copy()
        for key, value in headers.items():
            req_headers[key] = value
        return req_headers

    async def request(
        self,
        method: str,
        url: str,
        headers: dict | None = None,
        data: dict | None = None,
        json: Any = None,
        timeout_sec: float | None = None,
    ) -> HttpResponse:
        timeout = self.timeout if timeout_sec is None else ClientTimeout(total=timeout_sec)
        session = self.__get_session()
        async with session.request(
            method=method,
            url=url,
            headers=self.__merge_headers(headers),
            data=data,
            json=json,
            timeout=timeout,
        ) as res:
            body = await res.read()
            return HttpResponse(
                status=res.status,
                url=str(res.url),
                method=res.method,
                headers={k: v for k, v in res.headers.items()},
                body=body,
            )

    async def get(self, url: str, headers: dict | None = None, timeout_sec: float | None = None) -> HttpResponse:
        return await self.request("GET", url, headers=headers, timeout_sec=timeout_sec)

    async def post(
        self,
        url: str,
        data: dict,
        headers: dict | None = None,
        timeout_sec: float | None = None,
    ) -> HttpResponse:
        return await self.request("POST", url, headers=headers, data=data, timeout_sec=timeout_sec)

    async def ws_connect(
        self,
        url: str,
        max_msg_size: int,
        headers: dict | None = None,
    ) -> aiohttp.ClientWebSocketResponse:
        return await self.__get_session().ws_connect(
            url,
            headers=self.__merge_headers(headers),
            max_msg_size=max_msg_size,
        )

    async def get_bytes(self, url: str, headers: dict | None = None, attr: dict | None = None) -> bytes:
        return await self.fetch("GET", url, ReturnType.RAW, headers=headers, attr=attr)

    async def post_json(
        self,
        url: str,
        json: dict,
        headers: dict | None = None,
        attr: dict | None = None,
    ) -> str:
        return await self.fetch("POST", url, ReturnType.TEXT, headers=headers, json=json, attr=attr)

    async def fetch(
        self,
        method: str,
        url: str,
        return_type: ReturnType,
        headers: dict | None = None,
        json: dict | None = None,
        attr: dict | None = None,
        print_error: bool | None = None,
        retry_limit: int | None = None,
    ) -> Any:
        req_print_error = print_error if print_error is not None else self.print_error
        req_retry_limit = retry_limit if retry_limit is not None else self.retry_limit

        for retry_cnt in range(req_retry_limit + 1):
            start = asyncio.get_event_loop().time()
            try:
                res = await self.request(method, url, headers=headers, json=json)
                if res.status >= 400:
                    raise res.to_error("Failed to request")
                if return_type == ReturnType.TEXT:
                    return res.text()
                elif return_type == ReturnType.JSON:
                    return res.parse_json()
                else:
                    return res.body
            except asyncio.CancelledError:
                raise
            except Exception as ex:
                err = error_dict(ex)
                err["url"] = url
                err["retry_cnt"] = retry_cnt
                err["duration"] = round(asyncio.get_event_loop().time() - start, 2)
                if attr is not None:
                    for k, v in attr.items():
                        err[k] = v

                if retry_cnt == req_retry_limit:
                    if req_print_error:
                        if req_retry_limit == 0:
                            log.error("Failed to request", err)
                        else:
                            log.error("Failed to request: Retry Limit Exceeded", err)
                    raise

                if req_print_error:
                    log.debug("Retry request", err)

                if self.retry_delay_sec > 0:
                    if self.use_backoff:
                        await asyncio.sleep(self.retry_delay_sec * (2**retry_cnt))
                    else:
                        await asyncio.sleep(self.retry_delay_sec)
