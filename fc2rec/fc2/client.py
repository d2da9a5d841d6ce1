import asyncio
import html
import json
import re
from typing import Callable, TypeVar
from urllib.parse import urlencode, urlparse, urlunparse

import jwt
from pydantic import BaseModel, ValidationError

from .errors import (
    ChannelNotFoundError,
    DecodeError,
    LoginFailedError,
    RateLimitedError,
)
from .objects import (
    ChannelListChannel,
    ControlToken,
    GetChannelListResponse,
    GetControlServerResponse,
    GetMetaData,
    GetMetaResponse,
)
from ..metric import metric
from ..utils import AsyncHttpClient, HttpResponse, error_dict, log

MEMBER_LOGIN_REGEX = re.compile(r'href="(http://live\.fc2\.com/member_login/\?uid=[^&]+&cc=[^"]+)"')
USERNAME_REGEX = re.compile(r'<span class="m-hder01_uName">(.*?)</span>')

T = TypeVar("T", bound=BaseModel)


class FC2Urls(BaseModel):
    member_api: str = "https://live.fc2.com/api/memberApi.php"
    control_server: str = "https://live.fc2.com/api/getControlServer.php"
    channel_list: str = "https://live.fc2.com/contents/allchannellist.php"
    login: str = "https://live.fc2.com/login/"
    id_root: str = "https://id.fc2.com/"
    live_root: str = "https://live.fc2.com/"
    login_host: str = "id.fc2.com"


class FC2Client:
    def __init__(self, http: AsyncHttpClient, urls: FC2Urls | None = None, timeout_sec: float = 20):
        self.__http = http
        self.urls = urls if urls is not None else FC2Urls()
        self.timeout_sec = timeout_sec

    async def get_meta(self, channel_id: str) -> GetMetaData:
        data = {
            "channel": "1",
            "profile": "1",
            "user": "1",
            "streamid": channel_id,
        }
        res = await self.__post("member_api", self.urls.member_api, data)
        self.__check_response(res, {"channel_id": channel_id})

        meta_res = self.__decode(res, GetMetaResponse)
        meta = meta_res.data
        meta.channel_data.title = html.unescape(meta.channel_data.title)
        return meta

    async def is_online(self, channel_id: str) -> bool:
        meta = await self.get_meta(channel_id)
        return meta.channel_data.is_publish > 0

    async def wait_for_online(self, channel_id: str, interval_sec: float):
        """Poll the metadata until the channel publishes. Transient API failures are logged and retried."""
        while True:
            try:
                if await self.is_online(channel_id):
                    return
            except DecodeError:
                raise
            except asyncio.CancelledError:
                raise
            except Exception as ex:
                err = error_dict(ex)
                err["channel_id"] = channel_id
                log.warn("Failed to check if the stream is online", err)
            await asyncio.sleep(interval_sec)

    async def get_websocket_url(self, meta: GetMetaData) -> tuple[str, ControlToken]:
        orz = self.__http.cookie(self.urls.control_server, "l_ortkn") or ""
        data = {
            "channel_id": meta.channel_data.channel_id,
            "mode": "play",
            "orz": orz,
            "channel_version": meta.channel_data.version,
            "client_version": "2.2.1  [1]",
            "client_type": "pc",
            "client_app": "browser_hls",
            "ipv6": "",
        }
        attr = {"channel_id": meta.channel_data.channel_id}
        res = await self.__post("control_server", self.urls.control_server, data)
        self.__check_response(res, attr)

        info = self.__decode(res, GetControlServerResponse)
        try:
            claims = jwt.decode(info.control_token, options={"verify_signature": False, "verify_exp": False})
        except jwt.PyJWTError as ex:
            log.error("Failed to decode control token", attr)
            raise DecodeError("Failed to decode control token") from ex
        token = ControlToken.model_validate(claims)

        if not token.user_name:
            log.warn("Downloading with anonymous user", attr)
        else:
            log.info("Downloading with user", {**attr, "user_name": token.user_name})

        ws_url = f"{info.url}?{urlencode({'control_token': info.control_token})}"
        return ws_url, token

    async def verify_login(self) -> str | None:
        """
        Check that the cookies in the jar belong to a logged-in member.

        Returns the username when it can be read from the page.
        Raises LoginFailedError otherwise.
        """
        res = await self.__http.get(self.urls.login, timeout_sec=self.timeout_sec)
        if not res.ok:
            raise LoginFailedError(f"Login page returned {res.status}")
        if urlparse(res.url).hostname != self.urls.login_host:
            raise LoginFailedError(f"Reached unknown location: {res.url}")

        res = await self.__http.get(self.urls.id_root, timeout_sec=self.timeout_sec)
        if not res.ok or "nickname" not in res.text():
            raise LoginFailedError("Failed to find 'nickname', the cookies are invalid")

        res = await self.__http.get(self.urls.live_root, timeout_sec=self.timeout_sec)
        body = res.text()
        if not res.ok or "logout" not in body:
            raise LoginFailedError("Failed to find 'logout', the login failed")

        matches = USERNAME_REGEX.search(body)
        if matches is None:
            log.info("Login verified, but the username was not found")
            return None
        log.info("Login verified", {"user_name": matches.group(1)})
        return matches.group(1)

    async def login(self):
        """Refresh the member session from the id.fc2.com cookies."""
        res = await self.__http.get(self.urls.login, timeout_sec=self.timeout_sec)
        if not res.ok:
            raise LoginFailedError(f"Login phase 1 failed: non-ok http code {res.status}")
        if urlparse(res.url).hostname != self.urls.login_host:
            raise LoginFailedError(f"Login phase 1 failed: reached unknown location {res.url}")
        matches = MEMBER_LOGIN_REGEX.search(res.text())
        if matches is None:
            raise LoginFailedError("Login phase 1 failed: next url not found, the cookies are invalid")

        member_login_url = urlunparse(urlparse(matches.group(1))._replace(scheme="https"))
        log.debug("Login phase 1 success", {"url": member_login_url})

        res = await self.__http.get(member_login_url, timeout_sec=self.timeout_sec)
        if not res.ok:
            raise LoginFailedError(f"Login phase 2 failed: non-ok http code {res.status}")
        body = res.text()
        if "logout" not in body:
            raise LoginFailedError("Login phase 2 failed: 'logout' not found")
        matches = USERNAME_REGEX.search(body)
        if matches is None:
            log.info("Login success, but the username was not found")
        else:
            log.info("Login success", {"user_name": matches.group(1)})

    async def find_online_channel(self, predicate: Callable[[ChannelListChannel], bool]) -> str:
        res = await self.__http.get(
            self.urls.channel_list,
            headers={"Accept": "application/json"},
            timeout_sec=self.timeout_sec,
        )
        self.__check_response(res)
        channel_list = self.__decode(res, GetChannelListResponse)
        if len(channel_list.channel) == 0:
            raise ChannelNotFoundError("No channels found")

        channels = sorted(channel_list.channel, key=lambda c: c.count, reverse=True)
        for channel in channels:
            if predicate(channel):
                return channel.id
        raise ChannelNotFoundError("No matching channel found")

    async def find_unrestricted_channel(self) -> str:
        return await self.find_online_channel(lambda c: c.login == "0" and c.count < 500)

    async def __post(self, endpoint: str, url: str, data: dict) -> HttpResponse:
        start = asyncio.get_event_loop().time()
        res = await self.__http.post(url, data=data, timeout_sec=self.timeout_sec)
        metric.set_api_request_duration(asyncio.get_event_loop().time() - start, endpoint)
        return res

    def __check_response(self, res: HttpResponse, attr: dict | None = None):
        if res.ok:
            return
        err = {"url": res.url, "status": res.status, "body": res.text()[:512]}
        if attr is not None:
            err.update(attr)
        log.error("Http error", err)
        if res.status == 503:
            raise RateLimitedError(res.url)
        raise res.to_error("Http error")

    def __decode(self, res: HttpResponse, cls: type[T]) -> T:
        try:
            return cls.model_validate(res.parse_json())
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as ex:
            log.error("Failed to decode response", {"url": res.url, "body": res.text()[:512]})
            raise DecodeError(f"Failed to decode response from {res.url}") from ex
