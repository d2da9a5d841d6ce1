import asyncio
from abc import ABC, abstractmethod
from urllib.parse import urlparse

from ..utils import AsyncHttpClient, log


class BaseNotifier(ABC):
    @abstractmethod
    async def notify(self, title: str, message: str, priority: int):
        pass


class DummyNotifier(BaseNotifier):
    async def notify(self, title: str, message: str, priority: int):
        log.info("Notify", {"title": title, "message": message, "priority": priority})


class WebhookNotifier(BaseNotifier):
    def __init__(
        self,
        http: AsyncHttpClient,
        url: str,
        include_title_in_message: bool = False,
        no_priority: bool = False,
    ):
        self.url = url
        self.include_title_in_message = include_title_in_message
        self.no_priority = no_priority
        self.__http = http

    async def notify(self, title: str, message: str, priority: int):
        if self.include_title_in_message:
            message = f"{title}\n{message}" if message else title
        body = {"title": title, "message": message}
        if not self.no_priority:
            body["priority"] = priority
        await self.__http.post_json(self.url, json=body, attr={"notifier": "webhook"})


class MultiNotifier(BaseNotifier):
    def __init__(self, notifiers: list[BaseNotifier]):
        self.notifiers = notifiers

    async def notify(self, title: str, message: str, priority: int):
        results = await asyncio.gather(
            *(n.notify(title, message, priority) for n in self.notifiers),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result


def create_notifier(
    http: AsyncHttpClient,
    urls: list[str],
    include_title_in_message: bool = False,
    no_priority: bool = False,
) -> BaseNotifier:
    notifiers: list[BaseNotifier] = []
    for url in urls:
        scheme = urlparse(url).scheme
        if scheme in ("http", "https"):
            notifiers.append(WebhookNotifier(http, url, include_title_in_message, no_priority))
        elif scheme == "dummy":
            notifiers.append(DummyNotifier())
        else:
            raise ValueError(f"Unsupported notifier url scheme: {scheme}")
    if len(notifiers) == 0:
        return DummyNotifier()
    if len(notifiers) == 1:
        return notifiers[0]
    return MultiNotifier(notifiers)
