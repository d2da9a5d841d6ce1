import asyncio
from typing import Awaitable, Callable

from .config import WatchConfig
from ..fc2.errors import DeadlockError
from ..utils import error_dict, log

STOP_TIMEOUT_SEC = 30


class ConfigReloader:
    """Runs one handler per received config, stopping the previous handler first."""

    def __init__(self, stop_timeout_sec: float = STOP_TIMEOUT_SEC):
        self.stop_timeout_sec = stop_timeout_sec
        self.reload_cnt = 0
        self.__current: asyncio.Task | None = None

    async def run(
        self,
        queue: asyncio.Queue[WatchConfig],
        handler: Callable[[WatchConfig], Awaitable[None]],
    ):
        try:
            while True:
                config = await queue.get()
                if self.__current is not None:
                    await self.__stop_current()
                    log.info("Loading new config")
                self.reload_cnt += 1
                self.__current = asyncio.create_task(self.__handle(handler, config))
        finally:
            if self.__current is not None and not self.__current.done():
                self.__current.cancel()
                await asyncio.wait({self.__current}, timeout=self.stop_timeout_sec)

    async def __stop_current(self):
        task = self.__current
        if task is None:
            return
        task.cancel()
        done, _ = await asyncio.wait({task}, timeout=self.stop_timeout_sec)
        if len(done) == 0:
            raise DeadlockError("Config handler did not stop in time")
        self.__current = None

    async def __handle(self, handler: Callable[[WatchConfig], Awaitable[None]], config: WatchConfig):
        try:
            await handler(config)
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            log.error("Config handler failed", error_dict(ex))
