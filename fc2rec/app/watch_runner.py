import asyncio

from ..fc2 import FC2Urls
from ..server import serve
from ..utils import run_until_first_done
from ..watch import ConfigReloader, Supervisor, WatchConfig, observe_config


class WatchRunner:
    def __init__(
        self,
        config_path: str,
        listen_host: str,
        listen_port: int,
        urls: FC2Urls | None = None,
        serve_status: bool = True,
    ):
        self.config_path = config_path
        self.listen_host = listen_host
        self.listen_port = listen_port
        self.serve_status = serve_status
        self.supervisor = Supervisor(urls)
        self.reloader = ConfigReloader()

    async def run(self):
        queue: asyncio.Queue[WatchConfig] = asyncio.Queue()
        coros = {
            "observe": observe_config(self.config_path, queue),
            "reload": self.reloader.run(queue, self.supervisor.handle_config),
        }
        if self.serve_status:
            coros["server"] = serve(self.listen_host, self.listen_port)
        await run_until_first_done(coros)
