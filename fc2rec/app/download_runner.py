import asyncio

from ..fc2 import FC2Client, FC2Urls, Params
from ..recorder import FC2Recorder
from ..utils import AsyncHttpClient, error_dict, load_netscape_cookies, log, retry_with_result

RETRY_DELAY_SEC = 1
RETRY_MAX_DELAY_SEC = 60
LOOP_DELAY_SEC = 1


class DownloadRunner:
    def __init__(
        self,
        channel_id: str,
        params: Params,
        max_tries: int = 1,
        loop: bool = False,
        urls: FC2Urls | None = None,
    ):
        self.channel_id = channel_id
        self.params = params
        self.max_tries = max_tries
        self.loop = loop
        self.urls = urls

    async def run(self):
        async with AsyncHttpClient() as http:
            client = FC2Client(http, self.urls)
            await self.__login(http, client)
            recorder = FC2Recorder(http, client, self.params, self.channel_id)
            log.info("Running", {"channel_id": self.channel_id, "params": self.params.model_dump(mode="json", by_alias=True)})

            if self.loop:
                await self.__run_forever(recorder)
                return

            await retry_with_result(
                lambda _: self.__record(recorder),
                max_tries=self.max_tries,
                delay_sec=RETRY_DELAY_SEC,
                use_backoff=True,
                max_delay_sec=RETRY_MAX_DELAY_SEC,
                attr={"channel_id": self.channel_id},
            )

    async def __record(self, recorder: FC2Recorder):
        meta = await recorder.watch()
        while recorder.session_expired:
            meta = await recorder.watch()
        return meta

    async def __run_forever(self, recorder: FC2Recorder):
        while True:
            try:
                await recorder.watch()
            except asyncio.CancelledError:
                log.info("Abort watching channel", {"channel_id": self.channel_id})
                raise
            except Exception as ex:
                log.error("Failed to download", {"channel_id": self.channel_id, **error_dict(ex)})
            await asyncio.sleep(LOOP_DELAY_SEC)

    async def __login(self, http: AsyncHttpClient, client: FC2Client):
        if self.params.cookies_file == "":
            return
        try:
            cnt = load_netscape_cookies(self.params.cookies_file, http.cookie_jar)
            log.info("Imported cookies", {"file_path": self.params.cookies_file, "count": cnt})
        except (OSError, ValueError) as ex:
            log.error("Failed to load cookies", {"file_path": self.params.cookies_file, **error_dict(ex)})
            return
        try:
            await client.login()
            await client.verify_login()
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            log.warn("Failed to login, downloading anonymously, you should extract new cookies", error_dict(ex))
