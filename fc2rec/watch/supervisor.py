import asyncio

from .config import WatchConfig
from .version import VERSION_CHECK_URL, check_version
from ..fc2 import FC2Client, FC2Urls, Params
from ..metric import metric
from ..notify import DummyNotifier, FormattedNotifier, create_notifier
from ..postprocess import clean_periodically
from ..recorder import FC2Recorder
from ..state import DownloadState, state
from ..utils import AsyncHttpClient, error_dict, get_error_info, load_netscape_cookies, log

CHANNEL_RESTART_DELAY_SEC = 1


async def login_loop(client: FC2Client, interval_sec: float, notifier: FormattedNotifier):
    while True:
        await asyncio.sleep(interval_sec)
        try:
            await client.login()
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            log.error("Failed to refresh the login, you should extract new cookies", error_dict(ex))
            await notifier.notify_login_failed(ex)


class Supervisor:
    """Records every channel of a watch config, forever, until cancelled."""

    def __init__(
        self,
        urls: FC2Urls | None = None,
        restart_delay_sec: float = CHANNEL_RESTART_DELAY_SEC,
        version_check_url: str | None = VERSION_CHECK_URL,
    ):
        self.urls = urls
        self.restart_delay_sec = restart_delay_sec
        self.version_check_url = version_check_url
        self.__version_checked = False

    async def handle_config(self, config: WatchConfig):
        default_params = config.resolve_default_params()
        channel_params = config.resolve_channel_params()

        async with AsyncHttpClient() as http:
            client = FC2Client(http, self.urls)
            notifier = self.__create_notifier(http, config)
            tasks: list[asyncio.Task] = []
            try:
                has_cookies = self.__import_cookies(http, default_params, channel_params)
                if has_cookies and default_params.cookies_refresh_duration_sec > 0:
                    log.info("Will refresh cookies", {"interval_sec": default_params.cookies_refresh_duration_sec})
                    try:
                        await client.login()
                    except asyncio.CancelledError:
                        raise
                    except Exception as ex:
                        log.error("Failed to login, will try again, you should extract new cookies", error_dict(ex))
                        await notifier.notify_login_failed(ex)
                    tasks.append(asyncio.create_task(
                        login_loop(client, default_params.cookies_refresh_duration_sec, notifier),
                    ))
                else:
                    log.info("Cookies will not be refreshed")

                await notifier.notify_config_reloaded()

                if self.version_check_url is not None and not self.__version_checked:
                    self.__version_checked = True
                    tasks.append(asyncio.create_task(check_version(http, notifier, self.version_check_url)))

                for channel_id, params in channel_params.items():
                    if not params.keep_intermediates and params.concat and params.scan_directory != "":
                        tasks.append(asyncio.create_task(
                            clean_periodically(params.scan_directory, params.eligible_for_cleaning_age_sec),
                        ))
                    tasks.append(asyncio.create_task(
                        self.channel_loop(http, client, notifier, channel_id, params),
                        name=f"channel:{channel_id}",
                    ))

                await asyncio.gather(*tasks)
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                for channel_id in channel_params:
                    state.remove_channel(channel_id)

    def __create_notifier(self, http: AsyncHttpClient, config: WatchConfig) -> FormattedNotifier:
        conf = config.notifier
        if not conf.enabled:
            log.info("No notifier configured")
            return FormattedNotifier(DummyNotifier(), conf.notification_formats)
        if len(conf.urls) == 0:
            log.warn("Notifier is enabled but has no urls")
        notifier = create_notifier(http, conf.urls, conf.include_title_in_message, conf.no_priority)
        return FormattedNotifier(notifier, conf.notification_formats)

    def __import_cookies(self, http: AsyncHttpClient, default: Params, channels: dict[str, Params]) -> bool:
        file_paths = [default.cookies_file] + [params.cookies_file for params in channels.values()]
        imported = False
        for file_path in dict.fromkeys(file_paths):
            if file_path == "":
                continue
            try:
                cnt = load_netscape_cookies(file_path, http.cookie_jar)
                log.info("Imported cookies", {"file_path": file_path, "count": cnt})
                imported = True
            except (OSError, ValueError) as ex:
                log.error("Failed to load cookies, using unauthenticated", {"file_path": file_path, **error_dict(ex)})
        return imported

    async def channel_loop(
        self,
        http: AsyncHttpClient,
        client: FC2Client,
        notifier: FormattedNotifier,
        channel_id: str,
        params: Params,
    ):
        attr = {"channel_id": channel_id}
        while True:
            try:
                await self.__record_once(http, client, notifier, channel_id, params)
            except asyncio.CancelledError:
                raise
            except Exception:
                message, err = get_error_info()
                log.error(f"Channel loop crashed: {message}", {**attr, **err})
                await notifier.notify_panicked(err.get("stacktrace", message))
            await asyncio.sleep(self.restart_delay_sec)

    async def __record_once(
        self,
        http: AsyncHttpClient,
        client: FC2Client,
        notifier: FormattedNotifier,
        channel_id: str,
        params: Params,
    ):
        attr = {"channel_id": channel_id}
        state.set_channel_state(channel_id, DownloadState.IDLE, labels=params.labels)
        await notifier.notify_idle(channel_id, params.labels)

        recorder = FC2Recorder(http, client, params, channel_id, notifier)
        try:
            meta = await recorder.watch()
        except asyncio.CancelledError:
            log.info("Abort watching channel", attr)
            if state.get_channel_state(channel_id).state != DownloadState.IDLE:
                state.set_channel_state(channel_id, DownloadState.CANCELED, labels=params.labels)
                metric.inc_recordings(channel_id, "canceled")
                await asyncio.shield(notifier.notify_canceled(channel_id, params.labels, recorder.meta))
            raise
        except Exception as ex:
            log.error("Failed to download", {**attr, **error_dict(ex)})
            state.set_channel_state(channel_id, DownloadState.ERROR, labels=params.labels)
            state.set_channel_error(channel_id, ex)
            metric.inc_recordings(channel_id, "error")
            await notifier.notify_error(channel_id, params.labels, ex, recorder.meta)
            return

        state.set_channel_state(channel_id, DownloadState.FINISHED, labels=params.labels)
        metric.inc_recordings(channel_id, "finished")
        await notifier.notify_finished(channel_id, params.labels, meta)
