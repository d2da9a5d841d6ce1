from .formats import NotificationFormat, NotificationFormats
from .notifier import BaseNotifier
from ..fc2.objects import GetMetaData
from ..fc2.output import Labels
from ..utils import error_dict, log


class FormattedNotifier:
    """Renders per-event formats and forwards them. Failures are logged, never raised."""

    def __init__(self, notifier: BaseNotifier, formats: NotificationFormats | None = None):
        if formats is None:
            formats = NotificationFormats()
        self.notifier = notifier
        self.formats = formats.apply_defaults()

    async def notify_config_reloaded(self):
        await self.__notify("config_reloaded", self.formats.config_reloaded, {})

    async def notify_login_failed(self, error: BaseException | str):
        await self.__notify("login_failed", self.formats.login_failed, {"Error": str(error)})

    async def notify_panicked(self, capture: str):
        await self.__notify("panicked", self.formats.panicked, {"Capture": capture})

    async def notify_idle(self, channel_id: str, labels: dict[str, str]):
        fields = self.__channel_fields(channel_id, labels)
        await self.__notify("idle", self.formats.idle, fields)

    async def notify_preparing_files(self, channel_id: str, labels: dict[str, str], meta: GetMetaData | None):
        fields = self.__channel_fields(channel_id, labels, meta)
        await self.__notify("preparing_files", self.formats.preparing_files, fields)

    async def notify_downloading(self, channel_id: str, labels: dict[str, str], meta: GetMetaData | None):
        fields = self.__channel_fields(channel_id, labels, meta)
        await self.__notify("downloading", self.formats.downloading, fields)

    async def notify_post_processing(self, channel_id: str, labels: dict[str, str], meta: GetMetaData | None):
        fields = self.__channel_fields(channel_id, labels, meta)
        await self.__notify("post_processing", self.formats.post_processing, fields)

    async def notify_finished(self, channel_id: str, labels: dict[str, str], meta: GetMetaData | None):
        fields = self.__channel_fields(channel_id, labels, meta)
        await self.__notify("finished", self.formats.finished, fields)

    async def notify_error(
        self,
        channel_id: str,
        labels: dict[str, str],
        error: BaseException | str,
        meta: GetMetaData | None = None,
    ):
        fields = self.__channel_fields(channel_id, labels, meta)
        fields["Error"] = str(error)
        await self.__notify("error", self.formats.error, fields)

    async def notify_canceled(self, channel_id: str, labels: dict[str, str], meta: GetMetaData | None = None):
        fields = self.__channel_fields(channel_id, labels, meta)
        await self.__notify("canceled", self.formats.canceled, fields)

    async def notify_update_available(self, version: str):
        await self.__notify("update_available", self.formats.update_available, {"Version": version})

    def __channel_fields(
        self,
        channel_id: str,
        labels: dict[str, str],
        meta: GetMetaData | None = None,
    ) -> dict:
        return {
            "ChannelID": channel_id,
            "MetaData": meta if meta is not None else GetMetaData(),
            "Labels": Labels(labels),
        }

    async def __notify(self, event: str, fmt: NotificationFormat, fields: dict):
        if not fmt.enabled:
            return
        try:
            title = fmt.title.format(**fields)
            message = fmt.message.format(**fields)
        except (KeyError, IndexError, AttributeError, ValueError) as ex:
            log.error("Failed to render notification", {"event": event, **error_dict(ex)})
            return
        try:
            await self.notifier.notify(title, message, fmt.priority)
        except Exception as ex:
            log.error("Failed to send notification", {"event": event, **error_dict(ex)})
