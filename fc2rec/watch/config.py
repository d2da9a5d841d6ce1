import asyncio
import os

import yaml
from pydantic import BaseModel, ConfigDict, Field

from ..fc2 import OptionalParams, Params
from ..notify import NotifierConfig
from ..utils import error_dict, log

POLL_INTERVAL_SEC = 1
DEBOUNCE_SEC = 1


class WatchConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    default_params: OptionalParams = Field(alias="defaultParams", default_factory=OptionalParams)
    channels: dict[str, OptionalParams] = {}
    notifier: NotifierConfig = Field(default_factory=NotifierConfig)

    def resolve_default_params(self) -> Params:
        return self.default_params.override(Params())

    def resolve_channel_params(self) -> dict[str, Params]:
        default = self.resolve_default_params()
        return {channel_id: params.override(default) for channel_id, params in self.channels.items()}


def load_config(file_path: str) -> WatchConfig:
    with open(file_path, "r", encoding="utf-8") as file:
        text = file.read()
    data = yaml.load(text, Loader=yaml.FullLoader)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid config: {file_path}")
    # An empty channel entry means every parameter is inherited.
    channels = data.get("channels") or {}
    data["channels"] = {str(k): v if v is not None else {} for k, v in channels.items()}
    return WatchConfig(**data)


async def observe_config(
    file_path: str,
    queue: asyncio.Queue[WatchConfig],
    poll_interval_sec: float = POLL_INTERVAL_SEC,
    debounce_sec: float = DEBOUNCE_SEC,
):
    """
    Push the config at ``file_path`` to ``queue``, then push it again on every change.

    Changes are detected by polling the modification time. A config that
    fails to load is logged and skipped, the previous one stays in effect.
    """
    last_mtime = None
    try:
        last_mtime = os.stat(file_path).st_mtime
        log.info("Initial config detected", {"file_path": file_path})
        await queue.put(load_config(file_path))
    except Exception as ex:
        log.error("Failed to load config", {"file_path": file_path, **error_dict(ex)})

    while True:
        await asyncio.sleep(poll_interval_sec)
        try:
            mtime = os.stat(file_path).st_mtime
        except OSError as ex:
            log.error("Failed to stat config", {"file_path": file_path, **error_dict(ex)})
            continue
        if mtime == last_mtime:
            continue

        # Wait for the writer to settle before reading.
        await asyncio.sleep(debounce_sec)
        try:
            last_mtime = os.stat(file_path).st_mtime
            config = load_config(file_path)
        except Exception as ex:
            log.error("Failed to load config", {"file_path": file_path, **error_dict(ex)})
            continue
        log.info("New config detected", {"file_path": file_path})
        await queue.put(config)
