import threading
from collections import deque
from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from ..metric import metric
from ..utils import log

DEFAULT_MAX_ERRORS = 8


class DownloadState(Enum):
    UNSPECIFIED = "UNSPECIFIED"
    IDLE = "IDLE"
    WAITING = "WAITING"
    PREPARING = "PREPARING"
    DOWNLOADING = "DOWNLOADING"
    POSTPROCESSING = "POSTPROCESSING"
    FINISHED = "FINISHED"
    ERROR = "ERROR"
    CANCELED = "CANCELED"


ALL_STATES = [s.value for s in DownloadState]


class ErrorRecord(BaseModel):
    timestamp: datetime
    error: str


class ChannelState(BaseModel):
    state: DownloadState = DownloadState.UNSPECIFIED
    errors: list[ErrorRecord] = []
    labels: dict[str, str] = {}
    extra: dict = {}


class ChannelEntry:
    def __init__(self, max_errors: int):
        self.lock = threading.Lock()
        self.state = DownloadState.UNSPECIFIED
        self.errors: deque[ErrorRecord] = deque(maxlen=max_errors)
        self.labels: dict[str, str] = {}
        self.extra: dict = {}

    def to_model(self) -> ChannelState:
        return ChannelState(
            state=self.state,
            errors=list(self.errors),
            labels=dict(self.labels),
            extra=dict(self.extra),
        )


class State:
    """Process-wide channel states, read by the status server and written by the recorders."""

    def __init__(self, max_errors: int = DEFAULT_MAX_ERRORS):
        self.max_errors = max_errors
        self.__lock = threading.Lock()
        self.__channels: dict[str, ChannelEntry] = {}

    def __entry(self, channel_id: str) -> ChannelEntry:
        with self.__lock:
            entry = self.__channels.get(channel_id)
            if entry is None:
                entry = ChannelEntry(self.max_errors)
                self.__channels[channel_id] = entry
            return entry

    def set_channel_state(
        self,
        channel_id: str,
        state: DownloadState,
        labels: dict[str, str] | None = None,
        extra: dict | None = None,
    ):
        entry = self.__entry(channel_id)
        with entry.lock:
            entry.state = state
            if labels is not None:
                entry.labels = dict(labels)
            entry.extra = dict(extra) if extra is not None else {}
        metric.set_channel_state(channel_id, state.value, ALL_STATES)
        log.debug("Channel state changed", {"channel_id": channel_id, "state": state.value})

    def set_channel_error(self, channel_id: str, error: BaseException | str):
        entry = self.__entry(channel_id)
        message = error if isinstance(error, str) else (str(error) or type(error).__name__)
        with entry.lock:
            entry.errors.append(ErrorRecord(timestamp=datetime.now().astimezone(), error=message))

    def get_channel_state(self, channel_id: str) -> ChannelState:
        with self.__lock:
            entry = self.__channels.get(channel_id)
        if entry is None:
            return ChannelState()
        with entry.lock:
            return entry.to_model()

    def remove_channel(self, channel_id: str):
        with self.__lock:
            self.__channels.pop(channel_id, None)

    def channel_ids(self) -> list[str]:
        with self.__lock:
            return list(self.__channels.keys())

    def snapshot(self) -> dict[str, ChannelState]:
        return {channel_id: self.get_channel_state(channel_id) for channel_id in self.channel_ids()}


state = State()
