import os
import threading
from datetime import datetime
from itertools import count

from .objects import GetMetaData
from ..utils import sanitize_filename

__reserved: set[str] = set()
__reserved_lock = threading.Lock()


class Labels:
    def __init__(self, labels: dict[str, str]):
        self.__labels = labels

    def __getattr__(self, name: str) -> str:
        if name.startswith("_"):
            raise AttributeError(name)
        return self.__labels.get(name, "")

    def __getitem__(self, name: str) -> str:
        return self.__labels.get(name, "")


def format_output(
    out_format: str,
    meta: GetMetaData,
    ext: str,
    labels: dict[str, str] | None = None,
    now: datetime | None = None,
) -> str:
    if now is None:
        now = datetime.now()
    if labels is None:
        labels = {}
    fields = {
        "ChannelID": sanitize_filename(meta.channel_data.channel_id),
        "ChannelName": sanitize_filename(meta.profile_data.name),
        "Date": now.strftime("%Y-%m-%d"),
        "Time": now.strftime("%H%M%S"),
        "Title": sanitize_filename(meta.channel_data.title),
        "Ext": ext,
        "Labels": Labels({k: sanitize_filename(v) for k, v in labels.items()}),
    }
    try:
        return out_format.format(**fields)
    except (KeyError, IndexError, AttributeError) as ex:
        raise ValueError(f"Invalid output format {out_format!r}: {ex}") from ex


def prepare_file(
    out_format: str,
    meta: GetMetaData,
    ext: str,
    labels: dict[str, str] | None = None,
    now: datetime | None = None,
) -> str:
    """
    Pick a path for a new output file and create its parent directories.

    On collision with an existing file, or with a path already handed out
    by this process, ``.<n>.<ext>`` is used instead, n counting from 1.
    Paths stay reserved until released with ``release_files``.
    """
    if now is None:
        now = datetime.now()
    for n in count():
        file_ext = ext if n == 0 else f"{n}.{ext}"
        path = format_output(out_format, meta, file_ext, labels, now)
        key = os.path.abspath(path)
        with __reserved_lock:
            if key in __reserved or os.path.exists(path):
                continue
            __reserved.add(key)
        break

    dir_path = os.path.dirname(path)
    if dir_path != "":
        os.makedirs(dir_path, exist_ok=True)
    return path


def release_files(*paths: str):
    with __reserved_lock:
        for path in paths:
            __reserved.discard(os.path.abspath(path))


def remove_ext(path: str) -> tuple[str, str]:
    base, ext = os.path.splitext(path)
    return base, ext.lstrip(".")
