import asyncio
import os
import re
import subprocess
import time

from .ffmpeg import contains_video_or_audio, is_invalid_data
from ..utils import error_dict, log

CLEAN_INTERVAL_SEC = 3600
COMBINED_SUFFIX = ".combined"

__clean_lock = asyncio.Lock()


class CleanResult:
    def __init__(self):
        self.deleted: list[str] = []
        self.renamed: list[tuple[str, str]] = []
        self.corrupted: list[str] = []


def scan(scan_directory: str, eligible_age_sec: float) -> list[str]:
    """Find ``X.combined.ext`` files whose modification time is older than the eligible age."""
    now = time.time()
    found = []
    for dir_path, _, file_names in os.walk(scan_directory):
        for file_name in file_names:
            base, _ = os.path.splitext(file_name)
            if not base.endswith(COMBINED_SUFFIX):
                continue
            path = os.path.join(dir_path, file_name)
            if now - os.path.getmtime(path) <= eligible_age_sec:
                continue
            found.append(path)
    return sorted(found)


def find_leftovers(combined_path: str) -> list[str]:
    """Return the ``X.ts`` and ``X.N.ts`` intermediates next to ``X.combined.ext``."""
    dir_path = os.path.dirname(combined_path)
    base, _ = os.path.splitext(os.path.basename(combined_path))
    prefix = base.removesuffix(COMBINED_SUFFIX)
    pattern = re.compile(re.escape(prefix) + r"(?:\.\d+)?\.ts")

    leftovers = []
    for name in os.listdir(dir_path):
        if pattern.fullmatch(name) is None:
            continue
        path = os.path.join(dir_path, name)
        if os.path.isfile(path):
            leftovers.append(path)
    return sorted(leftovers)


def check_combined(combined_path: str, result: CleanResult, dry_run: bool) -> bool:
    """
    Tell whether the combined file can replace its intermediates.

    A combined file ffprobe rejects as invalid data is deleted and its
    intermediates are kept. Any other probe failure skips the file.
    """
    try:
        return contains_video_or_audio(combined_path)
    except subprocess.CalledProcessError as ex:
        if not is_invalid_data(ex):
            log.error("Failed to probe combined file", {"path": combined_path, **error_dict(ex)})
            return False
    log.error("Combined file is corrupted, deleting", {"path": combined_path, "dry_run": dry_run})
    if not dry_run:
        try:
            os.remove(combined_path)
        except OSError as ex:
            log.error("Failed to delete corrupted file", {"path": combined_path, **error_dict(ex)})
            return False
    result.corrupted.append(combined_path)
    return False


def clean(
    scan_directory: str,
    eligible_age_sec: float,
    dry_run: bool = False,
    probe: bool = True,
) -> CleanResult:
    """
    Remove the ``.ts`` intermediates of old recordings that were concatenated.

    For each eligible ``X.combined.ext`` that ffprobe reads as video or
    audio, ``X.ts`` and ``X.N.ts`` are deleted, then the combined file takes
    the name ``X.ext`` if it is free.
    """
    result = CleanResult()
    for combined_path in scan(scan_directory, eligible_age_sec):
        if probe and not check_combined(combined_path, result, dry_run):
            continue

        for path in find_leftovers(combined_path):
            log.info("Delete old .ts file", {"path": path, "dry_run": dry_run})
            if dry_run:
                result.deleted.append(path)
                continue
            try:
                os.remove(path)
                result.deleted.append(path)
            except OSError as ex:
                log.error("Failed to delete old .ts file", {"path": path, **error_dict(ex)})

        base, ext = os.path.splitext(combined_path)
        renamed_path = base.removesuffix(COMBINED_SUFFIX) + ext
        if os.path.exists(renamed_path) and renamed_path not in result.deleted:
            log.info("Cannot rename, file exists", {"path": combined_path, "to": renamed_path})
            continue
        log.info("Rename combined file", {"path": combined_path, "to": renamed_path, "dry_run": dry_run})
        if dry_run:
            result.renamed.append((combined_path, renamed_path))
            continue
        try:
            os.rename(combined_path, renamed_path)
            result.renamed.append((combined_path, renamed_path))
        except OSError as ex:
            log.error("Failed to rename combined file", {"path": combined_path, **error_dict(ex)})
    return result


async def clean_periodically(
    scan_directory: str,
    eligible_age_sec: float,
    interval_sec: float = CLEAN_INTERVAL_SEC,
):
    if eligible_age_sec < 3600:
        log.warn("Eligible age for cleaning is below one hour", {"eligible_age_sec": eligible_age_sec})
    while True:
        async with __clean_lock:
            try:
                await asyncio.to_thread(clean, scan_directory, eligible_age_sec)
            except OSError as ex:
                log.error("Failed to clean directory", {"scan_directory": scan_directory, **error_dict(ex)})
        await asyncio.sleep(interval_sec)
