import asyncio
import os
import re
import subprocess
import tempfile

from ..utils import log

FFMPEG = "ffmpeg"
FFPROBE = "ffprobe"
INVALID_DATA = "Invalid data found when processing input"


def run_command(command: list[str]) -> subprocess.CompletedProcess:
    log.debug("Run command", {"command": command})
    return subprocess.run(command, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)


def contains_video_or_audio(file_path: str) -> bool:
    """Raises CalledProcessError when ffprobe cannot read the file."""
    command = [
        FFPROBE, "-v", "error", "-hide_banner",
        "-show_entries", "stream=codec_type", "-of", "csv=p=0", file_path,
    ]
    result = run_command(command)
    codec_types = result.stdout.decode("utf-8", errors="replace").split()
    return "video" in codec_types or "audio" in codec_types


def is_invalid_data(ex: subprocess.CalledProcessError) -> bool:
    stderr = ex.stderr or b""
    return INVALID_DATA in stderr.decode("utf-8", errors="replace")


async def probe(file_path: str):
    """Raises CalledProcessError when ffprobe cannot read the file."""
    command = [FFPROBE, "-v", "error", "-hide_banner", "-i", file_path]
    await asyncio.to_thread(run_command, command)


async def remux(input_path: str, output_path: str, audio_only: bool = False):
    command = [FFMPEG, "-y", "-hide_banner", "-loglevel", "error", "-i", input_path]
    if audio_only:
        command.append("-vn")
    command += ["-c", "copy", "-movflags", "faststart", output_path]
    await asyncio.to_thread(run_command, command)
    log.info("Remux file", {"input": input_path, "output": output_path, "audio_only": audio_only})


async def concat(output_path: str, input_paths: list[str]):
    if len(input_paths) == 0:
        raise ValueError("No input to concatenate")

    fd, list_path = tempfile.mkstemp(prefix="fc2rec-concat-", suffix=".txt")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            for path in input_paths:
                escaped = os.path.abspath(path).replace("'", "'\\''")
                f.write(f"file '{escaped}'\n")
        command = [
            FFMPEG, "-y", "-hide_banner", "-loglevel", "error",
            "-f", "concat", "-safe", "0", "-i", list_path,
            "-c", "copy", "-movflags", "faststart", output_path,
        ]
        await asyncio.to_thread(run_command, command)
    finally:
        os.remove(list_path)
    log.info("Concat files", {"output": output_path, "inputs": input_paths})


def find_parts(prefix: str, ext: str) -> list[str]:
    """Return ``prefix.ext`` and ``prefix.N.ext`` files that exist and are not empty, ordered by N."""
    dir_path = os.path.dirname(prefix) or "."
    base = os.path.basename(prefix)
    pattern = re.compile(re.escape(base) + r"(?:\.(\d+))?\." + re.escape(ext) + "$")

    parts: list[tuple[int, str]] = []
    for name in os.listdir(dir_path):
        match = pattern.fullmatch(name)
        if match is None:
            continue
        path = os.path.join(dir_path, name)
        if not os.path.isfile(path) or os.path.getsize(path) == 0:
            continue
        n = int(match.group(1)) if match.group(1) is not None else 0
        parts.append((n, path))
    parts.sort(key=lambda x: x[0])
    return [path for _, path in parts]


async def concat_prefix(prefix: str, ext: str, out_ext: str | None = None) -> str | None:
    """Concatenate every part of a recording into ``prefix.combined.<out_ext>``."""
    if out_ext is None:
        out_ext = ext
    parts = find_parts(prefix, ext)
    if len(parts) == 0:
        log.warn("No parts to concatenate", {"prefix": prefix, "ext": ext})
        return None
    output_path = f"{prefix}.combined.{out_ext}"
    await concat(output_path, parts)
    return output_path
