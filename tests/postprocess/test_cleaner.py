import os
import shutil
import subprocess
import time

import pytest

from fc2rec.postprocess import clean
from fc2rec.postprocess import cleaner
from fc2rec.postprocess.ffmpeg import INVALID_DATA

has_ffprobe = shutil.which("ffprobe") is not None


def touch(path, content: bytes = b"data", age_sec: float = 0):
    with open(path, "wb") as f:
        f.write(content)
    if age_sec > 0:
        mtime = time.time() - age_sec
        os.utime(path, (mtime, mtime))


def make_recording(dir_path, age_sec: float) -> list[str]:
    names = ["live.ts", "live.1.ts", "live.mp4", "live.1.mp4", "live.combined.mp4"]
    for name in names:
        touch(os.path.join(dir_path, name), age_sec=age_sec)
    return names


@pytest.fixture
def readable(monkeypatch):
    monkeypatch.setattr(cleaner, "contains_video_or_audio", lambda path: True)


def fail_probe(stderr: bytes):
    def contains_video_or_audio(path):
        raise subprocess.CalledProcessError(1, ["ffprobe", path], stderr=stderr)

    return contains_video_or_audio


def test_clean_old_recording(tmp_path, readable):
    old = tmp_path / "old"
    old.mkdir()
    make_recording(old, age_sec=7200)
    touch(old / "unrelated.ts", age_sec=7200)

    result = clean(str(tmp_path), eligible_age_sec=3600)

    assert sorted(os.listdir(old)) == ["live.1.mp4", "live.combined.mp4", "live.mp4", "unrelated.ts"]
    assert result.deleted == [str(old / "live.1.ts"), str(old / "live.ts")]
    assert result.renamed == []


def test_combined_takes_free_name(tmp_path, readable):
    for name in ["live.ts", "live.1.ts", "live.combined.mp4"]:
        touch(tmp_path / name, age_sec=7200)

    result = clean(str(tmp_path), eligible_age_sec=3600)

    assert os.listdir(tmp_path) == ["live.mp4"]
    assert len(result.deleted) == 2
    assert result.renamed == [(str(tmp_path / "live.combined.mp4"), str(tmp_path / "live.mp4"))]


def test_recent_recordings_are_kept(tmp_path, readable):
    names = make_recording(tmp_path, age_sec=60)
    result = clean(str(tmp_path), eligible_age_sec=3600)
    assert sorted(os.listdir(tmp_path)) == sorted(names)
    assert result.deleted == []
    assert result.renamed == []


def test_dry_run(tmp_path, readable):
    names = make_recording(tmp_path, age_sec=7200)
    result = clean(str(tmp_path), eligible_age_sec=3600, dry_run=True)
    assert sorted(os.listdir(tmp_path)) == sorted(names)
    assert len(result.deleted) == 2
    assert result.renamed == []


def test_corrupted_combined_is_deleted_and_parts_kept(tmp_path, monkeypatch):
    monkeypatch.setattr(cleaner, "contains_video_or_audio", fail_probe(INVALID_DATA.encode()))
    touch(tmp_path / "live.combined.mp4", b"not a video", age_sec=7200)
    touch(tmp_path / "live.ts", age_sec=7200)
    touch(tmp_path / "live.1.mp4", age_sec=7200)

    result = clean(str(tmp_path), eligible_age_sec=3600)

    assert sorted(os.listdir(tmp_path)) == ["live.1.mp4", "live.ts"]
    assert result.corrupted == [str(tmp_path / "live.combined.mp4")]
    assert result.deleted == []
    assert result.renamed == []


def test_combined_with_other_read_error_is_skipped(tmp_path, monkeypatch):
    monkeypatch.setattr(cleaner, "contains_video_or_audio", fail_probe(b"Permission denied"))
    names = make_recording(tmp_path, age_sec=7200)

    result = clean(str(tmp_path), eligible_age_sec=3600)

    assert sorted(os.listdir(tmp_path)) == sorted(names)
    assert result.corrupted == []
    assert result.deleted == []


def test_combined_without_streams_is_kept(tmp_path, monkeypatch):
    monkeypatch.setattr(cleaner, "contains_video_or_audio", lambda path: False)
    names = make_recording(tmp_path, age_sec=7200)

    result = clean(str(tmp_path), eligible_age_sec=3600)

    assert sorted(os.listdir(tmp_path)) == sorted(names)
    assert result.deleted == []


@pytest.mark.skipif(not has_ffprobe, reason="ffprobe is not installed")
def test_garbage_combined_file(tmp_path):
    touch(tmp_path / "live.combined.mp4", b"not a video", age_sec=7200)
    touch(tmp_path / "live.ts", age_sec=7200)
    touch(tmp_path / "live.1.mp4", age_sec=7200)

    result = clean(str(tmp_path), eligible_age_sec=3600)

    assert sorted(os.listdir(tmp_path)) == ["live.1.mp4", "live.ts"]
    assert result.corrupted == [str(tmp_path / "live.combined.mp4")]
