import os
from datetime import datetime

import pytest

from fc2rec.fc2 import GetMetaData, format_output, prepare_file, release_files, remove_ext


def sample_meta() -> GetMetaData:
    return GetMetaData.model_validate({
        "channel_data": {"channelid": "12345", "title": "a/b: live?"},
        "profile_data": {"name": "bob"},
    })


NOW = datetime(2024, 1, 2, 3, 4, 5)


def test_format_output():
    out = format_output("{Date} {Time} {Title} ({ChannelName}) {ChannelID}.{Ext}", sample_meta(), "ts", now=NOW)
    assert out == "2024-01-02 030405 a_b_ live_ (bob) 12345.ts"


def test_format_labels():
    labels = {"group": "vtubers"}
    out = format_output("{Labels.group}/{Labels[missing]}x.{Ext}", sample_meta(), "ts", labels, NOW)
    assert out == "vtubers/x.ts"


def test_invalid_format():
    with pytest.raises(ValueError):
        format_output("{Unknown}.{Ext}", sample_meta(), "ts", now=NOW)


def test_prepare_file_avoids_collisions(tmp_path):
    out_format = str(tmp_path / "{ChannelID}" / "{Title}.{Ext}")
    meta = sample_meta()

    first = prepare_file(out_format, meta, "ts", now=NOW)
    assert os.path.isdir(tmp_path / "12345")
    assert first.endswith("a_b_ live_.ts")

    # Reserved but not yet created.
    second = prepare_file(out_format, meta, "ts", now=NOW)
    assert second.endswith("a_b_ live_.1.ts")

    open(first, "w").close()
    release_files(first, second)
    third = prepare_file(out_format, meta, "ts", now=NOW)
    assert third.endswith("a_b_ live_.1.ts")
    release_files(third)


def test_remove_ext():
    assert remove_ext("dir/file.name.ts") == ("dir/file.name", "ts")
    assert remove_ext("noext") == ("noext", "")
