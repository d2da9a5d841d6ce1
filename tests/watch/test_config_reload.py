import asyncio
import os

import pytest

from fc2rec.fc2 import Quality
from fc2rec.watch import ConfigReloader, WatchConfig, load_config, observe_config

ONE_CHANNEL = """
defaultParams:
  quality: 1.2Mbps
  labels:
    env: home
channels:
  "40740626":
"""

TWO_CHANNELS = """
defaultParams:
  quality: 1.2Mbps
channels:
  40740626:
    quality: 3Mbps
    labels:
      group: friends
  72364867: {}
notifier:
  enabled: true
  urls: ["dummy://"]
"""


def write(path, text: str, mtime: float | None = None):
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    if mtime is not None:
        os.utime(path, (mtime, mtime))


def test_load_config(tmp_path):
    path = tmp_path / "config.yaml"
    write(path, ONE_CHANNEL)
    config = load_config(str(path))
    channels = config.resolve_channel_params()
    assert list(channels) == ["40740626"]
    assert channels["40740626"].quality == Quality.MBPS_1_2
    assert channels["40740626"].labels == {"env": "home"}

    write(path, TWO_CHANNELS)
    config = load_config(str(path))
    channels = config.resolve_channel_params()
    assert sorted(channels) == ["40740626", "72364867"]
    assert channels["40740626"].quality == Quality.MBPS_3
    assert channels["40740626"].labels == {"group": "friends"}
    assert channels["72364867"].quality == Quality.MBPS_1_2
    assert config.notifier.enabled


def test_load_invalid_config(tmp_path):
    path = tmp_path / "config.yaml"
    write(path, "- a\n- b\n")
    with pytest.raises(ValueError):
        load_config(str(path))

    write(path, "")
    assert load_config(str(path)).channels == {}


@pytest.mark.asyncio
async def test_reload_on_change(tmp_path):
    path = tmp_path / "config.yaml"
    write(path, ONE_CHANNEL, mtime=1_700_000_000)

    registered: list[int] = []

    async def handler(config: WatchConfig):
        registered.append(len(config.channels))
        await asyncio.Event().wait()

    queue: asyncio.Queue[WatchConfig] = asyncio.Queue()
    reloader = ConfigReloader()
    observer = asyncio.create_task(observe_config(str(path), queue, poll_interval_sec=0.01, debounce_sec=0.01))
    runner = asyncio.create_task(reloader.run(queue, handler))
    try:
        async with asyncio.timeout(5):
            while registered != [1]:
                await asyncio.sleep(0.01)

        write(path, TWO_CHANNELS, mtime=1_700_000_100)
        async with asyncio.timeout(5):
            while registered != [1, 2]:
                await asyncio.sleep(0.01)

        await asyncio.sleep(0.2)
        assert registered == [1, 2]
        assert reloader.reload_cnt == 2
    finally:
        observer.cancel()
        runner.cancel()
        async with asyncio.timeout(30):
            results = await asyncio.gather(observer, runner, return_exceptions=True)
    assert all(isinstance(result, asyncio.CancelledError) for result in results)


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_reloader():
    calls: list[str] = []

    async def handler(config: WatchConfig):
        calls.append(next(iter(config.channels)))
        raise RuntimeError("handler crashed")

    queue: asyncio.Queue[WatchConfig] = asyncio.Queue()
    queue.put_nowait(WatchConfig(channels={"a": {}}))
    queue.put_nowait(WatchConfig(channels={"b": {}}))
    runner = asyncio.create_task(ConfigReloader().run(queue, handler))
    try:
        async with asyncio.timeout(5):
            while calls != ["a", "b"]:
                await asyncio.sleep(0.01)
    finally:
        runner.cancel()
        await asyncio.gather(runner, return_exceptions=True)
