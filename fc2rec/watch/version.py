import asyncio

from pydantic import BaseModel

from .. import __version__
from ..notify import FormattedNotifier
from ..utils import AsyncHttpClient, error_dict, log

VERSION_CHECK_URL = "https://api.github.com/repos/fc2rec/fc2rec/releases/latest"
VERSION_CHECK_TIMEOUT_SEC = 60


class Release(BaseModel):
    tag_name: str


def is_same_version(tag_name: str, version: str) -> bool:
    return tag_name.removeprefix("v") == version.removeprefix("v")


async def check_version(
    http: AsyncHttpClient,
    notifier: FormattedNotifier,
    url: str = VERSION_CHECK_URL,
    version: str = __version__,
) -> str | None:
    """Notify when the latest release differs from the running version, and return that release."""
    if "-" in version:
        log.warn("Development version, skipping version check", {"version": version})
        return None

    headers = {"Accept": "application/vnd.github.v3+json"}
    try:
        body = await asyncio.wait_for(http.get_bytes(url, headers=headers), VERSION_CHECK_TIMEOUT_SEC)
        release = Release.model_validate_json(body)
    except asyncio.CancelledError:
        raise
    except Exception as ex:
        log.error("Failed to check version", {"url": url, **error_dict(ex)})
        return None

    if is_same_version(release.tag_name, version):
        return None
    log.warn("New version available", {"latest": release.tag_name, "current": version})
    await notifier.notify_update_available(release.tag_name)
    return release.tag_name
