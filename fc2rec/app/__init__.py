from .download_runner import DownloadRunner
from .watch_runner import WatchRunner
