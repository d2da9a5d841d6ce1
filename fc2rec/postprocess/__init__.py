from .cleaner import CleanResult, clean, clean_periodically
from .ffmpeg import concat, concat_prefix, find_parts, probe, remux
