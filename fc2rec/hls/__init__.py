from .checkpoint import Checkpoint, new_segments
from .downloader import HlsDownloader, SegmentForbiddenError, write_fully
from .manifest import SegmentRef, parse_manifest, to_segment_ref
