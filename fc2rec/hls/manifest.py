import posixpath
from datetime import datetime
from urllib.parse import parse_qs, urljoin, urlparse

from pydantic import BaseModel

PROGRAM_DATE_TIME = "#EXT-X-PROGRAM-DATE-TIME:"


class SegmentRef(BaseModel):
    url: str
    name: str
    sequence: int | None = None
    time: int | None = None


def parse_directive_time(line: str) -> int | None:
    value = line[len(PROGRAM_DATE_TIME):].strip()
    try:
        return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())
    except ValueError:
        return None


def to_segment_ref(url: str, directive_time: int | None = None) -> SegmentRef:
    parsed = urlparse(url)
    name = posixpath.basename(parsed.path)
    stem = name.split(".")[0]
    sequence = int(stem) if stem.isdigit() else None

    time = directive_time
    if time is None:
        values = parse_qs(parsed.query).get("time")
        if values:
            try:
                time = int(values[0])
            except ValueError:
                time = None
    return SegmentRef(url=url, name=name, sequence=sequence, time=time)


def parse_manifest(text: str, base_url: str | None = None) -> list[SegmentRef]:
    """Return the segments of a media playlist in file order, without duplicates."""
    refs = []
    seen = set()
    directive_time = None
    for raw in text.splitlines():
        line = raw.strip()
        if len(line) == 0:
            continue
        if line.startswith("#"):
            if line.startswith(PROGRAM_DATE_TIME):
                directive_time = parse_directive_time(line)
            continue

        url = urljoin(base_url, line) if base_url is not None else line
        if url not in seen:
            seen.add(url)
            refs.append(to_segment_ref(url, directive_time))
        directive_time = None
    return refs
