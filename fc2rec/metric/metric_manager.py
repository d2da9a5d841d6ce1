from prometheus_client import Counter, Gauge, Histogram

from .buckets import (
    api_request_duration_buckets,
    m3u8_request_duration_buckets,
    segment_request_duration_buckets,
)


class MetricManager:
    def __init__(self):
        self.api_request_duration_hist = Histogram(
            "fc2rec_api_request_duration_seconds",
            "Duration of FC2 API requests in seconds",
            ["endpoint"],
            buckets=api_request_duration_buckets,
        )
        self.m3u8_request_duration_hist = Histogram(
            "fc2rec_m3u8_request_duration_seconds",
            "Duration of HLS m3u8 requests in seconds",
            buckets=m3u8_request_duration_buckets,
        )
        self.segment_request_duration_hist = Histogram(
            "fc2rec_segment_request_duration_seconds",
            "Duration of HLS segment requests in seconds",
            buckets=segment_request_duration_buckets,
        )
        self.segment_request_failures_counter = Counter(
            "fc2rec_segment_request_failures",
            "Count of HLS segment request failures",
        )
        self.downloaded_bytes_counter = Counter(
            "fc2rec_downloaded_bytes",
            "Bytes of media appended to recordings",
            ["channel_id"],
        )
        self.channel_state_gauge = Gauge(
            "fc2rec_channel_state",
            "Current state of a channel, 1 for the active state",
            ["channel_id", "state"],
        )
        self.recordings_counter = Counter(
            "fc2rec_recordings",
            "Count of finished recordings by result",
            ["channel_id", "result"],
        )

    def set_api_request_duration(self, duration: float, endpoint: str):
        self.api_request_duration_hist.labels(endpoint=endpoint).observe(duration)

    def set_m3u8_request_duration(self, duration: float):
        self.m3u8_request_duration_hist.observe(duration)

    def set_segment_request_duration(self, duration: float):
        self.segment_request_duration_hist.observe(duration)

    def inc_segment_request_failures(self):
        self.segment_request_failures_counter.inc()

    def inc_downloaded_bytes(self, channel_id: str, size: int):
        self.downloaded_bytes_counter.labels(channel_id=channel_id).inc(size)

    def set_channel_state(self, channel_id: str, current: str, states: list[str]):
        for state in states:
            self.channel_state_gauge.labels(channel_id=channel_id, state=state).set(1 if state == current else 0)

    def inc_recordings(self, channel_id: str, result: str):
        self.recordings_counter.labels(channel_id=channel_id, result=result).inc()


metric = MetricManager()
