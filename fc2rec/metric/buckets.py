segment_request_duration_buckets = [0.1, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 10.0, 20.0]
m3u8_request_duration_buckets = [0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0]
api_request_duration_buckets = [0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0]
