import asyncio
from typing import Any

import aiohttp

from .checkpoint import Checkpoint, new_segments
from .manifest import SegmentRef, parse_manifest
from ..metric import metric
from ..utils import AsyncHttpClient, HttpRequestError, error_dict, log

REQUEST_TIMEOUT_SEC = 20
URL_BUF_MAX = 10

TRANSIENT_ERRORS = (aiohttp.ClientError, TimeoutError, HttpRequestError)


class SegmentForbiddenError(Exception):
    def __init__(self, url: str):
        super().__init__(f"Forbidden: {url}")
        self.url = url


class HlsDownloader:
    """
    Records one HLS media playlist into an append-only sink.

    ``read`` runs a producer that polls the manifest and enqueues new
    segment URLs, and consumes that queue itself, appending each segment
    body to the writer in the order it was enqueued.
    """

    def __init__(
        self,
        http: AsyncHttpClient,
        url: str,
        packet_loss_max: int = 20,
        channel_id: str | None = None,
        stall_timeout_sec: float = 30,
        poll_interval_sec: float = 1,
    ):
        self.url = url
        self.packet_loss_max = packet_loss_max
        self.stall_timeout_sec = stall_timeout_sec
        self.poll_interval_sec = poll_interval_sec
        self.checkpoint = Checkpoint()
        self.channel_id = channel_id
        self.__http = http
        self.__attr = {"channel_id": channel_id, "url": url}

    async def get_fragments(self) -> list[SegmentRef]:
        start = asyncio.get_event_loop().time()
        res = await self.__http.get(self.url, timeout_sec=REQUEST_TIMEOUT_SEC)
        metric.set_m3u8_request_duration(asyncio.get_event_loop().time() - start)
        if res.status == 403:
            raise SegmentForbiddenError(self.url)
        if res.status == 404:
            log.warn("Playlist not found, assuming no new segments", self.__attr)
            return []
        if not res.ok:
            raise res.to_error("Failed to fetch playlist")
        return parse_manifest(res.text(), base_url=res.url)

    async def probe(self) -> bool:
        res = await self.__http.get(self.url, timeout_sec=REQUEST_TIMEOUT_SEC)
        if res.status == 200:
            return True
        if res.status == 404:
            return False
        raise res.to_error("Failed to probe playlist")

    async def fill_queue(self, queue: asyncio.Queue[str | None]):
        """
        Poll the manifest and enqueue segments newer than the checkpoint.

        Returns when no new segment was seen for ``stall_timeout_sec``.
        The sorting mode is chosen on the first non-empty manifest: by time
        when every segment carries one, by name otherwise.
        """
        loop = asyncio.get_event_loop()
        last_emit = loop.time()
        sorting_chosen = False
        err_cnt = 0
        while True:
            try:
                refs = await self.get_fragments()
                err_cnt = 0
            except TRANSIENT_ERRORS as ex:
                err_cnt += 1
                err = error_dict(ex)
                err.update(self.__attr)
                err["error_count"] = err_cnt
                if err_cnt > self.packet_loss_max:
                    log.error("Too many playlist errors", err)
                    raise
                log.warn("Failed to fetch playlist", err)
                refs = []

            if len(refs) > 0 and not sorting_chosen:
                sorting_chosen = True
                use_time = all(ref.time is not None for ref in refs)
                if use_time != self.checkpoint.use_time_based_sorting:
                    log.debug("Switching segment sorting", {**self.__attr, "time_based": use_time})
                self.checkpoint = self.checkpoint.model_copy(update={"use_time_based_sorting": use_time})

            for ref in new_segments(refs, self.checkpoint):
                await queue.put(ref.url)
                self.checkpoint = self.checkpoint.advance(ref)
                last_emit = loop.time()

            if loop.time() - last_emit >= self.stall_timeout_sec:
                log.info("No new segments for a while, the stream is likely over", self.__attr)
                return

            await asyncio.sleep(self.poll_interval_sec)

    async def read(self, writer: Any, checkpoint: Checkpoint | None = None) -> Checkpoint:
        """
        Download until the stream stalls and return the final checkpoint.

        ``writer`` is any object with an awaitable ``write(bytes)``. The
        checkpoint is also kept on ``self.checkpoint`` so that it survives
        an error or a cancellation.
        """
        if checkpoint is not None:
            self.checkpoint = checkpoint.model_copy()

        queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=URL_BUF_MAX)
        producer = asyncio.create_task(self.__produce(queue))
        try:
            await self.__consume(queue, writer)
        except BaseException:
            producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)
            raise
        await producer
        return self.checkpoint

    async def __produce(self, queue: asyncio.Queue[str | None]):
        try:
            await self.fill_queue(queue)
        finally:
            task = asyncio.current_task()
            if task is None or task.cancelling() == 0:
                await queue.put(None)

    async def __consume(self, queue: asyncio.Queue[str | None], writer: Any):
        loss_cnt = 0
        while True:
            url = await queue.get()
            if url is None:
                return

            start = asyncio.get_event_loop().time()
            try:
                body = await self.__download_segment(url)
            except TRANSIENT_ERRORS as ex:
                loss_cnt += 1
                metric.inc_segment_request_failures()
                err = error_dict(ex)
                err.update(self.__attr)
                err["segment_url"] = url
                err["loss_count"] = loss_cnt
                if loss_cnt > self.packet_loss_max:
                    log.error("Too many lost segments", err)
                    raise
                log.warn("Lost segment", err)
                continue
            metric.set_segment_request_duration(asyncio.get_event_loop().time() - start)

            await write_fully(writer, body)
            if self.channel_id is not None:
                metric.inc_downloaded_bytes(self.channel_id, len(body))

    async def __download_segment(self, url: str) -> bytes:
        res = await self.__http.get(url, timeout_sec=REQUEST_TIMEOUT_SEC)
        if res.status == 403:
            raise SegmentForbiddenError(url)
        if not res.ok:
            raise res.to_error("Failed to download segment")
        return res.body


async def write_fully(writer: Any, data: bytes):
    """Write ``data`` and wait for the write to land even if the caller is cancelled meanwhile."""
    write = asyncio.ensure_future(writer.write(data))
    try:
        await asyncio.shield(write)
    except asyncio.CancelledError:
        await write
        raise
