import asyncio
import os
import time
from datetime import datetime

import aiofiles
from pydantic import BaseModel

from ..fc2 import (
    Comment,
    DeadlockError,
    FC2Client,
    FC2WebSocket,
    GetMetaData,
    Latency,
    LiveStreamNotOnlineError,
    Params,
    Playlist,
    Quality,
    QualityNotAvailableError,
    QualityNotExpectedError,
    StreamEndedError,
    download_chat,
    format_output,
    prepare_file,
    release_files,
    resolve_playlist,
)
from ..hls import Checkpoint, HlsDownloader
from ..notify import FormattedNotifier
from ..postprocess import concat_prefix, probe, remux
from ..state import DownloadState, state
from ..utils import AsyncHttpClient, error_dict, flush_queue, is_almost_full, log, retry_with_result, run_until_first_done

MSG_BUF_MAX = 100
COMMENT_BUF_MAX = 100
HEALTH_CHECK_INTERVAL_SEC = 30
OVERFLOW_CHECK_INTERVAL_SEC = 5
FETCH_PLAYLIST_DELAY_SEC = 1
FETCH_PLAYLIST_TIMEOUT_SEC = 15
PROBE_INTERVAL_SEC = 5
SWITCH_TIMEOUT_SEC = 30
STALL_TIMEOUT_SEC = 30
HLS_POLL_INTERVAL_SEC = 1
AUDIO_EXT = "m4a"


class OutputFiles(BaseModel):
    info: str
    thumbnail: str
    stream: str
    chat: str
    muxed: str
    audio: str
    concat_prefix: str
    audio_concat_prefix: str

    def prepared(self) -> list[str]:
        return [self.info, self.thumbnail, self.stream, self.chat, self.muxed, self.audio]


class FC2Recorder:
    """
    Records one live of a channel, from the online check to post-processing.

    ``watch`` returns the metadata of the recorded live. A clean end of the
    stream is a normal return, any other outcome is raised once the
    post-processing is done.
    """

    def __init__(
        self,
        http: AsyncHttpClient,
        client: FC2Client,
        params: Params,
        channel_id: str,
        notifier: FormattedNotifier | None = None,
    ):
        self.channel_id = channel_id
        self.params = params
        self.client = client
        self.notifier = notifier
        self.meta: GetMetaData | None = None
        self.session_expired = False
        self.health_check_interval_sec: float = HEALTH_CHECK_INTERVAL_SEC
        self.overflow_check_interval_sec: float = OVERFLOW_CHECK_INTERVAL_SEC
        self.probe_interval_sec: float = PROBE_INTERVAL_SEC
        self.switch_timeout_sec: float = SWITCH_TIMEOUT_SEC
        self.stall_timeout_sec: float = STALL_TIMEOUT_SEC
        self.hls_poll_interval_sec: float = HLS_POLL_INTERVAL_SEC
        self.__http = http
        self.__attr = {"channel_id": channel_id}

    async def watch(self) -> GetMetaData:
        log.info("Watching channel", {**self.__attr, "params": self.params.model_dump(mode="json", by_alias=True)})
        self.session_expired = False

        if not await self.client.is_online(self.channel_id):
            if not self.params.wait_for_live:
                raise LiveStreamNotOnlineError(self.channel_id)
            self.__set_state(DownloadState.WAITING)
            await self.client.wait_for_online(self.channel_id, self.params.wait_poll_interval_sec)

        meta = await self.client.get_meta(self.channel_id)
        self.meta = meta
        self.__set_state(DownloadState.PREPARING)
        if self.notifier is not None:
            await self.notifier.notify_preparing_files(self.channel_id, self.params.labels, meta)

        files = self.prepare_files(meta)
        try:
            await self.__write_side_files(meta, files)

            self.__set_state(DownloadState.DOWNLOADING, meta)
            if self.notifier is not None:
                await self.notifier.notify_downloading(self.channel_id, self.params.labels, meta)

            ws_url, token = await self.client.get_websocket_url(meta)
            ws_error: Exception | None = None
            try:
                await self.handle_ws(ws_url, files.stream, files.chat, token.exp)
            except Exception as ex:
                log.error("Recording finished with error", {**self.__attr, **error_dict(ex)})
                ws_error = ex

            self.__set_state(DownloadState.POSTPROCESSING, meta)
            if self.notifier is not None:
                await self.notifier.notify_post_processing(self.channel_id, self.params.labels, meta)
            await self.post_process(files)

            if ws_error is not None:
                raise ws_error
            log.info("Recording done", self.__attr)
            return meta
        finally:
            release_files(*files.prepared())

    def prepare_files(self, meta: GetMetaData, now: datetime | None = None) -> OutputFiles:
        if now is None:
            now = datetime.now()
        out_format = self.params.out_format
        labels = self.params.labels
        muxed_ext = self.params.remux_format.lower()

        def prepare(ext: str) -> str:
            return prepare_file(out_format, meta, ext, labels, now)

        def prefix(ext: str) -> str:
            return format_output(out_format, meta, f"combined.{ext}", labels, now).removesuffix(f".combined.{ext}")

        return OutputFiles(
            info=prepare("info.json"),
            thumbnail=prepare("png"),
            stream=prepare("ts"),
            chat=prepare("fc2chat.json"),
            muxed=prepare(muxed_ext),
            audio=prepare(AUDIO_EXT),
            concat_prefix=prefix(muxed_ext),
            audio_concat_prefix=prefix(AUDIO_EXT),
        )

    async def __write_side_files(self, meta: GetMetaData, files: OutputFiles):
        if self.params.write_info_json:
            log.info("Write info json", {**self.__attr, "file_path": files.info})
            try:
                async with aiofiles.open(files.info, "w", encoding="utf-8") as f:
                    await f.write(meta.model_dump_json(by_alias=True, indent=2))
            except OSError as ex:
                log.error("Failed to write info json", {**self.__attr, **error_dict(ex)})

        if self.params.write_thumbnail and meta.channel_data.image != "":
            log.info("Write thumbnail", {**self.__attr, "file_path": files.thumbnail})
            try:
                data = await self.__http.get_bytes(meta.channel_data.image, attr=self.__attr)
                async with aiofiles.open(files.thumbnail, "wb") as f:
                    await f.write(data)
            except asyncio.CancelledError:
                raise
            except Exception as ex:
                log.error("Failed to write thumbnail", {**self.__attr, **error_dict(ex)})

    async def handle_ws(self, ws_url: str, stream_path: str, chat_path: str, expires_at: int | None = None):
        """
        Run the signalling tasks, the download and the chat writer until the first of them stops.

        When ``expires_at`` is set, the group also stops cleanly at that unix
        time and ``session_expired`` is set, so the caller records again with
        a new control token.
        """
        async with FC2WebSocket(
            self.__http,
            ws_url,
            health_check_interval_sec=self.health_check_interval_sec,
            msg_buf_max=MSG_BUF_MAX,
            channel_id=self.channel_id,
        ) as ws:
            comment_queue: asyncio.Queue[Comment | None] | None = None
            if self.params.write_chat:
                comment_queue = asyncio.Queue(maxsize=COMMENT_BUF_MAX)

            coros = {
                "listen": self.__listen(ws, comment_queue),
                "dispatch": ws.dispatch(),
                "heartbeat": ws.heartbeat_loop(),
                "download": self.__download(ws, stream_path),
                "overflow": self.monitor_overflow(ws, comment_queue),
            }
            if comment_queue is not None:
                coros["chat"] = download_chat(comment_queue, chat_path, self.channel_id)
            if expires_at is not None:
                coros["expiry"] = self.__wait_for_expiry(expires_at)
            await run_until_first_done(coros, self.__attr)

    async def __wait_for_expiry(self, expires_at: int):
        await asyncio.sleep(max(0.0, expires_at - time.time()))
        log.info("Control token expired, restarting the session", {**self.__attr, "exp": expires_at})
        self.session_expired = True

    async def __listen(self, ws: FC2WebSocket, comment_queue: asyncio.Queue[Comment | None] | None):
        try:
            await ws.listen(comment_queue)
        except StreamEndedError:
            log.info("Stream ended", self.__attr)

    async def monitor_overflow(self, ws: FC2WebSocket, comment_queue: asyncio.Queue[Comment | None] | None):
        while True:
            await asyncio.sleep(self.overflow_check_interval_sec)
            if is_almost_full(ws.msg_queue):
                log.error("Message queue overflow, flushing", self.__attr)
                flush_queue(ws.msg_queue, self.__attr)
            if comment_queue is not None and is_almost_full(comment_queue):
                log.error("Comment queue overflow, flushing", self.__attr)
                flush_queue(comment_queue, self.__attr)

    async def fetch_playlist(self, ws: FC2WebSocket, verbose: bool = True) -> Playlist:
        """
        Resolve the playlist of the expected mode, retrying while it is not offered.

        On the last try the best available playlist is carried by a raised
        QualityNotExpectedError.
        """
        expected_mode = self.params.expected_mode
        max_tries = self.params.wait_for_quality_max_tries

        async def fetch(try_idx: int) -> Playlist:
            info = await ws.get_hls_information()
            playlist, matched = resolve_playlist(expected_mode, info)
            if matched:
                return playlist
            if try_idx == max_tries - 1:
                if verbose:
                    log.warn("Requested quality is not available, using the best one", {
                        **self.__attr,
                        "expected_quality": str(Quality.from_mode(expected_mode)),
                        "expected_latency": str(Latency.from_mode(expected_mode)),
                        "got_quality": str(Quality.from_mode(playlist.mode)),
                        "got_latency": str(Latency.from_mode(playlist.mode)),
                    })
                raise QualityNotExpectedError(playlist, expected_mode)
            raise QualityNotAvailableError(expected_mode, playlist.mode)

        return await retry_with_result(
            fetch,
            max_tries=max_tries,
            delay_sec=FETCH_PLAYLIST_DELAY_SEC,
            timeout_sec=FETCH_PLAYLIST_TIMEOUT_SEC,
            attr=self.__attr,
        )

    async def __download(self, ws: FC2WebSocket, stream_path: str):
        playlists: asyncio.Queue[Playlist] = asyncio.Queue(maxsize=1)
        poller = asyncio.create_task(self.__poll_playlists(ws, playlists))
        try:
            await self.download_stream(playlists, stream_path, poller)
        finally:
            poller.cancel()
            await asyncio.gather(poller, return_exceptions=True)

    async def __poll_playlists(self, ws: FC2WebSocket, playlists: asyncio.Queue[Playlist]):
        """
        Send the resolved playlist to the downloader.

        When only a lower quality is offered and upgrades are allowed, keep
        polling until the expected one shows up and send it too.
        """
        downloading = False
        while True:
            try:
                playlist = await self.fetch_playlist(ws, verbose=not downloading)
                await playlists.put(playlist)
                return
            except QualityNotExpectedError as ex:
                if not downloading:
                    log.warn("Quality is not the expected one, will retry during download", {
                        **self.__attr,
                        "mode": ex.playlist.mode,
                    })
                    await playlists.put(ex.playlist)
                    downloading = True
            except (asyncio.CancelledError, DeadlockError):
                raise
            except Exception as ex:
                if not downloading:
                    log.error("Failed to fetch playlist", {**self.__attr, **error_dict(ex)})
                    raise

            if not self.params.allow_quality_upgrade:
                return
            await asyncio.sleep(self.params.poll_quality_upgrade_interval_sec)

    async def download_stream(
        self,
        playlists: asyncio.Queue[Playlist],
        stream_path: str,
        poller: asyncio.Task | None = None,
    ):
        """
        Download every playlist received into one append-only file.

        A playlist received while a downloader is running replaces it: the
        new variant is probed until it answers, the old downloader is
        cancelled and awaited, and the new one resumes from its checkpoint.
        Returns when the running downloader stops on a stall.
        """
        checkpoint = Checkpoint()
        downloader: HlsDownloader | None = None
        current: asyncio.Task | None = None
        getter: asyncio.Future | None = None

        async with aiofiles.open(stream_path, "wb") as file:
            try:
                while True:
                    if getter is None:
                        getter = asyncio.ensure_future(playlists.get())
                    waiters = {getter}
                    if current is not None:
                        waiters.add(current)
                    if poller is not None and current is None:
                        waiters.add(poller)
                    await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

                    if current is not None and current.done():
                        log.info("Downloader finished", self.__attr)
                        current.result()
                        return

                    if poller is not None and poller.done():
                        # The poller only returns after sending a playlist.
                        poller.result()
                        poller = None

                    if not getter.done():
                        continue
                    playlist = getter.result()
                    getter = None
                    log.info("Received new playlist", {**self.__attr, "mode": playlist.mode, "url": playlist.url})
                    new_downloader = HlsDownloader(
                        self.__http,
                        playlist.url,
                        packet_loss_max=self.params.packet_loss_max,
                        channel_id=self.channel_id,
                        stall_timeout_sec=self.stall_timeout_sec,
                        poll_interval_sec=self.hls_poll_interval_sec,
                    )

                    if current is not None and downloader is not None:
                        log.info("Quality upgrade, waiting for the new stream to be ready", self.__attr)
                        if not await self.__wait_until_ready(new_downloader):
                            continue
                        checkpoint = await self.__stop_downloader(current, downloader)
                        log.info("Downloader switched", self.__attr)

                    downloader = new_downloader
                    current = asyncio.create_task(downloader.read(file, checkpoint))
            finally:
                if getter is not None:
                    getter.cancel()
                if current is not None and not current.done():
                    current.cancel()
                    await asyncio.gather(current, return_exceptions=True)

    async def __wait_until_ready(self, downloader: HlsDownloader) -> bool:
        while True:
            try:
                if await downloader.probe():
                    return True
            except asyncio.CancelledError:
                raise
            except Exception as ex:
                log.error("Failed to probe playlist, won't switch", {**self.__attr, **error_dict(ex)})
                return False
            await asyncio.sleep(self.probe_interval_sec)

    async def __stop_downloader(self, task: asyncio.Task, downloader: HlsDownloader) -> Checkpoint:
        task.cancel()
        done, _ = await asyncio.wait({task}, timeout=self.switch_timeout_sec)
        if len(done) == 0:
            raise DeadlockError("Downloader did not stop in time")
        if not task.cancelled() and task.exception() is not None:
            raise task.exception()
        return downloader.checkpoint

    async def post_process(self, files: OutputFiles):
        """Probe, remux, extract audio and concatenate. Failures are logged and recorded, never raised."""
        log.info("Post-processing", self.__attr)
        failed = False

        try:
            await probe(files.stream)
            probe_ok = True
        except Exception as ex:
            probe_ok = False
            self.__post_process_error("Stream is unreadable by ffmpeg", ex)
            if self.params.delete_corrupted and os.path.exists(files.stream):
                log.info("Delete corrupted file", {**self.__attr, "file_path": files.stream})
                os.remove(files.stream)

        remux_ok = False
        if self.params.remux and probe_ok:
            try:
                await remux(files.stream, files.muxed)
                remux_ok = True
            except Exception as ex:
                failed = True
                self.__post_process_error("Failed to remux stream", ex)

        # Audio parts are only concatenated alongside remuxed parts.
        extract_audio = self.params.extract_audio and (not self.params.concat or self.params.remux)
        if extract_audio and probe_ok:
            try:
                await remux(files.stream, files.audio, audio_only=True)
            except Exception as ex:
                failed = True
                self.__post_process_error("Failed to extract audio", ex)

        if self.params.concat:
            muxed_ext = self.params.remux_format.lower()
            parts_ext = muxed_ext if self.params.remux else "ts"
            try:
                await concat_prefix(files.concat_prefix, parts_ext, muxed_ext)
                if extract_audio:
                    await concat_prefix(files.audio_concat_prefix, AUDIO_EXT)
            except Exception as ex:
                failed = True
                self.__post_process_error("Failed to concatenate", ex)

        if not self.params.keep_intermediates and self.params.remux and remux_ok and not failed:
            log.info("Delete intermediate file", {**self.__attr, "file_path": files.stream})
            try:
                os.remove(files.stream)
            except OSError as ex:
                self.__post_process_error("Failed to delete intermediate file", ex)

    def __post_process_error(self, msg: str, ex: Exception):
        log.error(msg, {**self.__attr, **error_dict(ex)})
        state.set_channel_error(self.channel_id, ex)

    def __set_state(self, download_state: DownloadState, meta: GetMetaData | None = None):
        extra = {"metadata": meta.model_dump(mode="json", by_alias=True)} if meta is not None else None
        state.set_channel_state(self.channel_id, download_state, labels=self.params.labels, extra=extra)

