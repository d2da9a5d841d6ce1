import asyncio

from .logger import log


def flush_queue(queue: asyncio.Queue, attr: dict | None = None) -> int:
    cnt = 0
    while True:
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            break
        cnt += 1
    if cnt > 0:
        log_attr = {"count": cnt}
        if attr is not None:
            log_attr.update(attr)
        log.warn("Flushed queue", log_attr)
    return cnt


def is_almost_full(queue: asyncio.Queue) -> bool:
    return queue.maxsize > 0 and queue.qsize() >= queue.maxsize - 1
