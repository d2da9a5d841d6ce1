import asyncio

import aiofiles

from .objects import Comment
from ..utils import log


def is_duplicate_comment(last: Comment | None, comment: Comment) -> bool:
    return last is not None and last == comment


async def download_chat(comment_queue: asyncio.Queue[Comment | None], file_path: str, channel_id: str | None = None):
    """Append comments to ``file_path`` as JSON lines until ``None`` is received."""
    attr = {"channel_id": channel_id, "file_path": file_path}
    last: Comment | None = None
    cnt = 0
    async with aiofiles.open(file_path, "w", encoding="utf-8") as file:
        while True:
            comment = await comment_queue.get()
            if comment is None:
                log.debug("Chat closed", {**attr, "count": cnt})
                return
            if is_duplicate_comment(last, comment):
                continue
            last = comment
            await file.write(comment.model_dump_json(by_alias=True) + "\n")
            await file.flush()
            cnt += 1
