import asyncio
import json

import pytest

from fc2rec.fc2 import Comment, download_chat, is_duplicate_comment


def test_duplicate_comment():
    a = Comment(user_name="a", comment="hi", timestamp=1)
    assert not is_duplicate_comment(None, a)
    assert is_duplicate_comment(a, Comment(user_name="a", comment="hi", timestamp=1))
    assert not is_duplicate_comment(a, Comment(user_name="a", comment="hi", timestamp=2))


@pytest.mark.asyncio
async def test_download_chat_skips_consecutive_duplicates(tmp_path):
    file_path = str(tmp_path / "chat.jsonl")
    queue: asyncio.Queue[Comment | None] = asyncio.Queue()
    first = Comment(user_name="a", comment="hi", timestamp=1)
    second = Comment(user_name="b", comment="yo", timestamp=2)
    for comment in (first, first, second, first, None):
        queue.put_nowait(comment)

    await download_chat(queue, file_path, "12345")

    with open(file_path, encoding="utf-8") as f:
        lines = [json.loads(line) for line in f]
    assert [line["comment"] for line in lines] == ["hi", "yo", "hi"]
