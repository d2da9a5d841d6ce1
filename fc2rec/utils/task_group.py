import asyncio
from typing import Coroutine

from .errors import error_dict
from .logger import log


async def run_until_first_done(coros: dict[str, Coroutine], attr: dict | None = None) -> None:
    """
    Run the coroutines as sibling tasks until the first of them finishes.

    A normal return is a clean end, an exception is an error. Once any task
    finishes, the others are cancelled and awaited. The first exception, in
    completion order, that is not a cancellation is raised; otherwise the
    call returns normally. Cancelling the caller cancels every task.
    """
    finished: list[asyncio.Task] = []
    tasks: list[asyncio.Task] = []
    for name, coro in coros.items():
        task = asyncio.create_task(coro, name=name)
        task.add_done_callback(finished.append)
        tasks.append(task)

    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    first: BaseException | None = None
    for task in finished:
        if task.cancelled():
            continue
        ex = task.exception()
        if ex is None:
            continue
        if first is None:
            first = ex
        else:
            err = error_dict(ex)
            err["task"] = task.get_name()
            if attr is not None:
                err.update(attr)
            log.debug("Task failed after the group was stopped", err)

    if first is not None:
        raise first
