import asyncio
from typing import Awaitable, Callable, TypeVar

from .errors import error_dict
from .logger import log

T = TypeVar("T")


async def retry_with_result(
    fn: Callable[[int], Awaitable[T]],
    max_tries: int,
    delay_sec: float,
    timeout_sec: float | None = None,
    use_backoff: bool = False,
    max_delay_sec: float | None = None,
    attr: dict | None = None,
) -> T:
    """
    Call ``fn(try_idx)`` until it succeeds or ``max_tries`` is reached.

    The last failure is raised as-is. Cancellation always stops the loop.
    """
    if max_tries < 1:
        raise ValueError("max_tries must be positive")

    delay = delay_sec
    for try_idx in range(max_tries):
        try:
            if timeout_sec is None:
                return await fn(try_idx)
            async with asyncio.timeout(timeout_sec):
                return await fn(try_idx)
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            if try_idx == max_tries - 1:
                raise
            err = error_dict(ex)
            err["try"] = try_idx + 1
            err["max_tries"] = max_tries
            if attr is not None:
                err.update(attr)
            log.debug("Try failed, retrying", err)

        await asyncio.sleep(delay)
        if use_backoff:
            delay *= 2
            if max_delay_sec is not None and delay > max_delay_sec:
                delay = max_delay_sec

    raise RuntimeError("unreachable")
