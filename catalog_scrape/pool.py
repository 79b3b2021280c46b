import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def map_limit(
    items: Sequence[T],
    limit: int,
    worker: Callable[[T], Awaitable[R]],
    *,
    progress_every: int = 0,
    label: str = "tasks",
) -> List[Optional[R]]:
    """
    Run `worker` over `items` with exactly `limit` calls in flight until the
    queue drains. out[i] belongs to items[i]; a failed call leaves None there
    and does not disturb its siblings.
    """
    if limit < 1:
        raise ValueError("limit must be >= 1")

    out: List[Optional[R]] = [None] * len(items)
    total = len(items)
    next_idx = 0
    done = 0
    failed = 0

    async def run_slot():
        nonlocal next_idx, done, failed
        while next_idx < total:
            idx = next_idx
            next_idx += 1
            try:
                out[idx] = await worker(items[idx])
            except Exception as e:
                failed += 1
                logger.debug("task %d failed: %s: %s", idx, type(e).__name__, e)
            done += 1
            if progress_every and (done % progress_every == 0 or done == total):
                logger.info("[POOL] %d/%d %s done (%d failed)", done, total, label, failed)

    await asyncio.gather(*(run_slot() for _ in range(min(limit, total))))
    return out
