"""
Per-offer asyncio locks.

Booking, cancellation and withdrawal on the same trip offer take that offer's
lock around their whole transaction, so within one worker process they never
interleave. Different offers never share a lock. Across processes the
database row lock taken by the conditional UPDATE is what serialises writers;
this registry just keeps same-process contenders from piling onto that row.
"""

import asyncio
import weakref
from contextlib import AsyncExitStack, asynccontextmanager

# Entries disappear once no coroutine holds or waits on the lock
_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


def get_offer_lock(offer_id: int) -> asyncio.Lock:
    lock = _locks.get(offer_id)
    if lock is None:
        lock = asyncio.Lock()
        _locks[offer_id] = lock
    return lock


@asynccontextmanager
async def offer_locks(*offer_ids: int):
    """Hold the locks of several offers, acquired in ascending id order."""
    async with AsyncExitStack() as stack:
        for offer_id in sorted(set(offer_ids)):
            await stack.enter_async_context(get_offer_lock(offer_id))
        yield
