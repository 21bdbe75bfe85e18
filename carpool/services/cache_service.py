"""
Redis caching for per-outing carpool summaries.

CACHING STRATEGY
================

What we cache:
  - The "N trips, M seats left" badge shown next to every outing in the
    outing list. Key pattern: "carpool:summary:outing={outing_id}"

Why:
  - The outing list asks for many outings at once and is read far more often
    than seats change.

Invalidation strategy:
  - Every offer create/update/withdraw and every booking/cancellation deletes
    the key of the affected outing after commit.
  - TTL-based expiry as safety net.

Why NOT cache trip offers or capacity:
  - Booking decisions must see the live confirmed_count; a cached count is
    exactly the stale read the booking step is built to avoid.
"""

import json
from typing import Iterable

import redis.asyncio as redis

from carpool.core.config import get_settings
from carpool.core.logging import get_logger
from carpool.core.metrics import record_cache_operation
from carpool.infrastructure.redis_client import get_redis

logger = get_logger(__name__)


def _make_summary_key(outing_id: int) -> str:
    return f"carpool:summary:outing={outing_id}"


async def get_cached_summaries(outing_ids: Iterable[int]) -> dict[int, dict]:
    """Return the cached summaries that exist, keyed by outing id."""
    client = await get_redis()
    if not client:
        return {}

    ids = list(outing_ids)
    if not ids:
        return {}

    try:
        values = await client.mget([_make_summary_key(i) for i in ids])
    except redis.RedisError as e:
        logger.error("cache_get_error", error=str(e))
        return {}

    found = {}
    for outing_id, raw in zip(ids, values):
        record_cache_operation("get", hit=raw is not None)
        if raw is not None:
            found[outing_id] = json.loads(raw)
    return found


async def set_cached_summaries(summaries: Iterable[dict]) -> None:
    client = await get_redis()
    if not client:
        return

    ttl = get_settings().REDIS_CACHE_TTL
    try:
        async with client.pipeline(transaction=False) as pipe:
            for summary in summaries:
                pipe.setex(_make_summary_key(summary["outing_id"]), ttl, json.dumps(summary))
            await pipe.execute()
        record_cache_operation("set", hit=True)
    except redis.RedisError as e:
        logger.error("cache_set_error", error=str(e))


async def invalidate_outing_summary(outing_id: int) -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.delete(_make_summary_key(outing_id))
        logger.debug("cache_invalidated", outing_id=outing_id)
    except redis.RedisError as e:
        logger.error("cache_invalidation_error", outing_id=outing_id, error=str(e))
