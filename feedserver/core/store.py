from __future__ import annotations

import json
from typing import Any

import redis.asyncio as aioredis

from feedserver.core.config import settings

# Key layout:
#   feeds:next_id      counter used to allocate feed ids
#   feeds              sorted set of feed ids, score = next fetch (ms)
#   feed:url:<url>     feed id for a URL
#   feed:<id>          JSON feed record
#   feed:<id>:url      URL of the feed
#   feed:<id>:items    sorted set of item keys, score = item date (ms)
#   feed:<id>:delay    current backoff delay (ms)
#   item:<guid>        JSON item record
#   item:<guid>:feeds  set of feed ids containing the item
SCHEDULE_KEY = "feeds"
NEXT_ID_KEY = "feeds:next_id"

def feed_url_key(url: str) -> str:
    return f"feed:url:{url}"

def feed_key(feed_id: str) -> str:
    return f"feed:{feed_id}"

def feed_source_key(feed_id: str) -> str:
    return f"feed:{feed_id}:url"

def feed_items_key(feed_id: str) -> str:
    return f"feed:{feed_id}:items"

def feed_delay_key(feed_id: str) -> str:
    return f"feed:{feed_id}:delay"

def item_key(guid: str) -> str:
    return f"item:{guid}"

def item_feeds_key(guid: str) -> str:
    return f"item:{guid}:feeds"

def dumps(record: dict) -> str:
    return json.dumps(record, separators=(",", ":"), sort_keys=True)

def loads(raw: str | None) -> dict | None:
    if raw is None:
        return None
    return json.loads(raw)

class FeedStore:
    """Thin async wrapper exposing the primitives the scheduler relies on.

    Every method maps to a single Redis command, except ``transaction()``
    which hands out a MULTI/EXEC pipeline for writes that must land together.
    """

    def __init__(self, client: aioredis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str | None = None) -> "FeedStore":
        client = aioredis.from_url(url or settings.redis_url, decode_responses=True)
        return cls(client)

    async def close(self) -> None:
        await self.client.aclose()

    async def get(self, key: str) -> str | None:
        return await self.client.get(key)

    async def set(self, key: str, value: Any, nx: bool = False) -> bool:
        return bool(await self.client.set(key, value, nx=nx))

    async def swap(self, key: str, value: Any) -> str | None:
        """Store ``value`` and return what was there before."""
        return await self.client.getset(key, value)

    async def delete(self, *keys: str) -> int:
        return await self.client.delete(*keys)

    async def incr(self, key: str) -> int:
        return await self.client.incr(key)

    async def sadd(self, key: str, *members: str) -> int:
        return await self.client.sadd(key, *members)

    async def smembers(self, key: str) -> set[str]:
        return await self.client.smembers(key)

    async def zadd(self, key: str, member: str, score: float) -> int:
        return await self.client.zadd(key, {member: score})

    async def zrangebyscore(self, key: str, low: float | str, high: float | str) -> list[str]:
        return await self.client.zrangebyscore(key, low, high)

    async def zrevrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        return await self.client.zrevrange(key, start, stop)

    async def zscore(self, key: str, member: str) -> float | None:
        return await self.client.zscore(key, member)

    async def zcard(self, key: str) -> int:
        return await self.client.zcard(key)

    def transaction(self):
        """Return a MULTI/EXEC pipeline; queue commands, then ``await execute()``."""
        return self.client.pipeline(transaction=True)

    async def get_json(self, key: str) -> dict | None:
        return loads(await self.get(key))
