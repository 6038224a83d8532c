from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from feedserver.core.config import Settings, settings as default_settings
from feedserver.core.scheduler import RefreshTimer
from feedserver.core.store import (
    NEXT_ID_KEY,
    SCHEDULE_KEY,
    FeedStore,
    dumps,
    feed_delay_key,
    feed_items_key,
    feed_key,
    feed_source_key,
    feed_url_key,
    item_feeds_key,
    item_key,
    loads,
)
from feedserver.services.diff import diff
from feedserver.services.fetcher import Fetcher, FetchResult, channel_ttl_ms
from feedserver.services.normalize import HOUR_MS, MINUTE_MS, normalize_feed_url, now_ms

logger = logging.getLogger(__name__)

ItemListener = Callable[[dict, list, bool, Optional[dict]], Union[None, Awaitable[None]]]

async def _invoke(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result

class FeedServer:
    """Polls registered feeds and keeps feeds, items and the schedule in the store.

    Per feed: scheduled -> fetching -> updated | delayed -> scheduled.
    A successful fetch reschedules the feed at its expiry (never sooner than
    ``min_expiry_minutes``); a failed one doubles the backoff delay, starting
    at ``backoff_base_minutes``.
    """

    def __init__(
        self,
        store: FeedStore,
        fetcher: Fetcher | None = None,
        config: Settings | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.store = store
        self.config = config or default_settings
        self.fetcher = fetcher or Fetcher(
            self.config.user_agent,
            self.config.request_timeout_seconds,
            default_ttl_minutes=self.config.default_ttl_minutes,
        )
        self.timer = RefreshTimer(self.run_due, self.config.refresh_interval_seconds, scheduler=scheduler)

        self.default_ttl_ms = self.config.default_ttl_minutes * MINUTE_MS
        self.min_expiry_ms = self.config.min_expiry_minutes * MINUTE_MS
        self.backoff_base_ms = self.config.backoff_base_minutes * MINUTE_MS
        self.max_backoff_ms = self.config.max_backoff_hours * HOUR_MS

        self._listener: ItemListener | None = None
        self._tasks: set[asyncio.Task] = set()
        self._inflight: set[str] = set()

    # --- Timer ---

    def start(self) -> None:
        self.timer.start()

    def stop(self) -> None:
        self.timer.stop()

    @property
    def refresh_interval(self) -> int:
        return self.timer.interval

    @refresh_interval.setter
    def refresh_interval(self, seconds: int) -> None:
        self.timer.set_interval(seconds)

    def refresh(self, seconds: int | None = None) -> int:
        """Get, or set then get, the refresh cadence in seconds."""
        if seconds is not None:
            self.refresh_interval = seconds
        return self.refresh_interval

    async def close(self) -> None:
        self.timer.shutdown()
        await self.timer.wait_cycles()
        await self.drain()

    async def drain(self) -> None:
        """Wait for every fetch started so far to finish."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # --- Registration ---

    def on_item(self, callback: ItemListener | None) -> None:
        self._listener = callback

    async def register(self, url: str, callback: Callable[[str], Any] | None = None) -> str:
        url = normalize_feed_url(url)
        key = feed_url_key(url)
        logger.info("register %s", url)

        feed_id = await self.store.get(key)
        if feed_id is None:
            candidate = str(await self.store.incr(NEXT_ID_KEY))
            if await self.store.set(key, candidate, nx=True):
                feed_id = candidate
                await self.store.set(feed_source_key(feed_id), url)
                logger.info("register new %s -> %s", url, feed_id)
            else:
                # Lost a race with a concurrent registration of the same URL
                feed_id = await self.store.get(key)

        await self.maybe_update_feed(feed_id, url)
        if callback is not None:
            await _invoke(callback, feed_id)
        return feed_id

    async def maybe_update_feed(self, feed_id: str, url: str) -> bool:
        info = await self.store.get_json(feed_key(feed_id))
        if info is None:
            self.read_feed(feed_id, url)
            return True
        expires = info.get("expires")
        if not expires or expires < now_ms():
            self.read_feed(feed_id, url, info.get("etag"))
            return True
        return False

    # --- Refresh cycle ---

    async def run_due(self) -> list[str]:
        """Start a fetch for every feed whose scheduled time has passed."""
        due = await self.store.zrangebyscore(SCHEDULE_KEY, "-inf", now_ms())
        if due:
            logger.info("refresh: %d feeds due", len(due))
        for feed_id in due:
            url = await self.store.get(feed_source_key(feed_id))
            if not url:
                logger.warning("refresh: feed %s has no url, skipping", feed_id)
                continue
            info = await self.store.get_json(feed_key(feed_id)) or {}
            self.read_feed(feed_id, url, info.get("etag"))
        return due

    def read_feed(self, feed_id: str, url: str, etag: str | None = None) -> asyncio.Task | None:
        if feed_id in self._inflight:
            logger.info("feed %s is already being fetched, skipping", feed_id)
            return None
        self._inflight.add(feed_id)
        task = asyncio.create_task(self._read_feed(feed_id, url, etag))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _read_feed(self, feed_id: str, url: str, etag: str | None) -> None:
        try:
            result = await self.fetcher.fetch(url, etag=etag)
            if result.ok:
                await self.update_feed(feed_id, url, result.data)
            elif result.not_modified:
                await self.touch_feed(feed_id, url, result.data)
            else:
                await self.delay_feed(feed_id, result)
        except Exception:
            logger.exception("feed %s: processing failed", feed_id)
        finally:
            self._inflight.discard(feed_id)

    # --- Outcomes ---

    async def _save_feed(self, feed_id: str, record: dict) -> int:
        now = now_ms()
        expires = record.get("expires") or now + self.default_ttl_ms
        expires = max(expires, now + self.min_expiry_ms)
        record["expires"] = expires

        async with self.store.transaction() as tx:
            tx.set(feed_key(feed_id), dumps(record))
            tx.zadd(SCHEDULE_KEY, {feed_id: expires})
            tx.delete(feed_delay_key(feed_id))
            await tx.execute()
        return expires

    async def update_feed(self, feed_id: str, url: str, feed: dict) -> None:
        channel = dict(feed.get("channel") or {})
        items = channel.pop("items", None) or []
        record = dict(feed, channel=channel, url=url)

        expires = await self._save_feed(feed_id, record)
        logger.info("feed %s: %d items, next fetch at %d", feed_id, len(items), expires)

        for item in items:
            try:
                await self.update_item(item, feed_id)
            except Exception:
                logger.exception("feed %s: item %r not stored", feed_id, item.get("guid"))

    async def touch_feed(self, feed_id: str, url: str, data: dict) -> None:
        record = await self.store.get_json(feed_key(feed_id)) or {"url": url}
        record.update(data)
        if "expires" not in data:
            ttl = channel_ttl_ms(record.get("channel"), self.config.default_ttl_minutes)
            record["expires"] = data["lastRead"] + ttl
        expires = await self._save_feed(feed_id, record)
        logger.info("feed %s: not modified, next fetch at %d", feed_id, expires)

    async def delay_feed(self, feed_id: str, result: FetchResult) -> int:
        previous = await self.store.get(feed_delay_key(feed_id))
        delay = int(previous) * 2 if previous else self.backoff_base_ms
        delay = min(delay, self.max_backoff_ms)

        async with self.store.transaction() as tx:
            tx.set(feed_delay_key(feed_id), delay)
            tx.zadd(SCHEDULE_KEY, {feed_id: now_ms() + delay})
            await tx.execute()

        logger.warning("feed %s: %s, retry in %ds", feed_id, result.error, delay // 1000)
        return delay

    # --- Items ---

    async def update_item(self, item: dict, feed_id: str) -> None:
        guid = item.get("guid")
        if not guid:
            logger.warning("update_item: no guid for %r, skipping", item.get("title"))
            return

        title = item.get("title") or item.get("description")
        key = item_key(guid)
        date = item.get("date") or now_ms()

        await self.store.sadd(item_feeds_key(guid), feed_id)
        old = loads(await self.store.swap(key, dumps(item)))

        if old is None:
            logger.info("new item: %s %r", date, title)
            await self.store.zadd(feed_items_key(feed_id), key, date)
            await self._notify(item, guid, True, None)
            return

        descr = diff(old, item)
        if descr is False:
            return
        logger.info("updated item: %s %r", date, title)
        await self.store.zadd(feed_items_key(feed_id), key, date)
        await self._notify(item, guid, False, descr)

    async def _notify(self, item: dict, guid: str, is_new: bool, descr: dict | None) -> None:
        if self._listener is None:
            return
        feed_ids = sorted(await self.store.smembers(item_feeds_key(guid)), key=int)
        try:
            await _invoke(self._listener, item, feed_ids, is_new, descr)
        except Exception:
            logger.exception("item listener failed for %s", guid)

    # --- Queries ---

    async def feed_info(self, feed_id: str, callback: Callable[[dict | None], Any] | None = None) -> dict | None:
        info = await self.store.get_json(feed_key(feed_id))
        if info is None:
            url = await self.store.get(feed_source_key(feed_id))
            info = {"url": url} if url else None

        if info is not None:
            info["id"] = feed_id
            delay = await self.store.get(feed_delay_key(feed_id))
            if delay:
                info["backoffDelay"] = int(delay)
            next_fetch = await self.store.zscore(SCHEDULE_KEY, feed_id)
            if next_fetch is not None:
                info["nextFetch"] = int(next_fetch)
            info["itemCount"] = await self.store.zcard(feed_items_key(feed_id))

        if callback is not None:
            await _invoke(callback, info)
        return info

    async def feed_items(self, feed_id: str, start: int = 0, stop: int = -1) -> list[dict]:
        """Items of a feed, newest first."""
        items = []
        for key in await self.store.zrevrange(feed_items_key(feed_id), start, stop):
            record = await self.store.get_json(key)
            if record is not None:
                items.append(record)
        return items
