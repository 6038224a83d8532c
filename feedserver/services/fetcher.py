from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Any
import httpx

from feedserver.core.exceptions import FeedParseError
from feedserver.services.normalize import MINUTE_MS, http_date_ms, now_ms
from feedserver.services.parser import parse_rss

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 60

@dataclass
class FetchResult:
    status: int
    data: Optional[dict[str, Any]]
    etag: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.data is not None and 200 <= self.status < 300

    @property
    def not_modified(self) -> bool:
        return self.data is not None and self.status == 304

def channel_ttl_ms(channel: dict | None, default_minutes: int) -> int:
    ttl = (channel or {}).get("ttl")
    try:
        minutes = float(ttl) if ttl is not None else None
    except (TypeError, ValueError):
        minutes = None
    if not minutes or minutes <= 0:
        minutes = default_minutes
    return int(minutes * MINUTE_MS)

class Fetcher:
    def __init__(
        self,
        user_agent: str,
        timeout_s: int,
        default_ttl_minutes: int = DEFAULT_TTL_MINUTES,
        client: httpx.AsyncClient | None = None,
    ):
        self._headers = {"User-Agent": user_agent}
        self._timeout = httpx.Timeout(timeout_s)
        self._default_ttl_minutes = default_ttl_minutes
        self._client = client

    async def _get(self, url: str, headers: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, headers=headers)
        async with httpx.AsyncClient(headers=self._headers, timeout=self._timeout, follow_redirects=True) as client:
            return await client.get(url, headers=headers)

    async def fetch(self, url: str, etag: str | None = None) -> FetchResult:
        headers = dict(self._headers)
        if etag:
            headers["If-None-Match"] = etag

        logger.info("GET %s", url)
        try:
            resp = await self._get(url, headers)
        except httpx.HTTPError as e:
            logger.warning("GET %s failed: %s: %s", url, type(e).__name__, e)
            return FetchResult(status=0, data=None, error=f"{type(e).__name__}: {e}")

        status = resp.status_code
        logger.info("GET %s -> %d", url, status)
        new_etag = resp.headers.get("ETag") or etag
        expires = http_date_ms(resp.headers.get("Expires"))

        if status == 304:
            # Channel data is not resent; the caller derives expiry from what it stored
            data = {"lastRead": now_ms()}
            if expires:
                data["expires"] = expires
            if new_etag:
                data["etag"] = new_etag
            return FetchResult(status=status, data=data, etag=new_etag)

        if not 200 <= status < 300:
            return FetchResult(status=status, data=None, error=f"HTTP {status}")

        try:
            data = parse_rss(resp.content)
        except FeedParseError as e:
            logger.warning("GET %s: unparseable body: %s", url, e)
            return FetchResult(status=status, data=None, error=str(e))

        read_at = now_ms()
        data["lastRead"] = read_at
        if expires:
            data["expires"] = expires
        if resp.headers.get("ETag"):
            data["etag"] = resp.headers["ETag"]

        if not data.get("expires"):
            ttl = channel_ttl_ms(data.get("channel"), self._default_ttl_minutes)
            data["expires"] = read_at + ttl
            logger.debug("%s: TTL = %ds => expires %d", url, ttl // 1000, data["expires"])

        return FetchResult(status=status, data=data, etag=data.get("etag"))
