from __future__ import annotations

import datetime as dt
from email.utils import parsedate_to_datetime
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)

def now_ms() -> int:
    return int(utc_now().timestamp() * 1000)

def http_date_ms(value: Optional[str]) -> Optional[int]:
    # Expires / Last-Modified style header -> epoch ms, None when unparseable
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return int(parsed.timestamp() * 1000)

def normalize_feed_url(url: str) -> str:
    # Scheme and host are case-insensitive and the fragment is never sent,
    # everything else is part of the feed's identity.
    parts = urlsplit(url.strip())
    return urlunsplit(
        parts._replace(
            scheme=parts.scheme.lower(),
            netloc=parts.netloc.lower(),
            fragment="",
        )
    )
